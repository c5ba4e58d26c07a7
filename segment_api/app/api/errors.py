"""
Exception handlers shared by all routes.

Malformed or invalid request bodies answer 400 instead of FastAPI's
default 422.  Unhandled exceptions are logged server side and answer an
empty 500.
"""

import logging

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("invalid request to %s: %s", request.url.path, exc.errors())
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s", request.url.path)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
