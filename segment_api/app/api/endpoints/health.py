"""
Health endpoints.

``/health`` is a liveness probe and never touches the database.
``/health/ready`` runs a trivial query through the connection pool and
answers 503 when it fails, without saying why.
"""

import asyncio
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from segment_api.app.core.errors import StorageFailure

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check() -> dict:
    return {"status": "ok"}


@router.get("/ready")
async def readiness_check(request: Request):
    store = request.app.state.segment_store
    try:
        await asyncio.to_thread(store.ping)
    except StorageFailure as exc:
        logger.warning("readiness check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready"},
        )
    return {"status": "ready"}
