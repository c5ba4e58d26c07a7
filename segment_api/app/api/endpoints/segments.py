"""
Segment endpoints.

Four JSON routes for managing segments and memberships.  Successful
mutations answer with an empty body.  Known domain errors are reported
as ``{"error": ...}`` or ``{"errors": [...]}``; anything else becomes an
empty 500 so that internal details never leak to clients.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from segment_api.app.core.errors import (
    SegmentAlreadyExists,
    SegmentError,
    SegmentNotFound,
    UserAlreadyInSegment,
    UserNotInSegment,
)
from segment_api.app.schemas.segment import (
    ChangeUserSegmentsRequest,
    ErrorResponse,
    ErrorsResponse,
    SegmentRequest,
    UserSegmentsRequest,
    USER_ID_MAX,
    USER_ID_MIN,
    UserSegmentsResponse,
)
from segment_api.app.services.segment_service import SegmentService

logger = logging.getLogger(__name__)

router = APIRouter()

# Order in which membership errors are listed in a response; it follows
# the order the sub-operations are attempted.
MEMBERSHIP_ERRORS = (SegmentNotFound, UserNotInSegment, UserAlreadyInSegment)


def get_segment_service(request: Request) -> SegmentService:
    return request.app.state.segment_service


@router.post(
    "/create_segment",
    status_code=status.HTTP_201_CREATED,
    response_class=Response,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
)
async def create_segment(
    body: SegmentRequest,
    service: SegmentService = Depends(get_segment_service),
) -> Response:
    """Create a segment.  Names are unique."""
    try:
        await service.create_segment(body.segment)
    except SegmentAlreadyExists as exc:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": exc.message})
    except SegmentError as exc:
        logger.error("failed to create segment: %s", exc)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(status_code=status.HTTP_201_CREATED)


@router.post(
    "/delete_segment",
    status_code=status.HTTP_202_ACCEPTED,
    response_class=Response,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def delete_segment(
    body: SegmentRequest,
    service: SegmentService = Depends(get_segment_service),
) -> Response:
    """Delete a segment together with its memberships."""
    try:
        await service.delete_segment(body.segment)
    except SegmentNotFound as exc:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": exc.message})
    except SegmentError as exc:
        logger.error("failed to delete segment: %s", exc)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response(status_code=status.HTTP_202_ACCEPTED)


@router.post(
    "/change_user_segments",
    status_code=status.HTTP_201_CREATED,
    response_class=Response,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorsResponse}},
)
async def change_user_segments(
    body: ChangeUserSegmentsRequest,
    service: SegmentService = Depends(get_segment_service),
) -> Response:
    """Add a user to some segments and remove them from others.

    Every recognised failure is listed once in ``errors``.  If none of
    them is recognised the request fails with an empty 500.
    """
    try:
        await service.change_user_segments(
            body.user_id, body.segments_to_add, body.segments_to_delete
        )
    except SegmentError as exc:
        messages = [kind.message for kind in MEMBERSHIP_ERRORS if exc.matches(kind)]
        if not messages:
            logger.error("failed to change user segments: %s", exc)
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"errors": messages})
    return Response(status_code=status.HTTP_201_CREATED)


async def _user_id_from_body(request: Request) -> int:
    raw = await request.body()
    try:
        return UserSegmentsRequest.model_validate_json(raw or b"{}").user_id
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(), body=raw) from exc


@router.get("/get_user_segments", response_model=UserSegmentsResponse)
async def get_user_segments(
    request: Request,
    user_id: Optional[int] = Query(
        None,
        ge=USER_ID_MIN,
        le=USER_ID_MAX,
        description="Alternative to sending user_id in the body",
    ),
    service: SegmentService = Depends(get_segment_service),
):
    """Return the segments of a user.

    ``user_id`` is read from the query string when present, otherwise
    from the JSON body.
    """
    if user_id is None:
        user_id = await _user_id_from_body(request)
    try:
        segments = await service.get_user_segments(user_id)
    except SegmentError as exc:
        logger.error("failed to get user segments: %s", exc)
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return UserSegmentsResponse(user_id=user_id, user_segments=segments)
