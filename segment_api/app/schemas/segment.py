"""
Pydantic schemas for segment requests and responses.

Field names match the JSON keys of the public API.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator

# User ids are stored as SQLite INTEGER, a signed 64-bit value.
USER_ID_MIN = -(2**63)
USER_ID_MAX = 2**63 - 1


class SegmentRequest(BaseModel):
    """Body of ``create_segment`` and ``delete_segment``."""

    segment: str = Field(..., min_length=1, description="Segment name")


class ChangeUserSegmentsRequest(BaseModel):
    """Segments to add to and remove from one user."""

    user_id: int = Field(..., ge=USER_ID_MIN, le=USER_ID_MAX)
    segments_to_add: List[str] = Field(default_factory=list)
    segments_to_delete: List[str] = Field(default_factory=list)

    @field_validator("segments_to_add", "segments_to_delete", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        # Clients send ``null`` for "nothing to change".
        return [] if v is None else v


class UserSegmentsRequest(BaseModel):
    user_id: int = Field(..., ge=USER_ID_MIN, le=USER_ID_MAX)


class UserSegmentsResponse(BaseModel):
    user_id: int
    user_segments: List[str]


class ErrorResponse(BaseModel):
    error: str


class ErrorsResponse(BaseModel):
    errors: List[str]
