"""
Domain-level errors for segment operations.

Every failure the store or the service reports is a subclass of
``SegmentError``.  The concrete kinds form a closed set; the HTTP layer
tests for them with ``isinstance`` and is the only place that turns them
into status codes.  ``StorageFailure`` covers everything that could not
be classified and must never be reported to clients in detail.
"""

from typing import List, Optional, Tuple, Type


class SegmentError(Exception):
    """Base class for all segment errors.

    ``message`` is the client-facing text of the kind.  ``operation``
    names what was being attempted when the error surfaced and is filled
    in by the service layer.
    """

    message = "segment operation failed"

    def __init__(self, detail: Optional[str] = None, operation: Optional[str] = None) -> None:
        self.detail = detail
        self.operation = operation
        super().__init__(detail or self.message)

    def with_operation(self, operation: str) -> "SegmentError":
        """Record the attempted operation and return the same error."""
        self.operation = operation
        return self

    def matches(self, kind: Type["SegmentError"]) -> bool:
        return isinstance(self, kind)

    def __str__(self) -> str:
        text = self.message if self.detail is None else f"{self.message}: {self.detail}"
        if self.operation:
            return f"{self.operation}: {text}"
        return text


class SegmentAlreadyExists(SegmentError):
    message = "segment with this name is already exists"


class SegmentNotFound(SegmentError):
    message = "can't find the segment"


class UserAlreadyInSegment(SegmentError):
    message = "user is already has this segment"


class UserNotInSegment(SegmentError):
    message = "user doesn't have this segment"


class StorageFailure(SegmentError):
    message = "storage failure"


class SchemaMismatchError(RuntimeError):
    """The live schema lacks a constraint the store relies on."""


class CombinedSegmentError(SegmentError):
    """Several independent failures of one logical request.

    ``failures`` keeps ``(operation, error)`` pairs in the order the
    sub-operations were attempted.
    """

    message = "several segment operations failed"

    def __init__(self, failures: List[Tuple[str, SegmentError]]) -> None:
        self.failures = [(op, err.with_operation(op)) for op, err in failures]
        super().__init__(detail="; ".join(str(err) for _, err in self.failures))

    def matches(self, kind: Type[SegmentError]) -> bool:
        return any(err.matches(kind) for _, err in self.failures)

    def errors(self) -> List[SegmentError]:
        return [err for _, err in self.failures]
