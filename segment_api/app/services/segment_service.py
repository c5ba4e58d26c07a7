"""
Service layer for segments.

``SegmentService`` forwards requests to the store and annotates any error
with the operation that was attempted.  The store is blocking, so each
call runs in a worker thread and is bounded by the configured timeout.
A call that misses its deadline is reported as ``StorageFailure``; it is
never retried.

The one piece of real logic is ``change_user_segments``: adding and
removing memberships are independent sub-operations, and when both are
attempted every failure is reported, not just the last one.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from segment_api.app.core.errors import CombinedSegmentError, SegmentError, StorageFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADD_OPERATION = "adding user to segments"
DELETE_OPERATION = "deleting user from segments"


class SegmentStorage(Protocol):
    def create_segment(self, name: str) -> None: ...

    def delete_segment(self, name: str) -> None: ...

    def add_user_to_segment(self, user_id: int, segments: List[str]) -> None: ...

    def delete_user_from_segment(self, user_id: int, segments: List[str]) -> None: ...

    def get_user_segments(self, user_id: int) -> List[str]: ...


class SegmentService:
    """Orchestrates segment and membership changes."""

    def __init__(self, storage: SegmentStorage, timeout: Optional[float] = None) -> None:
        self.storage = storage
        self.timeout = timeout

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), self.timeout)
        except asyncio.TimeoutError as exc:
            raise StorageFailure(f"timed out after {self.timeout}s", operation) from exc
        except SegmentError as exc:
            exc.with_operation(operation)
            raise

    async def create_segment(self, name: str) -> None:
        await self._run("creating segment", self.storage.create_segment, name)
        logger.info("Created segment %s", name)

    async def delete_segment(self, name: str) -> None:
        await self._run("deleting segment", self.storage.delete_segment, name)
        logger.info("Deleted segment %s", name)

    async def change_user_segments(
        self,
        user_id: int,
        segments_to_add: Sequence[str],
        segments_to_delete: Sequence[str],
    ) -> None:
        """Add and remove memberships of one user.

        Each batch is only sent when it is non-empty.  If both are sent,
        failures are collected and raised together as
        ``CombinedSegmentError`` (add first); a single attempted batch
        raises its own error.
        """
        attempts: List[Tuple[str, Callable[[int, List[str]], None], List[str]]] = []
        if segments_to_add:
            attempts.append((ADD_OPERATION, self.storage.add_user_to_segment, list(segments_to_add)))
        if segments_to_delete:
            attempts.append(
                (DELETE_OPERATION, self.storage.delete_user_from_segment, list(segments_to_delete))
            )

        failures: List[Tuple[str, SegmentError]] = []
        for operation, func, segments in attempts:
            try:
                await self._run(operation, func, user_id, segments)
            except SegmentError as exc:
                failures.append((operation, exc))
            else:
                logger.info("User %s: %s %s", user_id, operation, ", ".join(segments))

        if not failures:
            return
        if len(attempts) == 1:
            raise failures[0][1]
        raise CombinedSegmentError(failures)

    async def get_user_segments(self, user_id: int) -> List[str]:
        return await self._run("getting segments", self.storage.get_user_segments, user_id)
