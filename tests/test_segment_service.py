import asyncio
import time

import pytest

from segment_api.app.core.errors import (
    CombinedSegmentError,
    SegmentAlreadyExists,
    SegmentNotFound,
    StorageFailure,
    UserAlreadyInSegment,
    UserNotInSegment,
)
from segment_api.app.services.segment_service import (
    ADD_OPERATION,
    DELETE_OPERATION,
    SegmentService,
)


def run(coro):
    return asyncio.run(coro)


def test_create_segment_passes_through(fake_storage):
    run(SegmentService(fake_storage).create_segment("A"))

    assert fake_storage.calls["create_segment"] == [("A",)]


def test_create_segment_error_keeps_its_kind(fake_storage):
    fake_storage.errors["create_segment"] = SegmentAlreadyExists()

    with pytest.raises(SegmentAlreadyExists) as excinfo:
        run(SegmentService(fake_storage).create_segment("A"))

    assert excinfo.value.operation == "creating segment"


def test_delete_segment_error_keeps_its_kind(fake_storage):
    fake_storage.errors["delete_segment"] = SegmentNotFound()

    with pytest.raises(SegmentNotFound) as excinfo:
        run(SegmentService(fake_storage).delete_segment("A"))

    assert excinfo.value.operation == "deleting segment"


class TestChangeUserSegments:
    def test_both_batches_are_sent(self, fake_storage):
        run(SegmentService(fake_storage).change_user_segments(1, ["A"], ["B"]))

        assert fake_storage.calls["add_user_to_segment"] == [(1, ["A"])]
        assert fake_storage.calls["delete_user_from_segment"] == [(1, ["B"])]

    def test_empty_lists_are_not_sent(self, fake_storage):
        run(SegmentService(fake_storage).change_user_segments(1, [], []))

        assert fake_storage.calls["add_user_to_segment"] == []
        assert fake_storage.calls["delete_user_from_segment"] == []

    def test_only_add(self, fake_storage):
        fake_storage.errors["add_user_to_segment"] = SegmentNotFound()

        with pytest.raises(SegmentNotFound) as excinfo:
            run(SegmentService(fake_storage).change_user_segments(1, ["Z"], []))

        assert excinfo.value.operation == ADD_OPERATION
        assert len(fake_storage.calls["add_user_to_segment"]) == 1
        assert fake_storage.calls["delete_user_from_segment"] == []

    def test_only_delete(self, fake_storage):
        fake_storage.errors["delete_user_from_segment"] = UserNotInSegment()

        with pytest.raises(UserNotInSegment):
            run(SegmentService(fake_storage).change_user_segments(1, [], ["A"]))

        assert fake_storage.calls["add_user_to_segment"] == []
        assert len(fake_storage.calls["delete_user_from_segment"]) == 1

    def test_add_fails_and_delete_still_runs(self, fake_storage):
        fake_storage.errors["add_user_to_segment"] = SegmentNotFound()

        with pytest.raises(CombinedSegmentError) as excinfo:
            run(SegmentService(fake_storage).change_user_segments(1, ["Z"], ["A"]))

        combined = excinfo.value
        assert len(fake_storage.calls["delete_user_from_segment"]) == 1
        assert [op for op, _ in combined.failures] == [ADD_OPERATION]
        assert combined.matches(SegmentNotFound)
        assert not combined.matches(UserNotInSegment)

    def test_both_failures_are_kept(self, fake_storage):
        fake_storage.errors["add_user_to_segment"] = UserAlreadyInSegment()
        fake_storage.errors["delete_user_from_segment"] = UserNotInSegment()

        with pytest.raises(CombinedSegmentError) as excinfo:
            run(SegmentService(fake_storage).change_user_segments(1, ["A"], ["B"]))

        combined = excinfo.value
        assert [op for op, _ in combined.failures] == [ADD_OPERATION, DELETE_OPERATION]
        assert combined.matches(UserAlreadyInSegment)
        assert combined.matches(UserNotInSegment)


def test_get_user_segments(fake_storage):
    fake_storage.segments[5] = ["A", "B"]

    assert run(SegmentService(fake_storage).get_user_segments(5)) == ["A", "B"]


def test_get_user_segments_error(fake_storage):
    fake_storage.errors["get_user_segments"] = StorageFailure("boom")

    with pytest.raises(StorageFailure) as excinfo:
        run(SegmentService(fake_storage).get_user_segments(5))

    assert excinfo.value.operation == "getting segments"


def test_slow_store_call_times_out(fake_storage):
    def slow_create(name):
        time.sleep(0.3)

    fake_storage.create_segment = slow_create

    with pytest.raises(StorageFailure) as excinfo:
        run(SegmentService(fake_storage, timeout=0.05).create_segment("A"))

    assert excinfo.value.operation == "creating segment"
    assert "timed out" in str(excinfo.value)


def test_with_real_store(store):
    service = SegmentService(store, timeout=5)
    run(service.create_segment("A"))
    run(service.create_segment("B"))
    run(service.change_user_segments(1000, ["A", "B"], []))

    with pytest.raises(CombinedSegmentError) as excinfo:
        run(service.change_user_segments(1000, ["Z"], ["A"]))

    assert excinfo.value.matches(SegmentNotFound)
    assert [op for op, _ in excinfo.value.failures] == [ADD_OPERATION]
    assert run(service.get_user_segments(1000)) == ["B"]


def test_unbindable_user_id_still_attempts_both_batches(store):
    service = SegmentService(store, timeout=5)
    run(service.create_segment("A"))

    with pytest.raises(CombinedSegmentError) as excinfo:
        run(service.change_user_segments(2**63, ["A"], ["A"]))

    assert [op for op, _ in excinfo.value.failures] == [ADD_OPERATION, DELETE_OPERATION]
    assert all(isinstance(err, StorageFailure) for _, err in excinfo.value.failures)
