import pytest
import requests

import segment_api.client as client_module
from segment_api.app.core.errors import (
    CombinedSegmentError,
    SegmentAlreadyExists,
    SegmentNotFound,
    UserAlreadyInSegment,
    UserNotInSegment,
)
from segment_api.client import ApiRequestError, SegmentApiClient


@pytest.fixture
def api(client):
    # The FastAPI test client accepts the same request() arguments as a requests session.
    return SegmentApiClient(base_url="http://testserver/", session=client)


def test_round_trip(api):
    api.create_segment("A")
    api.create_segment("B")
    api.change_user_segments(1000, ["A", "B"])
    api.change_user_segments(1000, segments_to_delete=["B"])

    assert api.get_user_segments(1000) == ["A"]

    api.delete_segment("A")
    assert api.get_user_segments(1000) == []


def test_domain_errors_are_raised(api):
    api.create_segment("A")

    with pytest.raises(SegmentAlreadyExists):
        api.create_segment("A")
    with pytest.raises(SegmentNotFound):
        api.delete_segment("Z")
    with pytest.raises(SegmentNotFound):
        api.change_user_segments(1, ["Z"])


def test_several_errors_are_combined(api):
    api.create_segment("A")
    api.create_segment("B")
    api.change_user_segments(1, ["A"])

    with pytest.raises(CombinedSegmentError) as excinfo:
        api.change_user_segments(1, ["A"], ["B"])

    assert excinfo.value.matches(UserNotInSegment)
    assert excinfo.value.matches(UserAlreadyInSegment)


def test_unclassified_status(api):
    with pytest.raises(ApiRequestError) as excinfo:
        api._request("POST", "/api/create_segment", json_body={}, expected=201)

    assert excinfo.value.status_code == 400


def test_transport_error():
    class BrokenSession:
        def request(self, **kwargs):
            raise requests.ConnectionError("connection refused")

    api = SegmentApiClient(base_url="http://localhost:1", session=BrokenSession())

    with pytest.raises(ApiRequestError) as excinfo:
        api.get_user_segments(1)

    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


@pytest.fixture
def cli(client, monkeypatch):
    monkeypatch.setattr(
        client_module,
        "SegmentApiClient",
        lambda base_url: SegmentApiClient(base_url=base_url, session=client),
    )
    return lambda *argv: client_module.main(["--base-url", "http://testserver", *argv])


def test_cli(cli, capsys):
    assert cli("create", "A") == 0
    assert cli("change", "5", "--add", "A") == 0
    assert cli("get", "5") == 0

    out = capsys.readouterr().out
    assert "[+] Created segment: A" in out
    assert out.strip().splitlines()[-1] == "A"


def test_cli_reports_errors(cli, capsys):
    cli("create", "A")

    assert cli("create", "A") == 1
    assert "segment with this name is already exists" in capsys.readouterr().err

    assert cli("change", "5", "--add", "Z", "--delete", "A") == 1
    err = capsys.readouterr().err
    assert "[!] can't find the segment" in err
    assert "[!] user doesn't have this segment" in err
