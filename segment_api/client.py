"""Segment API client.

A thin wrapper around the HTTP API built on ``requests``.  Error
responses are turned back into the domain errors of
``segment_api.app.core.errors`` so callers can handle them the same way
whether they talk to the service in-process or over HTTP:

* :meth:`SegmentApiClient.create_segment`
* :meth:`SegmentApiClient.delete_segment`
* :meth:`SegmentApiClient.change_user_segments`
* :meth:`SegmentApiClient.get_user_segments`

Failures that carry no recognised error message (transport errors,
unexpected status codes) raise :class:`ApiRequestError`.

The module doubles as a command line tool::

    segment-api-client --base-url http://localhost:8000 create AVITO_VOICE
    segment-api-client change 1000 --add AVITO_VOICE --delete AVITO_10
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Sequence, Type

import requests

from segment_api.app.core.errors import (
    CombinedSegmentError,
    SegmentAlreadyExists,
    SegmentError,
    SegmentNotFound,
    UserAlreadyInSegment,
    UserNotInSegment,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:80"

_ERRORS_BY_MESSAGE: Dict[str, Type[SegmentError]] = {
    kind.message: kind
    for kind in (SegmentAlreadyExists, SegmentNotFound, UserAlreadyInSegment, UserNotInSegment)
}


class ApiRequestError(SegmentError):
    """The request failed for a reason the API did not classify."""

    message = "request failed"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(detail)


class SegmentApiClient:
    """Client for a running Segment API."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, Any] | None = None,
        json_body: Any | None = None,
        expected: int = 200,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiRequestError(str(exc)) from exc
        if response.status_code != expected:
            raise self._error_from_response(path, response)
        return response

    @staticmethod
    def _error_from_response(path: str, response: requests.Response) -> SegmentError:
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        messages: List[str] = []
        if isinstance(payload.get("error"), str):
            messages.append(payload["error"])
        if isinstance(payload.get("errors"), list):
            messages.extend(m for m in payload["errors"] if isinstance(m, str))

        known = [_ERRORS_BY_MESSAGE[m]() for m in messages if m in _ERRORS_BY_MESSAGE]
        if not known:
            logger.error("API request to %s failed with status %s", path, response.status_code)
            return ApiRequestError(f"HTTP {response.status_code}", status_code=response.status_code)
        if len(known) == 1:
            return known[0]
        return CombinedSegmentError([(path.rsplit("/", 1)[-1], err) for err in known])

    def create_segment(self, name: str) -> None:
        self._request("POST", "/api/create_segment", json_body={"segment": name}, expected=201)

    def delete_segment(self, name: str) -> None:
        self._request("POST", "/api/delete_segment", json_body={"segment": name}, expected=202)

    def change_user_segments(
        self,
        user_id: int,
        segments_to_add: Sequence[str] = (),
        segments_to_delete: Sequence[str] = (),
    ) -> None:
        self._request(
            "POST",
            "/api/change_user_segments",
            json_body={
                "user_id": user_id,
                "segments_to_add": list(segments_to_add),
                "segments_to_delete": list(segments_to_delete),
            },
            expected=201,
        )

    def get_user_segments(self, user_id: int) -> List[str]:
        # The query parameter form avoids sending a body with GET.
        response = self._request("GET", "/api/get_user_segments", params={"user_id": user_id})
        return list(response.json().get("user_segments") or [])


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Manage segments on a running Segment API.")
    ap.add_argument(
        "--base-url",
        default=os.getenv("SEGMENT_API_URL", DEFAULT_BASE_URL),
        help="API base URL (default: $SEGMENT_API_URL or %(default)s)",
    )
    commands = ap.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create a segment")
    create.add_argument("segment")

    delete = commands.add_parser("delete", help="Delete a segment")
    delete.add_argument("segment")

    change = commands.add_parser("change", help="Add a user to / remove a user from segments")
    change.add_argument("user_id", type=int)
    change.add_argument("--add", action="append", default=[], metavar="SEGMENT")
    change.add_argument("--delete", action="append", default=[], metavar="SEGMENT")

    get = commands.add_parser("get", help="List the segments of a user")
    get.add_argument("user_id", type=int)
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    client = SegmentApiClient(base_url=args.base_url)
    try:
        if args.command == "create":
            client.create_segment(args.segment)
            print(f"[+] Created segment: {args.segment}")
        elif args.command == "delete":
            client.delete_segment(args.segment)
            print(f"[+] Deleted segment: {args.segment}")
        elif args.command == "change":
            client.change_user_segments(args.user_id, args.add, args.delete)
            print(f"[+] Updated segments of user {args.user_id}")
        else:
            for segment in client.get_user_segments(args.user_id):
                print(segment)
    except CombinedSegmentError as exc:
        for err in exc.errors():
            print(f"[!] {err.message}", file=sys.stderr)
        return 1
    except SegmentError as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
