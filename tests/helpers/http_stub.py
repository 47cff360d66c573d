"""Stub for ``urllib.request.urlopen`` used by the transport layer.

Tests install :class:`UrlopenStub` with ``monkeypatch`` and provide a
``respond`` callable that maps each recorded request to either a JSON-able
payload, raw ``bytes`` or an exception. Every request is captured as a
:class:`RecordedRequest` for assertions on method, URL, headers and body.
"""

from __future__ import annotations

import io
import json
import urllib.error
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: Any
    timeout: float | None

    @property
    def path(self) -> str:
        return urllib.parse.urlsplit(self.url).path

    @property
    def query(self) -> dict[str, str]:
        return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(self.url).query))


class _Response:
    def __init__(self, raw: bytes) -> None:
        self._raw = raw

    def read(self) -> bytes:
        return self._raw

    def __enter__(self) -> _Response:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


def http_error(url: str, status: int, body: str = "") -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        url, status, f"status {status}", hdrs=None, fp=io.BytesIO(body.encode("utf-8"))
    )


class UrlopenStub:
    def __init__(self, respond: Callable[[RecordedRequest], Any]) -> None:
        self._respond = respond
        self.requests: list[RecordedRequest] = []

    def __call__(self, req, timeout: float | None = None) -> _Response:
        data = req.data
        recorded = RecordedRequest(
            method=req.get_method(),
            url=req.full_url,
            # urllib capitalizes header names (``X-developer-key``)
            headers={k.lower(): v for k, v in req.header_items()},
            body=json.loads(data.decode("utf-8")) if data else None,
            timeout=timeout,
        )
        self.requests.append(recorded)

        result = self._respond(recorded)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, bytes):
            return _Response(result)
        return _Response(json.dumps(result).encode("utf-8"))
