"""Minimal JSON-over-HTTP transport shared by the Moneytree and PocketSmith clients.

Requests go through ``urllib.request``. Responses are decoded as JSON (an
empty body decodes to ``None``). Error statuses become
:class:`~pocketsmith_sync.errors.ApiError`, with 404 mapped to
:class:`~pocketsmith_sync.errors.NotFoundError`. No retries are attempted.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from typing import Any

from .errors import ApiError, NotFoundError

DEFAULT_TIMEOUT: float = 60.0


def build_url(url: str, params: Mapping[str, Any] | None = None) -> str:
    """Append ``params`` (``None`` values dropped) as a query string."""

    if not params:
        return url
    query = urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})
    if not query:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{query}"


def request_json(
    method: str,
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    body: Any = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Execute a request and return the parsed JSON body.

    Parameters
    ----------
    method:
        HTTP method (``"GET"``, ``"POST"``, ``"PUT"``...).
    url:
        Absolute URL; ``params`` are appended as a query string.
    headers:
        Extra request headers.
    body:
        JSON-serializable payload; sent with ``Content-Type: application/json``.
    timeout:
        Socket timeout in seconds.
    """

    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")

    req = urllib.request.Request(build_url(url, params), data=data, method=method.upper())
    for key, value in (headers or {}).items():
        req.add_header(key, value)
    if data is not None:
        req.add_header("Content-Type", "application/json; charset=utf-8")

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
    except urllib.error.HTTPError as e:
        try:
            err_body = e.read().decode("utf-8", errors="replace")
        except OSError:
            err_body = ""
        exc_type = NotFoundError if e.code == 404 else ApiError
        raise exc_type(
            f"{method.upper()} {url} failed: {e.code} {e.reason}: {err_body}",
            status=e.code,
            body=err_body,
        ) from e
    except urllib.error.URLError as e:
        raise ApiError(f"{method.upper()} {url} failed: {e.reason}") from e

    if not raw or not raw.strip():
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ApiError(f"{method.upper()} {url} returned invalid JSON") from e


__all__ = ["DEFAULT_TIMEOUT", "build_url", "request_json"]
