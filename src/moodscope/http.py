"""Minimal JSON-over-HTTP helper shared by the external service clients."""

from __future__ import annotations

import json
import logging
import socket
from http.client import HTTPException
from typing import TYPE_CHECKING
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

if TYPE_CHECKING:
    from moodscope.exceptions import ClientError

__all__ = ["HttpResponse", "request_json"]

logger = logging.getLogger(__name__)


class HttpResponse:
    """Status code, reason and decoded JSON body (None when the body is empty)."""

    def __init__(self, status: int, reason: str, data: object) -> None:
        self.status = status
        self.reason = reason
        self.data = data

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _decode(body: bytes) -> object:
    if not body:
        return None
    return json.loads(body)


def request_json(
    url: str,
    *,
    error_cls: type[ClientError],
    payload: object | None = None,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
) -> HttpResponse:
    """Send a request and decode the JSON response.

    HTTP error statuses are returned, not raised, so callers can map them
    (404 often means "no data" rather than failure). Transport failures are
    raised as retryable ``error_cls``; undecodable bodies as non-retryable.

    Args:
        url: Endpoint URL.
        error_cls: ClientError subclass to raise on transport/decoding errors.
        payload: JSON body; when given the request is a POST.
        params: Query string parameters.
        headers: Extra request headers.
        timeout: Per-call timeout in seconds.
    """
    if params:
        url = f"{url}?{urlencode(params)}"

    all_headers = {"Accept": "application/json"}
    data: bytes | None = None
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        all_headers["Content-Type"] = "application/json"
    if headers:
        all_headers.update(headers)

    req = Request(url, data=data, headers=all_headers)

    try:
        with urlopen(req, timeout=timeout) as resp:
            return HttpResponse(resp.status, getattr(resp, "reason", ""), _decode(resp.read()))
    except HTTPError as e:
        try:
            body = _decode(e.read())
        except (OSError, ValueError, HTTPException):
            body = None
        logger.debug("HTTP %d from %s", e.code, url)
        return HttpResponse(e.code, str(e.reason), body)
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError both land here
        raise error_cls(f"Invalid JSON from {url}", 500, retryable=False) from e
    except (TimeoutError, socket.timeout) as e:
        raise error_cls(f"Request to {url} timed out after {timeout}s", 408, retryable=True) from e
    except (ConnectionError, URLError) as e:
        raise error_cls(f"{url} not reachable: {e}", 503, retryable=True) from e
    except HTTPException as e:
        raise error_cls(
            f"Broken response from {url}: {type(e).__name__}", 502, retryable=True
        ) from e
