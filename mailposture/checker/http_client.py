"""
HTTP client used for MTA-STS policy documents and RDAP queries.

``requests`` applies its timeout to the connect and to each socket read,
so a server that keeps trickling bytes is never cut off by it.  ``fetch``
therefore streams the body against its own deadline and a byte cap, and
closes the connection as soon as either is reached.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import requests
import urllib3

from mailposture.config import Config

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 1024 * 1024

_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class HttpResponse:
    """A fully read (or truncated) HTTP response."""

    url: str
    status_code: int
    content: bytes
    encoding: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    truncated: bool = False

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.content)

    def raise_for_status(self) -> None:
        if 400 <= self.status_code < 600:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}")


def fetch(
    url: str,
    timeout: float,
    headers: dict[str, str] | None = None,
    allow_redirects: bool = True,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> HttpResponse:
    """GET *url* and return the response, whatever its status code.

    The whole exchange, body included, must finish within *timeout*
    seconds.  At most *max_bytes* of the body are read.

    Raises:
        requests.RequestException: On connection errors and timeouts.
    """
    request_headers = {"User-Agent": Config.USER_AGENT}
    if headers:
        request_headers.update(headers)

    deadline = time.monotonic() + timeout
    logger.debug("GET %s (timeout=%.1fs)", url, timeout)

    with requests.get(
        url,
        headers=request_headers,
        timeout=timeout,
        allow_redirects=allow_redirects,
        stream=True,
    ) as response:
        body, truncated = _read_body(response, url, deadline, timeout, max_bytes)
        return HttpResponse(
            url=response.url or url,
            status_code=response.status_code,
            content=body,
            encoding=response.encoding,
            headers=dict(response.headers),
            truncated=truncated,
        )


def _read_body(
    response: requests.Response,
    url: str,
    deadline: float,
    timeout: float,
    max_bytes: int,
) -> tuple[bytes, bool]:
    """Read the streamed body until EOF, the byte cap or the deadline."""
    body = bytearray()
    while True:
        if time.monotonic() >= deadline:
            raise requests.Timeout(f"Reading {url} took longer than {timeout:.1f}s")
        try:
            # read1 returns whatever has arrived instead of waiting for a full chunk
            chunk = response.raw.read1(_CHUNK_SIZE, decode_content=True)
        except urllib3.exceptions.ReadTimeoutError as exc:
            raise requests.Timeout(str(exc)) from exc
        except urllib3.exceptions.HTTPError as exc:
            raise requests.ConnectionError(str(exc)) from exc

        if not chunk:
            return bytes(body), False
        body.extend(chunk)
        if len(body) >= max_bytes:
            logger.debug("Truncated %s at %d bytes", url, max_bytes)
            return bytes(body[:max_bytes]), True
