"""HTTP adapter for the get and post actions.

Uses urllib in a worker thread so a slow endpoint only stalls the entry
that triggered it, not the other actions running next to it.
"""

from __future__ import annotations

import asyncio
from email.message import Message
from typing import Mapping, Optional
import urllib.error
import urllib.request

from core.errors import ActionTransportError
from core.ports import HttpResponse


def _to_response(status: int, headers: Message, body: bytes) -> HttpResponse:
    content_type: Optional[str] = headers.get("Content-Type")
    text: Optional[str] = None
    if content_type and content_type.split(";", 1)[0].strip().lower().startswith("text/"):
        charset = headers.get_content_charset() or "utf-8"
        text = body.decode(charset, errors="replace")
    return HttpResponse(status=status, content_type=content_type, text=text)


class UrllibHttpClient:
    """HttpPort implementation on top of urllib.request."""

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse:
        return await asyncio.to_thread(self._request, "GET", url, None, headers)

    async def post(self, url: str, body: str, headers: Mapping[str, str]) -> HttpResponse:
        return await asyncio.to_thread(self._request, "POST", url, body.encode("utf-8"), headers)

    def _request(self, method: str, url: str, data: Optional[bytes], headers: Mapping[str, str]) -> HttpResponse:
        request = urllib.request.Request(url, data=data, method=method, headers=dict(headers))
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return _to_response(response.status, response.headers, response.read())
        except urllib.error.HTTPError as e:
            # Error statuses still carry a response worth reporting.
            return _to_response(e.code, e.headers, e.read())
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise ActionTransportError(f"{method} {url} failed: {e}") from e
