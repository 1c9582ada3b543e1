"""HTTP capability consumed by the transport adapter.

The transport only needs three verbs. Any object implementing
:class:`HttpCapability` can be plugged in; :class:`HttpxCapability` is the
default backed by ``httpx.AsyncClient``. A capability reports an HTTP-level
failure by raising :class:`HttpResponseError` (which carries ``status``);
every other exception is treated as a network failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, runtime_checkable
import json
import logging

import httpx

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """Decoded HTTP response handed back by a capability."""

    body: Any
    status: int
    status_text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    url: Optional[str] = None
    raw_body: Optional[str] = None


class HttpResponseError(Exception):
    """HTTP-level failure raised by capabilities that reject non-2xx responses."""

    def __init__(
        self,
        status: int,
        *,
        body: Any = None,
        status_text: str = "",
        headers: Mapping[str, str] | None = None,
        url: str | None = None,
        raw_body: str | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(message or f"HTTP {status} {status_text}".strip())
        self.status = status
        self.body = body
        self.status_text = status_text
        self.headers = dict(headers or {})
        self.url = url
        self.raw_body = raw_body


@runtime_checkable
class HttpCapability(Protocol):
    async def get(self, url: str, *, headers: Mapping[str, str]) -> HttpResponse:
        ...

    async def post(self, url: str, body: Optional[str], *, headers: Mapping[str, str]) -> HttpResponse:
        ...

    async def patch(self, url: str, body: Optional[str], *, headers: Mapping[str, str]) -> HttpResponse:
        ...


def decode_body(text: str) -> Any:
    """Return the JSON value of ``text``; non-JSON text is returned unchanged."""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class HttpxCapability:
    """:class:`HttpCapability` backed by ``httpx.AsyncClient``.

    Responses are returned whatever their status unless ``raise_for_status``
    is set, in which case statuses >= 400 raise :class:`HttpResponseError`.
    When no client is supplied one is created lazily and closed by
    :meth:`aclose`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float | None = None,
        raise_for_status: bool = False,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._raise_for_status = raise_for_status

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def get(self, url: str, *, headers: Mapping[str, str]) -> HttpResponse:
        return await self._send("GET", url, None, headers)

    async def post(self, url: str, body: Optional[str], *, headers: Mapping[str, str]) -> HttpResponse:
        return await self._send("POST", url, body, headers)

    async def patch(self, url: str, body: Optional[str], *, headers: Mapping[str, str]) -> HttpResponse:
        return await self._send("PATCH", url, body, headers)

    async def _send(
        self,
        method: str,
        url: str,
        body: Optional[str],
        headers: Mapping[str, str],
    ) -> HttpResponse:
        kwargs: dict[str, Any] = {"headers": dict(headers)}
        if body is not None:
            kwargs["content"] = body.encode("utf-8")
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        resp = await self.client.request(method, url, **kwargs)
        text = resp.text
        result = HttpResponse(
            body=decode_body(text),
            status=resp.status_code,
            status_text=resp.reason_phrase,
            headers=dict(resp.headers),
            url=str(resp.url),
            raw_body=text,
        )
        if self._raise_for_status and resp.is_error:
            logger.debug("%s %s failed with HTTP %s", method, url, resp.status_code)
            raise HttpResponseError(
                result.status,
                body=result.body,
                status_text=result.status_text,
                headers=result.headers,
                url=result.url,
                raw_body=text,
            )
        return result

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpxCapability":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = [
    "HttpCapability",
    "HttpResponse",
    "HttpResponseError",
    "HttpxCapability",
    "decode_body",
]
