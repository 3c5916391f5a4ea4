"""Push channel transports."""

from collections.abc import AsyncIterator
from typing import Protocol

import httpx
import structlog

from core.config import settings
from core.exceptions import AuthenticationError, NetworkError

logger = structlog.get_logger()

_SSE_FIELDS = ("event:", "id:", "retry:")


class IPushStream(Protocol):
    """An open push connection."""

    def messages(self) -> AsyncIterator[str]:
        """Yield raw envelope payloads until the connection closes."""
        ...

    async def aclose(self) -> None: ...


class IPushTransport(Protocol):
    """Opens push connections."""

    async def open(self) -> IPushStream: ...


class HttpPushStream:
    """Reads envelopes from a streamed httpx response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    async def messages(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.aiter_lines():
                payload = _payload(line)
                if payload:
                    yield payload
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise NetworkError("Push connection lost.") from exc

    async def aclose(self) -> None:
        await self._response.aclose()


class HttpStreamPushTransport:
    """Server-sent-event style line stream over httpx.

    ``data: {...}`` lines carry envelopes; bare JSON lines are accepted as
    well. Comments and other event fields are skipped.
    """

    def __init__(
        self,
        url: str = settings.push_url,
        headers: dict[str, str] | None = None,
        timeout: float = settings.request_timeout_seconds,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = {"Accept": "text/event-stream"}
        self._headers.update(settings.auth_headers if headers is None else headers)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, read=None))

    async def open(self) -> HttpPushStream:
        request = self._client.build_request("GET", self._url, headers=self._headers)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise NetworkError("Push channel unreachable.") from exc

        if not response.is_success:
            await response.aclose()
            if response.status_code == 401:
                raise AuthenticationError()
            raise NetworkError(
                f"Push channel refused the connection ({response.status_code}).",
                status_code=response.status_code,
            )
        logger.debug("push_stream_opened", url=self._url)
        return HttpPushStream(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _payload(line: str) -> str | None:
    line = line.strip()
    if not line or line.startswith(":") or line.startswith(_SSE_FIELDS):
        return None
    if line.startswith("data:"):
        return line[len("data:") :].strip() or None
    return line
