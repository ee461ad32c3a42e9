"""HTTP and streaming toolkit shared by the vendor adapters.

Adapters hold an :class:`HttpTransport` and differ only in the URL,
headers, payload and wire format they hand to it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from switchboard.decoders import WireFormat
from switchboard.errors import (
    ProviderError,
    RequestCancelledError,
    StreamError,
    TransportError,
)
from switchboard.events import Error, StreamEvent, TextDelta
from switchboard.handlers import StreamHandler
from switchboard.instrumentation import completion_span, record_error, record_usage
from switchboard.streaming import StreamDecoder

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30.0


def wrap_transport_error(exc: httpx.HTTPError) -> TransportError:
    """Describe an httpx failure in terms the retry classifier understands."""
    if isinstance(exc, httpx.TimeoutException):
        return TransportError(f"Request timed out: {type(exc).__name__}: {exc}")
    return TransportError(f"Network error: {type(exc).__name__}: {exc}")


def deliver(events: list[StreamEvent], handler: StreamHandler) -> None:
    for event in events:
        if isinstance(event, TextDelta):
            handler.on_chunk(event.text)
        handler.on_event(event)


class HttpTransport:
    """Issues requests for one provider.

    An injected ``client`` is reused for every call and left open; without
    one, each call opens and closes its own client.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    @asynccontextmanager
    async def session(self, timeout: float) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT)
        ) as client:
            yield client

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON body.

        Raises:
            TransportError: On a connection failure or a non-2xx status.
            ProviderError: When the body is not a JSON object.
        """
        try:
            async with self.session(timeout) as client:
                response = await client.request(
                    method, url, json=payload, headers=headers, params=params,
                )
        except httpx.HTTPError as exc:
            raise wrap_transport_error(exc) from exc
        if not response.is_success:
            raise TransportError.from_status(response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"Invalid JSON in response: {response.text[:200]}") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"Invalid JSON in response: {response.text[:200]}")
        return data

    async def complete(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        timeout: float,
        system: str,
        model: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        usage_key: str = "usage",
    ) -> dict[str, Any]:
        """POST a blocking completion inside a ``chat`` span."""
        async with completion_span(system, model) as span:
            try:
                data = await self.request_json(
                    "POST", url, timeout=timeout, headers=headers,
                    params=params, payload=payload,
                )
            except ProviderError as exc:
                record_error(span, exc)
                raise
            record_usage(span, data.get(usage_key), data.get("model"))
            return data

    async def stream(
        self,
        url: str,
        payload: dict[str, Any],
        handler: StreamHandler,
        *,
        wire_format: WireFormat,
        timeout: float,
        system: str,
        model: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """POST a streaming completion and drive the body through a decoder.

        Never raises for transport or decoding failures: they go to
        ``handler.on_error`` because fragments may already be delivered.
        """
        if cancel_event is not None and cancel_event.is_set():
            handler.on_error(RequestCancelledError())
            return

        decoder = StreamDecoder(wire_format)
        error: ProviderError | None = None
        async with completion_span(system, model, stream=True) as span:
            try:
                async with self.session(timeout) as client:
                    async with client.stream(
                        "POST", url, json=payload, headers=headers, params=params,
                    ) as response:
                        if not response.is_success:
                            body = await response.aread()
                            raise TransportError.from_status(
                                response.status_code,
                                body.decode("utf-8", errors="replace"),
                            )
                        async for chunk in response.aiter_bytes():
                            deliver(decoder.feed(chunk), handler)
                            if decoder.finished:
                                break
                            if cancel_event is not None and cancel_event.is_set():
                                raise RequestCancelledError()
                deliver(decoder.close(), handler)
            except httpx.HTTPError as exc:
                error = wrap_transport_error(exc)
            except ProviderError as exc:
                error = exc
            else:
                if isinstance(decoder.terminal, Error):
                    error = StreamError(decoder.terminal.message)

            if error is not None:
                record_error(span, error)
                logger.warning(f"{system} stream failed: {error}")
                handler.on_error(error)
                return

        handler.on_complete(decoder.result())
