"""Sinks that receive the output of a streaming completion.

A provider calls :meth:`StreamHandler.on_chunk` for each text fragment,
:meth:`StreamHandler.on_event` for every normalized event, and then exactly
one of :meth:`StreamHandler.on_complete` or :meth:`StreamHandler.on_error`.
Errors are delivered, not raised, because fragments may already have
reached the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from switchboard.errors import ProviderError
from switchboard.events import StreamEvent
from switchboard.streaming import ChatResult

if TYPE_CHECKING:
    from switchboard.message import Message
    from switchboard.providers.base import ChatProvider
    from switchboard.tools import Tool


class StreamHandler:
    """Base handler; override the methods you need."""

    def on_chunk(self, text: str) -> None:
        """Called with each incremental text fragment."""

    def on_event(self, event: StreamEvent) -> None:
        """Called with every normalized event, including tool-call starts."""

    def on_complete(self, result: ChatResult) -> None:
        """Called once with the full text and any completed tool calls."""

    def on_error(self, error: Exception) -> None:
        """Called once if the stream fails."""


class CallbackHandler(StreamHandler):
    """Adapts plain callables to the handler interface."""

    def __init__(
        self,
        on_chunk: Callable[[str], None] | None = None,
        on_complete: Callable[[ChatResult], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_event: Callable[[StreamEvent], None] | None = None,
    ):
        self._on_chunk = on_chunk
        self._on_complete = on_complete
        self._on_error = on_error
        self._on_event = on_event

    def on_chunk(self, text: str) -> None:
        if self._on_chunk is not None:
            self._on_chunk(text)

    def on_event(self, event: StreamEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def on_complete(self, result: ChatResult) -> None:
        if self._on_complete is not None:
            self._on_complete(result)

    def on_error(self, error: Exception) -> None:
        if self._on_error is not None:
            self._on_error(error)


class CollectingHandler(StreamHandler):
    """Records everything a stream delivers.

    :meth:`wait` turns the callback contract back into a return value or a
    raised exception, which is what the fallback executor needs.
    """

    def __init__(self, on_chunk: Callable[[str], None] | None = None):
        self.chunks: list[str] = []
        self.events: list[StreamEvent] = []
        self.result: ChatResult | None = None
        self.error: Exception | None = None
        self._forward = on_chunk
        self._finished = asyncio.Event()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def on_chunk(self, text: str) -> None:
        self.chunks.append(text)
        if self._forward is not None:
            self._forward(text)

    def on_event(self, event: StreamEvent) -> None:
        self.events.append(event)

    def on_complete(self, result: ChatResult) -> None:
        self.result = result
        self._finished.set()

    def on_error(self, error: Exception) -> None:
        self.error = error
        self._finished.set()

    async def wait(self) -> ChatResult:
        await self._finished.wait()
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


async def collect_stream(
    provider: ChatProvider,
    messages: list[Message],
    *,
    tools: list[Tool] | None = None,
    on_chunk: Callable[[str], None] | None = None,
    cancel_event: asyncio.Event | None = None,
) -> ChatResult:
    """Run a streaming completion and return its result, raising on error.

    Fragments are forwarded to ``on_chunk`` as they arrive.
    """
    handler = CollectingHandler(on_chunk=on_chunk)
    if tools:
        stream_with_tools = getattr(provider, "stream_chat_completion_with_tools", None)
        if stream_with_tools is None:
            raise ProviderError(f"{provider.name} does not support tool calling")
        await stream_with_tools(
            messages, tools, handler, cancel_event=cancel_event,
        )
    else:
        await provider.stream_chat_completion(
            messages, handler, cancel_event=cancel_event,
        )
    if not handler.finished:
        raise ProviderError(f"{provider.name} returned without completing the stream")
    return await handler.wait()
