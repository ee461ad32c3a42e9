"""Streaming primitives for provider responses.

:class:`StreamDecoder` drives raw body chunks through the SSE reassembler
and a wire-format decoder, normalizes the result into
:class:`~switchboard.events.StreamEvent` objects, and feeds a
:class:`ToolCallAccumulator` that reassembles tool calls whose arguments
arrive in fragments across multiple chunks.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from switchboard.decoders import WireFormat, decode_payload
from switchboard.events import (
    Done,
    Error,
    StopReason,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallStart,
)
from switchboard.sse import SSEReassembler

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """A resolved tool call."""

    id: str = ""
    name: str = ""
    arguments: str = ""

    def parsed_arguments(self) -> dict[str, Any]:
        if not self.arguments.strip():
            return {}
        return json.loads(self.arguments)


class ChatResult(BaseModel):
    """Final outcome of one completion call."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.NORMAL

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments.

    Slots are only created by :class:`ToolCallStart`; argument fragments are
    appended in arrival order because the arguments are serialized JSON.
    """

    def __init__(self) -> None:
        self._pending: dict[int, ToolCall] = {}

    def start(self, event: ToolCallStart) -> None:
        if event.index in self._pending:
            logger.warning(
                f"Ignoring repeated start for tool call index {event.index}"
            )
            return
        self._pending[event.index] = ToolCall(
            id=event.id, name=event.name, arguments=event.arguments,
        )

    def append(self, event: ToolCallDelta) -> None:
        tc = self._pending.get(event.index)
        if tc is None:
            logger.debug(f"Dropping fragment for undeclared index {event.index}")
            return
        tc.arguments += event.arguments_fragment

    def get(self, index: int) -> ToolCall | None:
        return self._pending.get(index)

    def finalize(self) -> list[ToolCall]:
        """Return completed tool calls in index order."""
        return [self._pending[i] for i in sorted(self._pending)]


class StreamDecoder:
    """Single-owner decoding state for one streaming call.

    Exactly one terminal event is ever produced: the first ``Done`` or
    ``Error`` seen, or a synthesized ``Done`` from :meth:`close` when the
    body ends without one. Nothing is emitted after it.
    """

    def __init__(self, wire_format: WireFormat | str) -> None:
        self.wire_format = WireFormat(wire_format)
        self.accumulator = ToolCallAccumulator()
        self.terminal: Done | Error | None = None
        self._reassembler = SSEReassembler()
        self._text: list[str] = []

    @property
    def finished(self) -> bool:
        return self.terminal is not None

    @property
    def content(self) -> str:
        return "".join(self._text)

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        if self.finished:
            return []
        return self._process(self._reassembler.feed(chunk))

    def close(self) -> list[StreamEvent]:
        if self.finished:
            return []
        events = self._process(self._reassembler.flush())
        if not self.finished:
            self.terminal = Done(StopReason.NORMAL)
            events.append(self.terminal)
        return events

    def result(self) -> ChatResult:
        stop_reason = StopReason.NORMAL
        if isinstance(self.terminal, Done):
            stop_reason = self.terminal.stop_reason
        return ChatResult(
            content=self.content,
            tool_calls=self.accumulator.finalize(),
            stop_reason=stop_reason,
        )

    def _process(self, payloads: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for data in payloads:
            event = decode_payload(self.wire_format, data)
            if event is None:
                continue
            if isinstance(event, TextDelta):
                self._text.append(event.text)
            elif isinstance(event, ToolCallStart):
                self.accumulator.start(event)
            elif isinstance(event, ToolCallDelta):
                self.accumulator.append(event)
            else:
                self.terminal = event
            events.append(event)
            if self.finished:
                break
        return events


async def iter_stream_events(
    chunks: AsyncIterable[bytes],
    wire_format: WireFormat | str,
    *,
    cancel_event: asyncio.Event | None = None,
    decoder: StreamDecoder | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield normalized events for a body delivered as byte chunks.

    When ``cancel_event`` is set between reads the generator stops without
    a terminal event; fragments already yielded stay delivered.
    """
    decoder = decoder or StreamDecoder(wire_format)
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
        if decoder.finished:
            return
        if cancel_event is not None and cancel_event.is_set():
            return
    for event in decoder.close():
        yield event
