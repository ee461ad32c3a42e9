"""Normalized streaming events shared by every wire format."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StopReason(str, Enum):
    NORMAL = "normal"
    TOOL_CALLS = "tool_calls"
    MAX_TOKENS = "max_tokens"


@dataclass(frozen=True)
class StreamEvent:
    """Base for all normalized stream events."""


@dataclass(frozen=True)
class TextDelta(StreamEvent):
    """Incremental content fragment."""

    text: str


@dataclass(frozen=True)
class ToolCallStart(StreamEvent):
    """Declares a tool invocation at ``index``.

    ``id`` and ``name`` arrive once; the arguments follow as
    :class:`ToolCallDelta` fragments on the same index. Some gateways send
    the first (or only) argument text together with the declaration.
    """

    index: int
    id: str
    name: str
    arguments: str = ""


@dataclass(frozen=True)
class ToolCallDelta(StreamEvent):
    """Argument text appended to the tool call at ``index``."""

    index: int
    arguments_fragment: str


@dataclass(frozen=True)
class Done(StreamEvent):
    """Terminal event for a stream that finished normally."""

    stop_reason: StopReason = StopReason.NORMAL


@dataclass(frozen=True)
class Error(StreamEvent):
    """Terminal event for a vendor-reported failure."""

    message: str


TERMINAL_EVENTS = (Done, Error)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
