"""Per-vendor decoders from one ``data:`` payload to a normalized event.

Each ``decode_*`` function is pure: it takes the parsed JSON object of a
single SSE line and returns at most one :class:`StreamEvent`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from switchboard.events import (
    Done,
    Error,
    StopReason,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallStart,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class WireFormat(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


Decoder = Callable[[dict[str, Any]], StreamEvent | None]


def _first(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _error_message(payload: dict[str, Any], default: str) -> str:
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or default
    if isinstance(error, str) and error:
        return error
    return default


def openai_stop_reason(finish_reason: str | None) -> StopReason:
    if finish_reason == "tool_calls":
        return StopReason.TOOL_CALLS
    if finish_reason == "length":
        return StopReason.MAX_TOKENS
    return StopReason.NORMAL


def anthropic_stop_reason(stop_reason: str | None) -> StopReason:
    if stop_reason == "tool_use":
        return StopReason.TOOL_CALLS
    if stop_reason == "max_tokens":
        return StopReason.MAX_TOKENS
    return StopReason.NORMAL


def decode_openai(payload: dict[str, Any]) -> StreamEvent | None:
    """Chat-completions chunks: ``choices[0].delta`` plus ``finish_reason``."""
    if payload.get("error"):
        return Error(_error_message(payload, "Unknown OpenAI error"))

    choice = _mapping(_first(payload.get("choices")))
    if not choice:
        return None

    finish_reason = choice.get("finish_reason")
    if finish_reason:
        return Done(openai_stop_reason(finish_reason))

    delta = _mapping(choice.get("delta"))
    if delta.get("content"):
        return TextDelta(delta["content"])

    # Only one tool call fragment is sent per chunk.
    tool_call = _mapping(_first(delta.get("tool_calls")))
    if not tool_call:
        return None
    index = tool_call.get("index", 0)
    function = _mapping(tool_call.get("function"))
    if tool_call.get("id") and function.get("name"):
        return ToolCallStart(
            index=index,
            id=tool_call["id"],
            name=function["name"],
            arguments=function.get("arguments") or "",
        )
    if function.get("arguments"):
        return ToolCallDelta(index=index, arguments_fragment=function["arguments"])
    return None


def decode_anthropic(payload: dict[str, Any]) -> StreamEvent | None:
    """Messages API events, discriminated by ``type``."""
    event_type = payload.get("type")

    if event_type == "error":
        return Error(_error_message(payload, "Unknown Anthropic error"))

    if event_type == "content_block_start":
        block = _mapping(payload.get("content_block"))
        if block.get("type") == "tool_use" and block.get("id") and block.get("name"):
            return ToolCallStart(
                index=payload.get("index", 0), id=block["id"], name=block["name"],
            )
        return None

    if event_type == "content_block_delta":
        delta = _mapping(payload.get("delta"))
        if delta.get("type") == "text_delta" and delta.get("text"):
            return TextDelta(delta["text"])
        if delta.get("type") == "input_json_delta" and delta.get("partial_json"):
            return ToolCallDelta(
                index=payload.get("index", 0),
                arguments_fragment=delta["partial_json"],
            )
        return None

    if event_type == "message_delta":
        stop_reason = _mapping(payload.get("delta")).get("stop_reason")
        if not stop_reason:
            return None
        return Done(anthropic_stop_reason(stop_reason))

    if event_type == "message_stop":
        return Done(StopReason.NORMAL)

    return None


def decode_gemini(payload: dict[str, Any]) -> StreamEvent | None:
    """``streamGenerateContent`` chunks; the stream has no end sentinel."""
    if payload.get("error"):
        return Error(_error_message(payload, "Unknown Gemini error"))

    candidate = _mapping(_first(payload.get("candidates")))
    part = _mapping(_first(_mapping(candidate.get("content")).get("parts")))
    if part.get("text"):
        return TextDelta(part["text"])
    return None


DECODERS: dict[WireFormat, Decoder] = {
    WireFormat.OPENAI: decode_openai,
    WireFormat.ANTHROPIC: decode_anthropic,
    WireFormat.GEMINI: decode_gemini,
}


def get_decoder(wire_format: WireFormat | str) -> Decoder:
    return DECODERS[WireFormat(wire_format)]


def decode_payload(wire_format: WireFormat | str, data: str) -> StreamEvent | None:
    """Decode one ``data:`` payload.

    Incomplete or malformed JSON is expected whenever the network splits a
    logical event, so it yields no event rather than an error.
    """
    if data == DONE_SENTINEL:
        return Done(StopReason.NORMAL)
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping incomplete payload: {data[:80]}")
        return None
    if not isinstance(payload, dict):
        return None
    return get_decoder(wire_format)(payload)
