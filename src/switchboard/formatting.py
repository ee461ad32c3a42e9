"""Request shaping shared by the vendor adapters.

Converts :class:`~switchboard.message.Message` lists and
:class:`~switchboard.tools.Tool` schemas into each vendor's request shape.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from switchboard.message import Message, MessageRole
from switchboard.tools import Tool

logger = logging.getLogger(__name__)


def filter_messages(messages: list[Message]) -> list[Message]:
    """Drop messages that must never reach a provider.

    Error messages are UI-only; empty placeholders (such as the assistant
    message being streamed into) carry nothing.
    """
    kept = []
    for msg in messages:
        if msg.role is MessageRole.ERROR:
            continue
        if msg.role is MessageRole.TOOL or msg.tool_calls or msg.images:
            kept.append(msg)
        elif msg.content.strip():
            kept.append(msg)
    return kept


# ------------------------------------------------------------------
# OpenAI-compatible
# ------------------------------------------------------------------

def to_openai_messages(
    messages: list[Message], system_prompt: str | None = None,
) -> list[dict[str, Any]]:
    formatted: list[dict[str, Any]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})

    for msg in filter_messages(messages):
        if msg.role is MessageRole.TOOL:
            formatted.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": msg.content,
            })
        elif msg.tool_calls:
            formatted.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": tc.arguments},
                    }
                    for tc in msg.tool_calls
                ],
            })
        elif msg.images:
            content: list[dict[str, Any]] = [{"type": "text", "text": msg.content}]
            for image in msg.images:
                content.append({
                    "type": "image_url",
                    "image_url": {"url": image.as_url(), "detail": "auto"},
                })
            formatted.append({"role": msg.role.value, "content": content})
        else:
            formatted.append({"role": msg.role.value, "content": msg.content})
    return formatted


def to_openai_tools(tools: list[Tool]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def to_openai_tool_choice(tool_choice: str) -> str | dict[str, Any]:
    if tool_choice in ("auto", "none", "required"):
        return tool_choice
    return {"type": "function", "function": {"name": tool_choice}}


# ------------------------------------------------------------------
# Anthropic
# ------------------------------------------------------------------

def _anthropic_tool_input(tc) -> dict[str, Any]:
    try:
        params = tc.parsed_arguments()
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in arguments for {tc.name}: {e}")
        return {}
    if not isinstance(params, dict):
        logger.warning(f"Arguments for {tc.name} are not an object")
        return {}
    return params


def _anthropic_image(image) -> dict[str, Any]:
    if image.type == "base64":
        source = {"type": "base64", "media_type": image.mime_type, "data": image.data}
    else:
        source = {"type": "url", "url": image.data}
    return {"type": "image", "source": source}


def to_anthropic_messages(
    messages: list[Message], system_prompt: str | None = None,
) -> tuple[str | None, list[dict[str, Any]]]:
    """Return ``(system, messages)``.

    System messages are lifted into the top-level ``system`` field and
    consecutive tool results are merged into one user turn.
    """
    system_parts = [system_prompt] if system_prompt else []
    formatted: list[dict[str, Any]] = []

    for msg in filter_messages(messages):
        if msg.role is MessageRole.SYSTEM:
            system_parts.append(msg.content)
            continue

        if msg.role is MessageRole.TOOL:
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
            }
            previous = formatted[-1] if formatted else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                formatted.append({"role": "user", "content": [block]})
            continue

        if msg.tool_calls:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": _anthropic_tool_input(tc),
                })
            formatted.append({"role": "assistant", "content": blocks})
        elif msg.images:
            blocks = [_anthropic_image(image) for image in msg.images]
            blocks.append({"type": "text", "text": msg.content})
            formatted.append({"role": msg.role.value, "content": blocks})
        else:
            formatted.append({"role": msg.role.value, "content": msg.content})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, formatted


def to_anthropic_tools(tools: list[Tool]) -> list[dict[str, Any]]:
    return [
        {"name": t.name, "description": t.description, "input_schema": t.parameters}
        for t in tools
    ]


def to_anthropic_tool_choice(tool_choice: str) -> dict[str, Any] | None:
    if tool_choice == "auto":
        return {"type": "auto"}
    if tool_choice == "required":
        return {"type": "any"}
    if tool_choice == "none":
        return None
    return {"type": "tool", "name": tool_choice}


# ------------------------------------------------------------------
# Gemini
# ------------------------------------------------------------------

def to_gemini_contents(
    messages: list[Message], system_prompt: str | None = None,
) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
    """Return ``(systemInstruction, contents)``.

    Tool traffic has no representation here and is dropped.
    """
    system_parts = [system_prompt] if system_prompt else []
    contents: list[dict[str, Any]] = []

    for msg in filter_messages(messages):
        if msg.role is MessageRole.SYSTEM:
            system_parts.append(msg.content)
            continue
        if msg.role is MessageRole.TOOL:
            continue
        if not msg.content.strip() and not msg.images:
            continue

        parts: list[dict[str, Any]] = []
        if msg.content:
            parts.append({"text": msg.content})
        for image in msg.images:
            if image.type != "base64":
                logger.debug("Skipping URL image for Gemini request")
                continue
            parts.append({"inline_data": {"mime_type": image.mime_type, "data": image.data}})
        role = "model" if msg.role is MessageRole.ASSISTANT else "user"
        contents.append({"role": role, "parts": parts})

    system_instruction = None
    if system_parts:
        system_instruction = {"parts": [{"text": "\n\n".join(system_parts)}]}
    return system_instruction, contents
