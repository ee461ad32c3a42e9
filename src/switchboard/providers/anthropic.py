"""Adapter for the Anthropic Messages API (format B)."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from switchboard.config import ProviderConfig
from switchboard.decoders import WireFormat, anthropic_stop_reason
from switchboard.errors import ProviderError, ProviderNotReadyError
from switchboard.formatting import (
    to_anthropic_messages,
    to_anthropic_tool_choice,
    to_anthropic_tools,
)
from switchboard.handlers import StreamHandler
from switchboard.message import Message
from switchboard.providers.transport import HttpTransport
from switchboard.streaming import ChatResult, ToolCall
from switchboard.tools import Tool

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 8192
# Used by test_connection when no default model is configured.
FALLBACK_TEST_MODEL = "claude-3-5-haiku-20241022"


def parse_anthropic_response(data: dict[str, Any]) -> ChatResult:
    text = []
    tool_calls = []
    for block in data.get("content") or []:
        if block.get("type") == "text":
            text.append(block.get("text") or "")
        elif block.get("type") == "tool_use":
            tool_calls.append(ToolCall(
                id=block.get("id", ""),
                name=block.get("name", ""),
                arguments=json.dumps(block.get("input") or {}),
            ))
    return ChatResult(
        content="".join(text),
        tool_calls=tool_calls,
        stop_reason=anthropic_stop_reason(data.get("stop_reason")),
    )


class AnthropicProvider:
    """Custom-header provider; ``max_tokens`` is mandatory in every request."""

    wire_format = WireFormat.ANTHROPIC

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
    ):
        self._config = config
        self._transport = HttpTransport(client)

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def name(self) -> str:
        return self._config.name

    def is_ready(self) -> bool:
        return self._config.is_ready()

    def update_config(self, **changes) -> None:
        self._config = self._config.model_copy(update=changes)

    def _url(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _payload(
        self,
        messages: list[Message],
        *,
        stream: bool,
        tools: list[Tool] | None = None,
        tool_choice: str = "auto",
    ) -> dict[str, Any]:
        config = self._config
        system, formatted = to_anthropic_messages(messages, config.system_prompt)
        payload: dict[str, Any] = {
            "model": config.default_model,
            "max_tokens": config.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": formatted,
        }
        if system:
            payload["system"] = system
        if stream:
            payload["stream"] = True
        if tools:
            payload["tools"] = to_anthropic_tools(tools)
            choice = to_anthropic_tool_choice(tool_choice)
            if choice is not None:
                payload["tool_choice"] = choice
        return payload

    async def _complete(self, payload: dict[str, Any]) -> ChatResult:
        if not self.is_ready():
            raise ProviderNotReadyError()
        data = await self._transport.complete(
            self._url(),
            payload,
            headers=self._headers(),
            timeout=self._config.timeout,
            system=self.name,
            model=self._config.default_model,
        )
        return parse_anthropic_response(data)

    async def _stream(
        self,
        payload: dict[str, Any],
        handler: StreamHandler,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if not self.is_ready():
            handler.on_error(ProviderNotReadyError())
            return
        await self._transport.stream(
            self._url(),
            payload,
            handler,
            wire_format=self.wire_format,
            headers=self._headers(),
            timeout=self._config.timeout,
            system=self.name,
            model=self._config.default_model,
            cancel_event=cancel_event,
        )

    async def chat_completion(self, messages: list[Message]) -> str:
        result = await self._complete(self._payload(messages, stream=False))
        return result.content

    async def stream_chat_completion(
        self,
        messages: list[Message],
        handler: StreamHandler,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        await self._stream(self._payload(messages, stream=True), handler, cancel_event)

    async def chat_completion_with_tools(
        self,
        messages: list[Message],
        tools: list[Tool],
        tool_choice: str = "auto",
    ) -> ChatResult:
        return await self._complete(
            self._payload(messages, stream=False, tools=tools, tool_choice=tool_choice)
        )

    async def stream_chat_completion_with_tools(
        self,
        messages: list[Message],
        tools: list[Tool],
        handler: StreamHandler,
        *,
        tool_choice: str = "auto",
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        payload = self._payload(
            messages, stream=True, tools=tools, tool_choice=tool_choice,
        )
        await self._stream(payload, handler, cancel_event)

    async def get_available_models(self) -> list[str]:
        # No public listing endpoint; the configured list is authoritative.
        return list(self._config.available_models)

    async def test_connection(self) -> bool:
        if not self.is_ready():
            return False
        payload = {
            "model": self._config.default_model or FALLBACK_TEST_MODEL,
            "max_tokens": 10,
            "messages": [{"role": "user", "content": "Hi"}],
        }
        try:
            await self._transport.request_json(
                "POST", self._url(), headers=self._headers(),
                payload=payload, timeout=self._config.timeout,
            )
        except ProviderError as e:
            logger.info(f"[{self.name}] connection test failed: {e}")
            return False
        return True
