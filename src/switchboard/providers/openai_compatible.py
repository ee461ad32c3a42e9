"""Adapter for OpenAI and every OpenAI-compatible chat-completions API.

Covers OpenAI itself plus DeepSeek, Mistral, Groq, OpenRouter and
user-defined endpoints.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from switchboard.config import ProviderConfig
from switchboard.decoders import WireFormat, openai_stop_reason
from switchboard.errors import ProviderError, ProviderNotReadyError
from switchboard.formatting import (
    to_openai_messages,
    to_openai_tool_choice,
    to_openai_tools,
)
from switchboard.handlers import StreamHandler
from switchboard.message import Message
from switchboard.providers.transport import HttpTransport
from switchboard.streaming import ChatResult, ToolCall
from switchboard.tools import Tool

logger = logging.getLogger(__name__)


def parse_openai_response(data: dict[str, Any]) -> ChatResult:
    choices = data.get("choices") or [{}]
    choice = choices[0]
    message = choice.get("message") or {}
    tool_calls = [
        ToolCall(
            id=tc.get("id", ""),
            name=(tc.get("function") or {}).get("name", ""),
            arguments=(tc.get("function") or {}).get("arguments") or "",
        )
        for tc in message.get("tool_calls") or []
    ]
    return ChatResult(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        stop_reason=openai_stop_reason(choice.get("finish_reason")),
    )


class OpenAICompatibleProvider:
    """Bearer-token chat-completions provider (format A)."""

    wire_format = WireFormat.OPENAI

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

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{path}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
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
        payload: dict[str, Any] = {
            "model": config.default_model,
            "messages": to_openai_messages(messages, config.system_prompt),
            "temperature": config.temperature,
            "stream": stream,
        }
        # Only sent when explicitly configured.
        if config.max_tokens and config.max_tokens > 0:
            payload["max_tokens"] = config.max_tokens
        if tools:
            payload["tools"] = to_openai_tools(tools)
            payload["tool_choice"] = to_openai_tool_choice(tool_choice)
        return payload

    async def _complete(self, payload: dict[str, Any]) -> ChatResult:
        if not self.is_ready():
            raise ProviderNotReadyError()
        data = await self._transport.complete(
            self._url("/chat/completions"),
            payload,
            headers=self._headers(),
            timeout=self._config.timeout,
            system=self.name,
            model=self._config.default_model,
        )
        return parse_openai_response(data)

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
            self._url("/chat/completions"),
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
        if not self.is_ready():
            return list(self._config.available_models)
        try:
            data = await self._transport.request_json(
                "GET", self._url("/models"),
                headers=self._headers(), timeout=self._config.timeout,
            )
        except ProviderError as e:
            logger.warning(f"[{self.name}] getting models failed: {e}")
            return list(self._config.available_models)
        entries = data.get("data")
        if not isinstance(entries, list):
            entries = []
        models = [
            m["id"] for m in entries
            if isinstance(m, dict) and isinstance(m.get("id"), str) and m["id"]
        ]
        return models or list(self._config.available_models)

    async def test_connection(self) -> bool:
        if not self.is_ready():
            return False
        try:
            await self._transport.request_json(
                "GET", self._url("/models"),
                headers=self._headers(), timeout=self._config.timeout,
            )
        except ProviderError as e:
            logger.info(f"[{self.name}] connection test failed: {e}")
            return False
        return True
