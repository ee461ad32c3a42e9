"""Adapter for the Google Generative Language API (format C).

The API key travels as a ``key`` query parameter and the stream carries no
end sentinel: a response completes when the body closes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from switchboard.config import ProviderConfig
from switchboard.decoders import WireFormat
from switchboard.errors import ProviderError, ProviderNotReadyError
from switchboard.formatting import to_gemini_contents
from switchboard.handlers import StreamHandler
from switchboard.message import Message
from switchboard.providers.transport import HttpTransport
from switchboard.streaming import ChatResult

logger = logging.getLogger(__name__)


def parse_gemini_response(data: dict[str, Any]) -> ChatResult:
    candidates = data.get("candidates") or [{}]
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return ChatResult(content="".join(p.get("text") or "" for p in parts))


class GeminiProvider:
    """Query-key provider without tool calling."""

    wire_format = WireFormat.GEMINI

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

    def _model_url(self, method: str) -> str:
        return self._url(f"/models/{self._config.default_model}:{method}")

    def _payload(self, messages: list[Message]) -> dict[str, Any]:
        config = self._config
        system_instruction, contents = to_gemini_contents(messages, config.system_prompt)
        generation_config: dict[str, Any] = {"temperature": config.temperature}
        if config.max_tokens and config.max_tokens > 0:
            generation_config["maxOutputTokens"] = config.max_tokens
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            payload["systemInstruction"] = system_instruction
        return payload

    async def chat_completion(self, messages: list[Message]) -> str:
        if not self.is_ready():
            raise ProviderNotReadyError()
        data = await self._transport.complete(
            self._model_url("generateContent"),
            self._payload(messages),
            params={"key": self._config.api_key},
            timeout=self._config.timeout,
            system=self.name,
            model=self._config.default_model,
            usage_key="usageMetadata",
        )
        return parse_gemini_response(data).content

    async def stream_chat_completion(
        self,
        messages: list[Message],
        handler: StreamHandler,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if not self.is_ready():
            handler.on_error(ProviderNotReadyError())
            return
        await self._transport.stream(
            self._model_url("streamGenerateContent"),
            self._payload(messages),
            handler,
            wire_format=self.wire_format,
            params={"key": self._config.api_key, "alt": "sse"},
            timeout=self._config.timeout,
            system=self.name,
            model=self._config.default_model,
            cancel_event=cancel_event,
        )

    async def _list_models(self) -> dict[str, Any]:
        return await self._transport.request_json(
            "GET", self._url("/models"),
            params={"key": self._config.api_key},
            timeout=self._config.timeout,
        )

    async def get_available_models(self) -> list[str]:
        if not self.is_ready():
            return list(self._config.available_models)
        try:
            data = await self._list_models()
        except ProviderError as e:
            logger.warning(f"[{self.name}] getting models failed: {e}")
            return list(self._config.available_models)
        entries = data.get("models")
        if not isinstance(entries, list):
            entries = []
        models = [
            m["name"].removeprefix("models/")
            for m in entries
            if isinstance(m, dict) and isinstance(m.get("name"), str)
            and "gemini" in m["name"]
            and "generateContent" in (m.get("supportedGenerationMethods") or [])
        ]
        return models or list(self._config.available_models)

    async def test_connection(self) -> bool:
        if not self.is_ready():
            return False
        try:
            await self._list_models()
        except ProviderError as e:
            logger.info(f"[{self.name}] connection test failed: {e}")
            return False
        return True
