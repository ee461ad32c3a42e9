"""The capability surface every vendor adapter implements.

Adapters share behavior by composing :mod:`switchboard.providers.transport`
and :mod:`switchboard.formatting`, not by inheriting from a base class, so
the contract is expressed as protocols.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from switchboard.config import ProviderConfig
    from switchboard.handlers import StreamHandler
    from switchboard.message import Message
    from switchboard.streaming import ChatResult
    from switchboard.tools import Tool


@runtime_checkable
class ChatProvider(Protocol):
    @property
    def config(self) -> ProviderConfig: ...

    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    def is_ready(self) -> bool:
        """True only when credential, base URL and enabled flag are set."""
        ...

    def update_config(self, **changes) -> None:
        """Replace the held config snapshot with an updated copy."""
        ...

    async def chat_completion(self, messages: list[Message]) -> str: ...

    async def stream_chat_completion(
        self,
        messages: list[Message],
        handler: StreamHandler,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None: ...

    async def get_available_models(self) -> list[str]: ...

    async def test_connection(self) -> bool: ...


@runtime_checkable
class ToolCallingProvider(ChatProvider, Protocol):
    async def chat_completion_with_tools(
        self,
        messages: list[Message],
        tools: list[Tool],
        tool_choice: str = "auto",
    ) -> ChatResult: ...

    async def stream_chat_completion_with_tools(
        self,
        messages: list[Message],
        tools: list[Tool],
        handler: StreamHandler,
        *,
        tool_choice: str = "auto",
        cancel_event: asyncio.Event | None = None,
    ) -> None: ...


def supports_tool_calling(provider: ChatProvider) -> bool:
    return isinstance(provider, ToolCallingProvider)
