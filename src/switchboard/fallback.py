"""Sequential fallback execution across the registry's provider chain."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from switchboard.classification import is_retryable_error
from switchboard.errors import NoProvidersError, RequestCancelledError
from switchboard.instrumentation import fallback_attempt_span, record_error
from switchboard.providers.base import ChatProvider
from switchboard.registry import ProviderRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[ChatProvider], Any]
FallbackCallback = Callable[[str, str, Exception], Any]


@dataclass(frozen=True)
class ExecutionAttempt:
    provider_id: str
    provider_name: str
    attempt_number: int
    success: bool
    error: Exception | None = None


@dataclass
class FallbackResult(Generic[T]):
    result: T
    provider_id: str
    provider_name: str
    attempts: list[ExecutionAttempt] = field(default_factory=list)

    @property
    def fell_back(self) -> bool:
        return len(self.attempts) > 1


class FallbackExecutor:
    """Runs an operation against each provider of the chain until one succeeds.

    Candidates are tried one at a time, in chain order, and at most
    ``registry.fallback_config.max_retries`` of them are tried. A
    non-retryable error stops the chain and is raised as-is; when every
    allowed attempt fails with a retryable error the last one is raised.

    Args:
        registry: Supplies the chain and the retry budget, read at the
            start of every execution.
        on_fallback: Called as ``on_fallback(from_name, to_name, error)``
            before moving to the next candidate. May be a coroutine function.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        on_fallback: FallbackCallback | None = None,
    ):
        self.registry = registry
        self.on_fallback = on_fallback

    async def execute_with_fallback(
        self,
        operation: Operation,
        *,
        cancel_event: asyncio.Event | None = None,
    ):
        """Return the first successful result of ``operation(provider)``."""
        detailed = await self.execute_with_fallback_detailed(
            operation, cancel_event=cancel_event,
        )
        return detailed.result

    async def execute_with_fallback_detailed(
        self,
        operation: Operation,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> FallbackResult:
        """Like :meth:`execute_with_fallback`, with the per-attempt log.

        Raises:
            NoProvidersError: If no provider is ready.
            RequestCancelledError: If ``cancel_event`` is set before an attempt.
        """
        chain = self.registry.get_fallback_chain()
        if not chain:
            raise NoProvidersError()

        max_attempts = max(1, self.registry.fallback_config.max_retries)
        attempts: list[ExecutionAttempt] = []
        last_error: Exception | None = None

        for index, provider in enumerate(chain[:max_attempts]):
            attempt_number = index + 1
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelledError()

            logger.info(
                f"Attempting with provider: {provider.name} "
                f"(attempt {attempt_number}/{max_attempts})"
            )
            async with fallback_attempt_span(provider.id, attempt_number) as span:
                try:
                    result = operation(provider)
                    if inspect.isawaitable(result):
                        result = await result
                except Exception as e:
                    record_error(span, e)
                    last_error = e
                    attempts.append(ExecutionAttempt(
                        provider_id=provider.id,
                        provider_name=provider.name,
                        attempt_number=attempt_number,
                        success=False,
                        error=e,
                    ))
                else:
                    attempts.append(ExecutionAttempt(
                        provider_id=provider.id,
                        provider_name=provider.name,
                        attempt_number=attempt_number,
                        success=True,
                    ))
                    return FallbackResult(
                        result=result,
                        provider_id=provider.id,
                        provider_name=provider.name,
                        attempts=attempts,
                    )

            logger.warning(f"Provider {provider.name} failed: {last_error}")
            if not is_retryable_error(last_error):
                logger.info("Error is not retryable, stopping fallback chain")
                raise last_error

            has_next = index + 1 < len(chain)
            can_retry = attempt_number < max_attempts
            if has_next and can_retry:
                next_provider = chain[index + 1]
                logger.info(f"Falling back to: {next_provider.name}")
                await self._notify(provider.name, next_provider.name, last_error)

        logger.warning(f"All providers failed after {len(attempts)} attempt(s)")
        raise last_error

    async def _notify(self, from_name: str, to_name: str, error: Exception) -> None:
        if self.on_fallback is None:
            return
        outcome = self.on_fallback(from_name, to_name, error)
        if inspect.isawaitable(outcome):
            await outcome
