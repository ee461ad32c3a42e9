"""Unit tests for the fallback executor."""

import asyncio
import logging

import pytest

from switchboard.errors import NoProvidersError, RequestCancelledError, TransportError
from switchboard.fallback import ExecutionAttempt, FallbackExecutor
from switchboard.handlers import collect_stream
from tests.conftest import FakeProvider, StaticChain, rate_limited, unauthorized


def record_fallbacks():
    log = []

    def on_fallback(from_name, to_name, error):
        log.append((from_name, to_name, error))

    return log, on_fallback


# -------------------------------------------------------------------
# Ordering and stopping
# -------------------------------------------------------------------


class TestFallbackOrdering:
    @pytest.mark.asyncio
    async def test_first_provider_succeeds(self, messages):
        a = FakeProvider("a", ["from a"])
        b = FakeProvider("b", ["from b"])
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain([a, b]), on_fallback)

        result = await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        assert result == "from a"
        assert b.calls == 0
        assert log == []

    @pytest.mark.asyncio
    async def test_fatal_error_stops_the_chain(self, messages):
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", [unauthorized()])
        c = FakeProvider("c", ["from c"])
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain([a, b, c]), on_fallback)

        with pytest.raises(TransportError) as exc_info:
            await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        assert exc_info.value.status_code == 401
        assert (a.calls, b.calls, c.calls) == (1, 1, 0)
        assert [(f, t) for f, t, _ in log] == [("A", "B")]

    @pytest.mark.asyncio
    async def test_fatal_error_on_first_attempt(self, messages):
        a = FakeProvider("a", [unauthorized()])
        b = FakeProvider("b", ["from b"])
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain([a, b]), on_fallback)

        with pytest.raises(TransportError):
            await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        assert b.calls == 0
        assert log == []

    @pytest.mark.asyncio
    async def test_success_after_one_fallback(self, messages):
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", ["from b"])
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain([a, b]), on_fallback)

        detailed = await executor.execute_with_fallback_detailed(
            lambda p: p.chat_completion(messages)
        )

        assert detailed.result == "from b"
        assert detailed.provider_id == "b"
        assert detailed.provider_name == "B"
        assert detailed.fell_back
        assert len(detailed.attempts) == 2
        assert detailed.attempts[0].success is False
        assert isinstance(detailed.attempts[0].error, TransportError)
        assert detailed.attempts[1] == ExecutionAttempt(
            provider_id="b", provider_name="B", attempt_number=2, success=True,
        )
        assert len(log) == 1
        assert log[0][:2] == ("A", "B")
        assert log[0][2] is detailed.attempts[0].error

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, messages):
        last = TransportError.from_status(503, "down")
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", [last])
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain([a, b]), on_fallback)

        with pytest.raises(TransportError) as exc_info:
            await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        assert exc_info.value is last
        # No candidate after B, so no notification for it.
        assert [(f, t) for f, t, _ in log] == [("A", "B")]

    @pytest.mark.asyncio
    async def test_empty_chain(self):
        executor = FallbackExecutor(StaticChain([FakeProvider("a", ready=False)]))

        with pytest.raises(NoProvidersError, match="No available providers configured"):
            await executor.execute_with_fallback(lambda p: p.chat_completion([]))


# -------------------------------------------------------------------
# Retry budget
# -------------------------------------------------------------------


class TestRetryBudget:
    @pytest.mark.asyncio
    async def test_budget_limits_attempts(self, messages):
        providers = [FakeProvider(name, [rate_limited()]) for name in "abcde"]
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain(providers, max_retries=2), on_fallback)

        with pytest.raises(TransportError):
            await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        assert [p.calls for p in providers] == [1, 1, 0, 0, 0]
        # No notification once the budget is spent.
        assert [(f, t) for f, t, _ in log] == [("A", "B")]

    @pytest.mark.asyncio
    async def test_budget_of_one_disables_fallback(self, messages):
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", ["from b"])
        log, on_fallback = record_fallbacks()
        executor = FallbackExecutor(StaticChain([a, b], max_retries=1), on_fallback)

        with pytest.raises(TransportError):
            await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        assert b.calls == 0
        assert log == []

    @pytest.mark.asyncio
    async def test_detailed_records_every_attempt(self, messages):
        providers = [FakeProvider(name, [rate_limited()]) for name in "abc"]
        providers.append(FakeProvider("d", ["from d"]))
        executor = FallbackExecutor(StaticChain(providers, max_retries=3))

        with pytest.raises(TransportError):
            await executor.execute_with_fallback_detailed(lambda p: p.chat_completion(messages))

        assert providers[3].calls == 0


# -------------------------------------------------------------------
# Operations and callbacks
# -------------------------------------------------------------------


class TestOperations:
    @pytest.mark.asyncio
    async def test_sync_operation(self):
        executor = FallbackExecutor(StaticChain([FakeProvider("a")]))

        result = await executor.execute_with_fallback(lambda p: p.id.upper())

        assert result == "A"

    @pytest.mark.asyncio
    async def test_async_fallback_callback(self, messages):
        seen = []

        async def on_fallback(from_name, to_name, error):
            await asyncio.sleep(0)
            seen.append((from_name, to_name))

        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", ["ok"])
        executor = FallbackExecutor(StaticChain([a, b]), on_fallback)

        assert await executor.execute_with_fallback(lambda p: p.chat_completion(messages)) == "ok"
        assert seen == [("A", "B")]

    @pytest.mark.asyncio
    async def test_streaming_operation_via_collect_stream(self, messages):
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", ["streamed"])
        chunks = []
        executor = FallbackExecutor(StaticChain([a, b]))

        result = await executor.execute_with_fallback(
            lambda p: collect_stream(p, messages, on_chunk=chunks.append)
        )

        assert result.content == "streamed"
        assert chunks == ["streamed"]

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, messages):
        a = FakeProvider("a", ["never"])
        cancel = asyncio.Event()
        cancel.set()
        executor = FallbackExecutor(StaticChain([a]))

        with pytest.raises(RequestCancelledError):
            await executor.execute_with_fallback(
                lambda p: p.chat_completion(messages), cancel_event=cancel,
            )
        assert a.calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_between_attempts(self, messages):
        cancel = asyncio.Event()
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", ["never"])
        executor = FallbackExecutor(
            StaticChain([a, b]), on_fallback=lambda *args: cancel.set(),
        )

        with pytest.raises(RequestCancelledError):
            await executor.execute_with_fallback(
                lambda p: p.chat_completion(messages), cancel_event=cancel,
            )
        assert b.calls == 0

    @pytest.mark.asyncio
    async def test_logs_each_attempt(self, messages, caplog):
        a = FakeProvider("a", [rate_limited()])
        b = FakeProvider("b", ["ok"])
        executor = FallbackExecutor(StaticChain([a, b]))

        with caplog.at_level(logging.INFO, logger="switchboard.fallback"):
            await executor.execute_with_fallback(lambda p: p.chat_completion(messages))

        messages_logged = [r.getMessage() for r in caplog.records]
        assert any("attempt 1/3" in m for m in messages_logged)
        assert any("Falling back to: B" in m for m in messages_logged)
