"""Streaming chat with automatic provider fallback.

Demonstrates:

- Building a registry from ``*_API_KEY`` environment variables

- Streaming tokens to the terminal while the fallback executor moves to the
  next provider on rate limits, timeouts and outages

- OpenTelemetry tracing with ConsoleSpanExporter

Usage:
    Add OPENAI_API_KEY=sk-... (and any of ANTHROPIC_API_KEY, GEMINI_API_KEY,
    GROQ_API_KEY, ...) to .env, then:
    uv run --env-file=.env examples/streaming_chat.py
"""

import asyncio
import logging

from switchboard.fallback import FallbackExecutor
from switchboard.handlers import collect_stream
from switchboard.instrumentation import instrument, uninstrument
from switchboard.log import configure_logging
from switchboard.message import assistant, user
from switchboard.registry import ProviderRegistry


def announce_fallback(from_name: str, to_name: str, error: Exception):
    print(f"\n[{from_name} failed ({error}); trying {to_name}]")


async def main():
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import SimpleSpanProcessor, ConsoleSpanExporter

    tracer_provider = TracerProvider(
        resource=Resource({SERVICE_NAME: "streaming-chat"})
    )
    tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tracer_provider)

    configure_logging(logging.WARNING)
    instrument()

    registry = ProviderRegistry.from_env()
    executor = FallbackExecutor(registry, on_fallback=announce_fallback)
    print("Providers:", ", ".join(p.name for p in registry.get_fallback_chain()) or "none")

    history = []
    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        history.append(user(user_input))
        print("Assistant: ", end="", flush=True)
        detailed = await executor.execute_with_fallback_detailed(
            lambda provider: collect_stream(
                provider, history, on_chunk=lambda t: print(t, end="", flush=True),
            )
        )
        print(f"\n({detailed.provider_name})\n")
        history.append(assistant(detailed.result.content))

    uninstrument()


if __name__ == "__main__":
    asyncio.run(main())
