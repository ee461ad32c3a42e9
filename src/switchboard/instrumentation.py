"""Optional OpenTelemetry instrumentation for switchboard.

Call ``switchboard.instrumentation.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; the library
works identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "switchboard") -> None:
    """Enable OpenTelemetry tracing for provider requests and fallback.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install switchboard[otel]``

    Example::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        from switchboard.instrumentation import instrument
        instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install switchboard[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("Switchboard instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing.

    Subsequent operations will not emit spans.
    """
    global _tracer
    _tracer = None


@asynccontextmanager
async def completion_span(system: str, model: str, *, stream: bool = False):
    """Wrap one provider request in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
            "switchboard.stream": stream,
        },
    ) as span:
        yield span


@asynccontextmanager
async def fallback_attempt_span(provider_id: str, attempt: int):
    """Wrap one fallback-executor attempt."""
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(
        f"fallback_attempt {provider_id}",
        attributes={
            "switchboard.provider.id": provider_id,
            "switchboard.attempt": attempt,
        },
    ) as span:
        yield span


def record_usage(span, usage, response_model: str | None = None):
    """Set token-usage and response-model attributes on a span.

    ``usage`` is the raw usage object from a response body in any of the
    OpenAI, Anthropic or Gemini spellings.
    """
    if span is None or not isinstance(usage, dict):
        return
    input_tokens = _first_present(
        usage, "prompt_tokens", "input_tokens", "promptTokenCount",
    )
    if input_tokens is not None:
        span.set_attribute("gen_ai.usage.input_tokens", input_tokens)
    output_tokens = _first_present(
        usage, "completion_tokens", "output_tokens", "candidatesTokenCount",
    )
    if output_tokens is not None:
        span.set_attribute("gen_ai.usage.output_tokens", output_tokens)
    if response_model:
        span.set_attribute("gen_ai.response.model", response_model)


def _first_present(usage: dict, *keys: str):
    for key in keys:
        if usage.get(key) is not None:
            return usage[key]
    return None


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    Sets ``error.type`` per GenAI semantic conventions.
    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
