import json
from typing import Any

import httpx
import pytest

from switchboard.config import FallbackConfig, ProviderConfig, ProviderType
from switchboard.errors import TransportError
from switchboard.handlers import StreamHandler
from switchboard.message import user
from switchboard.streaming import ChatResult


# ---------------------------------------------------------------------------
# SSE body builders
# ---------------------------------------------------------------------------

def sse(*payloads: Any) -> bytes:
    """Encode payloads as ``data:`` lines separated by blank lines.

    Dicts are JSON-encoded; strings (such as ``"[DONE]"``) are sent as-is.
    """
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode()


def split_every(body: bytes, size: int) -> list[bytes]:
    return [body[i:i + size] for i in range(0, len(body), size)]


def openai_text(content: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": content}}]}


def openai_tool_start(index: int, call_id: str, name: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"tool_calls": [{
        "index": index, "id": call_id, "type": "function",
        "function": {"name": name, "arguments": ""},
    }]}}]}


def openai_tool_args(index: int, arguments: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"tool_calls": [{
        "index": index, "function": {"arguments": arguments},
    }]}}]}


def openai_finish(reason: str = "stop") -> dict:
    return {"choices": [{"index": 0, "delta": {}, "finish_reason": reason}]}


def anthropic_text(text: str, index: int = 0) -> dict:
    return {
        "type": "content_block_delta",
        "index": index,
        "delta": {"type": "text_delta", "text": text},
    }


def anthropic_tool_start(index: int, call_id: str, name: str) -> dict:
    return {
        "type": "content_block_start",
        "index": index,
        "content_block": {"type": "tool_use", "id": call_id, "name": name, "input": {}},
    }


def anthropic_tool_args(index: int, partial_json: str) -> dict:
    return {
        "type": "content_block_delta",
        "index": index,
        "delta": {"type": "input_json_delta", "partial_json": partial_json},
    }


def anthropic_stop(stop_reason: str = "end_turn") -> list[dict]:
    return [
        {"type": "message_delta", "delta": {"stop_reason": stop_reason}},
        {"type": "message_stop"},
    ]


def gemini_text(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------

class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered as the given byte chunks, in order."""

    def __init__(self, chunks: list[bytes]):
        self.chunks = chunks

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


def streaming_response(chunks: list[bytes], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        stream=ChunkedStream(chunks),
    )


class RecordingTransport:
    """``httpx.MockTransport`` handler that records requests.

    ``responder`` receives each :class:`httpx.Request` and returns the
    :class:`httpx.Response` to send back.
    """

    def __init__(self, responder):
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


# ---------------------------------------------------------------------------
# Handlers and fake providers
# ---------------------------------------------------------------------------

class RecordingHandler(StreamHandler):
    """Records every callback in call order."""

    def __init__(self):
        self.calls: list[tuple[str, Any]] = []

    def on_chunk(self, text):
        self.calls.append(("chunk", text))

    def on_event(self, event):
        self.calls.append(("event", event))

    def on_complete(self, result):
        self.calls.append(("complete", result))

    def on_error(self, error):
        self.calls.append(("error", error))

    def of(self, kind: str) -> list:
        return [value for k, value in self.calls if k == kind]

    @property
    def text(self) -> str:
        return "".join(self.of("chunk"))


class FakeProvider:
    """Provider double driven by a queue of scripted outcomes.

    Each outcome is either a value to return or an exception to raise.
    """

    def __init__(self, provider_id: str, outcomes: list | None = None, ready: bool = True):
        self.config = ProviderConfig(
            id=provider_id,
            name=provider_id.upper(),
            type=ProviderType.OPENAI_COMPATIBLE,
            enabled=ready,
            api_key="sk-test" if ready else "",
            base_url="https://fake.invalid/v1",
            default_model="fake-model",
        )
        self.outcomes = list(outcomes or [])
        self.calls = 0

    @property
    def id(self):
        return self.config.id

    @property
    def name(self):
        return self.config.name

    def is_ready(self):
        return self.config.is_ready()

    def update_config(self, **changes):
        self.config = self.config.model_copy(update=changes)

    def _next(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def chat_completion(self, messages):
        return self._next()

    async def stream_chat_completion(self, messages, handler, *, cancel_event=None):
        try:
            text = self._next()
        except Exception as e:
            handler.on_error(e)
            return
        handler.on_chunk(text)
        handler.on_complete(ChatResult(content=text))

    async def get_available_models(self):
        return [self.config.default_model]

    async def test_connection(self):
        return self.is_ready()


class StaticChain:
    """Registry double exposing a fixed chain to the fallback executor."""

    def __init__(self, providers: list, max_retries: int = 3):
        self.providers = providers
        self.fallback_config = FallbackConfig(max_retries=max_retries)

    def get_fallback_chain(self):
        return [p for p in self.providers if p.is_ready()]


def rate_limited() -> TransportError:
    return TransportError.from_status(429, '{"error": "Rate limit exceeded"}')


def unauthorized() -> TransportError:
    return TransportError.from_status(401, '{"error": "Invalid API key"}')


def ready_config(provider_id: str, provider_type: ProviderType, **overrides) -> ProviderConfig:
    fields = {
        "id": provider_id,
        "name": provider_id.title(),
        "type": provider_type,
        "enabled": True,
        "api_key": f"key-{provider_id}",
        "base_url": f"https://{provider_id}.example.com/v1",
        "default_model": f"{provider_id}-model",
    }
    fields.update(overrides)
    return ProviderConfig(**fields)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def messages():
    return [user("Hello")]


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def openai_config():
    return ready_config("openai", ProviderType.OPENAI, base_url="https://api.openai.test/v1")


@pytest.fixture
def anthropic_config():
    return ready_config(
        "claude", ProviderType.ANTHROPIC, base_url="https://api.anthropic.test/v1",
    )


@pytest.fixture
def gemini_config():
    return ready_config(
        "gemini", ProviderType.GEMINI,
        base_url="https://gemini.test/v1beta", default_model="gemini-1.5-flash",
    )
