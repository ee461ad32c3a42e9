"""Server-Sent Events framing.

:class:`SSEReassembler` turns raw response-body chunks into the ``data:``
payloads they carry, independent of where the network split the bytes.
:func:`sse_generator` goes the other way and re-encodes normalized events
for downstream consumers.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterator
from dataclasses import asdict

from switchboard.events import StreamEvent, is_terminal

DATA_PREFIX = "data:"


def extract_data(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for anything else.

    ``event:`` lines, comments and blank keep-alive lines carry nothing the
    decoders need.
    """
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    return payload or None


class SSEReassembler:
    """Buffers a partial trailing line across chunk boundaries.

    Bytes are decoded with an incremental UTF-8 decoder so a multi-byte
    character split between two chunks is only emitted once complete.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Append ``chunk`` and return the payloads of all complete lines."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._payloads(lines)

    def flush(self) -> list[str]:
        """Drain whatever is left once the body is closed."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        return self._payloads(lines)

    @property
    def pending(self) -> str:
        return self._buffer

    @staticmethod
    def _payloads(lines: list[str]) -> list[str]:
        payloads = []
        for line in lines:
            payload = extract_data(line)
            if payload is not None:
                payloads.append(payload)
        return payloads


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a normalized event stream into SSE-formatted strings.

    Stops after the first terminal event.
    """
    async for event in event_stream:
        event_type = type(event).__name__
        data = json.dumps(asdict(event))
        yield f"event: {event_type}\ndata: {data}\n\n"
        if is_terminal(event):
            return
