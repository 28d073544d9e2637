"""Chat stream writers and the server-sent-events protocol."""

import asyncio
import json
import logging
from typing import AsyncIterator, List, Optional, Protocol

from docrag.models.chat import Citation

logger = logging.getLogger(__name__)

UI_MESSAGE_STREAM_CONTENT_TYPE = "text/event-stream"
DONE_MARKER = "data: [DONE]\n\n"


class StreamWriter(Protocol):
    """Sink for an HTTP response body written in chunks."""

    def write(self, chunk: str) -> None:
        ...

    def end(self) -> None:
        ...


class QueueStreamWriter:
    """
    Stream writer backed by an asyncio queue, drained by the HTTP response.

    Once the caller disconnects (``close``) or the stream ends, further
    writes are dropped silently.
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False

    def write(self, chunk: str) -> None:
        if self._closed:
            return
        self._queue.put_nowait(chunk)

    def end(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def close(self) -> None:
        """Mark the transport as gone."""
        self._closed = True

    async def iter_chunks(self) -> AsyncIterator[str]:
        """Yield written chunks until ``end`` is called."""
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            self.close()


class BufferedStreamWriter:
    """Stream writer that keeps everything in memory."""

    def __init__(self) -> None:
        self.chunks: List[str] = []
        self.ended = False

    def write(self, chunk: str) -> None:
        self.chunks.append(chunk)

    def end(self) -> None:
        self.ended = True

    @property
    def body(self) -> str:
        return "".join(self.chunks)

    def events(self) -> List[dict]:
        """Parse the written SSE frames, skipping the [DONE] marker."""
        events = []
        for frame in self.body.split("\n\n"):
            if not frame.startswith("data: ") or frame == DONE_MARKER.strip():
                continue
            events.append(json.loads(frame[len("data: "):]))
        return events


def format_sse(chunk: dict) -> str:
    """Frame one protocol event as ``data: {json}\\n\\n``."""
    return f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"


def stream_text_delta(writer: StreamWriter, text_delta: str) -> None:
    writer.write(format_sse({"type": "text-delta", "textDelta": text_delta}))


def stream_source(writer: StreamWriter, source_id: str, title: str, url: str = "") -> None:
    writer.write(format_sse({"type": "source", "source": {"sourceId": source_id, "title": title, "url": url}}))


def stream_citations(writer: StreamWriter, citations: List[Citation]) -> None:
    """Send one ``source`` event per citation, then the citation details as ``data``."""
    for index, citation in enumerate(citations):
        stream_source(writer, f"source-{index}", citation.file_name)

    payload = {
        "type": "citations",
        "citations": [citation.model_dump(by_alias=True) for citation in citations],
    }
    writer.write(format_sse({"type": "data", "data": [payload]}))


def stream_session_info(writer: StreamWriter, session_id: str, history_id: str, created_at: str) -> None:
    payload = {
        "type": "session_info",
        "sessionId": session_id,
        "historyId": history_id,
        "createdAt": created_at,
    }
    writer.write(format_sse({"type": "data", "data": [payload]}))


def stream_finish(writer: StreamWriter, finish_reason: str = "stop") -> None:
    writer.write(format_sse({"type": "finish", "finishReason": finish_reason}))


def stream_error(writer: StreamWriter, error_text: str) -> None:
    writer.write(format_sse({"type": "error", "errorText": error_text}))


def stream_done(writer: StreamWriter) -> None:
    writer.write(DONE_MARKER)
