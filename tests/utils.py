from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


def sse_chunk(text: Optional[str] = None, role: Optional[str] = None, finish: Optional[str] = None) -> Dict[str, Any]:
    """An OpenAI ``chat.completion.chunk`` payload."""
    delta: Dict[str, Any] = {}
    if role:
        delta["role"] = role
    if text is not None:
        delta["content"] = text
    return {
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish}],
    }


def text_chunks(*parts: str) -> List[Dict[str, Any]]:
    """Role preamble, one chunk per part, then a finish-reason chunk."""
    return [sse_chunk(role="assistant"), *(sse_chunk(p) for p in parts), sse_chunk(finish="stop")]


class StubStream:
    def __init__(self, chunks: Sequence[Any], fail_at: Optional[int] = None, error: Optional[Exception] = None) -> None:
        self.chunks = list(chunks)
        self.fail_at = fail_at
        self.error = error or RuntimeError("connection reset by peer")
        self.closed = 0
        self.read = 0

    def __iter__(self):
        for idx, chunk in enumerate(self.chunks):
            if self.fail_at is not None and idx == self.fail_at:
                raise self.error
            self.read += 1
            yield chunk
        if self.fail_at is not None and self.fail_at >= len(self.chunks):
            raise self.error

    def close(self) -> None:
        self.closed += 1


class StubUpstream:
    """Records every ``open_stream`` call and replays canned chunks."""

    def __init__(
        self,
        chunks: Sequence[Any] = (),
        fail_on_open: Optional[Exception] = None,
        fail_at: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.chunks = chunks
        self.fail_on_open = fail_on_open
        self.fail_at = fail_at
        self.error = error
        self.calls: List[List[Dict[str, str]]] = []
        self.stream: Optional[StubStream] = None

    def open_stream(self, messages):
        self.calls.append(messages)
        if self.fail_on_open is not None:
            raise self.fail_on_open
        self.stream = StubStream(self.chunks, fail_at=self.fail_at, error=self.error)
        return self.stream
