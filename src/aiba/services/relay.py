"""Streaming relay between the completion API and the HTTP client.

A relay invocation prepends the system prompt to the caller's conversation,
opens exactly one upstream streamed completion and re-emits each non-empty
text delta, in upstream order, as soon as it arrives. The session either ends
``completed`` (upstream finished cleanly) or ``failed`` (``RelayError``); a
consumer that stops early leaves it ``closed``. In every case the upstream
connection is released.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional
import logging
import time

from ..domain.chat_models import Message
from ..observability.metrics import RELAY_FRAGMENTS, RELAY_SESSIONS
from .llm_client import UpstreamClient, UpstreamStream


LOG = logging.getLogger("aiba.llm")

PENDING = "pending"
STREAMING = "streaming"
COMPLETED = "completed"
FAILED = "failed"
CLOSED = "closed"


class RelayError(RuntimeError):
    """Terminal failure of one relay invocation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def build_outbound_messages(conversation: Iterable[Message | Dict[str, str]], system_prompt: str) -> List[Dict[str, str]]:
    outbound: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
    for m in conversation:
        if isinstance(m, Message):
            outbound.append({"role": m.role, "content": m.content})
        else:
            outbound.append({"role": m.get("role"), "content": m.get("content")})
    return outbound


def _content_text(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        parts = [p.get("text", "") for p in content if isinstance(p, dict)]
        return "".join(parts) or None
    return None


def extract_delta(chunk: Any) -> Optional[str]:
    """Return the text carried by one upstream chunk, or None when it has none.

    Understands OpenAI SSE payloads (``choices[0].delta.content``), SDK chunk
    objects exposing ``choices`` and LangChain message chunks exposing
    ``content``. Role-only and finish-reason-only chunks yield None.
    """
    if isinstance(chunk, dict):
        choices = chunk.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        delta = choices[0].get("delta") or {}
        return _content_text(delta.get("content"))
    choices = getattr(chunk, "choices", None)
    if choices:
        delta = getattr(choices[0], "delta", None)
        return _content_text(getattr(delta, "content", None))
    return _content_text(getattr(chunk, "content", None))


class StreamSession:
    """One relay invocation: upstream handle, forwarded fragments, state."""

    def __init__(self, client: UpstreamClient, outbound: List[Dict[str, str]]) -> None:
        self.outbound = outbound
        self.state = PENDING
        self.error: Optional[str] = None
        self._client = client
        self._upstream: Optional[UpstreamStream] = None
        self._chunks: Optional[Iterator[Any]] = None
        self._fragments: List[str] = []
        self._primed: Optional[str] = None
        self._consumed = False
        self._started_at = 0.0

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    @property
    def fragments(self) -> List[str]:
        return list(self._fragments)

    @property
    def completed(self) -> bool:
        return self.state == COMPLETED

    def start(self) -> "StreamSession":
        """Open the upstream request and read ahead to the first fragment.

        Raises ``RelayError`` if the upstream fails before producing any text,
        so callers can still answer with a structured error.
        """
        if self.state != PENDING:
            return self
        self._started_at = time.perf_counter()
        LOG.info("relay_started", extra={"messages": len(self.outbound)})
        try:
            self._upstream = self._client.open_stream(self.outbound)
            self._chunks = iter(self._upstream)
        except Exception as exc:
            self._fail(exc)
        self.state = STREAMING
        self._primed = self._next_fragment()
        return self

    def __iter__(self) -> Iterator[str]:
        return self.iter_fragments()

    def iter_fragments(self) -> Iterator[str]:
        if self._consumed:
            raise RuntimeError("StreamSession can only be consumed once")
        self._consumed = True
        self.start()
        if self.state == FAILED:
            raise RelayError(self.error or "relay failed")
        fragment, self._primed = self._primed, None
        try:
            while fragment is not None:
                self._fragments.append(fragment)
                RELAY_FRAGMENTS.inc()
                yield fragment
                fragment = self._next_fragment()
        finally:
            if self.state == STREAMING:
                LOG.info("relay_closed_early", extra={"fragments": len(self._fragments)})
            self.close()

    def _next_fragment(self) -> Optional[str]:
        while True:
            try:
                chunk = next(self._chunks)  # type: ignore[arg-type]
            except StopIteration:
                if self.state == CLOSED:
                    # a closed response body can end cleanly; that is not completion
                    return None
                self._complete()
                return None
            except Exception as exc:
                if self.state == CLOSED:
                    # consumer went away and close() tore the connection down
                    return None
                self._fail(exc)
            delta = extract_delta(chunk)
            if delta:
                return delta

    def _complete(self) -> None:
        if self.state != STREAMING:
            return
        self.state = COMPLETED
        self._release()
        RELAY_SESSIONS.labels(outcome=COMPLETED).inc()
        LOG.info(
            "relay_completed",
            extra={
                "fragments": len(self._fragments),
                "elapsed_s": round(time.perf_counter() - self._started_at, 3),
            },
        )

    def _fail(self, exc: Exception) -> None:
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        self.state = FAILED
        self.error = message
        self._release()
        RELAY_SESSIONS.labels(outcome=FAILED).inc()
        LOG.warning("relay_failed", extra={"err": message, "fragments": len(self._fragments)})
        raise RelayError(message) from exc

    def _release(self) -> None:
        upstream, self._upstream = self._upstream, None
        if upstream is None:
            return
        try:
            upstream.close()
        except Exception as exc:
            LOG.debug("relay_upstream_close_failed", extra={"err": str(exc)})

    def close(self) -> None:
        """Release the upstream connection; safe to call more than once."""
        if self.state in (PENDING, STREAMING):
            self.state = CLOSED
            RELAY_SESSIONS.labels(outcome=CLOSED).inc()
        self._release()


def relay(
    conversation: Iterable[Message | Dict[str, str]],
    system_prompt: str,
    client: UpstreamClient,
) -> StreamSession:
    """Create a lazy stream session for one conversation turn.

    Nothing touches the network until the session is started or iterated.
    """
    return StreamSession(client, build_outbound_messages(conversation, system_prompt))
