from types import SimpleNamespace

import pytest
from prometheus_client import REGISTRY

from src.aiba.domain.chat_models import Message
from src.aiba.services import relay as rl
from src.aiba.services.llm_client import UpstreamError
from tests.utils import StubStream, StubUpstream, sse_chunk, text_chunks


CONVERSATION = [
    Message(role="user", content="Self-service password reset for field staff"),
    Message(role="assistant", content="Who are the primary users?"),
    Message(role="user", content="Technicians on mobile"),
]


def test_outbound_request_prepends_system_prompt_without_touching_input():
    original = [m.model_copy() for m in CONVERSATION]
    client = StubUpstream(text_chunks("ok"))
    session = rl.relay(CONVERSATION, "SYSTEM PROMPT", client)
    list(session)

    sent = client.calls[0]
    assert sent[0] == {"role": "system", "content": "SYSTEM PROMPT"}
    assert sent[1:] == [{"role": m.role, "content": m.content} for m in CONVERSATION]
    assert CONVERSATION == original


def test_relay_is_lazy_until_started():
    client = StubUpstream(text_chunks("a"))
    session = rl.relay(CONVERSATION, "sys", client)
    assert client.calls == []
    assert session.state == rl.PENDING


def test_empty_conversation_is_forwarded_as_is():
    client = StubUpstream(text_chunks("hi"))
    assert list(rl.relay([], "sys", client)) == ["hi"]
    assert client.calls[0] == [{"role": "system", "content": "sys"}]


def test_fragments_forwarded_in_order_and_empty_deltas_dropped():
    chunks = [
        sse_chunk(role="assistant"),
        sse_chunk("## 1. "),
        sse_chunk(""),
        sse_chunk("Feature"),
        {"choices": []},
        {"choices": [{"index": 0, "delta": {"content": None}}]},
        sse_chunk(" Title"),
        sse_chunk(finish="stop"),
    ]
    session = rl.relay(CONVERSATION, "sys", StubUpstream(chunks))

    out = list(session)

    assert out == ["## 1. ", "Feature", " Title"]
    assert all(out)
    assert session.text == "## 1. Feature Title"


def test_accumulated_text_only_grows():
    parts = [f"part{i} " for i in range(20)]
    session = rl.relay(CONVERSATION, "sys", StubUpstream(text_chunks(*parts)))

    seen = []
    for _ in session:
        seen.append(session.text)

    final = "".join(parts)
    for earlier, later in zip(seen, seen[1:]):
        assert later.startswith(earlier)
        assert len(later) > len(earlier)
    assert seen[-1] == final


def test_exactly_one_upstream_call_for_many_fragments():
    client = StubUpstream(text_chunks(*["x"] * 250))
    session = rl.relay(CONVERSATION, "sys", client)

    assert len(list(session)) == 250
    assert len(client.calls) == 1


def test_clean_termination_closes_once_after_last_fragment():
    client = StubUpstream(text_chunks("a", "b"))
    session = rl.relay(CONVERSATION, "sys", client)
    it = iter(session)

    assert next(it) == "a"
    assert next(it) == "b"
    # last fragment handed out, upstream not drained yet
    assert not session.completed
    assert client.stream.closed == 0

    with pytest.raises(StopIteration):
        next(it)
    assert session.completed
    assert session.state == rl.COMPLETED
    assert client.stream.closed == 1

    session.close()
    assert client.stream.closed == 1


def test_immediate_failure_surfaces_single_terminal_error():
    client = StubUpstream(fail_on_open=UpstreamError("Completion API unreachable: DNS failure"))
    session = rl.relay(CONVERSATION, "sys", client)

    with pytest.raises(rl.RelayError) as excinfo:
        session.start()

    assert excinfo.value.message == "Completion API unreachable: DNS failure"
    assert session.state == rl.FAILED
    assert not session.completed
    assert session.text == ""
    with pytest.raises(rl.RelayError):
        list(session)
    assert len(client.calls) == 1


def test_failure_before_first_fragment_is_raised_by_start():
    client = StubUpstream(text_chunks("never"), fail_at=1)
    session = rl.relay(CONVERSATION, "sys", client)

    with pytest.raises(rl.RelayError):
        session.start()
    assert session.fragments == []
    assert client.stream.closed == 1


def test_mid_stream_failure_keeps_earlier_fragments_and_stops():
    chunks = text_chunks("one", "two", "three", "four")
    client = StubUpstream(chunks, fail_at=3, error=UpstreamError("Completion stream interrupted: reset"))
    session = rl.relay(CONVERSATION, "sys", client)

    received = []
    with pytest.raises(rl.RelayError) as excinfo:
        for fragment in session:
            received.append(fragment)

    assert received == ["one", "two"]
    assert session.text == "onetwo"
    assert session.state == rl.FAILED
    assert not session.completed
    assert "reset" in excinfo.value.message
    assert client.stream.closed == 1
    assert client.stream.read == 3


def test_consumer_abandoning_stream_releases_upstream():
    client = StubUpstream(text_chunks("a", "b", "c"))
    session = rl.relay(CONVERSATION, "sys", client)
    it = iter(session)
    next(it)

    it.close()

    assert session.state == rl.CLOSED
    assert client.stream.closed == 1
    assert not session.completed


def test_session_is_single_pass():
    session = rl.relay(CONVERSATION, "sys", StubUpstream(text_chunks("a")))
    assert list(session) == ["a"]
    with pytest.raises(RuntimeError):
        list(session)


def test_start_then_iterate_does_not_reopen_upstream():
    client = StubUpstream(text_chunks("first", "second"))
    session = rl.relay(CONVERSATION, "sys", client).start()

    assert list(session) == ["first", "second"]
    assert len(client.calls) == 1


def test_stream_with_no_text_completes_cleanly():
    client = StubUpstream([sse_chunk(role="assistant"), sse_chunk(finish="stop")])
    session = rl.relay(CONVERSATION, "sys", client)

    assert list(session) == []
    assert session.completed
    assert client.stream.closed == 1


def test_extract_delta_handles_sdk_and_langchain_chunks():
    assert rl.extract_delta(sse_chunk("x")) == "x"
    assert rl.extract_delta(sse_chunk(role="assistant")) is None
    assert rl.extract_delta({"error": "nope"}) is None

    sdk_chunk = SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="sdk"))])
    assert rl.extract_delta(sdk_chunk) == "sdk"

    lc_chunk = SimpleNamespace(content="lc")
    assert rl.extract_delta(lc_chunk) == "lc"
    assert rl.extract_delta(SimpleNamespace(content="")) is None
    assert rl.extract_delta(SimpleNamespace(content=[{"type": "text", "text": "multi"}])) == "multi"


class _EndsWhenClosed(StubStream):
    """Like a requests body: once closed, iteration just stops."""

    def __iter__(self):
        for chunk in self.chunks:
            if self.closed:
                return
            self.read += 1
            yield chunk


class _EndsWhenClosedUpstream(StubUpstream):
    def open_stream(self, messages):
        self.calls.append(messages)
        self.stream = _EndsWhenClosed(self.chunks)
        return self.stream


def _sessions(outcome):
    return REGISTRY.get_sample_value("aiba_relay_sessions_total", {"outcome": outcome}) or 0.0


def test_clean_upstream_end_after_close_is_not_completion():
    client = _EndsWhenClosedUpstream(text_chunks("a", "b", "c", "d"))
    session = rl.relay(CONVERSATION, "sys", client)
    completed_before = _sessions(rl.COMPLETED)
    closed_before = _sessions(rl.CLOSED)

    it = iter(session)
    assert [next(it), next(it)] == ["a", "b"]
    session.close()
    assert list(it) == []

    assert session.state == rl.CLOSED
    assert not session.completed
    assert session.text == "ab"
    assert client.stream.closed == 1
    assert _sessions(rl.COMPLETED) == completed_before
    assert _sessions(rl.CLOSED) == closed_before + 1
