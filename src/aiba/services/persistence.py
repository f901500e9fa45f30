"""Post-generation persistence.

Saving a turn is a separate step from generating it: it runs only after a
stream completed cleanly, retries store failures on its own schedule and
reports them as ``PersistenceError``, never as a generation failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar
import logging
import time

from ..config import Settings
from ..domain.chat_models import ChatLogEntry, ChatRequest, ChatTurn, Message
from ..domain.modes import artifact_slot, parse_mode
from ..domain.project_models import ProjectUpsert
from ..infrastructure.chat_store import ChatStore, StoreError, get_chat_store
from ..infrastructure.project_store import ProjectStore, get_project_store
from ..observability.metrics import PERSISTENCE_FAILURES
from .relay import StreamSession
from .telemetry_sink import record_event


LOG = logging.getLogger("aiba.persistence")

T = TypeVar("T")

TITLE_MAX = 80


class PersistenceError(RuntimeError):
    pass


class UnknownProjectError(PersistenceError):
    pass


@dataclass
class PersistResult:
    entries: List[ChatLogEntry]
    project_id: Optional[str] = None
    artifact: Optional[str] = None


def _with_retries(target: str, fn: Callable[[], T], settings: Settings) -> T:
    attempts = max(1, settings.persist_attempts)
    last_err: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except (StoreError, OSError) as exc:
            last_err = exc
            LOG.warning("persist_attempt_failed", extra={"target": target, "attempt": attempt, "err": str(exc)})
            if attempt < attempts and settings.persist_backoff:
                time.sleep(settings.persist_backoff * attempt)
    PERSISTENCE_FAILURES.labels(target=target).inc()
    raise PersistenceError(f"Could not save {target} after {attempts} attempts: {last_err}")


def _title_from(turn: ChatTurn) -> Optional[str]:
    for m in turn.messages:
        if m.role == "user" and m.content.strip():
            first_line = m.content.strip().splitlines()[0]
            if len(first_line) > TITLE_MAX:
                first_line = first_line[: TITLE_MAX - 1] + "…"
            return first_line
    return None


def record_turn(
    turn: ChatTurn,
    settings: Settings,
    chat_store: Optional[ChatStore] = None,
    project_store: Optional[ProjectStore] = None,
) -> PersistResult:
    """Append the turn to the chat log and file the reply into its artifact slot.

    The slot comes from the turn's mode tag; interview turns only go to the
    chat log. Without a ``project_id`` a project is created on first save.
    """
    chats = chat_store or get_chat_store()
    projects = project_store or get_project_store()
    rows = [(m.role, m.content) for m in turn.messages]
    entries = _with_retries(
        "chat_history",
        lambda: chats.append(rows, mode=turn.mode, project_id=turn.project_id),
        settings,
    )
    result = PersistResult(entries=entries, project_id=turn.project_id)

    slot = artifact_slot(parse_mode(turn.mode))
    last = turn.messages[-1]
    if slot is None or last.role != "assistant" or not last.content.strip():
        return result

    update = ProjectUpsert(**{slot: last.content})
    if turn.project_id:
        record = _with_retries("project", lambda: projects.update(turn.project_id, update), settings)
        if record is None:
            raise UnknownProjectError(f"Project {turn.project_id} not found")
    else:
        update.title = _title_from(turn)
        record = _with_retries("project", lambda: projects.insert(update), settings)
    result.project_id = record.project_id
    result.artifact = slot
    return result


def persist_completed_stream(session: StreamSession, request: ChatRequest, settings: Settings) -> Optional[PersistResult]:
    """Response background hook for ``persist=true`` chat requests."""
    if not session.completed:
        LOG.info("persist_skipped_incomplete_stream", extra={"state": session.state})
        return None
    turn = ChatTurn(
        messages=[*request.messages, Message(role="assistant", content=session.text)],
        mode=request.mode,
        project_id=request.project_id,
    )
    try:
        result = record_turn(turn, settings)
    except PersistenceError as exc:
        LOG.error("persist_after_stream_failed", extra={"err": str(exc)})
        record_event("persistence_failed", error=str(exc), project_id=request.project_id)
        return None
    record_event(
        "turn_persisted",
        entries=len(result.entries),
        project_id=result.project_id,
        artifact=result.artifact,
    )
    return result
