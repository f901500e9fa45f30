from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import RLock
from typing import Iterable, List, Optional, Protocol, Tuple
import logging
import os
import uuid

from ..domain.chat_models import ChatLogEntry


LOG = logging.getLogger("aiba.store")


class StoreError(RuntimeError):
    """A write or read against the backing store failed."""


class ChatStore(Protocol):
    def append(
        self,
        rows: Iterable[Tuple[str, str]],
        mode: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[ChatLogEntry]: ...

    def list_entries(self, limit: int = 100, project_id: Optional[str] = None) -> List[ChatLogEntry]: ...

    def count(self) -> int: ...


def now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass
class _Entry:
    entry_id: str
    role: str
    content: str
    mode: Optional[str]
    project_id: Optional[str]
    created_at: str


class InMemoryChatStore:
    """Append-only chat log kept in process memory."""

    def __init__(self) -> None:
        self._entries: List[_Entry] = []
        self._lock = RLock()

    def append(
        self,
        rows: Iterable[Tuple[str, str]],
        mode: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[ChatLogEntry]:
        with self._lock:
            now = now_iso()
            added: List[_Entry] = []
            for role, content in rows:
                added.append(
                    _Entry(
                        entry_id=uuid.uuid4().hex,
                        role=role,
                        content=content,
                        mode=mode,
                        project_id=project_id,
                        created_at=now,
                    )
                )
            self._entries.extend(added)
            return [ChatLogEntry(**e.__dict__) for e in added]

    def list_entries(self, limit: int = 100, project_id: Optional[str] = None) -> List[ChatLogEntry]:
        with self._lock:
            entries = self._entries
            if project_id:
                entries = [e for e in entries if e.project_id == project_id]
            # Most recent ``limit`` rows, oldest first
            tail = entries[-max(0, limit):] if limit > 0 else []
            return [ChatLogEntry(**e.__dict__) for e in tail]

    def count(self) -> int:
        with self._lock:
            return len(self._entries)


_store: ChatStore | None = None


def get_chat_store() -> ChatStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("AIBA_CHAT_STORE_IMPL", "memory").lower()
    db_mode = os.getenv("DB_MODE", "").lower()
    if db_mode == "mongo" or impl == "mongo":
        from .chat_store_mongo import MongoChatStore  # local import to avoid circular dependency

        _store = MongoChatStore()
        return _store
    _store = InMemoryChatStore()
    return _store
