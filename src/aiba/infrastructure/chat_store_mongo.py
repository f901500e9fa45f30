from __future__ import annotations

from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple
import uuid

from ..domain.chat_models import ChatLogEntry
from .chat_store import LOG, InMemoryChatStore, StoreError, now_iso
from .mongo import MotorDatabase


class MongoChatStore:
    """Chat log in the ``chats`` collection.

    Falls back to process memory only when Mongo is unreachable at startup;
    failures after that surface as ``StoreError``.
    """

    def __init__(self, database: Optional[MotorDatabase] = None) -> None:
        self._fallback = InMemoryChatStore()
        self._db = database or MotorDatabase()
        self._chats: Any = None
        # seq is read-then-written; one appender at a time per process
        self._append_lock = Lock()
        if not self._db.connected and not self._db.connect():
            LOG.warning("chat_store_fallback_memory")
            return
        self._chats = self._db.collection("chats")
        self._db.run(self._chats.create_index("entry_id", unique=True))
        self._db.run(self._chats.create_index("project_id"))
        self._db.run(self._chats.create_index("seq"))

    def _use_fallback(self) -> bool:
        return self._chats is None

    def append(
        self,
        rows: Iterable[Tuple[str, str]],
        mode: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[ChatLogEntry]:
        if self._use_fallback():
            return self._fallback.append(rows, mode=mode, project_id=project_id)
        now = now_iso()
        docs: List[Dict[str, Any]] = []
        try:
            with self._append_lock:
                seq = self._next_seq()
                for role, content in rows:
                    docs.append(
                        {
                            "entry_id": uuid.uuid4().hex,
                            "seq": seq,
                            "role": role,
                            "content": content,
                            "mode": mode,
                            "project_id": project_id,
                            "created_at": now,
                        }
                    )
                    seq += 1
                if docs:
                    self._db.run(self._chats.insert_many(docs, ordered=True))
        except Exception as exc:
            raise StoreError(f"Could not write chat history: {exc}") from exc
        return [self._to_entry(doc) for doc in docs]

    def list_entries(self, limit: int = 100, project_id: Optional[str] = None) -> List[ChatLogEntry]:
        if self._use_fallback():
            return self._fallback.list_entries(limit, project_id=project_id)
        if limit <= 0:
            return []
        query: Dict[str, Any] = {"project_id": project_id} if project_id else {}
        try:
            cursor = self._chats.find(query).sort("seq", -1).limit(limit)
            docs = self._db.run(cursor.to_list(length=limit))
        except Exception as exc:
            raise StoreError(f"Could not read chat history: {exc}") from exc
        return [self._to_entry(doc) for doc in reversed(docs)]

    def count(self) -> int:
        if self._use_fallback():
            return self._fallback.count()
        try:
            return int(self._db.run(self._chats.count_documents({})))
        except Exception as exc:
            raise StoreError(f"Could not count chat history: {exc}") from exc

    def _next_seq(self) -> int:
        cursor = self._chats.find({}, {"seq": 1}).sort("seq", -1).limit(1)
        latest = self._db.run(cursor.to_list(length=1))
        if not latest:
            return 1
        return int(latest[0].get("seq", 0)) + 1

    def _to_entry(self, doc: Dict[str, Any]) -> ChatLogEntry:
        data = dict(doc)
        return ChatLogEntry(
            entry_id=str(data.get("entry_id")),
            role=str(data.get("role", "assistant")),
            content=str(data.get("content", "")),
            mode=data.get("mode"),
            project_id=data.get("project_id"),
            created_at=str(data.get("created_at", now_iso())),
        )
