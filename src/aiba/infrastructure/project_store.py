from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional, Protocol
import json
import os
import uuid

from ..domain.project_models import ProjectRecord, ProjectUpsert
from .chat_store import LOG, StoreError


class ProjectStore(Protocol):
    def list(self) -> List[ProjectRecord]: ...
    def get(self, project_id: str) -> Optional[ProjectRecord]: ...
    def insert(self, payload: ProjectUpsert) -> ProjectRecord: ...
    def update(self, project_id: str, payload: ProjectUpsert) -> Optional[ProjectRecord]: ...


DEFAULT_PROJECT_TITLE = "Untitled PRD"


def new_record(payload: ProjectUpsert) -> ProjectRecord:
    now = datetime.now(UTC)
    return ProjectRecord(
        project_id=uuid.uuid4().hex,
        title=(payload.title or "").strip() or DEFAULT_PROJECT_TITLE,
        full_prd=payload.full_prd or "",
        user_stories=payload.user_stories or "",
        impact_analysis=payload.impact_analysis or "",
        created_at=now,
        updated_at=now,
    )


def apply_update(record: ProjectRecord, payload: ProjectUpsert) -> ProjectRecord:
    """Copy of ``record`` with the fields set on ``payload`` replaced."""
    changes = payload.model_dump(exclude_none=True)
    if "title" in changes and not changes["title"].strip():
        changes.pop("title")
    changes["updated_at"] = datetime.now(UTC)
    return record.model_copy(update=changes)


class InMemoryProjectStore:
    def __init__(self) -> None:
        self._projects: Dict[str, ProjectRecord] = {}
        self._lock = RLock()

    def list(self) -> List[ProjectRecord]:
        with self._lock:
            return sorted(self._projects.values(), key=lambda p: p.updated_at, reverse=True)

    def get(self, project_id: str) -> Optional[ProjectRecord]:
        with self._lock:
            return self._projects.get(project_id)

    def insert(self, payload: ProjectUpsert) -> ProjectRecord:
        with self._lock:
            record = new_record(payload)
            self._projects[record.project_id] = record
            return record

    def update(self, project_id: str, payload: ProjectUpsert) -> Optional[ProjectRecord]:
        with self._lock:
            current = self._projects.get(project_id)
            if not current:
                return None
            record = apply_update(current, payload)
            self._projects[project_id] = record
            return record


class FileProjectStore(InMemoryProjectStore):
    """JSON file-backed store for development persistence.

    Structure: a single JSON object mapping project_id -> record dict.
    """

    def __init__(self, file_path: Optional[str] = None) -> None:
        super().__init__()
        # Default to run/projects.json at repo root
        root = Path(__file__).resolve().parents[3]
        default_path = root / "run" / "projects.json"
        self._path = Path(file_path or os.getenv("AIBA_PROJECTS_FILE", str(default_path)))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOG.warning("project_file_unreadable", extra={"path": str(self._path), "err": str(exc)})
            return
        for pid, raw in (data or {}).items():
            try:
                self._projects[pid] = ProjectRecord(**raw)
            except (TypeError, ValueError):
                LOG.warning("project_file_bad_record", extra={"project_id": pid})

    def _save(self) -> None:
        obj = {pid: rec.model_dump(mode="json") for pid, rec in self._projects.items()}
        try:
            self._path.write_text(json.dumps(obj, indent=2), encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"Could not write {self._path}: {exc}") from exc

    def insert(self, payload: ProjectUpsert) -> ProjectRecord:
        with self._lock:
            record = super().insert(payload)
            self._save()
            return record

    def update(self, project_id: str, payload: ProjectUpsert) -> Optional[ProjectRecord]:
        with self._lock:
            record = super().update(project_id, payload)
            if record is not None:
                self._save()
            return record


_store: ProjectStore | None = None


def get_project_store() -> ProjectStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("AIBA_PROJECT_STORE_IMPL", "memory").lower()
    db_mode = os.getenv("DB_MODE", "").lower()
    if db_mode == "mongo" or impl == "mongo":
        from .project_store_mongo import MongoProjectStore

        _store = MongoProjectStore()
    elif impl == "file":
        _store = FileProjectStore()
    else:
        _store = InMemoryProjectStore()
    return _store
