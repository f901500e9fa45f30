from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..domain.project_models import ProjectRecord, ProjectUpsert
from .chat_store import LOG, StoreError
from .mongo import MotorDatabase
from .project_store import InMemoryProjectStore, apply_update, new_record


class MongoProjectStore:
    """Project records in the ``projects`` collection, keyed by ``project_id``."""

    def __init__(self, database: Optional[MotorDatabase] = None) -> None:
        self._fallback = InMemoryProjectStore()
        self._db = database or MotorDatabase()
        self._projects: Any = None
        if not self._db.connected and not self._db.connect():
            LOG.warning("project_store_fallback_memory")
            return
        self._projects = self._db.collection("projects")
        self._db.run(self._projects.create_index("project_id", unique=True))
        self._db.run(self._projects.create_index("updated_at"))

    def _use_fallback(self) -> bool:
        return self._projects is None

    def list(self) -> List[ProjectRecord]:
        if self._use_fallback():
            return self._fallback.list()
        try:
            cursor = self._projects.find({}).sort("updated_at", -1)
            docs = self._db.run(cursor.to_list(length=500))
        except Exception as exc:
            raise StoreError(f"Could not list projects: {exc}") from exc
        return [self._to_record(doc) for doc in docs]

    def get(self, project_id: str) -> Optional[ProjectRecord]:
        if self._use_fallback():
            return self._fallback.get(project_id)
        try:
            doc = self._db.run(self._projects.find_one({"project_id": project_id}))
        except Exception as exc:
            raise StoreError(f"Could not read project {project_id}: {exc}") from exc
        return self._to_record(doc) if doc else None

    def insert(self, payload: ProjectUpsert) -> ProjectRecord:
        if self._use_fallback():
            return self._fallback.insert(payload)
        record = new_record(payload)
        try:
            self._db.run(self._projects.insert_one(record.model_dump()))
        except Exception as exc:
            raise StoreError(f"Could not insert project: {exc}") from exc
        return record

    def update(self, project_id: str, payload: ProjectUpsert) -> Optional[ProjectRecord]:
        if self._use_fallback():
            return self._fallback.update(project_id, payload)
        current = self.get(project_id)
        if current is None:
            return None
        record = apply_update(current, payload)
        changes = record.model_dump(exclude={"project_id", "created_at"})
        try:
            self._db.run(self._projects.update_one({"project_id": project_id}, {"$set": changes}))
        except Exception as exc:
            raise StoreError(f"Could not update project {project_id}: {exc}") from exc
        return record

    def _to_record(self, doc: Dict[str, Any]) -> ProjectRecord:
        data = {k: v for k, v in dict(doc).items() if k != "_id"}
        return ProjectRecord(**data)
