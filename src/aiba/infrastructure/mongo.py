from __future__ import annotations

import asyncio
import inspect
import logging
import os
from threading import Lock
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient


LOG = logging.getLogger("aiba.store")


class MotorDatabase:
    """Runs motor coroutines from synchronous store code.

    Motor clients are bound to the loop they first run on, so the database
    keeps one private loop and serialises every call onto it.
    """

    def __init__(self, url: Optional[str] = None, db_name: Optional[str] = None) -> None:
        self._url = url or os.getenv("MONGO_URL", "mongodb://localhost:27017")
        self._db_name = db_name or os.getenv("MONGO_DB", "aiba")
        self._loop = asyncio.new_event_loop()
        self._lock = Lock()
        self._client: Any = None
        self._db: Any = None

    async def _connect(self) -> Any:
        client = AsyncIOMotorClient(self._url, serverSelectionTimeoutMS=500)
        await client.server_info()
        return client

    def connect(self) -> bool:
        try:
            self._client = self.run(self._connect())
        except Exception as exc:
            LOG.warning("mongo_unavailable", extra={"url": self._url, "err": str(exc)})
            self._client = None
            return False
        self._db = self._client[self._db_name]
        return True

    @property
    def connected(self) -> bool:
        return self._db is not None

    def collection(self, name: str) -> Any:
        return self._db[name]

    def run(self, awaitable: Any) -> Any:
        if not inspect.isawaitable(awaitable):
            return awaitable
        with self._lock:
            return self._loop.run_until_complete(awaitable)
