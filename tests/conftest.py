import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _reset_singletons(monkeypatch):
    """Each test starts with fresh in-memory stores and no cached upstream client."""
    from src.aiba.api import deps
    from src.aiba.infrastructure import chat_store, project_store

    monkeypatch.setattr(chat_store, "_store", None, raising=False)
    monkeypatch.setattr(project_store, "_store", None, raising=False)
    monkeypatch.setattr(deps, "_client", None, raising=False)
    monkeypatch.delenv("AIBA_CHAT_STORE_IMPL", raising=False)
    monkeypatch.delenv("AIBA_PROJECT_STORE_IMPL", raising=False)
    monkeypatch.delenv("DB_MODE", raising=False)
