"""Process-wide settings for the AI BA service.

Settings are read once at startup and passed by reference to whatever needs
them (upstream clients, stores, routes). Nothing here is mutated after
construction.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv


DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    provider: str = "openai"
    connect_timeout: float = 5.0
    read_timeout: float = 60.0
    persist_attempts: int = 3
    persist_backoff: float = 0.2
    cors_origins: Tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)

    @property
    def timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = env if env is not None else os.environ
        origins_raw = env.get("AIBA_CORS_ORIGINS") or ""
        origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip()) or DEFAULT_CORS_ORIGINS
        return cls(
            api_key=(env.get("OPENAI_API_KEY") or None),
            base_url=(env.get("OPENAI_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            model=env.get("OPENAI_MODEL") or DEFAULT_MODEL,
            provider=(env.get("AIBA_LLM_PROVIDER") or "openai").strip().lower(),
            connect_timeout=_float(env, "AIBA_LLM_CONNECT_TIMEOUT", 5.0),
            read_timeout=_float(env, "AIBA_LLM_READ_TIMEOUT", 60.0),
            persist_attempts=max(1, _int(env, "AIBA_PERSIST_ATTEMPTS", 3)),
            persist_backoff=max(0.0, _float(env, "AIBA_PERSIST_BACKOFF", 0.2)),
            cors_origins=origins,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is not None:
        return _settings
    load_dotenv()  # Load .env if present (OPENAI_API_KEY, OPENAI_MODEL, etc.)
    _settings = Settings.from_env()
    return _settings
