from __future__ import annotations

from ..config import get_settings
from ..services.llm_client import UpstreamClient, build_upstream_client


_client: UpstreamClient | None = None


def get_upstream_client() -> UpstreamClient:
    """Upstream client built once from the process settings."""
    global _client
    if _client is None:
        _client = build_upstream_client(get_settings())
    return _client
