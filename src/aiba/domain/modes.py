from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class Mode(str, Enum):
    """Conversation mode tags accepted from the client."""

    PRD = "prd"
    INTERVIEW = "interview"
    STORIES = "stories"
    IMPACT = "impact"
    UNKNOWN = "unknown"


_ALIASES: Dict[str, Mode] = {
    "": Mode.PRD,
    "default": Mode.PRD,
    "prd": Mode.PRD,
    "interview": Mode.INTERVIEW,
    "stories": Mode.STORIES,
    "impact": Mode.IMPACT,
}

# Which project field a finished turn fills in, by mode
_ARTIFACT_SLOTS: Dict[Mode, Optional[str]] = {
    Mode.PRD: "full_prd",
    Mode.INTERVIEW: None,
    Mode.STORIES: "user_stories",
    Mode.IMPACT: "impact_analysis",
    Mode.UNKNOWN: "full_prd",
}


def parse_mode(tag: Optional[str]) -> Mode:
    key = (tag or "").strip().lower()
    return _ALIASES.get(key, Mode.UNKNOWN)


def artifact_slot(mode: Mode) -> Optional[str]:
    return _ARTIFACT_SLOTS.get(mode)
