from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

_logger = logging.getLogger("aiba.telemetry")


@dataclass
class TelemetryEvent:
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)


# Rolling buffer of recent events for diagnostics
_RECENT_EVENTS: List[TelemetryEvent] = []
_MAX_BUFFER = 200


def record_event(name: str, **properties: Any) -> TelemetryEvent:
    """Log a telemetry event and keep it in the in-memory buffer."""

    event = TelemetryEvent(name=name, properties=dict(properties))
    _RECENT_EVENTS.append(event)
    if len(_RECENT_EVENTS) > _MAX_BUFFER:
        del _RECENT_EVENTS[0 : len(_RECENT_EVENTS) - _MAX_BUFFER]

    _logger.info(
        "telemetry_event",
        extra={
            "telemetry_name": event.name,
            "telemetry_properties": event.properties,
        },
    )
    return event


def list_recent_events(limit: int = 50) -> List[TelemetryEvent]:
    if limit <= 0:
        return []
    return list(_RECENT_EVENTS[-limit:])
