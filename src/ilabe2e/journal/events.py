"""Journal event definitions for ilab-e2e run provenance."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Types of journal events."""

    # Session lifecycle
    SESSION_START = "session.start"
    SESSION_END = "session.end"

    # Run lifecycle
    RUN_START = "run.start"
    CONFIG_RESOLVED = "config.resolved"
    RUN_END = "run.end"

    # Resources
    RESOURCE_CREATED = "resource.created"
    RESOURCE_DELETED = "resource.deleted"
    RESOURCE_CLEANUP_FAILED = "resource.cleanup_failed"

    # Workload
    POD_PHASE = "pod.phase"


@dataclass
class JournalEvent:
    """A single journal entry.

    Each event is serialized as one JSON line in a session JSONL file.
    """

    event_type: EventType
    session_id: str
    message: str
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    success: bool | None = None
    details: dict[str, Any] = field(default_factory=dict)
    duration_s: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-safe dict."""
        d = asdict(self)
        d["event_type"] = self.event_type.value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JournalEvent:
        """Deserialize from dict."""
        data = dict(data)
        data["event_type"] = EventType(data["event_type"])
        return cls(**data)
