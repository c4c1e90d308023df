"""Journal module for ilab-e2e run provenance."""

from .events import EventType, JournalEvent
from .journal import DEFAULT_JOURNAL_DIR, Journal

__all__ = [
    "EventType",
    "Journal",
    "JournalEvent",
    "DEFAULT_JOURNAL_DIR",
]
