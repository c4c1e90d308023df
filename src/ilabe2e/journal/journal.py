"""Journal manager -- append-only provenance log for end-to-end runs.

Every run gets its own session, stored as a JSONL file (one JSON object
per line) under the journal directory. Append-only writes keep a partial
log readable even if the harness is killed mid-run, which is exactly when
the list of created resources matters most.

Journaling is strictly best-effort: a write that fails is logged at debug
level and dropped, never raised into the run.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from ilabe2e import __version__
from ilabe2e._constants import DEFAULT_OUTPUT_DIR

from .events import EventType, JournalEvent

logger = logging.getLogger(__name__)

DEFAULT_JOURNAL_DIR = str(Path(DEFAULT_OUTPUT_DIR) / "journal")


def _generate_session_id() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:6]


def _sanitize_name(name: str) -> str:
    """Sanitize a run name for use as a filename component."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", name) if name else "unnamed"


class Journal:
    """Append-only journal for run provenance.

    Usage::

        journal = Journal()
        journal.open_session("ilab-standalone")
        journal.record(EventType.RESOURCE_CREATED, "Namespace test-ns-abc12", ...)
        journal.close_session()
    """

    def __init__(self, journal_dir: Path | str = DEFAULT_JOURNAL_DIR) -> None:
        self.journal_dir = Path(journal_dir)
        self.session_id: str | None = None
        self._session_file: Path | None = None
        self._event_count: int = 0

    @property
    def session_file(self) -> Path | None:
        """Path of the open session file, if any."""
        return self._session_file

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_session(self, run_name: str = "") -> str | None:
        """Start a new session for one run.

        Args:
            run_name: Human-readable label, used in the file name

        Returns:
            The session_id, or None if the journal directory is unusable
        """
        try:
            self.journal_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.debug("Journal disabled, cannot create %s: %s", self.journal_dir, e)
            return None

        self.session_id = _generate_session_id()
        safe_name = _sanitize_name(run_name)
        self._session_file = self.journal_dir / f"session-{safe_name}-{self.session_id}.jsonl"
        self._event_count = 0

        self.record(
            EventType.SESSION_START,
            message=f"Session started for '{run_name or 'unnamed'}'",
            details={"run_name": run_name, "ilabe2e_version": __version__},
        )
        return self.session_id

    def close_session(self) -> None:
        """Close the current session. Later records are not written."""
        if not self.session_id:
            return

        self.record(
            EventType.SESSION_END,
            message="Session ended",
            details={"events_recorded": self._event_count},
        )
        self.session_id = None
        self._session_file = None

    # ------------------------------------------------------------------
    # Event recording
    # ------------------------------------------------------------------

    def record(
        self,
        event_type: EventType,
        message: str,
        success: bool | None = None,
        details: dict[str, Any] | None = None,
        duration_s: float | None = None,
    ) -> JournalEvent:
        """Append an event to the session file.

        If no session is open, returns a stub event without writing.
        """
        if not self.session_id or not self._session_file:
            logger.debug("Journal not open, skipping event")
            return JournalEvent(event_type=event_type, session_id="none", message=message)

        event = JournalEvent(
            event_type=event_type,
            session_id=self.session_id,
            message=message,
            success=success,
            details=details or {},
            duration_s=duration_s,
        )

        try:
            with open(self._session_file, "a") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")
        except OSError as e:
            logger.debug("Failed to write journal event %s: %s", event_type.value, e)
            return event

        self._event_count += 1
        return event

    # ------------------------------------------------------------------
    # Query / display helpers
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all sessions with summary info, most recent first."""
        sessions = []
        for path in self.journal_dir.glob("session-*.jsonl"):
            try:
                events = self._load_events(path)
            except (json.JSONDecodeError, OSError):
                continue
            if not events:
                continue

            first = events[0]
            last = events[-1]
            run_end = next(
                (e for e in reversed(events) if e.get("event_type") == EventType.RUN_END.value),
                None,
            )
            closed = last.get("event_type") == EventType.SESSION_END.value

            sessions.append(
                {
                    "session_id": first.get("session_id", ""),
                    "run_name": first.get("details", {}).get("run_name", ""),
                    "started": first.get("timestamp", ""),
                    "ended": last.get("timestamp", "") if closed else None,
                    "closed": closed,
                    "status": run_end.get("details", {}).get("status") if run_end else None,
                    "event_count": len(events),
                    "path": str(path),
                }
            )

        sessions.sort(key=lambda s: s.get("started", ""), reverse=True)
        return sessions

    def load_session_events(self, session_id: str) -> list[dict[str, Any]]:
        """Load all events for a session, in chronological order."""
        for path in self.journal_dir.glob(f"session-*-{session_id}.jsonl"):
            try:
                return self._load_events(path)
            except (json.JSONDecodeError, OSError):
                continue
        return []

    def _load_events(self, path: Path) -> list[dict[str, Any]]:
        events = []
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line:
                    events.append(json.loads(line))
        return events

