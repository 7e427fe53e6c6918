"""File-based session log.

Stores session events as JSON Lines in hour-partitioned files.

Directory structure: base_dir/YYYY/MM/DD/HH/events.jsonl
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from safeguard.core.models import SessionEvent

log = structlog.get_logger()

EVENTS_FILE = "events.jsonl"


class FileEventStorage:
    """EventStorage backed by date/hour partitioned files on disk."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _hour_dir(self, timestamp_ms: int) -> Path:
        """Return the directory for a given timestamp."""
        dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
        path = self._base_dir / f"{dt.year:04d}" / f"{dt.month:02d}" / f"{dt.day:02d}" / f"{dt.hour:02d}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _to_jsonl_entry(self, event: SessionEvent) -> str:
        dt = datetime.fromtimestamp(event.timestamp_ms / 1000, tz=timezone.utc)
        entry = {
            "id": event.record_id,
            "ts": dt.isoformat(),
            "timestamp_ms": event.timestamp_ms,
            "session": event.session_id,
            "kind": event.kind,
            "payload": event.payload,
        }
        return json.dumps(entry, separators=(",", ":"), default=str)

    async def store(self, event: SessionEvent) -> None:
        """Append a single event to its hour file."""
        hour_dir = self._hour_dir(event.timestamp_ms)
        jsonl_path = hour_dir / EVENTS_FILE
        with open(jsonl_path, "a") as f:
            f.write(self._to_jsonl_entry(event) + "\n")

        log.debug("event_written", record_id=event.record_id, kind=event.kind,
                  path=str(hour_dir))

    def read_session(self, session_id: str) -> list[dict]:
        """Return every stored event of a session, oldest first."""
        entries = []
        for path in sorted(self._base_dir.rglob(EVENTS_FILE)):
            with open(path) as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        log.warning("event_line_corrupt", path=str(path))
                        continue
                    if entry.get("session") == session_id:
                        entries.append(entry)
        entries.sort(key=lambda e: (e.get("timestamp_ms", 0), e.get("id", 0)))
        return entries
