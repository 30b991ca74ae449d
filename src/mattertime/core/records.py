"""Time-record store — a local JSON-file implementation of ``TimeRecordService``."""

from __future__ import annotations

import asyncio
import fcntl
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mattertime.core.suggest import RecentEntry
from mattertime.core.timer import CommitError, TimeRecordCommit

_RECORDS_FILE = "time_records.json"


class RecordStoreError(RuntimeError):
    """Raised when the records file exists but cannot be read."""


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class JsonTimeRecordStore:
    """Stores committed time records in ``<config_dir>/time_records.json``.

    Every read and write holds an ``fcntl`` lock on the file so that
    concurrent invocations never interleave a read-modify-write.
    """

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir
        self._path = config_dir / _RECORDS_FILE
        self.last_record: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def commit(self, record: TimeRecordCommit) -> str:
        """Append *record* and return its new id."""
        if not record.matter_id:
            raise CommitError("No matter selected for this time record")
        row = {
            "id": str(uuid.uuid4()),
            "matter_id": record.matter_id,
            "started_at": _iso(record.started_at),
            "ended_at": _iso(record.ended_at),
            "duration_minutes": record.duration_minutes,
            "notes": record.notes,
        }
        try:
            await asyncio.to_thread(self._append, row)
        except (OSError, RecordStoreError) as exc:
            raise CommitError(f"Could not save time record: {exc}") from exc
        self.last_record = row
        return row["id"]

    def load_all(self) -> list[dict[str, Any]]:
        """Return every stored record in insertion order."""
        if not self._path.exists():
            return []
        with open(self._path) as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            return self._parse(f.read())

    def recent_entries(self, limit: int = 200) -> list[RecentEntry]:
        """Return up to *limit* entries, newest first.

        Raises :class:`RecordStoreError` when a stored row lacks a matter or
        a readable start time.
        """
        try:
            entries = [RecentEntry.from_record(row) for row in self.load_all()]
        except (KeyError, TypeError, ValueError) as exc:
            raise RecordStoreError(f"{self._path} has a malformed record: {exc!r}") from exc
        entries.sort(key=lambda entry: entry.started_at, reverse=True)
        return entries[:limit]

    # -- private helpers -----------------------------------------------------

    def _append(self, row: dict[str, Any]) -> None:
        self._config_dir.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)
        with open(self._path, "r+") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            rows = self._parse(f.read())
            rows.append(row)
            f.seek(0)
            f.truncate()
            json.dump(rows, f, indent=2)

    def _parse(self, text: str) -> list[dict[str, Any]]:
        if not text.strip():
            return []
        try:
            rows = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RecordStoreError(f"{self._path} is not valid JSON: {exc}") from exc
        if not isinstance(rows, list):
            raise RecordStoreError(f"{self._path} must contain a JSON list")
        return rows
