"""Session Manager — drives the work timer from the command line with JSON persistence."""

from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from mattertime.config import MatterTimeSettings, get_settings
from mattertime.core.analytics import TimerAnalytics
from mattertime.core.records import JsonTimeRecordStore
from mattertime.core.suggest import (
    SuggestionReason,
    create_suggestion_context,
    get_suggestion_reason_label,
    suggest_matter,
)
from mattertime.core.timer import TimerState, TimerStatus, TimerWarningType, WorkTimer

logger = logging.getLogger(__name__)

_STATE_FILE = "timer.json"


def _format_elapsed(seconds: float) -> str:
    """Format *seconds* as ``H:MM:SS``."""
    total = int(seconds)
    return f"{total // 3600}:{total % 3600 // 60:02d}:{total % 60:02d}"


class StateFileError(RuntimeError):
    """Raised when the persisted timer file cannot be decoded."""


@dataclass(frozen=True, slots=True)
class PersistedTimerState:
    """What survives between invocations: enough to resume a running session."""

    start_time: float
    selected_matter_id: str | None
    notes: str
    active_entry_id: str | None
    suggested_matter_id: str | None
    suggestion_reason: str | None
    persisted_at: float
    auto_stop_raised: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PersistedTimerState:
        try:
            return cls(
                start_time=float(data["start_time"]),
                selected_matter_id=data.get("selected_matter_id"),
                notes=str(data.get("notes", "")),
                active_entry_id=data.get("active_entry_id"),
                suggested_matter_id=data.get("suggested_matter_id"),
                suggestion_reason=data.get("suggestion_reason"),
                persisted_at=float(data.get("persisted_at") or data["start_time"]),
                auto_stop_raised=bool(data.get("auto_stop_raised", False)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StateFileError(f"malformed timer state: {exc}") from exc


@dataclass(frozen=True, slots=True)
class RecoveryInfo:
    """How long a restored session went unobserved."""

    time_gap_seconds: int
    has_significant_gap: bool
    persisted_at: float
    recovered_at: float


class TimerStateFile:
    """Reads and writes ``<config_dir>/timer.json`` with file locking."""

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir
        self._path = config_dir / _STATE_FILE

    def save(self, state: TimerState) -> None:
        """Persist a running session, or remove the file when idle."""
        if state.status is TimerStatus.IDLE or state.start_time is None:
            self.clear()
            return
        self._config_dir.mkdir(parents=True, exist_ok=True)
        persisted = PersistedTimerState(
            start_time=state.start_time,
            selected_matter_id=state.selected_matter_id,
            notes=state.notes,
            active_entry_id=state.active_entry_id,
            suggested_matter_id=state.suggested_matter_id,
            suggestion_reason=state.suggestion_reason.value if state.suggestion_reason else None,
            persisted_at=time.time(),
            auto_stop_raised=state.auto_stop_raised,
        )
        with open(self._path, "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            json.dump(asdict(persisted), f)

    def load(self) -> PersistedTimerState | None:
        """Return the persisted session, or ``None`` if there is none.

        Raises :class:`StateFileError` when the file exists but is corrupt.
        """
        if not self._path.exists():
            return None
        with open(self._path) as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            text = f.read()
        if not text.strip():
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StateFileError(f"{self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StateFileError(f"{self._path} must contain a JSON object")
        return PersistedTimerState.from_dict(data)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


def calculate_recovery_info(
    persisted: PersistedTimerState, gap_warning_seconds: float, now: float | None = None
) -> RecoveryInfo:
    """Measure the gap between the last save and *now*."""
    recovered_at = time.time() if now is None else now
    gap = max(0, int(recovered_at - persisted.persisted_at))
    return RecoveryInfo(
        time_gap_seconds=gap,
        has_significant_gap=gap >= gap_warning_seconds,
        persisted_at=persisted.persisted_at,
        recovered_at=recovered_at,
    )


class Session:
    """Orchestrates a work timer across command invocations.

    The running session is written to ``<config_dir>/timer.json`` after every
    mutation and restored on construction; finished sessions are committed
    to a :class:`JsonTimeRecordStore` in the same directory.
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        settings: MatterTimeSettings | None = None,
        analytics: TimerAnalytics | None = None,
    ) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._config_dir = config_dir if config_dir is not None else self._settings.config_dir
        self._records = JsonTimeRecordStore(self._config_dir)
        self._state_file = TimerStateFile(self._config_dir)
        self._timer = WorkTimer(
            self._records,
            analytics,
            warning_seconds=self._settings.warning_seconds,
            auto_stop_seconds=self._settings.auto_stop_seconds,
        )
        self.recovery: RecoveryInfo | None = None
        self._load()

    @property
    def timer(self) -> WorkTimer:
        return self._timer

    @property
    def records(self) -> JsonTimeRecordStore:
        return self._records

    # -- public API ----------------------------------------------------------

    def start(
        self,
        pathname: str = "/",
        matter_id: str | None = None,
        accept_suggestion: bool = False,
    ) -> str:
        """Start a timer.  Raises :class:`InvalidStateError` if one is active."""
        context = create_suggestion_context(
            pathname, None, self._records.recent_entries(self._settings.recent_entry_limit)
        )
        suggestion = self._timer.start(context)
        if matter_id is None and accept_suggestion:
            matter_id = suggestion.matter_id
        if matter_id is not None:
            self._timer.update_matter(matter_id)
        self._save()

        message = "Timer started"
        if matter_id is not None:
            message += f" for matter {matter_id}"
        if suggestion.matter_id is not None and suggestion.matter_id != matter_id:
            label = get_suggestion_reason_label(suggestion.reason)
            message += f"\nSuggested matter: {suggestion.matter_id} ({label})"
        return message

    def status(self) -> tuple[str, int]:
        """Return ``(message, exit_code)``."""
        if self._timer.status is TimerStatus.IDLE:
            return "No active timer", 1

        warning = self._timer.tick()
        if warning is not None and warning.type is TimerWarningType.AUTO_STOPPED:
            message, code = self._auto_stop(warning.elapsed_seconds)
            if code == 0:
                return message, 0

        state = self._timer.state
        matter = state.selected_matter_id or "no matter selected"
        lines = [f"{_format_elapsed(state.elapsed_seconds)} on {matter}"]
        if state.elapsed_seconds >= self._settings.warning_seconds:
            lines.append(
                f"Timer has been running for more than {self._settings.warning_hours:g} hours"
            )
        if state.suggested_matter_id and state.suggested_matter_id != state.selected_matter_id:
            label = get_suggestion_reason_label(state.suggestion_reason)
            lines.append(f"Suggested matter: {state.suggested_matter_id} ({label})")
        if state.notes:
            lines.append(f"Notes: {state.notes}")
        if state.error:
            lines.append(f"Last stop failed: {state.error}. Your time is not lost; try again.")
        if self.recovery is not None and self.recovery.has_significant_gap:
            lines.append(
                f"Timer state was last saved {_format_elapsed(self.recovery.time_gap_seconds)} ago"
            )
        return "\n".join(lines), 0

    def stop(self, notes: str | None = None) -> tuple[str, int]:
        """Commit the running timer.  Returns ``(message, exit_code)``."""
        matter = self._timer.state.selected_matter_id
        committed = asyncio.run(self._timer.stop(notes))
        self._save()
        if not committed:
            return (
                f"Stop failed: {self._timer.state.error}. Your time is not lost; try again.",
                1,
            )
        minutes = self._records.last_record["duration_minutes"] if self._records.last_record else 0
        return f"Time logged: {minutes} min on {matter}", 0

    def reset(self) -> str:
        """Discard the running timer without saving a time record."""
        if self._timer.status is TimerStatus.IDLE:
            return "No active timer"
        self._timer.reset()
        self._save()
        return "Timer discarded"

    def set_notes(self, notes: str) -> str:
        self._timer.update_notes(notes)
        self._save()
        return "Notes updated"

    def set_matter(self, matter_id: str) -> str:
        self._timer.update_matter(matter_id)
        self._save()
        return f"Matter set to {matter_id}"

    def suggest(self, pathname: str = "/") -> tuple[str, int]:
        """Suggest a matter for *pathname* without starting a timer.

        While a timer is active the suggestion is stored on it as well.
        """
        context = create_suggestion_context(
            pathname, None, self._records.recent_entries(self._settings.recent_entry_limit)
        )
        suggestion = suggest_matter(context)
        if self._timer.status is not TimerStatus.IDLE:
            self._timer.set_suggested_matter(suggestion.matter_id, suggestion.reason)
            self._save()
        if suggestion.matter_id is None:
            return "No matter to suggest", 1
        label = get_suggestion_reason_label(suggestion.reason)
        return f"{suggestion.matter_id} ({label})", 0

    # -- private helpers -----------------------------------------------------

    def _auto_stop(self, elapsed_seconds: int) -> tuple[str, int]:
        message, code = self.stop()
        if code == 0:
            message = f"Timer auto-stopped after {_format_elapsed(elapsed_seconds)}. {message}"
        return message, code

    def _save(self) -> None:
        self._state_file.save(self._timer.state)

    def _load(self) -> None:
        """Restore a running session from the state file if it exists."""
        try:
            persisted = self._state_file.load()
        except StateFileError as exc:
            logger.warning("ignoring unreadable timer state: %s", exc)
            return
        if persisted is None:
            return

        self._timer.restore(
            persisted.start_time,
            persisted.selected_matter_id,
            persisted.notes,
            persisted.active_entry_id,
            persisted.auto_stop_raised,
        )
        if persisted.suggested_matter_id is not None:
            try:
                reason = SuggestionReason(persisted.suggestion_reason)
            except ValueError:
                reason = None
            self._timer.set_suggested_matter(persisted.suggested_matter_id, reason)
        self.recovery = calculate_recovery_info(
            persisted, self._settings.recovery_gap_warning_seconds
        )
