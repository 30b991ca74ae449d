"""Work timer — a state machine for one billable-time session.

``IDLE -> RUNNING -> COMMITTING -> IDLE`` on a successful stop, and
``COMMITTING -> RUNNING`` when the time-record service rejects the commit,
so a failed stop never loses the session.  Elapsed time is always derived
from the recorded start time and the wall clock (``time.time()``), never
accumulated from ticks.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from mattertime.core.analytics import TimerAnalytics
from mattertime.core.suggest import (
    Suggestion,
    SuggestionContext,
    SuggestionReason,
    suggest_matter,
)

logger = logging.getLogger(__name__)


class TimerStatus(Enum):
    """Possible states of the work timer."""

    IDLE = "idle"
    RUNNING = "running"
    COMMITTING = "committing"


class InvalidStateError(Exception):
    """Raised when an invalid state transition is attempted."""


class CommitError(Exception):
    """Raised by a time-record service when a finished session cannot be stored."""


class TimerWarningType(Enum):
    EIGHT_HOUR = "eight_hour"
    AUTO_STOPPED = "auto_stopped"


@dataclass(frozen=True, slots=True)
class TimerWarning:
    type: TimerWarningType
    elapsed_seconds: int
    triggered_at: float


@dataclass(frozen=True, slots=True)
class TimeRecordCommit:
    """A finished session, as handed to the time-record service."""

    matter_id: str | None
    started_at: float
    ended_at: float
    duration_minutes: int
    notes: str

    @classmethod
    def from_interval(
        cls, matter_id: str | None, started_at: float, ended_at: float, notes: str
    ) -> TimeRecordCommit:
        """Build a commit, rounding the interval half-up to whole minutes (at least one)."""
        minutes = max(1, math.floor((ended_at - started_at) / 60.0 + 0.5))
        return cls(
            matter_id=matter_id,
            started_at=started_at,
            ended_at=ended_at,
            duration_minutes=minutes,
            notes=notes,
        )


class TimeRecordService(Protocol):
    """The external writer of time records."""

    async def commit(self, record: TimeRecordCommit) -> str:
        """Store *record* and return its id.  Raise :class:`CommitError` on failure."""
        ...


@dataclass(frozen=True, slots=True)
class TimerState:
    """Read-only snapshot of the timer."""

    status: TimerStatus = TimerStatus.IDLE
    start_time: float | None = None
    elapsed_seconds: int = 0
    selected_matter_id: str | None = None
    suggested_matter_id: str | None = None
    suggestion_reason: SuggestionReason | None = None
    notes: str = ""
    active_entry_id: str | None = None
    error: str | None = None
    auto_stop_raised: bool = False


IDLE_STATE = TimerState()

TimerListener = Callable[[TimerState], None]

DEFAULT_WARNING_SECONDS = 8 * 60 * 60.0
DEFAULT_AUTO_STOP_SECONDS = 24 * 60 * 60.0

_IDLE_ONLY = frozenset({TimerStatus.IDLE})
_SESSION_STATES = frozenset({TimerStatus.RUNNING, TimerStatus.COMMITTING})


class WorkTimer:
    """Tracks a single in-progress billable-time session.

    The host application constructs one instance per user context and
    passes it to whatever needs it.  ``stop()`` is the only coroutine; every
    other operation is a synchronous state change.

    While a commit is in flight (``COMMITTING``) ``start()`` and ``stop()``
    raise :class:`InvalidStateError`, but notes and matter may still be
    edited.  Those edits apply to the session that remains if the commit
    fails.
    """

    def __init__(
        self,
        service: TimeRecordService,
        analytics: TimerAnalytics | None = None,
        *,
        warning_seconds: float = DEFAULT_WARNING_SECONDS,
        auto_stop_seconds: float = DEFAULT_AUTO_STOP_SECONDS,
    ) -> None:
        self._service = service
        self._analytics = analytics if analytics is not None else TimerAnalytics()
        self._warning_seconds = warning_seconds
        self._auto_stop_seconds = auto_stop_seconds
        self._listeners: list[TimerListener] = []
        # Bumped whenever a session is discarded so a late commit result
        # cannot touch the session that replaced it.
        self._generation = 0
        self._warning: TimerWarning | None = None
        self._clear_session()
        self._suggested_matter_id: str | None = None
        self._suggestion_reason: SuggestionReason | None = None

    # -- public interface ----------------------------------------------------

    @property
    def state(self) -> TimerState:
        """Return a snapshot of the current state."""
        return TimerState(
            status=self._status,
            start_time=self._start_time,
            elapsed_seconds=self.elapsed_seconds,
            selected_matter_id=self._selected_matter_id,
            suggested_matter_id=self._suggested_matter_id,
            suggestion_reason=self._suggestion_reason,
            notes=self._notes,
            active_entry_id=self._active_entry_id,
            error=self._error,
            auto_stop_raised=self._auto_stop_raised,
        )

    @property
    def status(self) -> TimerStatus:
        return self._status

    @property
    def elapsed_seconds(self) -> int:
        """Whole seconds since the session started; 0 when idle."""
        if self._start_time is None:
            return 0
        return max(0, math.floor(time.time() - self._start_time))

    @property
    def warning(self) -> TimerWarning | None:
        return self._warning

    def start(self, context: SuggestionContext | None = None) -> Suggestion:
        """Start a new session and return the matter suggestion for *context*.

        Valid only from IDLE.  The suggestion is stored but not selected.
        """
        self._require_state("start", _IDLE_ONLY)

        now = time.time()
        suggestion = suggest_matter(context, now=now) if context is not None else Suggestion.empty()
        self._clear_session()
        self._status = TimerStatus.RUNNING
        self._start_time = now
        self._suggested_matter_id = suggestion.matter_id
        self._suggestion_reason = suggestion.reason
        if self._warning is not None and self._warning.type is TimerWarningType.AUTO_STOPPED:
            self._warning = None

        logger.debug("timer started at %s (suggested %s)", now, suggestion.matter_id)
        self._analytics.timer_started(suggestion.matter_id, suggestion.reason)
        self._notify()
        return suggestion

    async def stop(self, notes: str | None = None) -> bool:
        """Commit the session to the time-record service.

        Valid only from RUNNING.  *notes*, when given, replaces the session
        notes for this commit only.  Returns ``True`` once the record is
        stored and the timer is idle again.  On failure the error is kept in
        ``state.error``, the timer returns to RUNNING with its start time and
        notes intact, and ``False`` is returned.
        """
        self._require_state("stop", frozenset({TimerStatus.RUNNING}))

        ended_at = time.time()
        record = TimeRecordCommit.from_interval(
            self._selected_matter_id,
            self._start_time,
            ended_at,
            notes if notes is not None else self._notes,
        )
        generation = self._generation
        self._status = TimerStatus.COMMITTING
        self._error = None
        self._notify()

        try:
            entry_id = await self._service.commit(record)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._status = TimerStatus.RUNNING
                self._notify()
            raise
        except Exception as exc:
            if generation != self._generation:
                logger.info("commit failed for a discarded session: %s", exc)
                return False
            self._status = TimerStatus.RUNNING
            self._error = str(exc) or type(exc).__name__
            logger.warning("time record commit failed, session kept running: %s", self._error)
            self._notify()
            return False

        if generation != self._generation:
            logger.info("time record %s committed after its session was discarded", entry_id)
            return True

        logger.debug("time record %s committed (%d min)", entry_id, record.duration_minutes)
        suggested_matter_id, reason = self._suggested_matter_id, self._suggestion_reason
        self._discard()
        self._analytics.timer_stopped(
            matter_id=record.matter_id,
            duration_seconds=int(ended_at - record.started_at),
            has_notes=bool(record.notes.strip()),
            suggested_matter_id=suggested_matter_id,
            reason=reason,
        )
        return True

    def reset(self) -> None:
        """Discard the session without committing.  Valid from any state."""
        if self._status is not TimerStatus.IDLE:
            logger.debug("timer reset from %s", self._status.value)
        self._discard()

    def update_notes(self, notes: str) -> None:
        self._require_state("update_notes", _SESSION_STATES)
        self._notes = notes
        self._notify()

    def update_matter(self, matter_id: str) -> None:
        self._require_state("update_matter", _SESSION_STATES)
        self._selected_matter_id = matter_id
        self._notify()

    def set_suggested_matter(
        self, matter_id: str | None, reason: SuggestionReason | None = None
    ) -> None:
        """Replace the suggestion without re-running the heuristic."""
        self._suggested_matter_id = matter_id
        self._suggestion_reason = reason if matter_id is not None else None
        self._notify()

    def clear_error(self) -> None:
        self._error = None
        self._notify()

    def clear_warning(self) -> None:
        self._warning = None

    def restore(
        self,
        start_time: float,
        selected_matter_id: str | None = None,
        notes: str = "",
        active_entry_id: str | None = None,
        auto_stop_raised: bool = False,
    ) -> None:
        """Resume a running session recorded earlier, e.g. before a restart.

        Valid only from IDLE.  *auto_stop_raised* carries over an auto-stop
        that was already raised for this session so it is not raised again.
        """
        self._require_state("restore", _IDLE_ONLY)
        self._clear_session()
        self._status = TimerStatus.RUNNING
        self._start_time = start_time
        self._selected_matter_id = selected_matter_id
        self._notes = notes
        self._active_entry_id = active_entry_id
        # A restored session past the threshold has already been warned about.
        self._eight_hour_warned = self.elapsed_seconds >= self._warning_seconds
        self._auto_stop_raised = auto_stop_raised
        self._notify()

    def tick(self) -> TimerWarning | None:
        """Refresh subscribers and check the long-running thresholds.

        Returns a new warning when one is raised.  An ``AUTO_STOPPED``
        warning means the caller should ``await stop()``; it is raised at
        most once per session.
        """
        if self._status is TimerStatus.IDLE:
            return None

        elapsed = self.elapsed_seconds
        warning: TimerWarning | None = None
        if elapsed >= self._auto_stop_seconds:
            if self._status is TimerStatus.RUNNING and not self._auto_stop_raised:
                self._auto_stop_raised = True
                warning = TimerWarning(TimerWarningType.AUTO_STOPPED, elapsed, time.time())
                self._analytics.auto_stop_triggered(self._selected_matter_id, elapsed)
        elif elapsed >= self._warning_seconds and not self._eight_hour_warned:
            self._eight_hour_warned = True
            warning = TimerWarning(TimerWarningType.EIGHT_HOUR, elapsed, time.time())

        if warning is not None:
            self._warning = warning
            self._analytics.warning_shown(warning.type.value, elapsed)
            logger.info("timer warning %s at %ds", warning.type.value, elapsed)
        self._notify()
        return warning

    def subscribe(self, listener: TimerListener) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot after every change and tick.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- private helpers -----------------------------------------------------

    def _require_state(self, method: str, valid: frozenset[TimerStatus]) -> None:
        """Raise ``InvalidStateError`` if the current state is not in *valid*."""
        if self._status not in valid:
            raise InvalidStateError(f"{method}() is not valid from {self._status.value} state")

    def _clear_session(self) -> None:
        self._status = TimerStatus.IDLE
        self._start_time: float | None = None
        self._selected_matter_id: str | None = None
        self._notes = ""
        self._active_entry_id: str | None = None
        self._error: str | None = None
        self._eight_hour_warned = False
        self._auto_stop_raised = False

    def _discard(self) -> None:
        """Return to the idle defaults, invalidating any in-flight commit."""
        self._generation += 1
        self._clear_session()
        self._suggested_matter_id = None
        self._suggestion_reason = None
        # The auto-stop notice outlives the session it stopped.
        if self._warning is not None and self._warning.type is not TimerWarningType.AUTO_STOPPED:
            self._warning = None
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("timer listener %r failed", listener)
