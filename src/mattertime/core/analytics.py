"""Timer usage events.

Events are written to the ``mattertime.analytics`` logger and, when a sink
is configured, handed to it as :class:`TimerEvent` values.  The sink is the
hook for a real analytics backend.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from mattertime.core.suggest import SuggestionReason

logger = logging.getLogger("mattertime.analytics")


class TimerEventType(Enum):
    TIMER_STARTED = "timer_started"
    TIMER_STOPPED = "timer_stopped"
    SUGGESTION_SHOWN = "suggestion_shown"
    SUGGESTION_ACCEPTED = "suggestion_accepted"
    SUGGESTION_OVERRIDDEN = "suggestion_overridden"
    WARNING_SHOWN = "warning_shown"
    AUTO_STOP_TRIGGERED = "auto_stop_triggered"


@dataclass(frozen=True, slots=True)
class TimerEvent:
    type: TimerEventType
    timestamp: float
    properties: dict[str, Any] = field(default_factory=dict)


EventSink = Callable[[TimerEvent], None]


class TimerAnalytics:
    """Records timer events to the log and an optional sink."""

    def __init__(self, sink: EventSink | None = None) -> None:
        self._sink = sink

    def track(self, event_type: TimerEventType, **properties: Any) -> TimerEvent:
        event = TimerEvent(type=event_type, timestamp=time.time(), properties=properties)
        logger.info("%s %s", event_type.value, properties)
        if self._sink is not None:
            try:
                self._sink(event)
            except Exception:
                logger.exception("analytics sink failed for %s", event_type.value)
        return event

    def timer_started(
        self, suggested_matter_id: str | None, reason: SuggestionReason | None
    ) -> None:
        self.track(
            TimerEventType.TIMER_STARTED,
            suggested_matter_id=suggested_matter_id,
            suggestion_reason=_reason_value(reason),
        )
        if suggested_matter_id is not None:
            self.track(
                TimerEventType.SUGGESTION_SHOWN,
                suggested_matter_id=suggested_matter_id,
                suggestion_reason=_reason_value(reason),
            )

    def timer_stopped(
        self,
        matter_id: str | None,
        duration_seconds: int,
        has_notes: bool,
        suggested_matter_id: str | None,
        reason: SuggestionReason | None,
    ) -> None:
        self.track(
            TimerEventType.TIMER_STOPPED,
            matter_id=matter_id,
            duration_seconds=duration_seconds,
            has_notes=has_notes,
        )
        if suggested_matter_id is None:
            return
        if matter_id == suggested_matter_id:
            self.track(
                TimerEventType.SUGGESTION_ACCEPTED,
                matter_id=matter_id,
                suggestion_reason=_reason_value(reason),
            )
        else:
            self.track(
                TimerEventType.SUGGESTION_OVERRIDDEN,
                suggested_matter_id=suggested_matter_id,
                selected_matter_id=matter_id,
                suggestion_reason=_reason_value(reason),
            )

    def warning_shown(self, warning_type: str, duration_seconds: int) -> None:
        self.track(
            TimerEventType.WARNING_SHOWN,
            warning_type=warning_type,
            duration_seconds=duration_seconds,
        )

    def auto_stop_triggered(self, matter_id: str | None, duration_seconds: int) -> None:
        self.track(
            TimerEventType.AUTO_STOP_TRIGGERED,
            matter_id=matter_id,
            duration_seconds=duration_seconds,
        )


def _reason_value(reason: SuggestionReason | None) -> str | None:
    return reason.value if reason is not None else None
