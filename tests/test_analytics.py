"""Tests for timer usage events."""

import logging

import pytest

from mattertime.core.analytics import TimerAnalytics, TimerEvent, TimerEventType
from mattertime.core.suggest import SuggestionReason


@pytest.fixture()
def events() -> list[TimerEvent]:
    return []


class TestTimerStarted:
    def test_suggestion_shown_only_with_suggestion(self, events: list[TimerEvent]) -> None:
        analytics = TimerAnalytics(events.append)
        analytics.timer_started(None, None)
        analytics.timer_started("m-1", SuggestionReason.CURRENT_PAGE)
        assert [e.type for e in events] == [
            TimerEventType.TIMER_STARTED,
            TimerEventType.TIMER_STARTED,
            TimerEventType.SUGGESTION_SHOWN,
        ]
        assert events[2].properties == {
            "suggested_matter_id": "m-1",
            "suggestion_reason": "current_page",
        }


class TestTimerStopped:
    def test_accepted_suggestion(self, events: list[TimerEvent]) -> None:
        TimerAnalytics(events.append).timer_stopped(
            "m-1", 600, True, "m-1", SuggestionReason.LAST_TIMER
        )
        assert [e.type for e in events] == [
            TimerEventType.TIMER_STOPPED,
            TimerEventType.SUGGESTION_ACCEPTED,
        ]
        assert events[0].properties == {
            "matter_id": "m-1",
            "duration_seconds": 600,
            "has_notes": True,
        }

    def test_overridden_suggestion(self, events: list[TimerEvent]) -> None:
        TimerAnalytics(events.append).timer_stopped(
            "m-2", 60, False, "m-1", SuggestionReason.RECENT_ACTIVITY
        )
        assert events[1].type is TimerEventType.SUGGESTION_OVERRIDDEN
        assert events[1].properties == {
            "suggested_matter_id": "m-1",
            "selected_matter_id": "m-2",
            "suggestion_reason": "recent_activity",
        }

    def test_no_suggestion_means_single_event(self, events: list[TimerEvent]) -> None:
        TimerAnalytics(events.append).timer_stopped("m-2", 60, False, None, None)
        assert len(events) == 1


def test_events_are_logged_without_sink(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="mattertime.analytics"):
        TimerAnalytics().auto_stop_triggered("m-1", 86400)
    assert "auto_stop_triggered" in caplog.text


def test_failing_sink_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    def sink(event: TimerEvent) -> None:
        raise RuntimeError("backend down")

    with caplog.at_level(logging.ERROR, logger="mattertime.analytics"):
        event = TimerAnalytics(sink).track(TimerEventType.WARNING_SHOWN, warning_type="eight_hour")
    assert event.type is TimerEventType.WARNING_SHOWN
    assert "analytics sink failed for warning_shown" in caplog.text
