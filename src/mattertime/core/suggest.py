"""Matter suggestion — guesses which matter a newly started timer belongs to.

Candidates are tried in a fixed priority order and the first hit wins:

1. the matter of the page the user is currently on,
2. the matter of a time record started within the last five minutes,
3. the matter of the last time record, if it started within 24 hours,
4. the matter with the most time records over the past seven days.

Every function here is pure: no I/O and no state between calls.  The only
ambient input is the wall clock (``time.time()``), and every finder accepts
an explicit ``now`` so a single suggestion is evaluated against one reading.
"""

from __future__ import annotations

import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

FIVE_MINUTES = 5 * 60.0
TWENTY_FOUR_HOURS = 24 * 60 * 60.0
SEVEN_DAYS = 7 * TWENTY_FOUR_HOURS

# Only these sub-pages carry matter context; anything else under a matter
# must not produce a suggestion.
_MATTER_ROUTE = re.compile(r"/matters/([A-Za-z0-9-]+)(?:/(?:edit|time|tasks|billing|documents))?")


class SuggestionReason(Enum):
    """Why a matter was suggested."""

    CURRENT_PAGE = "current_page"
    RECENT_ACTIVITY = "recent_activity"
    LAST_TIMER = "last_timer"
    MOST_ACTIVE_THIS_WEEK = "most_active_this_week"
    NONE = "none"


_REASON_LABELS = {
    SuggestionReason.CURRENT_PAGE: "Suggested based on current page",
    SuggestionReason.RECENT_ACTIVITY: "Suggested based on recent activity",
    SuggestionReason.LAST_TIMER: "Suggested based on your last timer",
    SuggestionReason.MOST_ACTIVE_THIS_WEEK: "Suggested based on this week's activity",
    SuggestionReason.NONE: "",
}


@dataclass(frozen=True, slots=True)
class RecentEntry:
    """The two fields of a stored time record the heuristic looks at."""

    matter_id: str
    started_at: float

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> RecentEntry:
        """Build an entry from a stored time record.

        ``started_at`` may be epoch seconds, a ``datetime`` or an ISO-8601
        string (a trailing ``Z`` is read as UTC).
        """
        return cls(matter_id=str(record["matter_id"]), started_at=_to_epoch(record["started_at"]))


@dataclass(frozen=True, slots=True)
class SuggestionContext:
    """Inputs for one suggestion request.

    ``recent_entries`` must already be ordered newest first.
    """

    pathname: str
    route_matter_id: str | None = None
    recent_entries: Sequence[RecentEntry] = ()


@dataclass(frozen=True, slots=True)
class Suggestion:
    matter_id: str | None
    reason: SuggestionReason | None

    @classmethod
    def empty(cls) -> Suggestion:
        return cls(matter_id=None, reason=None)


def extract_matter_id_from_route(pathname: str) -> str | None:
    """Return the matter id of a matter page, or ``None`` for any other route."""
    match = _MATTER_ROUTE.fullmatch(pathname)
    if match is None:
        return None
    return match.group(1)


def find_recent_activity_matter(
    entries: Sequence[RecentEntry],
    window_seconds: float = FIVE_MINUTES,
    *,
    now: float | None = None,
) -> str | None:
    """Return the newest entry's matter if it started within *window_seconds*."""
    return _head_within_window(entries, window_seconds, now)


def find_last_timer_matter(
    entries: Sequence[RecentEntry],
    window_seconds: float = TWENTY_FOUR_HOURS,
    *,
    now: float | None = None,
) -> str | None:
    """Return the last timer's matter if it started within *window_seconds*."""
    return _head_within_window(entries, window_seconds, now)


def find_most_active_matter_this_week(
    entries: Sequence[RecentEntry],
    window_seconds: float = SEVEN_DAYS,
    *,
    now: float | None = None,
) -> str | None:
    """Return the matter with the most entries inside the window.

    Ties go to the matter encountered first in *entries*.
    """
    current = _now(now)
    counts: dict[str, int] = {}
    for entry in entries:
        if current - entry.started_at <= window_seconds:
            counts[entry.matter_id] = counts.get(entry.matter_id, 0) + 1
    if not counts:
        return None
    # max() keeps the first of equal keys, and dicts keep insertion order.
    return max(counts, key=counts.__getitem__)


def suggest_matter(context: SuggestionContext, *, now: float | None = None) -> Suggestion:
    """Suggest the most relevant matter for *context*."""
    route_matter_id = context.route_matter_id
    if route_matter_id is None:
        route_matter_id = extract_matter_id_from_route(context.pathname)
    if route_matter_id:
        return Suggestion(route_matter_id, SuggestionReason.CURRENT_PAGE)

    current = _now(now)
    entries = context.recent_entries
    tiers = (
        (find_recent_activity_matter, SuggestionReason.RECENT_ACTIVITY),
        (find_last_timer_matter, SuggestionReason.LAST_TIMER),
        (find_most_active_matter_this_week, SuggestionReason.MOST_ACTIVE_THIS_WEEK),
    )
    for finder, reason in tiers:
        matter_id = finder(entries, now=current)
        if matter_id:
            return Suggestion(matter_id, reason)

    return Suggestion.empty()


def get_suggestion_reason_label(reason: SuggestionReason | str | None) -> str:
    """Return a short phrase explaining *reason*, or ``""`` if there is none."""
    if isinstance(reason, str):
        try:
            reason = SuggestionReason(reason)
        except ValueError:
            return ""
    if reason is None:
        return ""
    return _REASON_LABELS.get(reason, "")


def create_suggestion_context(
    pathname: str,
    route_matter_id: str | None = None,
    recent_entries: Sequence[RecentEntry] | None = None,
) -> SuggestionContext:
    return SuggestionContext(
        pathname=pathname,
        route_matter_id=route_matter_id,
        recent_entries=recent_entries if recent_entries is not None else (),
    )


# -- private helpers ---------------------------------------------------------


def _now(now: float | None) -> float:
    return time.time() if now is None else now


def _head_within_window(
    entries: Sequence[RecentEntry], window_seconds: float, now: float | None
) -> str | None:
    # Entries are newest first, so an expired head means nothing later qualifies.
    if not entries:
        return None
    head = entries[0]
    if _now(now) - head.started_at <= window_seconds:
        return head.matter_id
    return None


def _to_epoch(value: Any) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text).timestamp()
    return float(value)
