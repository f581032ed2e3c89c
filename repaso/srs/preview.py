"""Read-only views of a card's memory state for display."""

import math
from dataclasses import dataclass
from datetime import datetime

from repaso.config import as_naive_utc, utcnow
from repaso.preferences import SchedulerSettings
from repaso.srs.fsrs import FSRS, CardState, Rating, State

MINUTES_PER_HOUR = 60
HOURS_PER_DAY = 24
DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class IntervalPreview:
    """Human-readable time until the card would be due again, per rating."""

    again: str
    hard: str
    good: str
    easy: str

    def for_rating(self, rating: int) -> str:
        return getattr(self, Rating(rating).name.lower())


def get_retrievability(state: CardState | None, now: datetime | None = None) -> float | None:
    """Return the current recall probability, or None before the first review."""
    if state is None or State(state.state) is State.NEW:
        return None
    return FSRS().retrievability(state, now)


def get_interval_previews(
    state: CardState | None,
    scheduler_settings: SchedulerSettings | None = None,
    now: datetime | None = None,
) -> IntervalPreview:
    """Preview the next interval for each rating without touching the card."""
    now = as_naive_utc(now) if now else utcnow()
    scheduler = FSRS.from_settings(scheduler_settings)
    outcomes = scheduler.repeat(state, now)
    return IntervalPreview(
        again=format_interval(outcomes[Rating.AGAIN].due, now),
        hard=format_interval(outcomes[Rating.HARD].due, now),
        good=format_interval(outcomes[Rating.GOOD].due, now),
        easy=format_interval(outcomes[Rating.EASY].due, now),
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_interval(due: datetime, now: datetime) -> str:
    """Format the gap as minutes, hours, days or 30-day months, e.g. "10m", "3d", "2mo"."""
    minutes = _round_half_up((as_naive_utc(due) - as_naive_utc(now)).total_seconds() / 60)
    if minutes < MINUTES_PER_HOUR:
        return f"{minutes}m"
    hours = _round_half_up(minutes / MINUTES_PER_HOUR)
    if hours < HOURS_PER_DAY:
        return f"{hours}h"
    days = _round_half_up(hours / HOURS_PER_DAY)
    if days < DAYS_PER_MONTH:
        return f"{days}d"
    return f"{_round_half_up(days / DAYS_PER_MONTH)}mo"
