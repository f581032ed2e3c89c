"""A learner's study activity for the current UTC day."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from repaso.config import as_naive_utc, day_window, utcnow
from repaso.srs.fsrs import Rating
from repaso.store.base import CardStore

logger = logging.getLogger(__name__)


@dataclass
class DailyStats:
    reviews_today: int = 0
    new_cards_today: int = 0
    correct_rate: float | None = None  # None when nothing was reviewed
    avg_answer_time_ms: float | None = None  # None when no answer time was recorded
    due_tomorrow: int = 0


async def get_daily_stats(
    store: CardStore,
    user_id: int,
    topic_id: int,
    now: datetime | None = None,
) -> DailyStats:
    """Summarize today's reviews in a topic and count cards due tomorrow."""
    now = as_naive_utc(now) if now else utcnow()
    topic_cards = await store.list_cards_for_topic(topic_id)
    if not topic_cards:
        return DailyStats()

    card_ids = [entry.card.id for entry in topic_cards]
    today_start, today_end = day_window(now)
    tomorrow_start, tomorrow_end = day_window(now, offset_days=1)

    logs, states = await asyncio.gather(
        store.list_review_logs_in_window(user_id, card_ids, today_start, today_end),
        store.list_card_states(user_id, card_ids),
    )

    due_tomorrow = sum(
        1 for state in states.values() if tomorrow_start <= as_naive_utc(state.due) < tomorrow_end
    )

    reviews_today = len(logs)
    if reviews_today == 0:
        return DailyStats(due_tomorrow=due_tomorrow)

    correct = sum(1 for log in logs if log.rating in (Rating.GOOD, Rating.EASY))
    timed = [log.answer_time_ms for log in logs if log.answer_time_ms is not None and log.answer_time_ms > 0]

    stats = DailyStats(
        reviews_today=reviews_today,
        new_cards_today=sum(1 for log in logs if log.was_new),
        correct_rate=correct / reviews_today,
        avg_answer_time_ms=sum(timed) / len(timed) if timed else None,
        due_tomorrow=due_tomorrow,
    )
    logger.debug("Daily stats for user %d topic %d: %s", user_id, topic_id, stats)
    return stats
