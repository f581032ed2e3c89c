"""Topic and category progress summaries."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from repaso.config import as_naive_utc, settings, utcnow
from repaso.srs.fsrs import CardState, State
from repaso.srs.ordering import Bucket, bucket_for
from repaso.store.base import CardStore
from repaso.store.records import CategoryMeta


@dataclass
class CategoryProgress:
    category: CategoryMeta
    total: int = 0
    new_count: int = 0
    learning_count: int = 0  # learning + relearning
    review_count: int = 0
    mastered_count: int = 0  # review state with stability above the mastery threshold
    due_today: int = 0  # review/relearning due now


@dataclass
class TopicProgress:
    topic_id: int
    total: int = 0
    new_count: int = 0
    learning_count: int = 0
    review_count: int = 0
    mastered_count: int = 0
    due_today: int = 0
    last_studied: datetime | None = None
    categories: list[CategoryProgress] = field(default_factory=list)

    @property
    def fully_memorized(self) -> bool:
        return self.total > 0 and self.mastered_count == self.total and self.due_today == 0

    @property
    def percent_complete(self) -> int:
        return round(self.mastered_count / self.total * 100) if self.total else 0


def _classify(progress: CategoryProgress, state: CardState | None, now: datetime, mastery_days: float) -> None:
    progress.total += 1
    if state is None:
        progress.new_count += 1
        return

    phase = State(state.state)
    if phase is State.REVIEW and state.stability > mastery_days:
        progress.mastered_count += 1
    elif phase in (State.LEARNING, State.RELEARNING):
        progress.learning_count += 1
    elif phase is State.REVIEW:
        progress.review_count += 1
    else:
        progress.new_count += 1

    if bucket_for(state, now) is Bucket.REVIEW_DUE:
        progress.due_today += 1


async def get_topic_progress(
    store: CardStore,
    user_id: int,
    topic_id: int,
    now: datetime | None = None,
    mastery_days: float | None = None,
) -> TopicProgress:
    """Break a learner's non-suspended cards in a topic down by learning phase."""
    now = as_naive_utc(now) if now else utcnow()
    mastery_days = settings.mastery_threshold_days if mastery_days is None else mastery_days

    topic_cards = await store.list_cards_for_topic(topic_id)
    if not topic_cards:
        return TopicProgress(topic_id=topic_id)

    card_ids = [entry.card.id for entry in topic_cards]
    suspended, states = await asyncio.gather(
        store.list_suspended_card_ids(user_id, card_ids),
        store.list_card_states(user_id, card_ids),
    )

    by_category: dict[int, CategoryProgress] = {}
    last_studied: datetime | None = None
    for entry in topic_cards:
        if entry.card.id in suspended:
            continue
        progress = by_category.setdefault(entry.category.id, CategoryProgress(category=entry.category))
        state = states.get(entry.card.id)
        _classify(progress, state, now, mastery_days)
        if state is not None and state.last_review is not None:
            reviewed = as_naive_utc(state.last_review)
            if last_studied is None or reviewed > last_studied:
                last_studied = reviewed

    categories = list(by_category.values())
    return TopicProgress(
        topic_id=topic_id,
        total=sum(c.total for c in categories),
        new_count=sum(c.new_count for c in categories),
        learning_count=sum(c.learning_count for c in categories),
        review_count=sum(c.review_count for c in categories),
        mastered_count=sum(c.mastered_count for c in categories),
        due_today=sum(c.due_today for c in categories),
        last_studied=last_studied,
        categories=categories,
    )
