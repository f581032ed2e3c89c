"""Card ordering for study sessions.

Decides which of a topic's cards a learner sees and in what order:
genuinely due reviews first, then new cards, then short learning steps
that have come due, then cards that are not due yet. New cards are capped
by a daily budget shared across every session of the day.
"""

import asyncio
import logging
import random
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum, StrEnum

from repaso.config import as_naive_utc, day_window, settings, utcnow
from repaso.exceptions import UnknownSubModeError
from repaso.preferences import UserPreferences, ramped_new_card_limit
from repaso.srs.fsrs import CardState, State
from repaso.store.base import CardStore
from repaso.store.records import CardRecord, CategoryMeta

logger = logging.getLogger(__name__)


class SubMode(StrEnum):
    FULL = "full"
    QUICK_REVIEW = "quick_review"
    CATEGORY_FOCUS = "category_focus"
    SPACED_REPETITION = "spaced_repetition"


class Bucket(IntEnum):
    """Presentation priority, lowest first."""

    REVIEW_DUE = 0  # review/relearning card past its due date
    NEW = 1  # never reviewed
    LEARNING_DUE = 2  # short-term learning step that has come due
    FUTURE = 3  # not due yet


@dataclass
class OrderingOptions:
    """What kind of session to build."""

    sub_mode: SubMode | str = SubMode.FULL
    category_id: int | None = None  # only used by category_focus
    limit: int | None = None  # None or 0 means no limit
    new_cards_per_day: int | None = None  # None disables the daily new-card budget

    def __post_init__(self) -> None:
        try:
            self.sub_mode = SubMode(self.sub_mode)
        except ValueError:
            raise UnknownSubModeError(self.sub_mode) from None
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be non-negative, got {self.limit}")
        if self.new_cards_per_day is not None and self.new_cards_per_day < 0:
            raise ValueError(f"new_cards_per_day must be non-negative, got {self.new_cards_per_day}")


@dataclass
class OrderedCard:
    """A card queued for study with its learner state and category."""

    card: CardRecord
    card_state: CardState | None
    category: CategoryMeta
    bucket: Bucket

    @property
    def is_new(self) -> bool:
        return self.card_state is None


@dataclass
class SubModeCounts:
    full: int
    quick_review: int
    spaced_repetition: int


@dataclass
class EmptyStateContext:
    """Why a session came back empty and when it won't be."""

    remaining_new_cards: int  # unseen cards held back by the daily limit
    next_due_at: datetime | None  # earliest future due date, if any
    effective_limit: int  # today's new-card limit after ramp-up


def bucket_for(state: CardState | None, now: datetime) -> Bucket:
    """Classify a card into its presentation bucket."""
    if state is None:
        return Bucket.NEW
    if as_naive_utc(state.due) > now:
        return Bucket.FUTURE
    if State(state.state) in (State.REVIEW, State.RELEARNING):
        return Bucket.REVIEW_DUE
    return Bucket.LEARNING_DUE


async def get_ordered_cards(
    store: CardStore,
    user_id: int,
    topic_id: int,
    options: OrderingOptions | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[OrderedCard]:
    """Build the ordered study list for a learner and topic.

    Args:
        store: Card storage.
        user_id: The learner studying.
        topic_id: The topic being studied.
        options: Sub-mode, category focus, limit and daily new-card budget.
        now: Current time (defaults to utcnow).
        rng: Source for shuffling new and future cards. A fresh shuffle per
            call is intended; pass one only to observe the shuffle in tests.

    Returns:
        Cards sorted by bucket; due buckets most overdue first, new and
        future buckets shuffled.
    """
    options = options or OrderingOptions()
    now = as_naive_utc(now) if now else utcnow()
    sub_mode = SubMode(options.sub_mode)

    category_id = options.category_id if sub_mode is SubMode.CATEGORY_FOCUS else None
    topic_cards = await store.list_cards_for_topic(topic_id, category_id)
    if not topic_cards:
        return []

    card_ids = [entry.card.id for entry in topic_cards]
    reads = [
        store.list_suspended_card_ids(user_id, card_ids),
        store.list_card_states(user_id, card_ids),
    ]
    if options.new_cards_per_day is not None:
        start, end = day_window(now)
        reads.append(store.list_review_logs_in_window(user_id, card_ids, start, end))
    suspended, states, *today_logs = await asyncio.gather(*reads)

    candidates = []
    for entry in topic_cards:
        if entry.card.id in suspended:
            continue
        state = states.get(entry.card.id)
        candidates.append(
            OrderedCard(
                card=entry.card,
                card_state=state,
                category=entry.category,
                bucket=bucket_for(state, now),
            )
        )

    candidates = _filter_for_sub_mode(candidates, sub_mode)
    ordered = _sort_by_bucket(candidates, rng)

    if options.new_cards_per_day is not None:
        introduced = len({log.card_id for log in today_logs[0] if log.was_new})
        remaining = max(0, options.new_cards_per_day - introduced)
        ordered = _cap_new_cards(ordered, remaining)
        logger.debug(
            "New-card budget for user %d topic %d: %d/day, %d introduced today, %d remaining",
            user_id,
            topic_id,
            options.new_cards_per_day,
            introduced,
            remaining,
        )

    if options.limit:
        ordered = ordered[: options.limit]
    elif sub_mode is SubMode.QUICK_REVIEW:
        ordered = ordered[: settings.quick_review_limit]

    logger.info(
        "Ordered %d cards for user %d topic %d (%s): %d suspended, %d new",
        len(ordered),
        user_id,
        topic_id,
        sub_mode,
        len(suspended),
        sum(1 for item in ordered if item.bucket is Bucket.NEW),
    )
    return ordered


async def get_sub_mode_counts(
    store: CardStore,
    user_id: int,
    topic_id: int,
    now: datetime | None = None,
) -> SubModeCounts:
    """Count how many cards each sub-mode would offer, for mode pickers."""
    now = as_naive_utc(now) if now else utcnow()
    topic_cards = await store.list_cards_for_topic(topic_id)
    if not topic_cards:
        return SubModeCounts(full=0, quick_review=0, spaced_repetition=0)

    card_ids = [entry.card.id for entry in topic_cards]
    suspended, states = await asyncio.gather(
        store.list_suspended_card_ids(user_id, card_ids),
        store.list_card_states(user_id, card_ids),
    )

    active_ids = [card_id for card_id in card_ids if card_id not in suspended]
    seen = [states[card_id] for card_id in active_ids if card_id in states]
    return SubModeCounts(
        full=len(active_ids),
        quick_review=min(len(seen), settings.quick_review_limit),
        spaced_repetition=sum(1 for state in seen if bucket_for(state, now) is Bucket.REVIEW_DUE),
    )


async def get_empty_state_context(
    store: CardStore,
    user_id: int,
    topic_id: int,
    options: OrderingOptions | None = None,
    ramp_up: bool = False,
    now: datetime | None = None,
) -> EmptyStateContext:
    """Explain an empty session: unseen cards left, next due date and today's limit."""
    options = options or OrderingOptions()
    now = as_naive_utc(now) if now else utcnow()

    category_id = options.category_id if options.sub_mode is SubMode.CATEGORY_FOCUS else None
    topic_cards = await store.list_cards_for_topic(topic_id, category_id)
    if not topic_cards:
        return EmptyStateContext(remaining_new_cards=0, next_due_at=None, effective_limit=0)

    card_ids = [entry.card.id for entry in topic_cards]
    suspended, states = await asyncio.gather(
        store.list_suspended_card_ids(user_id, card_ids),
        store.list_card_states(user_id, card_ids),
    )

    active_ids = [card_id for card_id in card_ids if card_id not in suspended]
    future_dues = [
        as_naive_utc(state.due)
        for card_id, state in states.items()
        if card_id not in suspended and as_naive_utc(state.due) > now
    ]
    base_limit = (
        options.new_cards_per_day if options.new_cards_per_day is not None else settings.new_cards_per_day
    )
    return EmptyStateContext(
        remaining_new_cards=sum(1 for card_id in active_ids if card_id not in states),
        next_due_at=min(future_dues, default=None),
        effective_limit=await effective_new_card_limit(store, user_id, card_ids, base_limit, ramp_up, now),
    )


async def effective_new_card_limit(
    store: CardStore,
    user_id: int,
    card_ids: Collection[int],
    base_limit: int,
    ramp_up: bool,
    now: datetime | None = None,
) -> int:
    """Return today's new-card limit, applying the ramp-up schedule when enabled."""
    if not ramp_up:
        return base_limit
    now = as_naive_utc(now) if now else utcnow()
    first_review_at = await store.get_first_review_at(user_id, card_ids)
    return ramped_new_card_limit(base_limit, first_review_at, now)


async def new_cards_per_day_for(
    store: CardStore,
    user_id: int,
    topic_id: int,
    preferences: UserPreferences,
    now: datetime | None = None,
) -> int:
    """Pick the ``new_cards_per_day`` to pass into an ordering request."""
    if not preferences.new_cards_ramp_up:
        return preferences.new_cards_per_day
    topic_cards = await store.list_cards_for_topic(topic_id)
    return await effective_new_card_limit(
        store,
        user_id,
        [entry.card.id for entry in topic_cards],
        preferences.new_cards_per_day,
        ramp_up=True,
        now=now,
    )


def _filter_for_sub_mode(cards: list[OrderedCard], sub_mode: SubMode) -> list[OrderedCard]:
    if sub_mode is SubMode.QUICK_REVIEW:
        # Only cards the learner has already seen
        return [item for item in cards if item.card_state is not None]
    if sub_mode is SubMode.SPACED_REPETITION:
        # Due review/relearning only; learning steps are a different priority class
        return [item for item in cards if item.bucket is Bucket.REVIEW_DUE]
    return cards


def _sort_by_bucket(cards: list[OrderedCard], rng: random.Random | None) -> list[OrderedCard]:
    shuffle = rng.shuffle if rng is not None else random.shuffle
    buckets: dict[Bucket, list[OrderedCard]] = {bucket: [] for bucket in Bucket}
    for item in cards:
        buckets[item.bucket].append(item)

    # Most overdue first
    buckets[Bucket.REVIEW_DUE].sort(key=lambda item: as_naive_utc(item.card_state.due))
    buckets[Bucket.LEARNING_DUE].sort(key=lambda item: as_naive_utc(item.card_state.due))
    # Fresh order every call so repeated sessions spread exposure
    shuffle(buckets[Bucket.NEW])
    shuffle(buckets[Bucket.FUTURE])

    return [item for bucket in Bucket for item in buckets[bucket]]


def _cap_new_cards(cards: list[OrderedCard], remaining: int) -> list[OrderedCard]:
    """Keep only the first ``remaining`` new cards; everything else passes through."""
    result = []
    kept_new = 0
    for item in cards:
        if item.is_new:
            if kept_new >= remaining:
                continue
            kept_new += 1
        result.append(item)
    return result
