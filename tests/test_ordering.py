"""Tests for study-session card ordering."""

import random
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from repaso.exceptions import UnknownSubModeError
from repaso.preferences import UserPreferences
from repaso.srs.fsrs import CardState, State
from repaso.srs.ordering import (
    Bucket,
    OrderingOptions,
    SubMode,
    bucket_for,
    effective_new_card_limit,
    get_empty_state_context,
    get_ordered_cards,
    get_sub_mode_counts,
    new_cards_per_day_for,
)
from repaso.store.memory import InMemoryCardStore
from repaso.store.records import CardRecord, CategoryMeta, ReviewLogEntry

NOW = datetime(2026, 3, 10, 12, 0, 0)
USER = 7
TOPIC = 1


def _state(state: State, due: datetime, stability: float = 5.0) -> CardState:
    return CardState(
        stability=stability,
        difficulty=5.0,
        reps=3,
        state=state,
        due=due,
        last_review=min(due, NOW) - timedelta(days=1),
    )


def _card(card_id: int, category_id: int = 10) -> CardRecord:
    return CardRecord(
        id=card_id,
        category_id=category_id,
        front_en=f"word {card_id}",
        front_es=f"palabra {card_id}",
        back_en=f"meaning {card_id}",
        back_es=f"significado {card_id}",
    )


def _log(card_id: int, reviewed_at: datetime, stability_before: float | None = None) -> ReviewLogEntry:
    return ReviewLogEntry(
        user_id=USER,
        card_id=card_id,
        rating=3,
        reviewed_at=reviewed_at,
        answer_time_ms=1500,
        stability_before=stability_before,
    )


async def _seed(store: InMemoryCardStore) -> None:
    """Ten cards in topic 1 covering every bucket, plus one card in topic 2.

    Expected order: 1, 2, 3 (review due, most overdue first), {6, 7, 8} (new),
    5, 4 (learning due), {9, 10} (future).
    """
    store.add_category(CategoryMeta(id=10, topic_id=TOPIC, name_en="Greetings", name_es="Saludos", color="#f00"))
    store.add_category(CategoryMeta(id=11, topic_id=TOPIC, name_en="Food", name_es="Comida"))
    store.add_category(CategoryMeta(id=20, topic_id=2, name_en="Travel", name_es="Viajes"))
    for card_id in range(1, 9):
        store.add_card(_card(card_id, category_id=10))
    store.add_card(_card(9, category_id=11))
    store.add_card(_card(10, category_id=11))
    store.add_card(_card(99, category_id=20))

    states = {
        1: _state(State.REVIEW, NOW - timedelta(days=3)),
        2: _state(State.REVIEW, NOW - timedelta(days=1)),
        3: _state(State.RELEARNING, NOW - timedelta(hours=1)),
        4: _state(State.LEARNING, NOW - timedelta(minutes=5)),
        5: _state(State.LEARNING, NOW - timedelta(minutes=30)),
        9: _state(State.REVIEW, NOW + timedelta(days=5)),
        10: _state(State.LEARNING, NOW + timedelta(minutes=5)),
        99: _state(State.REVIEW, NOW - timedelta(days=10)),
    }
    for card_id, state in states.items():
        await store.upsert_card_state(USER, card_id, state)


@pytest_asyncio.fixture
async def store() -> InMemoryCardStore:
    store = InMemoryCardStore()
    await _seed(store)
    return store


def _ids(cards) -> list[int]:
    return [item.card.id for item in cards]


# --- Buckets ---


class TestBucketFor:
    def test_unseen_card_is_new(self) -> None:
        assert bucket_for(None, NOW) is Bucket.NEW

    def test_due_review_and_relearning(self) -> None:
        assert bucket_for(_state(State.REVIEW, NOW), NOW) is Bucket.REVIEW_DUE
        assert bucket_for(_state(State.RELEARNING, NOW - timedelta(minutes=1)), NOW) is Bucket.REVIEW_DUE

    def test_due_learning_step_is_its_own_bucket(self) -> None:
        assert bucket_for(_state(State.LEARNING, NOW), NOW) is Bucket.LEARNING_DUE

    def test_not_yet_due(self) -> None:
        assert bucket_for(_state(State.REVIEW, NOW + timedelta(seconds=1)), NOW) is Bucket.FUTURE
        assert bucket_for(_state(State.LEARNING, NOW + timedelta(minutes=1)), NOW) is Bucket.FUTURE


# --- Ordering ---


class TestGetOrderedCards:
    @pytest.mark.asyncio
    async def test_full_mode_orders_by_bucket(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.FULL), now=NOW)
        ids = _ids(cards)
        assert len(ids) == 10
        assert ids[:3] == [1, 2, 3]
        assert set(ids[3:6]) == {6, 7, 8}
        assert ids[6:8] == [5, 4]
        assert set(ids[8:]) == {9, 10}

        buckets = [item.bucket for item in cards]
        assert buckets == sorted(buckets)

    @pytest.mark.asyncio
    async def test_attaches_state_and_category(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, now=NOW)
        by_id = {item.card.id: item for item in cards}
        assert by_id[6].card_state is None
        assert by_id[6].is_new
        assert by_id[1].card_state.state is State.REVIEW
        assert by_id[1].category.name_es == "Saludos"
        assert by_id[9].category.name_en == "Food"

    @pytest.mark.asyncio
    async def test_other_topics_excluded(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, now=NOW)
        assert 99 not in _ids(cards)

    @pytest.mark.asyncio
    async def test_review_bucket_most_overdue_first(self, store: InMemoryCardStore) -> None:
        await store.upsert_card_state(USER, 6, _state(State.REVIEW, NOW - timedelta(days=30)))
        cards = await get_ordered_cards(store, USER, TOPIC, now=NOW)
        due = [item.card_state.due for item in cards if item.bucket is Bucket.REVIEW_DUE]
        assert due == sorted(due)
        assert cards[0].card.id == 6

    @pytest.mark.asyncio
    async def test_suspended_card_never_returned(self, store: InMemoryCardStore) -> None:
        for card_id in (1, 6, 9):
            store.suspend(USER, card_id)
        for sub_mode in SubMode:
            cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(sub_mode), now=NOW)
            assert not {1, 6, 9} & set(_ids(cards))

    @pytest.mark.asyncio
    async def test_suspension_is_per_learner(self, store: InMemoryCardStore) -> None:
        store.suspend(USER + 1, 1)
        cards = await get_ordered_cards(store, USER, TOPIC, now=NOW)
        assert 1 in _ids(cards)

    @pytest.mark.asyncio
    async def test_quick_review_only_seen_cards(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.QUICK_REVIEW), now=NOW)
        assert set(_ids(cards)) == {1, 2, 3, 4, 5, 9, 10}

    @pytest.mark.asyncio
    async def test_quick_review_default_cap(self) -> None:
        store = InMemoryCardStore()
        store.add_category(CategoryMeta(id=10, topic_id=TOPIC, name_en="Verbs", name_es="Verbos"))
        for card_id in range(1, 26):
            store.add_card(_card(card_id))
            await store.upsert_card_state(USER, card_id, _state(State.REVIEW, NOW - timedelta(hours=card_id)))

        capped = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.QUICK_REVIEW), now=NOW)
        assert len(capped) == 20

        explicit = await get_ordered_cards(
            store, USER, TOPIC, OrderingOptions(SubMode.QUICK_REVIEW, limit=30), now=NOW
        )
        assert len(explicit) == 25

    @pytest.mark.asyncio
    async def test_spaced_repetition_only_due_reviews(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.SPACED_REPETITION), now=NOW)
        assert _ids(cards) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_category_focus(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(
            store, USER, TOPIC, OrderingOptions(SubMode.CATEGORY_FOCUS, category_id=11), now=NOW
        )
        assert set(_ids(cards)) == {9, 10}

    @pytest.mark.asyncio
    async def test_category_ignored_outside_category_focus(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.FULL, category_id=11), now=NOW)
        assert len(cards) == 10

    @pytest.mark.asyncio
    async def test_limit_truncates_after_sorting(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(limit=4), now=NOW)
        assert len(cards) == 4
        assert _ids(cards)[:3] == [1, 2, 3]
        assert cards[3].bucket is Bucket.NEW

    @pytest.mark.asyncio
    async def test_empty_topic(self, store: InMemoryCardStore) -> None:
        assert await get_ordered_cards(store, USER, 404, now=NOW) == []

    @pytest.mark.asyncio
    async def test_shuffle_uses_given_rng(self, store: InMemoryCardStore) -> None:
        first = await get_ordered_cards(store, USER, TOPIC, now=NOW, rng=random.Random(3))
        second = await get_ordered_cards(store, USER, TOPIC, now=NOW, rng=random.Random(3))
        assert _ids(first) == _ids(second)

    @pytest.mark.asyncio
    async def test_new_cards_reshuffled_between_calls(self) -> None:
        store = InMemoryCardStore()
        store.add_category(CategoryMeta(id=10, topic_id=TOPIC, name_en="Verbs", name_es="Verbos"))
        for card_id in range(1, 11):
            store.add_card(_card(card_id))

        orders = {tuple(_ids(await get_ordered_cards(store, USER, TOPIC, now=NOW))) for _ in range(20)}
        assert len(orders) > 1

    def test_unknown_sub_mode(self) -> None:
        with pytest.raises(UnknownSubModeError):
            OrderingOptions("cram")

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            OrderingOptions(limit=-1)


# --- New-card budget ---


class TestNewCardBudget:
    @pytest.mark.asyncio
    async def test_budget_counts_cards_introduced_today(self, store: InMemoryCardStore) -> None:
        await store.append_review_log(_log(9, NOW - timedelta(hours=2)))
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(new_cards_per_day=2), now=NOW)
        assert sum(1 for item in cards if item.is_new) == 1
        # Everything that is not new passes through untouched
        assert len([item for item in cards if not item.is_new]) == 7

    @pytest.mark.asyncio
    async def test_same_card_counted_once(self, store: InMemoryCardStore) -> None:
        await store.append_review_log(_log(9, NOW - timedelta(hours=2)))
        await store.append_review_log(_log(9, NOW - timedelta(hours=1)))
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(new_cards_per_day=3), now=NOW)
        assert sum(1 for item in cards if item.is_new) == 2

    @pytest.mark.asyncio
    async def test_only_first_reviews_today_count(self, store: InMemoryCardStore) -> None:
        await store.append_review_log(_log(1, NOW - timedelta(hours=1), stability_before=4.0))
        await store.append_review_log(_log(9, NOW - timedelta(days=1)))
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(new_cards_per_day=2), now=NOW)
        assert sum(1 for item in cards if item.is_new) == 2

    @pytest.mark.asyncio
    async def test_exhausted_budget(self, store: InMemoryCardStore) -> None:
        for card_id in (4, 5, 9):
            await store.append_review_log(_log(card_id, NOW.replace(hour=0, minute=1)))
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(new_cards_per_day=1), now=NOW)
        assert not any(item.is_new for item in cards)
        assert len(cards) == 7

    @pytest.mark.asyncio
    async def test_zero_budget(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(new_cards_per_day=0), now=NOW)
        assert not any(item.is_new for item in cards)

    @pytest.mark.asyncio
    async def test_no_budget_keeps_all_new_cards(self, store: InMemoryCardStore) -> None:
        await store.append_review_log(_log(9, NOW - timedelta(hours=2)))
        cards = await get_ordered_cards(store, USER, TOPIC, now=NOW)
        assert sum(1 for item in cards if item.is_new) == 3

    @pytest.mark.asyncio
    async def test_budget_keeps_bucket_order(self, store: InMemoryCardStore) -> None:
        cards = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(new_cards_per_day=1), now=NOW)
        buckets = [item.bucket for item in cards]
        assert buckets == sorted(buckets)
        assert buckets.count(Bucket.NEW) == 1


# --- Counts and empty state ---


class TestSubModeCounts:
    @pytest.mark.asyncio
    async def test_counts(self, store: InMemoryCardStore) -> None:
        counts = await get_sub_mode_counts(store, USER, TOPIC, now=NOW)
        assert counts.full == 10
        assert counts.quick_review == 7
        assert counts.spaced_repetition == 3

    @pytest.mark.asyncio
    async def test_counts_exclude_suspended(self, store: InMemoryCardStore) -> None:
        store.suspend(USER, 1)
        store.suspend(USER, 6)
        counts = await get_sub_mode_counts(store, USER, TOPIC, now=NOW)
        assert counts.full == 8
        assert counts.quick_review == 6
        assert counts.spaced_repetition == 2

    @pytest.mark.asyncio
    async def test_counts_match_ordering(self, store: InMemoryCardStore) -> None:
        counts = await get_sub_mode_counts(store, USER, TOPIC, now=NOW)
        full = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.FULL), now=NOW)
        quick = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.QUICK_REVIEW), now=NOW)
        spaced = await get_ordered_cards(store, USER, TOPIC, OrderingOptions(SubMode.SPACED_REPETITION), now=NOW)
        assert (counts.full, counts.quick_review, counts.spaced_repetition) == (len(full), len(quick), len(spaced))

    @pytest.mark.asyncio
    async def test_empty_topic(self, store: InMemoryCardStore) -> None:
        counts = await get_sub_mode_counts(store, USER, 404, now=NOW)
        assert (counts.full, counts.quick_review, counts.spaced_repetition) == (0, 0, 0)


class TestEmptyStateContext:
    @pytest.mark.asyncio
    async def test_reports_unseen_cards_and_next_due(self, store: InMemoryCardStore) -> None:
        store.suspend(USER, 6)
        context = await get_empty_state_context(store, USER, TOPIC, OrderingOptions(new_cards_per_day=15), now=NOW)
        assert context.remaining_new_cards == 2
        assert context.next_due_at == NOW + timedelta(minutes=5)
        assert context.effective_limit == 15

    @pytest.mark.asyncio
    async def test_ramp_up_caps_limit_on_first_day(self, store: InMemoryCardStore) -> None:
        context = await get_empty_state_context(
            store, USER, TOPIC, OrderingOptions(new_cards_per_day=15), ramp_up=True, now=NOW
        )
        assert context.effective_limit == 6

    @pytest.mark.asyncio
    async def test_empty_topic(self, store: InMemoryCardStore) -> None:
        context = await get_empty_state_context(store, USER, 404, now=NOW)
        assert context.remaining_new_cards == 0
        assert context.next_due_at is None
        assert context.effective_limit == 0


class TestEffectiveNewCardLimit:
    @pytest.mark.asyncio
    async def test_without_ramp_up(self, store: InMemoryCardStore) -> None:
        assert await effective_new_card_limit(store, USER, [1, 2], 20, ramp_up=False, now=NOW) == 20

    @pytest.mark.asyncio
    async def test_ramp_up_from_first_review(self, store: InMemoryCardStore) -> None:
        await store.append_review_log(_log(1, NOW - timedelta(days=2, hours=1), stability_before=None))
        # Third day since the first review
        assert await effective_new_card_limit(store, USER, [1, 2], 20, ramp_up=True, now=NOW) == 8

    @pytest.mark.asyncio
    async def test_preferences_pick_the_daily_limit(self, store: InMemoryCardStore) -> None:
        steady = UserPreferences(new_cards_per_day=12)
        ramped = UserPreferences(new_cards_per_day=12, new_cards_ramp_up=True)
        assert await new_cards_per_day_for(store, USER, TOPIC, steady, now=NOW) == 12
        assert await new_cards_per_day_for(store, USER, TOPIC, ramped, now=NOW) == 6
