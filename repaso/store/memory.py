"""Dict-backed CardStore for embedding and tests."""

from collections.abc import Collection
from dataclasses import replace
from datetime import datetime

from repaso.config import as_naive_utc
from repaso.srs.fsrs import CardState
from repaso.store.base import CardStore
from repaso.store.records import CardRecord, CardWithCategory, CategoryMeta, ReviewLogEntry


class InMemoryCardStore(CardStore):
    """Keeps everything in process memory. Not shared across processes."""

    def __init__(self) -> None:
        self._categories: dict[int, CategoryMeta] = {}
        self._cards: dict[int, CardRecord] = {}
        self._states: dict[tuple[int, int], CardState] = {}
        self._suspended: set[tuple[int, int]] = set()
        self._logs: list[ReviewLogEntry] = []

    # --- Content and preference helpers ---

    def add_category(self, category: CategoryMeta) -> CategoryMeta:
        self._categories[category.id] = category
        return category

    def add_card(self, card: CardRecord) -> CardRecord:
        if card.category_id not in self._categories:
            raise KeyError(f"Unknown category {card.category_id}")
        self._cards[card.id] = card
        return card

    def suspend(self, user_id: int, card_id: int) -> None:
        self._suspended.add((user_id, card_id))

    def unsuspend(self, user_id: int, card_id: int) -> None:
        self._suspended.discard((user_id, card_id))

    @property
    def review_logs(self) -> list[ReviewLogEntry]:
        return list(self._logs)

    # --- CardStore ---

    async def list_cards_for_topic(
        self, topic_id: int, category_id: int | None = None
    ) -> list[CardWithCategory]:
        result = []
        for card in self._cards.values():
            category = self._categories[card.category_id]
            if category.topic_id != topic_id:
                continue
            if category_id is not None and card.category_id != category_id:
                continue
            result.append(CardWithCategory(card=card, category=category))
        return result

    async def list_suspended_card_ids(self, user_id: int, card_ids: Collection[int]) -> set[int]:
        return {card_id for card_id in card_ids if (user_id, card_id) in self._suspended}

    async def list_card_states(self, user_id: int, card_ids: Collection[int]) -> dict[int, CardState]:
        return {
            card_id: replace(self._states[(user_id, card_id)])
            for card_id in card_ids
            if (user_id, card_id) in self._states
        }

    async def upsert_card_state(self, user_id: int, card_id: int, state: CardState) -> None:
        self._states[(user_id, card_id)] = replace(state)

    async def append_review_log(self, entry: ReviewLogEntry) -> None:
        self._logs.append(entry)

    async def list_review_logs_in_window(
        self,
        user_id: int,
        card_ids: Collection[int],
        start: datetime,
        end: datetime,
    ) -> list[ReviewLogEntry]:
        wanted = set(card_ids)
        start, end = as_naive_utc(start), as_naive_utc(end)
        return [
            log
            for log in self._logs
            if log.user_id == user_id and log.card_id in wanted and start <= log.reviewed_at < end
        ]

    async def get_first_review_at(self, user_id: int, card_ids: Collection[int]) -> datetime | None:
        wanted = set(card_ids)
        times = [log.reviewed_at for log in self._logs if log.user_id == user_id and log.card_id in wanted]
        return min(times, default=None)

    async def list_review_logs_for_user(self, user_id: int) -> list[ReviewLogEntry]:
        return sorted((log for log in self._logs if log.user_id == user_id), key=lambda log: log.reviewed_at)

    async def record_review(self, user_id: int, card_id: int, state: CardState, entry: ReviewLogEntry) -> None:
        key = (user_id, card_id)
        previous = self._states.get(key)
        await self.upsert_card_state(user_id, card_id, state)
        try:
            await self.append_review_log(entry)
        except Exception:
            # Undo the state write so the answer is either fully saved or not at all
            if previous is None:
                del self._states[key]
            else:
                self._states[key] = previous
            raise
