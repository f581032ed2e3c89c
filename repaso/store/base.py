"""The storage contract the scheduling core depends on."""

from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import datetime

from repaso.srs.fsrs import CardState
from repaso.store.records import CardWithCategory, ReviewLogEntry


class CardStore(ABC):
    """Reads and writes the scheduler needs from persistence.

    Implementations must give last-write-wins consistency per (user, card)
    for ``upsert_card_state``. Failures are raised as-is; callers decide
    whether to retry.
    """

    @abstractmethod
    async def list_cards_for_topic(
        self, topic_id: int, category_id: int | None = None
    ) -> list[CardWithCategory]:
        """Return every card in the topic, optionally restricted to one category."""

    @abstractmethod
    async def list_suspended_card_ids(self, user_id: int, card_ids: Collection[int]) -> set[int]:
        """Return the subset of ``card_ids`` the learner has suspended."""

    @abstractmethod
    async def list_card_states(self, user_id: int, card_ids: Collection[int]) -> dict[int, CardState]:
        """Return the learner's states for ``card_ids``; unseen cards are absent."""

    @abstractmethod
    async def upsert_card_state(self, user_id: int, card_id: int, state: CardState) -> None:
        """Insert or replace the learner's state for a card."""

    @abstractmethod
    async def append_review_log(self, entry: ReviewLogEntry) -> None:
        """Append one review log row."""

    @abstractmethod
    async def list_review_logs_in_window(
        self,
        user_id: int,
        card_ids: Collection[int],
        start: datetime,
        end: datetime,
    ) -> list[ReviewLogEntry]:
        """Return the learner's logs for ``card_ids`` with ``start <= reviewed_at < end``."""

    @abstractmethod
    async def get_first_review_at(self, user_id: int, card_ids: Collection[int]) -> datetime | None:
        """Return when the learner first reviewed any of ``card_ids``, if ever."""

    @abstractmethod
    async def list_review_logs_for_user(self, user_id: int) -> list[ReviewLogEntry]:
        """Return every log of the learner, oldest first."""

    async def record_review(self, user_id: int, card_id: int, state: CardState, entry: ReviewLogEntry) -> None:
        """Persist an answer: the card's new state and its log row.

        Stores that can should override this to write both atomically. The
        default writes the state first, so a failed append leaves the new
        state behind.
        """
        await self.upsert_card_state(user_id, card_id, state)
        await self.append_review_log(entry)
