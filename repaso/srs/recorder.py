"""Records answers: runs the memory model and persists the outcome.

This is the only code path that writes card states.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from repaso.config import as_naive_utc, utcnow
from repaso.srs.fsrs import FSRS, CardState, Rating, coerce_rating
from repaso.store.base import CardStore
from repaso.store.records import ReviewLogEntry

logger = logging.getLogger(__name__)


@dataclass
class RecordedReview:
    """What a recorded answer changed."""

    previous_state: CardState | None
    next_state: CardState
    intervals_by_rating: dict[Rating, datetime]
    log: ReviewLogEntry

    @property
    def was_new(self) -> bool:
        return self.previous_state is None


class ReviewRecorder:
    """Applies review ratings for one learner's scheduler settings."""

    def __init__(self, store: CardStore, fsrs: FSRS | None = None) -> None:
        self.store = store
        self.fsrs = fsrs or FSRS.from_settings()

    async def record(
        self,
        user_id: int,
        card_id: int,
        rating: int,
        answer_time_ms: int | None = None,
        now: datetime | None = None,
        mode: str | None = None,
    ) -> RecordedReview:
        """Submit a rating for a card.

        Args:
            user_id: The learner answering.
            card_id: The card answered.
            rating: Review rating (1=Again, 2=Hard, 3=Good, 4=Easy).
            answer_time_ms: How long the answer took, if measured.
            now: When the answer happened (defaults to now).
            mode: Where the answer came from ("flashcard" or "quiz").

        Returns:
            RecordedReview with the before/after states and the log row.

        Raises:
            InvalidRatingError: rating is not 1-4.
            ValueError: answer_time_ms is negative.
        """
        rating = coerce_rating(rating)
        if answer_time_ms is not None and answer_time_ms < 0:
            raise ValueError(f"answer_time_ms must be non-negative, got {answer_time_ms}")
        now = as_naive_utc(now) if now else utcnow()

        states = await self.store.list_card_states(user_id, [card_id])
        previous = states.get(card_id)

        result = self.fsrs.schedule(previous, rating, now)

        log_entry = ReviewLogEntry(
            user_id=user_id,
            card_id=card_id,
            rating=int(rating),
            reviewed_at=now,
            answer_time_ms=answer_time_ms,
            stability_before=previous.stability if previous is not None else None,
            difficulty_before=previous.difficulty if previous is not None else None,
            elapsed_days_before=result.next_state.elapsed_days if previous is not None else None,
            mode=mode,
        )
        await self.store.record_review(user_id, card_id, result.next_state, log_entry)

        logger.info(
            "Recorded rating %d for user %d card %d: %s -> %s, due %s",
            rating,
            user_id,
            card_id,
            previous.state if previous is not None else "unseen",
            result.next_state.state,
            result.next_state.due.isoformat(),
        )
        return RecordedReview(
            previous_state=previous,
            next_state=result.next_state,
            intervals_by_rating=result.intervals_by_rating,
            log=log_entry,
        )
