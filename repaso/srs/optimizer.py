"""Training data for fitting a learner's own FSRS parameters.

The review logs are turned into per-card review histories in the shape FSRS
optimizers consume: one item per review, holding every review of that card
up to and including it, each with its rating and the whole days since the
previous review (``delta_t``). Fitting the weights is left to an external
optimizer; the result goes back in through ``SchedulerSettings.parameters``.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from itertools import groupby

from repaso.store.base import CardStore
from repaso.store.records import ReviewLogEntry

logger = logging.getLogger(__name__)

# Fewer usable items than this gives weights worse than the defaults
MIN_REVIEWS_FOR_OPTIMIZATION = 50


@dataclass(frozen=True)
class OptimizerReview:
    rating: int
    delta_t: int  # whole days since the previous review, 0 for the first one


@dataclass(frozen=True)
class OptimizerItem:
    """A card's review history up to one review."""

    reviews: tuple[OptimizerReview, ...]


def build_optimizer_items(logs: Iterable[ReviewLogEntry]) -> list[OptimizerItem]:
    """Turn review logs into optimizer items.

    Items with no review after a positive ``delta_t`` are skipped: a history
    made only of same-day reviews says nothing about forgetting, and FSRS
    optimizers reject it.
    """
    by_card = sorted(logs, key=lambda log: (log.card_id, log.reviewed_at))

    items = []
    for _, card_logs in groupby(by_card, key=lambda log: log.card_id):
        reviews: list[OptimizerReview] = []
        for log in card_logs:
            if log.was_new:
                delta_t = 0
            else:
                delta_t = int(log.elapsed_days_before or 0)
            reviews.append(OptimizerReview(rating=log.rating, delta_t=delta_t))
            if any(review.delta_t > 0 for review in reviews):
                items.append(OptimizerItem(reviews=tuple(reviews)))
    return items


async def count_optimizer_items(store: CardStore, user_id: int) -> int:
    """Count the learner's usable optimizer items across every topic."""
    logs = await store.list_review_logs_for_user(user_id)
    if not logs:
        return 0
    return len(build_optimizer_items(logs))


async def is_ready_for_optimization(store: CardStore, user_id: int) -> bool:
    count = await count_optimizer_items(store, user_id)
    logger.debug("User %d has %d optimizer items (need %d)", user_id, count, MIN_REVIEWS_FOR_OPTIMIZATION)
    return count >= MIN_REVIEWS_FOR_OPTIMIZATION
