"""Typed records exchanged between the scheduling core and its store."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CategoryMeta:
    id: int
    topic_id: int
    name_en: str
    name_es: str
    color: str | None = None


@dataclass(frozen=True)
class CardRecord:
    """A card's content. ``difficulty`` is the authored 1-10 rating, not the FSRS one."""

    id: int
    category_id: int
    front_en: str
    front_es: str
    back_en: str
    back_es: str
    difficulty: int = 5


@dataclass(frozen=True)
class CardWithCategory:
    """A card joined with the category it belongs to."""

    card: CardRecord
    category: CategoryMeta


@dataclass(frozen=True)
class ReviewLogEntry:
    """One answer event. ``stability_before`` is None when the card was new."""

    user_id: int
    card_id: int
    rating: int
    reviewed_at: datetime
    answer_time_ms: int | None = None
    stability_before: float | None = None
    difficulty_before: float | None = None
    elapsed_days_before: float | None = None  # days since the previous review
    mode: str | None = None  # flashcard, quiz

    @property
    def was_new(self) -> bool:
        return self.stability_before is None
