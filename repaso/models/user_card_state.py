"""Per-learner FSRS memory state for a card."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from repaso.config import utcnow
from repaso.models.base import Base, TimestampMixin


class UserCardState(Base, TimestampMixin):
    """Created on a learner's first review of a card; absent means the card is new."""

    __tablename__ = "user_card_states"
    __table_args__ = (UniqueConstraint("user_id", "card_id", name="uq_user_card_states_user_card"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), nullable=False)
    stability: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    difficulty: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    elapsed_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    scheduled_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    reps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lapses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="new")  # new, learning, review, relearning
    due: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_review: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    learning_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
