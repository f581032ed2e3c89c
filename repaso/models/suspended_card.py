from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from repaso.models.base import Base, TimestampMixin


class SuspendedCard(Base, TimestampMixin):
    """A learner's exclusion of a card from every study queue."""

    __tablename__ = "suspended_cards"
    __table_args__ = (UniqueConstraint("user_id", "card_id", name="uq_suspended_cards_user_card"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
