"""Bilingual flashcard / quiz question content."""

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repaso.models.base import Base, TimestampMixin


class Card(Base, TimestampMixin):
    """A card's authored content. Scheduling state lives in UserCardState."""

    __tablename__ = "cards"
    __table_args__ = (CheckConstraint("difficulty BETWEEN 1 AND 10", name="ck_cards_difficulty"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False, index=True)
    front_en: Mapped[str] = mapped_column(Text, nullable=False)
    front_es: Mapped[str] = mapped_column(Text, nullable=False)
    back_en: Mapped[str] = mapped_column(Text, nullable=False)
    back_es: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=5)  # authored, 1-10

    category: Mapped["Category"] = relationship(back_populates="cards")  # type: ignore[name-defined] # noqa: F821
