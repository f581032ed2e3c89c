from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repaso.models.base import Base, TimestampMixin


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    topic_id: Mapped[int] = mapped_column(ForeignKey("topics.id"), nullable=False, index=True)
    name_en: Mapped[str] = mapped_column(String(200), nullable=False)
    name_es: Mapped[str] = mapped_column(String(200), nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)  # e.g. "#3b82f6"

    topic: Mapped["Topic"] = relationship(back_populates="categories")  # type: ignore[name-defined] # noqa: F821
    cards: Mapped[list["Card"]] = relationship(back_populates="category")  # type: ignore[name-defined] # noqa: F821
