"""SQLAlchemy ORM models for the study database."""

from repaso.models.base import Base
from repaso.models.card import Card
from repaso.models.category import Category
from repaso.models.review_log import ReviewLog
from repaso.models.suspended_card import SuspendedCard
from repaso.models.topic import Topic
from repaso.models.user_card_state import UserCardState

__all__ = ["Base", "Card", "Category", "ReviewLog", "SuspendedCard", "Topic", "UserCardState"]
