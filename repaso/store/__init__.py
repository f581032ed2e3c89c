"""Storage contract and implementations for the scheduling core."""

from repaso.store.base import CardStore
from repaso.store.memory import InMemoryCardStore
from repaso.store.records import CardRecord, CardWithCategory, CategoryMeta, ReviewLogEntry
from repaso.store.sql import SqlCardStore

__all__ = [
    "CardRecord",
    "CardStore",
    "CardWithCategory",
    "CategoryMeta",
    "InMemoryCardStore",
    "ReviewLogEntry",
    "SqlCardStore",
]
