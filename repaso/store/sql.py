"""CardStore backed by the async SQLAlchemy models."""

import logging
from collections.abc import Collection
from datetime import datetime

from sqlalchemy import and_, func, select
from sqlalchemy.dialects.sqlite import Insert, insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from repaso.config import as_naive_utc, utcnow
from repaso.models.card import Card
from repaso.models.category import Category
from repaso.models.review_log import ReviewLog
from repaso.models.suspended_card import SuspendedCard
from repaso.models.user_card_state import UserCardState
from repaso.srs.fsrs import CardState, State
from repaso.store.base import CardStore
from repaso.store.records import CardRecord, CardWithCategory, CategoryMeta, ReviewLogEntry

logger = logging.getLogger(__name__)


def _to_card_state(row: UserCardState) -> CardState:
    return CardState(
        stability=row.stability,
        difficulty=row.difficulty,
        elapsed_days=row.elapsed_days,
        scheduled_days=row.scheduled_days,
        reps=row.reps,
        lapses=row.lapses,
        state=State(row.state),
        due=row.due,
        last_review=row.last_review,
        learning_steps=row.learning_steps,
    )


def _state_values(state: CardState) -> dict[str, object]:
    return {
        "stability": state.stability,
        "difficulty": state.difficulty,
        "elapsed_days": state.elapsed_days,
        "scheduled_days": state.scheduled_days,
        "reps": state.reps,
        "lapses": state.lapses,
        "state": State(state.state).value,
        "due": as_naive_utc(state.due),
        "last_review": as_naive_utc(state.last_review) if state.last_review else None,
        "learning_steps": state.learning_steps,
    }


def _upsert_state(user_id: int, card_id: int, state: CardState) -> Insert:
    """One INSERT .. ON CONFLICT statement, so concurrent writers never collide on the unique key."""
    values = _state_values(state)
    stmt = insert(UserCardState).values(user_id=user_id, card_id=card_id, **values)
    return stmt.on_conflict_do_update(
        index_elements=[UserCardState.user_id, UserCardState.card_id],
        set_={**values, "updated_at": utcnow()},
    )


def _to_log_row(entry: ReviewLogEntry) -> ReviewLog:
    return ReviewLog(
        user_id=entry.user_id,
        card_id=entry.card_id,
        rating=entry.rating,
        mode=entry.mode,
        answer_time_ms=entry.answer_time_ms,
        stability_before=entry.stability_before,
        difficulty_before=entry.difficulty_before,
        elapsed_days_before=entry.elapsed_days_before,
        reviewed_at=as_naive_utc(entry.reviewed_at),
    )


def _to_entry(row: ReviewLog) -> ReviewLogEntry:
    return ReviewLogEntry(
        user_id=row.user_id,
        card_id=row.card_id,
        rating=row.rating,
        reviewed_at=row.reviewed_at,
        answer_time_ms=row.answer_time_ms,
        stability_before=row.stability_before,
        difficulty_before=row.difficulty_before,
        elapsed_days_before=row.elapsed_days_before,
        mode=row.mode,
    )


class SqlCardStore(CardStore):
    """Opens a fresh session per call so independent reads can run concurrently."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def list_cards_for_topic(
        self, topic_id: int, category_id: int | None = None
    ) -> list[CardWithCategory]:
        conditions = [Category.topic_id == topic_id]
        if category_id is not None:
            conditions.append(Card.category_id == category_id)

        stmt = (
            select(Card, Category)
            .join(Category, Card.category_id == Category.id)
            .where(and_(*conditions))
            .order_by(Card.id.asc())
        )
        async with self._sessions() as db:
            rows = (await db.execute(stmt)).all()

        return [
            CardWithCategory(
                card=CardRecord(
                    id=card.id,
                    category_id=card.category_id,
                    front_en=card.front_en,
                    front_es=card.front_es,
                    back_en=card.back_en,
                    back_es=card.back_es,
                    difficulty=card.difficulty,
                ),
                category=CategoryMeta(
                    id=category.id,
                    topic_id=category.topic_id,
                    name_en=category.name_en,
                    name_es=category.name_es,
                    color=category.color,
                ),
            )
            for card, category in rows
        ]

    async def list_suspended_card_ids(self, user_id: int, card_ids: Collection[int]) -> set[int]:
        if not card_ids:
            return set()
        stmt = select(SuspendedCard.card_id).where(
            and_(SuspendedCard.user_id == user_id, SuspendedCard.card_id.in_(list(card_ids)))
        )
        async with self._sessions() as db:
            return set((await db.execute(stmt)).scalars().all())

    async def list_card_states(self, user_id: int, card_ids: Collection[int]) -> dict[int, CardState]:
        if not card_ids:
            return {}
        stmt = select(UserCardState).where(
            and_(UserCardState.user_id == user_id, UserCardState.card_id.in_(list(card_ids)))
        )
        async with self._sessions() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return {row.card_id: _to_card_state(row) for row in rows}

    async def upsert_card_state(self, user_id: int, card_id: int, state: CardState) -> None:
        async with self._sessions() as db:
            await db.execute(_upsert_state(user_id, card_id, state))
            await db.commit()
        logger.debug("Saved state for user %d card %d: %s due %s", user_id, card_id, state.state, state.due)

    async def append_review_log(self, entry: ReviewLogEntry) -> None:
        async with self._sessions() as db:
            db.add(_to_log_row(entry))
            await db.commit()

    async def record_review(self, user_id: int, card_id: int, state: CardState, entry: ReviewLogEntry) -> None:
        async with self._sessions() as db:
            await db.execute(_upsert_state(user_id, card_id, state))
            db.add(_to_log_row(entry))
            await db.commit()
        logger.debug("Saved review for user %d card %d: %s due %s", user_id, card_id, state.state, state.due)

    async def list_review_logs_in_window(
        self,
        user_id: int,
        card_ids: Collection[int],
        start: datetime,
        end: datetime,
    ) -> list[ReviewLogEntry]:
        if not card_ids:
            return []
        stmt = (
            select(ReviewLog)
            .where(
                and_(
                    ReviewLog.user_id == user_id,
                    ReviewLog.card_id.in_(list(card_ids)),
                    ReviewLog.reviewed_at >= as_naive_utc(start),
                    ReviewLog.reviewed_at < as_naive_utc(end),
                )
            )
            .order_by(ReviewLog.reviewed_at.asc())
        )
        async with self._sessions() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [_to_entry(row) for row in rows]

    async def get_first_review_at(self, user_id: int, card_ids: Collection[int]) -> datetime | None:
        if not card_ids:
            return None
        stmt = select(func.min(ReviewLog.reviewed_at)).where(
            and_(ReviewLog.user_id == user_id, ReviewLog.card_id.in_(list(card_ids)))
        )
        async with self._sessions() as db:
            return (await db.execute(stmt)).scalar()

    async def list_review_logs_for_user(self, user_id: int) -> list[ReviewLogEntry]:
        stmt = (
            select(ReviewLog)
            .where(ReviewLog.user_id == user_id)
            .order_by(ReviewLog.reviewed_at.asc(), ReviewLog.id.asc())
        )
        async with self._sessions() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [_to_entry(row) for row in rows]
