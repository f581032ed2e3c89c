from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def day_window(now: datetime, offset_days: int = 0) -> tuple[datetime, datetime]:
    """Return the ``[start, end)`` UTC day containing ``now``, shifted by ``offset_days``."""
    midnight = as_naive_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    start = midnight + timedelta(days=offset_days)
    return start, start + timedelta(days=1)


class Settings(BaseSettings):
    app_name: str = "Repaso"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'repaso.db'}"
    desired_retention: float = 0.9
    max_review_interval: int = 36500  # days
    new_cards_per_day: int = 20
    new_cards_ramp_up: bool = False
    quick_review_limit: int = 20
    mastery_threshold_days: float = 30.0
    enable_fuzz: bool = False
    debug: bool = False

    model_config = {"env_prefix": "REPASO_", "env_file": ".env"}


settings = Settings()
