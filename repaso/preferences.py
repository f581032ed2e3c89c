"""Per-learner scheduling preferences.

Preferences come from an external preferences store as a loose mapping;
anything missing or null falls back to the process defaults in
``repaso.config.settings``.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repaso.config import as_naive_utc, settings
from repaso.srs.fsrs import DEFAULT_PARAMETERS

RAMP_UP_DAYS = 5
RAMP_UP_BASE = 5


class SchedulerSettings(BaseModel):
    """The subset of preferences consumed by the memory model."""

    model_config = ConfigDict(frozen=True)

    desired_retention: float = Field(default_factory=lambda: settings.desired_retention, gt=0, lt=1)
    max_review_interval: int = Field(default_factory=lambda: settings.max_review_interval, ge=1)
    enable_fuzz: bool = Field(default_factory=lambda: settings.enable_fuzz)
    # Weights fitted to the learner's own review history; None uses the defaults
    parameters: tuple[float, ...] | None = None

    @field_validator("parameters")
    @classmethod
    def _check_parameter_count(cls, value: tuple[float, ...] | None) -> tuple[float, ...] | None:
        if value is not None and len(value) != len(DEFAULT_PARAMETERS):
            raise ValueError(f"expected {len(DEFAULT_PARAMETERS)} FSRS parameters, got {len(value)}")
        return value


class UserPreferences(SchedulerSettings):
    """Everything the study flow needs to know about a learner's pacing."""

    new_cards_per_day: int = Field(default_factory=lambda: settings.new_cards_per_day, ge=0)
    new_cards_ramp_up: bool = Field(default_factory=lambda: settings.new_cards_ramp_up)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "UserPreferences":
        """Build preferences from a stored row, ignoring unknown and null fields."""
        if not data:
            return cls()
        present = {key: value for key, value in data.items() if key in cls.model_fields and value is not None}
        return cls(**present)

    def scheduler_settings(self) -> SchedulerSettings:
        return SchedulerSettings(
            desired_retention=self.desired_retention,
            max_review_interval=self.max_review_interval,
            enable_fuzz=self.enable_fuzz,
            parameters=self.parameters,
        )


def ramped_new_card_limit(
    base_limit: int,
    first_review_at: datetime | None,
    now: datetime,
) -> int:
    """Ease a learner into a topic by capping new cards during the first days.

    Day N (1-based, counted from the first review in the topic) allows
    ``RAMP_UP_BASE + N`` new cards for the first ``RAMP_UP_DAYS`` days. A
    learner with no reviews yet is on day 1. The base limit always wins when
    it is lower.
    """
    if first_review_at is None:
        return min(base_limit, RAMP_UP_BASE + 1)

    elapsed = as_naive_utc(now) - as_naive_utc(first_review_at)
    day_number = int(elapsed.total_seconds() // 86400) + 1
    if day_number <= RAMP_UP_DAYS:
        return min(base_limit, RAMP_UP_BASE + day_number)
    return base_limit
