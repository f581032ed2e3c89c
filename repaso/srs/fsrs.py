"""FSRS (Free Spaced Repetition Scheduler) memory model.

An implementation of FSRS-6 with short-term learning steps.
Reference: https://github.com/open-spaced-repetition/fsrs4anki

Key concepts:
- Stability (S): The number of days after which retrievability drops to 90%.
- Difficulty (D): A value between 1 and 10 representing how hard the card is
  for this learner. Unrelated to the authored 1-10 content difficulty.
- Retrievability (R): The probability of recall at a given time since last review,
  following the power-law curve R = (1 + F * t / S) ^ -w20.
- Rating: 1=Again, 2=Hard, 3=Good, 4=Easy

A card moves new -> learning -> review, dropping into relearning when a
review is forgotten. Learning and relearning advance through short
minute-scale steps before the card graduates to day-scale intervals.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING

from repaso.config import as_naive_utc, settings, utcnow
from repaso.exceptions import InvalidCardStateError, InvalidRatingError

if TYPE_CHECKING:
    from repaso.preferences import SchedulerSettings


# FSRS-6 default parameters
# w[0..3]: initial stability for ratings Again/Hard/Good/Easy on first review
# w[4..5]: initial difficulty
# w[6..7]: difficulty update and mean reversion
# w[8..10]: stability after a successful recall
# w[11..14]: stability after a lapse
# w[15..16]: hard penalty / easy bonus
# w[17..19]: same-day (short-term) stability
# w[20]: forgetting curve decay
DEFAULT_PARAMETERS: tuple[float, ...] = (
    0.212,
    1.2931,
    2.3065,
    8.2956,
    6.4133,
    0.8334,
    3.0194,
    0.001,
    1.8722,
    0.1666,
    0.796,
    1.4835,
    0.0614,
    0.2629,
    1.6483,
    0.6014,
    1.8729,
    0.5425,
    0.0912,
    0.0658,
    0.1542,
)

DEFAULT_DESIRED_RETENTION = 0.9
DEFAULT_MAXIMUM_INTERVAL = 36500  # days
DEFAULT_LEARNING_STEPS = (timedelta(minutes=1), timedelta(minutes=10))
DEFAULT_RELEARNING_STEPS = (timedelta(minutes=10),)

# Bounds
MIN_STABILITY = 0.001
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0

# (start_days, end_days, factor) bands used to widen the fuzz window
FUZZ_RANGES = (
    (2.5, 7.0, 0.15),
    (7.0, 20.0, 0.1),
    (20.0, math.inf, 0.05),
)

SECONDS_PER_DAY = 86400


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class State(StrEnum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


@dataclass
class CardState:
    """The FSRS memory state of one card for one learner."""

    stability: float = 0.0  # Days until retrievability falls to 90%
    difficulty: float = 0.0  # 1-10 once reviewed
    elapsed_days: float = 0.0  # Days between the last two reviews
    scheduled_days: float = 0.0  # Interval given at the last review (0 during steps)
    reps: int = 0
    lapses: int = 0
    state: State = State.NEW
    due: datetime = field(default_factory=utcnow)
    last_review: datetime | None = None
    learning_steps: int = 0  # Index into the (re)learning step ladder

    @classmethod
    def new(cls, now: datetime | None = None) -> CardState:
        """Create the empty state of a card that has never been reviewed."""
        return cls(due=as_naive_utc(now) if now else utcnow())


@dataclass
class SchedulingResult:
    """The outcome of answering a card with one rating."""

    next_state: CardState
    intervals_by_rating: dict[Rating, datetime]  # Due date each rating would have produced


def coerce_rating(rating: object) -> Rating:
    """Return ``rating`` as a Rating, raising InvalidRatingError instead of clamping."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError(rating)
    try:
        return Rating(rating)
    except ValueError:
        raise InvalidRatingError(rating) from None


class FSRS:
    """Free Spaced Repetition Scheduler."""

    def __init__(
        self,
        parameters: tuple[float, ...] | list[float] | None = None,
        desired_retention: float = DEFAULT_DESIRED_RETENTION,
        maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL,
        learning_steps: tuple[timedelta, ...] = DEFAULT_LEARNING_STEPS,
        relearning_steps: tuple[timedelta, ...] = DEFAULT_RELEARNING_STEPS,
        enable_fuzz: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize FSRS with optional custom parameters and learner settings."""
        self.w = tuple(parameters) if parameters is not None else DEFAULT_PARAMETERS
        if len(self.w) != 21:
            raise ValueError(f"FSRS-6 needs exactly 21 parameters, got {len(self.w)}")
        if not 0 < desired_retention < 1:
            raise ValueError(f"desired_retention must be in (0, 1), got {desired_retention}")
        if maximum_interval < 1:
            raise ValueError(f"maximum_interval must be at least 1 day, got {maximum_interval}")

        self.desired_retention = desired_retention
        self.maximum_interval = maximum_interval
        self.learning_steps = tuple(learning_steps)
        self.relearning_steps = tuple(relearning_steps)
        self.enable_fuzz = enable_fuzz
        self._rng = rng or random.Random()

        self.decay = -self.w[20]
        # Chosen so that R(t=S) == 0.9 for every decay
        self.factor = 0.9 ** (1 / self.decay) - 1

    @classmethod
    def from_settings(cls, scheduler_settings: SchedulerSettings | None = None) -> FSRS:
        """Build a scheduler for a learner's settings, or the process defaults."""
        if scheduler_settings is None:
            return cls(
                desired_retention=settings.desired_retention,
                maximum_interval=settings.max_review_interval,
                enable_fuzz=settings.enable_fuzz,
            )
        return cls(
            parameters=scheduler_settings.parameters,
            desired_retention=scheduler_settings.desired_retention,
            maximum_interval=scheduler_settings.max_review_interval,
            enable_fuzz=scheduler_settings.enable_fuzz,
        )

    # --- Public API ---

    def schedule(
        self,
        state: CardState | None,
        rating: int,
        now: datetime | None = None,
    ) -> SchedulingResult:
        """Apply a review rating to a card.

        Args:
            state: Current card state, or None for a card never reviewed.
            rating: Review rating (1=Again, 2=Hard, 3=Good, 4=Easy).
            now: When the review happened (defaults to now).

        Returns:
            SchedulingResult with the state for ``rating`` and the due date
            every rating would have produced.

        Raises:
            InvalidRatingError: rating is not 1-4.
            InvalidCardStateError: state is malformed or reviewed in the future.
        """
        rating = coerce_rating(rating)
        outcomes = self.repeat(state, now)
        return SchedulingResult(
            next_state=outcomes[rating],
            intervals_by_rating={r: outcome.due for r, outcome in outcomes.items()},
        )

    def repeat(self, state: CardState | None, now: datetime | None = None) -> dict[Rating, CardState]:
        """Return the next state for each of the four ratings without choosing one."""
        now = as_naive_utc(now) if now else utcnow()
        card = self._validated(state, now)

        if card.state is State.NEW:
            outcomes = self._new_outcomes(card, now)
        elif card.state is State.REVIEW:
            outcomes = self._review_outcomes(card, now)
        else:
            outcomes = self._step_outcomes(card, now)

        self._enforce_interval_order(outcomes, now)
        return outcomes

    def retrievability(self, state: CardState, now: datetime | None = None) -> float:
        """Return the probability of recalling a reviewed card at ``now``."""
        now = as_naive_utc(now) if now else utcnow()
        return self._forgetting_curve(self._elapsed_days(state, now), state.stability)

    def next_interval(self, stability: float) -> int:
        """Convert stability to a whole-day interval for the desired retention.

        Derived from: desired_retention = (1 + F * interval / S) ^ decay
        Solving: interval = S / F * (desired_retention ^ (1 / decay) - 1)
        """
        interval = stability / self.factor * (self.desired_retention ** (1 / self.decay) - 1)
        days = min(max(1, round(interval)), self.maximum_interval)
        if self.enable_fuzz:
            days = self._fuzz(days)
        return days

    # --- State transitions ---

    def _new_outcomes(self, card: CardState, now: datetime) -> dict[Rating, CardState]:
        outcomes = {}
        for rating in Rating:
            stability = self._initial_stability(rating)
            difficulty = self._clamp_difficulty(self._initial_difficulty(rating))
            outcomes[rating] = self._stepped(
                card, now, rating, stability, difficulty, 0.0, self.learning_steps, State.LEARNING
            )
        return outcomes

    def _step_outcomes(self, card: CardState, now: datetime) -> dict[Rating, CardState]:
        """Outcomes for a card sitting on a learning or relearning step."""
        elapsed = self._elapsed_days(card, now)
        retrievability = self._forgetting_curve(elapsed, card.stability)
        steps = self.learning_steps if card.state is State.LEARNING else self.relearning_steps

        outcomes = {}
        for rating in Rating:
            stability = self._stability_for(card, elapsed, retrievability, rating)
            difficulty = self._next_difficulty(card.difficulty, rating)
            outcomes[rating] = self._stepped(
                card, now, rating, stability, difficulty, elapsed, steps, card.state
            )
        return outcomes

    def _review_outcomes(self, card: CardState, now: datetime) -> dict[Rating, CardState]:
        elapsed = self._elapsed_days(card, now)
        retrievability = self._forgetting_curve(elapsed, card.stability)

        outcomes = {}
        for rating in Rating:
            stability = self._stability_for(card, elapsed, retrievability, rating)
            reviewed = replace(
                card,
                stability=stability,
                difficulty=self._next_difficulty(card.difficulty, rating),
                elapsed_days=elapsed,
                reps=card.reps + 1,
                last_review=now,
            )
            if rating is Rating.AGAIN:
                reviewed.lapses = card.lapses + 1
                if self.relearning_steps:
                    outcomes[rating] = self._on_step(
                        reviewed, now, State.RELEARNING, 0, self.relearning_steps[0]
                    )
                    continue
            outcomes[rating] = self._graduated(reviewed, now, stability)
        return outcomes

    def _stepped(
        self,
        card: CardState,
        now: datetime,
        rating: Rating,
        stability: float,
        difficulty: float,
        elapsed: float,
        steps: tuple[timedelta, ...],
        step_state: State,
    ) -> CardState:
        """Advance a new/learning/relearning card along its step ladder."""
        step = card.learning_steps
        reviewed = replace(
            card,
            stability=stability,
            difficulty=difficulty,
            elapsed_days=elapsed,
            reps=card.reps + 1,
            last_review=now,
        )

        if not steps or rating is Rating.EASY or (step >= len(steps) and rating is not Rating.AGAIN):
            return self._graduated(reviewed, now, stability)

        if rating is Rating.AGAIN:
            return self._on_step(reviewed, now, step_state, 0, steps[0])

        if rating is Rating.HARD:
            if step == 0:
                delay = steps[0] * 1.5 if len(steps) == 1 else (steps[0] + steps[1]) / 2
            else:
                delay = steps[step]
            return self._on_step(reviewed, now, step_state, step, delay)

        # Good
        if step + 1 >= len(steps):
            return self._graduated(reviewed, now, stability)
        return self._on_step(reviewed, now, step_state, step + 1, steps[step + 1])

    def _on_step(
        self, card: CardState, now: datetime, state: State, step: int, delay: timedelta
    ) -> CardState:
        return replace(card, state=state, learning_steps=step, scheduled_days=0.0, due=now + delay)

    def _graduated(self, card: CardState, now: datetime, stability: float) -> CardState:
        days = self.next_interval(stability)
        return replace(
            card,
            state=State.REVIEW,
            learning_steps=0,
            scheduled_days=float(days),
            due=now + timedelta(days=days),
        )

    def _enforce_interval_order(self, outcomes: dict[Rating, CardState], now: datetime) -> None:
        """Keep graduated Hard < Good < Easy intervals strictly increasing."""
        previous: float | None = None
        for rating in (Rating.HARD, Rating.GOOD, Rating.EASY):
            outcome = outcomes[rating]
            if outcome.state is not State.REVIEW:
                continue
            days = outcome.scheduled_days
            if previous is not None and days <= previous:
                days = float(min(previous + 1, self.maximum_interval))
                outcome.scheduled_days = days
                outcome.due = now + timedelta(days=days)
            previous = days

    # --- Validation ---

    def _validated(self, state: CardState | None, now: datetime) -> CardState:
        if state is None:
            return CardState.new(now)

        try:
            phase = State(state.state)
        except ValueError:
            raise InvalidCardStateError(f"Unknown card state {state.state!r}") from None

        if math.isnan(state.stability) or state.stability < 0:
            raise InvalidCardStateError(f"Stability must be non-negative, got {state.stability}")
        if state.reps < 0 or state.lapses < 0:
            raise InvalidCardStateError(f"reps/lapses must be non-negative, got {state.reps}/{state.lapses}")
        if phase is not State.NEW and not MIN_DIFFICULTY <= state.difficulty <= MAX_DIFFICULTY:
            raise InvalidCardStateError(
                f"Difficulty must be in [{MIN_DIFFICULTY}, {MAX_DIFFICULTY}], got {state.difficulty}"
            )

        last_review = as_naive_utc(state.last_review) if state.last_review else None
        if last_review is not None and now < last_review:
            raise InvalidCardStateError(f"Review at {now.isoformat()} precedes last review {last_review.isoformat()}")

        return replace(state, state=phase, due=as_naive_utc(state.due), last_review=last_review)

    # --- Formulas ---

    def _elapsed_days(self, state: CardState, now: datetime) -> float:
        if state.last_review is None:
            return max(0.0, state.elapsed_days)
        seconds = (now - as_naive_utc(state.last_review)).total_seconds()
        return max(0.0, seconds / SECONDS_PER_DAY)

    def _forgetting_curve(self, elapsed_days: float, stability: float) -> float:
        """Calculate the probability of recall given elapsed time and stability.

        Uses the power forgetting curve: R = (1 + F * t / S) ^ decay
        """
        stability = max(stability, MIN_STABILITY)
        return (1 + self.factor * elapsed_days / stability) ** self.decay

    def _initial_stability(self, rating: Rating) -> float:
        return max(self.w[rating - 1], MIN_STABILITY)

    def _initial_difficulty(self, rating: Rating) -> float:
        """D0 = w4 - e^(w5 * (rating - 1)) + 1, left unclamped for mean reversion."""
        return self.w[4] - math.exp(self.w[5] * (rating - 1)) + 1

    def _next_difficulty(self, difficulty: float, rating: Rating) -> float:
        """Linear damping towards 10, then mean reversion towards D0(Easy)."""
        delta = -self.w[6] * (rating - 3)
        damped = difficulty + delta * (10 - difficulty) / 9
        reverted = self.w[7] * self._initial_difficulty(Rating.EASY) + (1 - self.w[7]) * damped
        return self._clamp_difficulty(reverted)

    def _stability_for(
        self, card: CardState, elapsed: float, retrievability: float, rating: Rating
    ) -> float:
        stability = max(card.stability, MIN_STABILITY)
        if elapsed < 1:
            return self._short_term_stability(stability, rating)
        if rating is Rating.AGAIN:
            return self._stability_after_fail(card.difficulty, stability, retrievability)
        return self._stability_after_success(card.difficulty, stability, retrievability, rating)

    def _short_term_stability(self, stability: float, rating: Rating) -> float:
        """Same-day review: S' = S * e^(w17 * (rating - 3 + w18)) * S^(-w19)."""
        increase = math.exp(self.w[17] * (rating - 3 + self.w[18])) * stability ** -self.w[19]
        if rating >= Rating.GOOD:
            increase = max(increase, 1.0)
        return max(stability * increase, MIN_STABILITY)

    def _stability_after_success(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        """S' = S * (1 + e^w8 * (11 - D) * S^(-w9) * (e^(w10 * (1 - R)) - 1) * penalty * bonus)"""
        hard_penalty = self.w[15] if rating is Rating.HARD else 1.0
        easy_bonus = self.w[16] if rating is Rating.EASY else 1.0
        growth = (
            math.exp(self.w[8])
            * (11 - difficulty)
            * stability ** -self.w[9]
            * (math.exp(self.w[10] * (1 - retrievability)) - 1)
            * hard_penalty
            * easy_bonus
        )
        return max(stability * (1 + growth), MIN_STABILITY)

    def _stability_after_fail(
        self,
        difficulty: float,
        stability: float,
        retrievability: float,
    ) -> float:
        """S' = w11 * D^(-w12) * ((S + 1)^w13 - 1) * e^(w14 * (1 - R)), capped by the short-term bound."""
        long_term = (
            self.w[11]
            * difficulty ** -self.w[12]
            * ((stability + 1) ** self.w[13] - 1)
            * math.exp(self.w[14] * (1 - retrievability))
        )
        short_term = stability / math.exp(self.w[17] * self.w[18])
        return max(min(long_term, short_term), MIN_STABILITY)

    @staticmethod
    def _clamp_difficulty(difficulty: float) -> float:
        return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, difficulty))

    def _fuzz(self, days: int) -> int:
        """Spread an interval over a small random window so reviews don't clump."""
        if days < 2.5:
            return days
        delta = 1.0
        for start, end, factor in FUZZ_RANGES:
            delta += factor * max(min(days, end) - start, 0.0)
        high = min(round(days + delta), self.maximum_interval)
        low = min(max(2, round(days - delta)), high)
        return self._rng.randint(low, high)
