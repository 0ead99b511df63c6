"""
SM-2 Spaced Repetition Scheduler.

Implements:
- SM-2 algorithm for review intervals (pure, no I/O)
- Persistent review cards, one per (learner, skill)
- Due-card queries

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skillpath.config import Settings
from skillpath.core.errors import ConcurrencyConflict
from skillpath.core.models import ScheduleResult, utcnow
from skillpath.db.database import bound_session
from skillpath.db.models import ReviewCard
from skillpath.learning.outcome_recorder import validate_quality

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review (and after a lapse)
    second_interval: int = 6  # Days for second review
    passing_quality: float = 3.0
    maximum_interval: int = 36500  # Keeps next_review_at within datetime range

    @classmethod
    def from_settings(cls, settings: Settings) -> SM2Config:
        return cls(
            initial_easiness=settings.sm2_initial_easiness,
            minimum_easiness=settings.sm2_minimum_easiness,
            first_interval=settings.sm2_first_interval,
            second_interval=settings.sm2_second_interval,
            passing_quality=settings.sm2_passing_quality,
            maximum_interval=settings.sm2_maximum_interval,
        )


@dataclass
class SM2State:
    """Scheduling state of one card."""

    easiness_factor: float
    repetition_number: int
    interval_days: int
    next_review_at: datetime | None = None
    last_review_at: datetime | None = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each card has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive successful reviews
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def initial_state(self, now: datetime) -> SM2State:
        """State of a freshly created card."""
        return SM2State(
            easiness_factor=self.config.initial_easiness,
            repetition_number=0,
            interval_days=self.config.first_interval,
            next_review_at=now + timedelta(days=self.config.first_interval),
        )

    def calculate_next_review(self, state: SM2State, quality: float, now: datetime) -> SM2State:
        """
        Calculate the next review based on quality.

        Args:
            state: Current card state
            quality: Recall quality (0-5)
            now: Review time

        Returns:
            New SM2State with updated EF, repetition and interval
        """
        # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
        new_ef = max(self.config.minimum_easiness, state.easiness_factor + ef_delta)

        if quality < self.config.passing_quality:
            # Lapse - reset to beginning
            new_repetitions = 0
            new_interval = self.config.first_interval
        else:
            new_repetitions = state.repetition_number + 1

            if new_repetitions == 1:
                new_interval = self.config.first_interval
            elif new_repetitions == 2:
                new_interval = self.config.second_interval
            else:
                new_interval = max(1, _round_half_up(state.interval_days * new_ef))
            new_interval = min(new_interval, self.config.maximum_interval)

        return SM2State(
            easiness_factor=new_ef,
            repetition_number=new_repetitions,
            interval_days=new_interval,
            next_review_at=now + timedelta(days=new_interval),
            last_review_at=now,
        )


# =============================================================================
# Persistent review cards
# =============================================================================


def _result_from_card(card: ReviewCard) -> ScheduleResult:
    return ScheduleResult(
        learner_id=card.learner_id,
        skill_code=card.skill_code,
        easiness_factor=card.easiness_factor,
        repetition_number=card.repetition_number,
        interval_days=card.interval_days,
        next_review_at=card.next_review_at,
        last_review_at=card.last_review_at,
        last_quality=card.last_quality,
    )


class ReviewScheduler:
    """Apply SM-2 to the stored review card of a (learner, skill) pair."""

    def __init__(
        self,
        session: Session | None = None,
        config: SM2Config | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self.sm2 = SM2Scheduler(config)
        self._clock = clock

    def _load_card(self, session: Session, learner_id: str, skill_code: str, lock: bool = False) -> ReviewCard | None:
        query = select(ReviewCard).where(
            ReviewCard.learner_id == learner_id,
            ReviewCard.skill_code == skill_code,
        )
        if lock:
            query = query.with_for_update()
        return session.scalars(query).first()

    def _create_card(self, session: Session, learner_id: str, skill_code: str, now: datetime) -> ReviewCard:
        state = self.sm2.initial_state(now)
        card = ReviewCard(
            learner_id=learner_id,
            skill_code=skill_code,
            easiness_factor=state.easiness_factor,
            repetition_number=state.repetition_number,
            interval_days=state.interval_days,
            last_review_at=now,
            next_review_at=state.next_review_at,
        )
        session.add(card)
        try:
            session.flush()
        except IntegrityError as e:
            raise ConcurrencyConflict(learner_id, skill_code, "review card created concurrently") from e
        logger.debug(f"Created review card for ({learner_id}, {skill_code})")
        return card

    def get_or_create_card(self, learner_id: str, skill_code: str) -> ScheduleResult:
        """Return the card for a pair, creating it with defaults if missing."""
        with bound_session(self._session) as session:
            card = self._load_card(session, learner_id, skill_code, lock=True)
            if card is None:
                card = self._create_card(session, learner_id, skill_code, self._clock())
            return _result_from_card(card)

    def get_card(self, learner_id: str, skill_code: str) -> ScheduleResult | None:
        """Current schedule of a pair, or None if no card exists."""
        with bound_session(self._session, read_only=True) as session:
            card = self._load_card(session, learner_id, skill_code)
            return _result_from_card(card) if card else None

    def schedule(
        self,
        learner_id: str,
        skill_code: str,
        quality: float,
        outcome_id: int | None = None,
    ) -> ScheduleResult:
        """
        Apply one review to the pair's card.

        Args:
            learner_id: Learner identifier
            skill_code: Skill code
            quality: Recall quality (0-5)
            outcome_id: Outcome being applied; a repeat of the last applied id is a no-op

        Returns:
            ScheduleResult after the review

        Raises:
            ValidationError: quality outside [0, 5]
            ConcurrencyConflict: a concurrent writer created the card first
        """
        quality = validate_quality(quality)
        now = self._clock()

        with bound_session(self._session) as session:
            card = self._load_card(session, learner_id, skill_code, lock=True)
            if card is None:
                card = self._create_card(session, learner_id, skill_code, now)
            elif outcome_id is not None and card.last_outcome_id == outcome_id:
                logger.debug(f"Outcome {outcome_id} already scheduled for ({learner_id}, {skill_code})")
                return _result_from_card(card)

            state = SM2State(
                easiness_factor=card.easiness_factor,
                repetition_number=card.repetition_number,
                interval_days=card.interval_days,
            )
            new_state = self.sm2.calculate_next_review(state, quality, now)

            card.easiness_factor = new_state.easiness_factor
            card.repetition_number = new_state.repetition_number
            card.interval_days = new_state.interval_days
            card.last_review_at = new_state.last_review_at
            card.next_review_at = new_state.next_review_at
            card.last_quality = quality
            card.last_outcome_id = outcome_id
            session.flush()

            logger.debug(
                f"Scheduled ({learner_id}, {skill_code}): q={quality} ef={new_state.easiness_factor:.2f} "
                f"rep={new_state.repetition_number} interval={new_state.interval_days}d"
            )
            return _result_from_card(card)

    def due_cards(self, learner_id: str, limit: int = 50) -> list[ScheduleResult]:
        """Cards whose next review is strictly before now, soonest first."""
        now = self._clock()
        query = (
            select(ReviewCard)
            .where(
                ReviewCard.learner_id == learner_id,
                ReviewCard.next_review_at < now,
            )
            .order_by(ReviewCard.next_review_at, ReviewCard.id)
            .limit(limit)
        )
        with bound_session(self._session, read_only=True) as session:
            return [_result_from_card(card) for card in session.scalars(query)]
