"""
Mastery Estimator.

Recomputes a learner's progress on a skill from the most recent outcomes
(never by patching running counters), so rerunning the estimator against the
same outcome window yields the same Progress row.

Formula:
    raw      = 100 * successful / max(1, attempts)
    percent  = clamp(raw - min(cap, per_hint * hints_on_latest_attempt), 0, 100)
    mastered     if percent >= 90 and average_quality >= 3
    in_progress  if percent >= 50
    not_started  otherwise
    needs_review = percent < 80 or average_quality < 2.5
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skillpath.config import Settings
from skillpath.core.errors import ConcurrencyConflict, NotFoundError
from skillpath.core.models import MasteryLevel, MasterySnapshot, utcnow
from skillpath.db.database import bound_session
from skillpath.db.models import ExerciseOutcome, SkillProgress


@dataclass
class MasteryPolicy:
    """Tunable thresholds of the mastery estimator."""

    window_size: int = 20
    hint_penalty_per_hint: float = 2.0
    hint_penalty_cap: float = 10.0
    mastered_threshold: float = 90.0
    mastered_min_quality: float = 3.0
    in_progress_threshold: float = 50.0
    review_threshold: float = 80.0
    review_min_quality: float = 2.5

    @classmethod
    def from_settings(cls, settings: Settings) -> MasteryPolicy:
        return cls(**settings.get_mastery_config())

    def classify(self, percent: float, average_quality: float) -> MasteryLevel:
        if percent >= self.mastered_threshold and average_quality >= self.mastered_min_quality:
            return MasteryLevel.MASTERED
        if percent >= self.in_progress_threshold:
            return MasteryLevel.IN_PROGRESS
        return MasteryLevel.NOT_STARTED

    def needs_review(self, percent: float, average_quality: float) -> bool:
        return percent < self.review_threshold or average_quality < self.review_min_quality

    def hint_penalty(self, hints_used: int) -> float:
        return min(self.hint_penalty_cap, self.hint_penalty_per_hint * max(0, hints_used))


@dataclass
class WindowAggregate:
    """Aggregates over one outcome window."""

    total_attempts: int
    successful_attempts: int
    average_quality: float
    total_time_spent: int
    percent: float
    level: MasteryLevel
    needs_review: bool
    last_exercise_id: str | None
    last_attempt_at: datetime | None


def compute_snapshot(outcomes: Sequence[ExerciseOutcome], policy: MasteryPolicy | None = None) -> WindowAggregate:
    """
    Aggregate a newest-first outcome window.

    Args:
        outcomes: Outcomes ordered newest first (already capped to the window)
        policy: Thresholds to apply (defaults to MasteryPolicy())

    Returns:
        WindowAggregate with percent, level and review flag
    """
    policy = policy or MasteryPolicy()
    count = len(outcomes)
    total = max(1, count)
    successful = sum(1 for o in outcomes if o.is_correct)
    average_quality = sum(float(o.quality) for o in outcomes) / total
    total_time = sum(o.time_spent_seconds or 0 for o in outcomes)

    latest = outcomes[0] if outcomes else None
    raw_percent = 100.0 * successful / total
    penalty = policy.hint_penalty(latest.hints_used or 0) if latest else 0.0
    percent = max(0.0, min(100.0, raw_percent - penalty))

    return WindowAggregate(
        total_attempts=total,
        successful_attempts=successful,
        average_quality=average_quality,
        total_time_spent=total_time,
        percent=percent,
        level=policy.classify(percent, average_quality),
        needs_review=policy.needs_review(percent, average_quality),
        last_exercise_id=latest.exercise_id if latest else None,
        last_attempt_at=latest.attempted_at if latest else None,
    )


class MasteryEstimator:
    """Aggregate the recent outcome window into a Progress row."""

    def __init__(
        self,
        session: Session | None = None,
        policy: MasteryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self.policy = policy or MasteryPolicy()
        self._clock = clock

    def recent_outcomes(self, session: Session, learner_id: str, skill_code: str) -> list[ExerciseOutcome]:
        """Newest-first window of outcomes for a pair."""
        query = (
            select(ExerciseOutcome)
            .where(
                ExerciseOutcome.learner_id == learner_id,
                ExerciseOutcome.skill_code == skill_code,
            )
            .order_by(ExerciseOutcome.attempted_at.desc(), ExerciseOutcome.id.desc())
            .limit(self.policy.window_size)
        )
        return list(session.scalars(query))

    def update_mastery(
        self, learner_id: str, skill_code: str, exercise_id: str | None = None
    ) -> MasterySnapshot:
        """
        Recompute and upsert Progress for a (learner, skill) pair.

        Args:
            learner_id: Learner identifier
            skill_code: Skill code
            exercise_id: Exercise that triggered the update (defaults to the latest outcome's)

        Returns:
            MasterySnapshot of the stored row

        Raises:
            NotFoundError: missing learner or skill identifier
            ConcurrencyConflict: a concurrent writer inserted the row first
        """
        if not learner_id or not skill_code:
            raise NotFoundError("learner_id and skill_code are required", key=f"{learner_id}:{skill_code}")

        with bound_session(self._session) as session:
            window = self.recent_outcomes(session, learner_id, skill_code)
            aggregate = compute_snapshot(window, self.policy)
            now = self._clock()

            progress = session.scalars(
                select(SkillProgress)
                .where(
                    SkillProgress.learner_id == learner_id,
                    SkillProgress.skill_code == skill_code,
                )
                .with_for_update()
            ).first()

            if progress is None:
                progress = SkillProgress(learner_id=learner_id, skill_code=skill_code)
                session.add(progress)

            previous_level = progress.mastery_level
            progress.progress_percent = aggregate.percent
            progress.mastery_level = aggregate.level.value
            progress.total_attempts = aggregate.total_attempts
            progress.successful_attempts = aggregate.successful_attempts
            progress.average_quality = aggregate.average_quality
            progress.total_time_spent = aggregate.total_time_spent
            progress.needs_review = aggregate.needs_review
            progress.last_exercise_id = exercise_id or aggregate.last_exercise_id
            progress.last_attempt_at = aggregate.last_attempt_at
            # mastered_at is sticky: set on the first transition, never cleared
            if aggregate.level == MasteryLevel.MASTERED and progress.mastered_at is None:
                progress.mastered_at = now
                logger.info(f"Learner {learner_id} mastered {skill_code}")
            elif previous_level == MasteryLevel.MASTERED.value and aggregate.level != MasteryLevel.MASTERED:
                logger.info(f"Learner {learner_id} regressed on {skill_code} to {aggregate.level.value}")

            try:
                session.flush()
            except IntegrityError as e:
                raise ConcurrencyConflict(learner_id, skill_code, "progress row created concurrently") from e

            return MasterySnapshot(
                learner_id=learner_id,
                skill_code=skill_code,
                percent=aggregate.percent,
                level=aggregate.level,
                average_quality=aggregate.average_quality,
                needs_review=aggregate.needs_review,
                total_attempts=aggregate.total_attempts,
                successful_attempts=aggregate.successful_attempts,
                total_time_spent=aggregate.total_time_spent,
                mastered_at=progress.mastered_at,
            )

    def get_progress(self, learner_id: str, skill_code: str) -> SkillProgress | None:
        """Current Progress row for a pair, if any."""
        with bound_session(self._session, read_only=True) as session:
            return session.scalars(
                select(SkillProgress).where(
                    SkillProgress.learner_id == learner_id,
                    SkillProgress.skill_code == skill_code,
                )
            ).first()
