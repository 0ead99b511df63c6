"""
Learning Engine.

Main orchestration layer and public surface of the core.

Per attempt:
    validate -> record outcome -> recompute mastery -> schedule review
all in one transaction while holding the (learner, skill) lock, then the
prerequisite and struggle checks run read-only to annotate the result.

Read paths (due reviews, recommendations, learning path) use their own short
sessions and never take the pair lock.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from skillpath.adaptive.prerequisite_resolver import PrerequisiteResolver, StrugglePolicy
from skillpath.adaptive.recommendation_engine import RecommendationEngine
from skillpath.config import Settings, get_settings
from skillpath.core.errors import ConcurrencyConflict, SkillpathError
from skillpath.core.models import (
    AttemptOutcome,
    AttemptResult,
    LearningPath,
    MasterySnapshot,
    Recommendation,
    RemediationAction,
    ScheduleResult,
    utcnow,
)
from skillpath.curriculum.registry import CurriculumRegistry
from skillpath.db.database import session_scope
from skillpath.db.models import ErrorPattern
from skillpath.learning.mastery_estimator import MasteryEstimator, MasteryPolicy
from skillpath.learning.outcome_recorder import OutcomeRecorder
from skillpath.learning.pair_locks import PairLockRegistry
from skillpath.learning.scheduler import ReviewScheduler, SM2Config


def load_curriculum(settings: Settings) -> CurriculumRegistry:
    """Curriculum from settings.curriculum_path, or the bundled sample."""
    if settings.curriculum_path:
        return CurriculumRegistry.from_file(settings.curriculum_path)
    return CurriculumRegistry.load_default()


class LearningEngine:
    """
    Composed per-attempt pipeline plus the learner-facing read paths.

    Thread-safe: attempts for different (learner, skill) pairs run in
    parallel, attempts for the same pair are serialized by the lock registry.
    """

    def __init__(
        self,
        curriculum: CurriculumRegistry | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        locks: PairLockRegistry | None = None,
    ):
        self.settings = settings or get_settings()
        self.curriculum = curriculum or load_curriculum(self.settings)
        self._clock = clock

        self.mastery_policy = MasteryPolicy.from_settings(self.settings)
        self.sm2_config = SM2Config.from_settings(self.settings)
        self.locks = locks or PairLockRegistry(self.settings.pair_lock_timeout_seconds)

        self.recorder = OutcomeRecorder(
            curriculum=self.curriculum,
            clock=clock,
            error_patterns_limit=self.settings.error_patterns_limit,
        )
        self.scheduler = ReviewScheduler(config=self.sm2_config, clock=clock)
        self.resolver = PrerequisiteResolver(
            self.curriculum,
            struggle_policy=StrugglePolicy.from_settings(self.settings),
        )
        self.recommender = RecommendationEngine(self.curriculum, resolver=self.resolver)

    # ========================================================================
    # WRITE PATH
    # ========================================================================

    def record_outcome_and_update(self, outcome: AttemptOutcome) -> AttemptResult:
        """
        Process one practice attempt end to end.

        Args:
            outcome: The submitted attempt

        Returns:
            AttemptResult with mastery, schedule, blocking, struggle and remediation

        Raises:
            ValidationError: malformed attempt (nothing is written)
            NotFoundError: skill unknown to the curriculum
            ConcurrencyConflict: the pair could not be updated atomically; retry the attempt
        """
        self.recorder.validate(outcome)

        with self.locks.hold(outcome.learner_id, outcome.skill_code):
            try:
                with session_scope() as session:
                    recorder = OutcomeRecorder(
                        session,
                        curriculum=self.curriculum,
                        clock=self._clock,
                        error_patterns_limit=self.settings.error_patterns_limit,
                    )
                    outcome_id = recorder.record(outcome)
                    mastery, schedule = self._update_pair(
                        session, outcome.learner_id, outcome.skill_code, outcome.exercise_id, outcome.quality, outcome_id
                    )
            except IntegrityError as e:
                raise ConcurrencyConflict(outcome.learner_id, outcome.skill_code, "unique constraint race") from e

        logger.info(
            f"Attempt {outcome_id} ({outcome.learner_id}, {outcome.skill_code}): "
            f"{mastery.level.value} {mastery.percent:.1f}% next review in {schedule.interval_days}d"
        )
        return self._annotate(outcome_id, outcome.learner_id, outcome.skill_code, mastery, schedule)

    def reprocess_outcome(self, outcome_id: int) -> AttemptResult:
        """
        Rerun mastery and scheduling for a stored outcome.

        Mastery is recomputed from the window; the schedule is left unchanged
        when this outcome was the last one applied to the card.

        Raises:
            NotFoundError: unknown outcome id
        """
        stored = self.recorder.get_outcome(outcome_id)

        with self.locks.hold(stored.learner_id, stored.skill_code):
            try:
                with session_scope() as session:
                    mastery, schedule = self._update_pair(
                        session, stored.learner_id, stored.skill_code, stored.exercise_id, stored.quality, outcome_id
                    )
            except IntegrityError as e:
                raise ConcurrencyConflict(stored.learner_id, stored.skill_code, "unique constraint race") from e

        logger.info(f"Reprocessed outcome {outcome_id} for ({stored.learner_id}, {stored.skill_code})")
        return self._annotate(outcome_id, stored.learner_id, stored.skill_code, mastery, schedule)

    def record_outcomes(
        self, outcomes: Iterable[AttemptOutcome], max_workers: int | None = None
    ) -> list[AttemptResult | SkillpathError]:
        """
        Process a batch of attempts in parallel.

        Attempts on different pairs run concurrently; attempts on the same pair
        run in submission order on one worker.

        Returns:
            One entry per attempt, in input order: its AttemptResult, or the
            SkillpathError it raised
        """
        outcomes = list(outcomes)
        groups: dict[tuple[str, str], list[int]] = {}
        for index, outcome in enumerate(outcomes):
            groups.setdefault(outcome.pair, []).append(index)

        results: list[AttemptResult | SkillpathError | None] = [None] * len(outcomes)

        def process_group(indexes: list[int]) -> None:
            for index in indexes:
                try:
                    results[index] = self.record_outcome_and_update(outcomes[index])
                except SkillpathError as e:
                    logger.warning(f"Attempt {index} rejected: {e}")
                    results[index] = e

        workers = max_workers or self.settings.batch_max_workers
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_pair = {executor.submit(process_group, indexes): pair for pair, indexes in groups.items()}

            for future in as_completed(future_to_pair):
                future.result()

        failed = sum(1 for r in results if isinstance(r, SkillpathError))
        logger.info(f"Processed batch of {len(outcomes)} attempts over {len(groups)} pairs ({failed} failed)")
        return results

    def _update_pair(
        self,
        session: Session,
        learner_id: str,
        skill_code: str,
        exercise_id: str,
        quality: float,
        outcome_id: int,
    ) -> tuple[MasterySnapshot, ScheduleResult]:
        estimator = MasteryEstimator(session, policy=self.mastery_policy, clock=self._clock)
        scheduler = ReviewScheduler(session, config=self.sm2_config, clock=self._clock)
        mastery = estimator.update_mastery(learner_id, skill_code, exercise_id)
        schedule = scheduler.schedule(learner_id, skill_code, quality, outcome_id=outcome_id)
        return mastery, schedule

    def _annotate(
        self,
        outcome_id: int,
        learner_id: str,
        skill_code: str,
        mastery: MasterySnapshot,
        schedule: ScheduleResult,
    ) -> AttemptResult:
        blocked = self.resolver.is_blocked_by_prerequisites(learner_id, skill_code)
        struggling = self.resolver.is_struggling_on_skill(learner_id, skill_code)

        remediation: list[RemediationAction] = []
        if blocked.is_blocked:
            remediation.extend(self.resolver.remediation_for(learner_id, skill_code))
        if struggling.is_struggling:
            remediation.extend(self.recorder.suggest_remediation(learner_id, skill_code=skill_code))

        return AttemptResult(
            outcome_id=outcome_id,
            mastery=mastery,
            spaced_repetition=schedule,
            blocked=blocked,
            struggling=struggling,
            remediation=remediation,
        )

    # ========================================================================
    # READ PATHS
    # ========================================================================

    def get_due_reviews(self, learner_id: str, limit: int | None = None) -> list[ScheduleResult]:
        """Review cards past due, soonest first."""
        return self.scheduler.due_cards(learner_id, limit=limit or self.settings.due_reviews_limit)

    def get_recommendations(self, learner_id: str, level: str) -> list[Recommendation]:
        """Prioritized recommendations for a level."""
        return self.recommender.recommendations_for(learner_id, level)

    def get_learning_path(self, learner_id: str, level: str) -> LearningPath:
        """Full learning path for a level."""
        return self.recommender.learning_path(learner_id, level)

    def get_error_patterns(self, learner_id: str, limit: int | None = None) -> list[ErrorPattern]:
        """Most frequent error tags of a learner."""
        return self.recorder.top_error_patterns(learner_id, limit=limit)
