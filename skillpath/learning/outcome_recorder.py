"""
Outcome Recorder.

Persists each practice attempt and maintains error-tag frequency counters.
Validation happens before any write so a rejected attempt leaves no trace.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from skillpath.core.errors import NotFoundError, ValidationError
from skillpath.core.models import AttemptOutcome, RemediationAction, utcnow
from skillpath.curriculum.registry import CurriculumRegistry
from skillpath.db.database import bound_session
from skillpath.db.models import ErrorPattern, ExerciseOutcome

MIN_QUALITY = 0.0
MAX_QUALITY = 5.0


def validate_quality(quality: object, field: str = "quality") -> float:
    """Return quality as float, or raise ValidationError if it is not a number in [0, 5]."""
    if isinstance(quality, bool) or not isinstance(quality, (int, float)):
        raise ValidationError(f"{field} must be a number, got {quality!r}", field=field)
    if not math.isfinite(quality) or not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise ValidationError(f"{field} must be within [0, 5], got {quality}", field=field)
    return float(quality)


def _require_text(value: object, field: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)


def _require_count(value: object, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer, got {value!r}", field=field)


def normalize_tags(tags: list[str] | None) -> list[str]:
    """Strip, drop empty and de-duplicate tags, keeping first-seen order."""
    normalized: list[str] = []
    for tag in tags or []:
        if not isinstance(tag, str):
            raise ValidationError(f"error tag must be a string, got {tag!r}", field="error_tags")
        tag = tag.strip()
        if tag and tag not in normalized:
            normalized.append(tag)
    return normalized


class OutcomeRecorder:
    """
    Append outcomes and upsert error patterns.

    Works inside the caller's session when one is given (the attempt pipeline
    passes its per-pair transaction), otherwise opens its own scope.
    """

    def __init__(
        self,
        session: Session | None = None,
        curriculum: CurriculumRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
        error_patterns_limit: int = 5,
    ):
        self._session = session
        self._curriculum = curriculum
        self._clock = clock
        self.error_patterns_limit = error_patterns_limit

    def validate(self, outcome: AttemptOutcome) -> None:
        """
        Check an outcome before it is written.

        Raises:
            ValidationError: malformed fields
            NotFoundError: skill code unknown to the attached curriculum
        """
        _require_text(outcome.learner_id, "learner_id")
        _require_text(outcome.exercise_id, "exercise_id")
        _require_text(outcome.skill_code, "skill_code")
        validate_quality(outcome.quality)
        _require_count(outcome.hints_used, "hints_used")
        _require_count(outcome.time_spent_seconds, "time_spent_seconds")
        if not isinstance(outcome.is_correct, bool):
            raise ValidationError("is_correct must be a boolean", field="is_correct")
        normalize_tags(outcome.error_tags)

        if self._curriculum is not None:
            self._curriculum.require_skill(outcome.skill_code)

    def record(self, outcome: AttemptOutcome) -> int:
        """
        Append the outcome and bump its error patterns.

        Returns:
            The new outcome id
        """
        self.validate(outcome)
        tags = normalize_tags(outcome.error_tags)
        now = self._clock()

        with bound_session(self._session) as session:
            if outcome.attempted_at is not None:
                self._check_not_backdated(session, outcome)
            row = ExerciseOutcome(
                learner_id=outcome.learner_id,
                exercise_id=outcome.exercise_id,
                skill_code=outcome.skill_code,
                is_correct=outcome.is_correct,
                hints_used=outcome.hints_used,
                time_spent_seconds=outcome.time_spent_seconds,
                quality=float(outcome.quality),
                error_tags=tags,
                attempted_at=outcome.attempted_at or now,
            )
            session.add(row)

            for tag in tags:
                self._upsert_error_pattern(session, outcome.learner_id, outcome.skill_code, tag, now)

            session.flush()
            logger.debug(
                f"Recorded outcome {row.id} for ({outcome.learner_id}, {outcome.skill_code}) "
                f"correct={outcome.is_correct} q={outcome.quality} tags={tags}"
            )
            return row.id

    def _check_not_backdated(self, session: Session, outcome: AttemptOutcome) -> None:
        # The hint penalty reads the window's newest outcome; it must be this one.
        newest = session.scalar(
            select(func.max(ExerciseOutcome.attempted_at)).where(
                ExerciseOutcome.learner_id == outcome.learner_id,
                ExerciseOutcome.skill_code == outcome.skill_code,
            )
        )
        if newest is not None and outcome.attempted_at < newest:
            raise ValidationError(
                f"attempted_at {outcome.attempted_at.isoformat()} is older than the newest outcome "
                f"({newest.isoformat()}) for ({outcome.learner_id}, {outcome.skill_code})",
                field="attempted_at",
            )

    def _upsert_error_pattern(
        self, session: Session, learner_id: str, skill_code: str, tag: str, now: datetime
    ) -> None:
        pattern = session.scalars(
            select(ErrorPattern)
            .where(
                ErrorPattern.learner_id == learner_id,
                ErrorPattern.skill_code == skill_code,
                ErrorPattern.tag == tag,
            )
            .with_for_update()
        ).first()

        if pattern:
            pattern.occurrences = (pattern.occurrences or 0) + 1
            pattern.last_seen_at = now
        else:
            session.add(
                ErrorPattern(
                    learner_id=learner_id,
                    skill_code=skill_code,
                    tag=tag,
                    occurrences=1,
                    last_seen_at=now,
                )
            )

    def get_outcome(self, outcome_id: int) -> ExerciseOutcome:
        """Load a stored outcome or raise NotFoundError."""
        with bound_session(self._session, read_only=True) as session:
            row = session.get(ExerciseOutcome, outcome_id)
            if row is None:
                raise NotFoundError(f"Unknown outcome id: {outcome_id}", key=str(outcome_id))
            return row

    def top_error_patterns(
        self, learner_id: str, limit: int | None = None, skill_code: str | None = None
    ) -> list[ErrorPattern]:
        """Most frequent error patterns for a learner, optionally on one skill."""
        limit = limit or self.error_patterns_limit
        query = select(ErrorPattern).where(ErrorPattern.learner_id == learner_id)
        if skill_code is not None:
            query = query.where(ErrorPattern.skill_code == skill_code)
        query = query.order_by(
            ErrorPattern.occurrences.desc(),
            ErrorPattern.last_seen_at.desc(),
            ErrorPattern.id,
        ).limit(limit)

        with bound_session(self._session, read_only=True) as session:
            return list(session.scalars(query))

    def suggest_remediation(
        self, learner_id: str, limit: int | None = None, skill_code: str | None = None
    ) -> list[RemediationAction]:
        """Map the top error patterns to remedial practice suggestions."""
        return [
            RemediationAction(
                action="Remedial practice",
                reason=f"Frequent error: {pattern.tag}",
                skill_code=pattern.skill_code,
            )
            for pattern in self.top_error_patterns(learner_id, limit=limit, skill_code=skill_code)
        ]
