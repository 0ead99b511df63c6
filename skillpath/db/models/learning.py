"""
Learning State Models.

SQLAlchemy models for the per-learner learning state:
- Exercise outcomes (append-only attempt log)
- Skill progress (one aggregate per learner and skill)
- Review cards (one SM-2 schedule per learner and skill)
- Error patterns (tag counters per learner and skill)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Float, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ExerciseOutcome(Base):
    """
    One practice attempt. Never updated or deleted by the core.

    Quality uses the 0-5 SM-2 grade scale.
    """

    __tablename__ = "exercise_outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    exercise_id: Mapped[str] = mapped_column(Text, nullable=False)
    skill_code: Mapped[str] = mapped_column(Text, nullable=False)

    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    hints_used: Mapped[int] = mapped_column(Integer, default=0)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)
    quality: Mapped[float] = mapped_column(Float, nullable=False)
    error_tags: Mapped[list] = mapped_column(JSON, default=list)

    attempted_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_outcomes_pair_recent", "learner_id", "skill_code", "attempted_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ExerciseOutcome id={self.id} learner={self.learner_id} "
            f"skill={self.skill_code} correct={self.is_correct} q={self.quality}>"
        )


class SkillProgress(Base):
    """
    Aggregated progress per learner per skill.

    Recomputed from the recent outcome window on every attempt; mastered_at is
    set once and never cleared.
    """

    __tablename__ = "skill_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    skill_code: Mapped[str] = mapped_column(Text, nullable=False)

    # Aggregates (0-100 percent, 0-5 quality)
    progress_percent: Mapped[float] = mapped_column(Float, default=0.0)
    mastery_level: Mapped[str] = mapped_column(Text, default="not_started")
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    successful_attempts: Mapped[int] = mapped_column(Integer, default=0)
    average_quality: Mapped[float] = mapped_column(Float, default=0.0)
    total_time_spent: Mapped[int] = mapped_column(Integer, default=0)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)

    # Activity tracking
    last_exercise_id: Mapped[str | None] = mapped_column(Text)
    last_attempt_at: Mapped[datetime | None] = mapped_column()
    mastered_at: Mapped[datetime | None] = mapped_column()

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("learner_id", "skill_code", name="uq_progress_learner_skill"),
        Index("idx_progress_review", "learner_id", "needs_review"),
    )

    def __repr__(self) -> str:
        return (
            f"<SkillProgress learner={self.learner_id} skill={self.skill_code} "
            f"percent={self.progress_percent} level={self.mastery_level}>"
        )

    def aggregate_fields(self) -> dict:
        """The recomputed fields, used to compare replays."""
        return {
            "progress_percent": self.progress_percent,
            "mastery_level": self.mastery_level,
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "average_quality": self.average_quality,
            "total_time_spent": self.total_time_spent,
            "needs_review": self.needs_review,
            "last_exercise_id": self.last_exercise_id,
            "last_attempt_at": self.last_attempt_at,
            "mastered_at": self.mastered_at,
        }


class ReviewCard(Base):
    """
    SM-2 scheduling state per learner per skill.

    Created lazily with EF 2.5, repetition 0, interval 1 day.
    """

    __tablename__ = "review_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    skill_code: Mapped[str] = mapped_column(Text, nullable=False)

    easiness_factor: Mapped[float] = mapped_column(Float, default=2.5)
    repetition_number: Mapped[int] = mapped_column(Integer, default=0)
    interval_days: Mapped[int] = mapped_column(Integer, default=1)

    last_review_at: Mapped[datetime | None] = mapped_column()
    next_review_at: Mapped[datetime] = mapped_column(nullable=False)
    last_quality: Mapped[float | None] = mapped_column(Float)
    last_outcome_id: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(default=func.now())
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("learner_id", "skill_code", name="uq_card_learner_skill"),
        Index("idx_cards_due", "learner_id", "next_review_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReviewCard learner={self.learner_id} skill={self.skill_code} "
            f"ef={self.easiness_factor} rep={self.repetition_number} next={self.next_review_at}>"
        )


class ErrorPattern(Base):
    """Occurrence counter for an error tag per learner per skill."""

    __tablename__ = "error_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    skill_code: Mapped[str] = mapped_column(Text, nullable=False)
    tag: Mapped[str] = mapped_column(Text, nullable=False)

    occurrences: Mapped[int] = mapped_column(Integer, default=1)
    last_seen_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("learner_id", "skill_code", "tag", name="uq_error_pattern"),
        Index("idx_error_patterns_learner", "learner_id", "occurrences"),
    )

    def __repr__(self) -> str:
        return f"<ErrorPattern learner={self.learner_id} skill={self.skill_code} tag={self.tag} x{self.occurrences}>"
