"""
Core Domain Models.

Value types shared by the learning and adaptive packages:
- MasteryLevel / Priority / RecommendationType enums
- AttemptOutcome: one practice attempt as submitted by the caller
- MasterySnapshot, ScheduleResult, BlockingStatus, StruggleStatus: stage results
- Recommendation, SkillProgressView, LearningPath: derived read models
- AttemptResult: the composed per-attempt pipeline output

All timestamps are naive UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class MasteryLevel(str, Enum):
    """Categorical learner state on a skill."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    MASTERED = "mastered"

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.IN_PROGRESS: "yellow",
            MasteryLevel.MASTERED: "green",
        }[self]


class Priority(str, Enum):
    """Recommendation priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort weight, higher first."""
        return {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}[self]


class RecommendationType(str, Enum):
    """Why a skill is recommended."""

    REVIEW = "review"
    NEW = "new"
    REMEDIATION = "remediation"
    PREREQUISITE = "prerequisite"


# =============================================================================
# Attempt input
# =============================================================================


@dataclass
class AttemptOutcome:
    """
    A single practice attempt submitted for processing.

    attempted_at defaults to the recording time. An explicit value older than
    the newest stored outcome of the same (learner, skill) is rejected, since
    the hint penalty applies to the newest outcome of the window.
    """

    learner_id: str
    exercise_id: str
    skill_code: str
    is_correct: bool
    quality: float
    hints_used: int = 0
    time_spent_seconds: int = 0
    error_tags: list[str] = field(default_factory=list)
    attempted_at: datetime | None = None

    @property
    def pair(self) -> tuple[str, str]:
        """The (learner, skill) key this attempt updates."""
        return (self.learner_id, self.skill_code)


# =============================================================================
# Stage results
# =============================================================================


@dataclass
class MasterySnapshot:
    """Result of a mastery recomputation."""

    learner_id: str
    skill_code: str
    percent: float
    level: MasteryLevel
    average_quality: float
    needs_review: bool
    total_attempts: int
    successful_attempts: int
    total_time_spent: int
    mastered_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "percent": round(self.percent, 2),
            "level": self.level.value,
            "average_quality": round(self.average_quality, 2),
            "needs_review": self.needs_review,
        }


@dataclass
class ScheduleResult:
    """New review schedule for a (learner, skill) card."""

    learner_id: str
    skill_code: str
    easiness_factor: float
    repetition_number: int
    interval_days: int
    next_review_at: datetime
    last_review_at: datetime | None
    last_quality: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_review_at": _iso(self.next_review_at),
            "interval_days": self.interval_days,
            "repetition_number": self.repetition_number,
            "easiness_factor": round(self.easiness_factor, 4),
        }


@dataclass
class BlockingStatus:
    """Prerequisite-graph view of whether a learner may start a skill."""

    skill_code: str
    is_blocked: bool
    blocking_prerequisites: list[str] = field(default_factory=list)
    missing_prerequisites: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_blocked": self.is_blocked,
            "blocking_prerequisites": list(self.blocking_prerequisites),
            "missing_prerequisites": list(self.missing_prerequisites),
        }


@dataclass
class StruggleStatus:
    """Performance view: repeated recent failures on the skill itself."""

    skill_code: str
    is_struggling: bool
    recent_failures: int
    window: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_struggling": self.is_struggling,
            "recent_failures": self.recent_failures,
            "window": self.window,
        }


@dataclass
class RemediationAction:
    """A concrete remedial step for the learner."""

    action: str
    reason: str
    skill_code: str | None = None
    prerequisite_code: str | None = None
    weight: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action, "reason": self.reason}
        if self.skill_code is not None:
            data["skill_code"] = self.skill_code
        if self.prerequisite_code is not None:
            data["prerequisite_code"] = self.prerequisite_code
        if self.weight is not None:
            data["weight"] = self.weight
        return data


# =============================================================================
# Read models
# =============================================================================


@dataclass
class Recommendation:
    """What the learner should work on next, and why."""

    priority: Priority
    skill_code: str
    reason: str
    type: RecommendationType

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "skill_code": self.skill_code,
            "reason": self.reason,
            "type": self.type.value,
        }


@dataclass
class SkillProgressView:
    """Progress of one skill joined with its scheduling and blocking state."""

    skill_code: str
    level: str
    progress_percent: float = 0.0
    mastery_level: MasteryLevel = MasteryLevel.NOT_STARTED
    total_attempts: int = 0
    successful_attempts: int = 0
    average_quality: float = 0.0
    needs_review: bool = False
    last_attempt_at: datetime | None = None
    mastered_at: datetime | None = None
    next_review_at: datetime | None = None
    is_blocked: bool = False
    blocking_prerequisites: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "skill_code": self.skill_code,
            "level": self.level,
            "progress_percent": round(self.progress_percent, 2),
            "mastery_level": self.mastery_level.value,
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "average_quality": round(self.average_quality, 2),
            "needs_review": self.needs_review,
            "last_attempt_at": _iso(self.last_attempt_at),
            "mastered_at": _iso(self.mastered_at),
            "next_review_at": _iso(self.next_review_at),
            "is_blocked": self.is_blocked,
            "blocking_prerequisites": list(self.blocking_prerequisites),
        }


@dataclass
class PathSummary:
    """Counts across a level."""

    total_skills: int
    mastered: int
    in_progress: int
    not_started: int
    blocked: int
    overall_progress: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_skills": self.total_skills,
            "mastered": self.mastered,
            "in_progress": self.in_progress,
            "not_started": self.not_started,
            "blocked": self.blocked,
            "overall_progress": self.overall_progress,
        }


@dataclass
class LearningPath:
    """Per learner and level snapshot of progress and recommendations."""

    learner_id: str
    level: str
    skills: list[SkillProgressView]
    recommendations: list[Recommendation]
    summary: PathSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "level": self.level,
            "skills": [s.to_dict() for s in self.skills],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "summary": self.summary.to_dict(),
        }


@dataclass
class AttemptResult:
    """Output of the composed per-attempt pipeline."""

    outcome_id: int
    mastery: MasterySnapshot
    spaced_repetition: ScheduleResult
    blocked: BlockingStatus
    struggling: StruggleStatus
    remediation: list[RemediationAction] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "blocked" if self.blocked.is_blocked else "progressing"

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome_id": self.outcome_id,
            "mastery": self.mastery.to_dict(),
            "spaced_repetition": self.spaced_repetition.to_dict(),
            "blocked": self.blocked.to_dict(),
            "struggling": self.struggling.to_dict(),
            "status": self.status,
            "remediation": [r.to_dict() for r in self.remediation],
        }
