"""
Core Module - Shared domain models and errors.

Components:
- models: enums, attempt input, stage results and read models
- errors: ValidationError, NotFoundError, ConcurrencyConflict

All other packages (curriculum, learning, adaptive) import from skillpath.core
rather than redefining these types.
"""

from skillpath.core.errors import (
    ConcurrencyConflict,
    NotFoundError,
    SkillpathError,
    ValidationError,
)
from skillpath.core.models import (
    AttemptOutcome,
    AttemptResult,
    BlockingStatus,
    LearningPath,
    MasteryLevel,
    MasterySnapshot,
    PathSummary,
    Priority,
    Recommendation,
    RecommendationType,
    RemediationAction,
    ScheduleResult,
    SkillProgressView,
    StruggleStatus,
    utcnow,
)

__all__ = [
    # Errors
    "SkillpathError",
    "ValidationError",
    "NotFoundError",
    "ConcurrencyConflict",
    # Enums
    "MasteryLevel",
    "Priority",
    "RecommendationType",
    # Models
    "AttemptOutcome",
    "AttemptResult",
    "BlockingStatus",
    "LearningPath",
    "MasterySnapshot",
    "PathSummary",
    "Recommendation",
    "RemediationAction",
    "ScheduleResult",
    "SkillProgressView",
    "StruggleStatus",
    "utcnow",
]
