# SQLAlchemy models
from .base import Base
from .learning import (
    ErrorPattern,
    ExerciseOutcome,
    ReviewCard,
    SkillProgress,
)
from .prerequisites import PrerequisiteOverride

__all__ = [
    # Base
    "Base",
    # Learning state
    "ExerciseOutcome",
    "SkillProgress",
    "ReviewCard",
    "ErrorPattern",
    # Prerequisites
    "PrerequisiteOverride",
]
