"""
Error taxonomy for the adaptive-learning core.

- ValidationError: malformed attempt data, rejected before any write
- NotFoundError: unknown skill, level or learner on a query path
- ConcurrencyConflict: the per (learner, skill) update could not be serialized

Storage errors are not wrapped and propagate as raised by SQLAlchemy.
"""

from __future__ import annotations


class SkillpathError(Exception):
    """Base class for all errors raised by the core."""


class ValidationError(SkillpathError):
    """Raised when an outcome or schedule request carries invalid fields."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(SkillpathError):
    """Raised when a skill, level or learner record does not exist."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class ConcurrencyConflict(SkillpathError):
    """Raised when a per-pair update lost a race; the caller may retry the attempt."""

    def __init__(self, learner_id: str, skill_code: str, reason: str):
        super().__init__(f"Concurrent update on ({learner_id}, {skill_code}): {reason}")
        self.learner_id = learner_id
        self.skill_code = skill_code
        self.reason = reason
