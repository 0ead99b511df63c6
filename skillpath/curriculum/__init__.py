"""Curriculum reference data: immutable skill registry and prerequisite edges."""

from .models import PrerequisiteEdge, Skill, SkillRecord
from .registry import CurriculumRegistry, declared_weight

__all__ = [
    "CurriculumRegistry",
    "PrerequisiteEdge",
    "Skill",
    "SkillRecord",
    "declared_weight",
]
