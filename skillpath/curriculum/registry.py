"""
Curriculum Registry.

Loaded-once, read-only index of curriculum skills keyed by code. The registry
is the core's only view of the curriculum collaborator:

- get_skill(code)                   -> Skill | None
- prerequisites_declared_for(code)  -> tuple of codes
- skills_of(level)                  -> skills of a level in curriculum order
- is_qualitative_leap(code)         -> bool

Curriculum updates are applied by building a new registry (process restart),
never by mutating an existing one.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any

from loguru import logger

from skillpath.core.errors import NotFoundError
from skillpath.curriculum.models import CurriculumFile, PrerequisiteEdge, Skill, SkillRecord

SAMPLE_CURRICULUM = "sample_curriculum.json"


class CurriculumRegistry:
    """Immutable arena of Skill records keyed by code."""

    def __init__(self, skills: Iterable[Skill], name: str = "curriculum"):
        by_code: dict[str, Skill] = {}
        by_level: dict[str, list[str]] = {}
        for skill in skills:
            if skill.code in by_code:
                raise ValueError(f"Duplicate skill code in curriculum: {skill.code}")
            by_code[skill.code] = skill
            by_level.setdefault(skill.level, []).append(skill.code)

        self.name = name
        self._skills = MappingProxyType(by_code)
        self._levels = MappingProxyType({k: tuple(v) for k, v in by_level.items()})

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]], name: str = "curriculum") -> CurriculumRegistry:
        """Build a registry from raw dictionaries (validated with pydantic)."""
        skills = [SkillRecord.model_validate(record).to_skill() for record in records]
        return cls(skills, name=name)

    @classmethod
    def from_file(cls, path: str | Path) -> CurriculumRegistry:
        """Load a curriculum JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Curriculum file not found: {path}")
        data = CurriculumFile.model_validate(json.loads(path.read_text(encoding="utf-8")))
        registry = cls((record.to_skill() for record in data.skills), name=data.name)
        logger.info(f"Loaded curriculum '{registry.name}' from {path}: {len(registry)} skills")
        return registry

    @classmethod
    def load_default(cls) -> CurriculumRegistry:
        """Load the sample curriculum bundled with the package."""
        text = resources.files("skillpath.curriculum.data").joinpath(SAMPLE_CURRICULUM).read_text(
            encoding="utf-8"
        )
        data = CurriculumFile.model_validate(json.loads(text))
        return cls((record.to_skill() for record in data.skills), name=data.name)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, code: object) -> bool:
        return code in self._skills

    @property
    def levels(self) -> tuple[str, ...]:
        return tuple(self._levels)

    def get_skill(self, code: str) -> Skill | None:
        return self._skills.get(code)

    def require_skill(self, code: str) -> Skill:
        """Get a skill or raise NotFoundError."""
        skill = self._skills.get(code)
        if skill is None:
            raise NotFoundError(f"Unknown skill code: {code}", key=code)
        return skill

    def prerequisites_declared_for(self, code: str) -> tuple[str, ...]:
        skill = self._skills.get(code)
        return skill.prerequisite_codes if skill else ()

    def skills_of(self, level: str) -> list[Skill]:
        return [self._skills[code] for code in self._levels.get(level, ())]

    def is_qualitative_leap(self, code: str) -> bool:
        skill = self._skills.get(code)
        return bool(skill and skill.is_qualitative_leap)

    def skills_with_leaps(self, level: str) -> list[Skill]:
        """Skills of a level flagged as a major qualitative leap."""
        return [skill for skill in self.skills_of(level) if skill.is_qualitative_leap]

    def skills_by_domain(self, level: str, domain: str, subdomain: str | None = None) -> list[Skill]:
        """Skills of a level filtered by domain and optionally subdomain."""
        return [
            skill
            for skill in self.skills_of(level)
            if skill.domain == domain and (subdomain is None or skill.subdomain == subdomain)
        ]

    def declared_prerequisite_edges(self, level: str | None = None) -> list[PrerequisiteEdge]:
        """
        Weighted edges for the declared prerequisites.

        The first declared prerequisite weighs 1.0 and each following one 0.1
        less, floored at 0.1.
        """
        skills = self.skills_of(level) if level else list(self._skills.values())
        edges = []
        for skill in skills:
            for index, prerequisite in enumerate(skill.prerequisite_codes):
                edges.append(
                    PrerequisiteEdge(
                        skill_code=skill.code,
                        prerequisite_code=prerequisite,
                        weight=declared_weight(index),
                        description=f"Declared prerequisite for {skill.code}",
                    )
                )
        return edges


def declared_weight(index: int) -> float:
    """Weight of the index-th declared prerequisite."""
    return max(0.1, round(1.0 - index * 0.1, 2))
