"""
Prerequisite Resolver.

Answers two distinct questions about a learner and a skill:

- is_blocked_by_prerequisites: skill-graph view. Blocked while any prerequisite
  has no Progress row or is not mastered.
- is_struggling_on_skill: performance view. Struggling when too many of the
  most recent outcomes on the skill itself failed.

Prerequisites come from the curriculum registry, extended (and re-weighted) by
override rows stored in the database.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from skillpath.config import Settings
from skillpath.core.errors import NotFoundError, ValidationError
from skillpath.core.models import BlockingStatus, MasteryLevel, RemediationAction, StruggleStatus
from skillpath.curriculum.models import PrerequisiteEdge
from skillpath.curriculum.registry import CurriculumRegistry, declared_weight
from skillpath.db.database import bound_session
from skillpath.db.models import ExerciseOutcome, PrerequisiteOverride, SkillProgress


@dataclass
class StrugglePolicy:
    """How many failures among the latest outcomes flag a learner as struggling."""

    window: int = 5
    failure_threshold: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> StrugglePolicy:
        return cls(window=settings.struggle_window, failure_threshold=settings.struggle_failure_threshold)


def blocking_from_progress(
    skill_code: str,
    prerequisites: Iterable[str],
    progress_by_code: Mapping[str, SkillProgress],
) -> BlockingStatus:
    """Blocking status given the learner's Progress rows keyed by skill code."""
    unmet = [
        code
        for code in prerequisites
        if code not in progress_by_code or progress_by_code[code].mastery_level != MasteryLevel.MASTERED.value
    ]
    return BlockingStatus(
        skill_code=skill_code,
        is_blocked=bool(unmet),
        blocking_prerequisites=list(unmet),
        missing_prerequisites=list(unmet),
    )


class PrerequisiteResolver:
    """
    Walk the prerequisite graph for a learner.

    Reads run on their own short session unless one is passed in, so the
    result may lag concurrent writes slightly.
    """

    def __init__(
        self,
        curriculum: CurriculumRegistry,
        session: Session | None = None,
        struggle_policy: StrugglePolicy | None = None,
    ):
        self.curriculum = curriculum
        self._session = session
        self.struggle_policy = struggle_policy or StrugglePolicy()

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def prerequisite_weights(self, skill_code: str) -> list[PrerequisiteEdge]:
        """
        Weighted prerequisite edges of a skill.

        Override edges come first (heaviest first), followed by the declared
        edges not already overridden.

        Raises:
            NotFoundError: the skill is neither in the curriculum nor overridden
        """
        with bound_session(self._session, read_only=True) as session:
            overrides = list(
                session.scalars(
                    select(PrerequisiteOverride)
                    .where(PrerequisiteOverride.skill_code == skill_code)
                    .order_by(PrerequisiteOverride.weight.desc(), PrerequisiteOverride.id)
                )
            )

        if skill_code not in self.curriculum and not overrides:
            raise NotFoundError(f"Unknown skill code: {skill_code}", key=skill_code)

        edges: list[PrerequisiteEdge] = []
        seen: set[str] = set()
        for row in overrides:
            if row.prerequisite_code in seen:
                continue
            seen.add(row.prerequisite_code)
            edges.append(
                PrerequisiteEdge(
                    skill_code=skill_code,
                    prerequisite_code=row.prerequisite_code,
                    weight=row.weight,
                    description=row.description or "",
                )
            )

        for index, code in enumerate(self.curriculum.prerequisites_declared_for(skill_code)):
            if code in seen:
                continue
            seen.add(code)
            edges.append(PrerequisiteEdge(skill_code=skill_code, prerequisite_code=code, weight=declared_weight(index)))

        return edges

    def prerequisites_of(self, skill_code: str) -> tuple[str, ...]:
        """Prerequisite codes of a skill, overrides first."""
        return tuple(edge.prerequisite_code for edge in self.prerequisite_weights(skill_code))

    # ------------------------------------------------------------------
    # Learner views
    # ------------------------------------------------------------------

    def progress_map(self, learner_id: str, skill_codes: Iterable[str]) -> dict[str, SkillProgress]:
        """Progress rows of a learner for the given skills, keyed by code."""
        codes = list(dict.fromkeys(skill_codes))
        if not codes:
            return {}
        with bound_session(self._session, read_only=True) as session:
            rows = session.scalars(
                select(SkillProgress).where(
                    SkillProgress.learner_id == learner_id,
                    SkillProgress.skill_code.in_(codes),
                )
            )
            return {row.skill_code: row for row in rows}

    def is_blocked_by_prerequisites(self, learner_id: str, skill_code: str) -> BlockingStatus:
        """
        Check whether unmet prerequisites block a learner on a skill.

        Args:
            learner_id: Learner identifier
            skill_code: Target skill

        Returns:
            BlockingStatus listing every prerequisite that is missing or not mastered
        """
        prerequisites = self.prerequisites_of(skill_code)
        status = blocking_from_progress(skill_code, prerequisites, self.progress_map(learner_id, prerequisites))
        if status.is_blocked:
            logger.debug(f"Learner {learner_id} blocked on {skill_code} by {status.blocking_prerequisites}")
        return status

    def is_struggling_on_skill(self, learner_id: str, skill_code: str) -> StruggleStatus:
        """Check for repeated recent failures on the skill itself."""
        policy = self.struggle_policy
        with bound_session(self._session, read_only=True) as session:
            recent = list(
                session.scalars(
                    select(ExerciseOutcome.is_correct)
                    .where(
                        ExerciseOutcome.learner_id == learner_id,
                        ExerciseOutcome.skill_code == skill_code,
                    )
                    .order_by(ExerciseOutcome.attempted_at.desc(), ExerciseOutcome.id.desc())
                    .limit(policy.window)
                )
            )
        failures = sum(1 for is_correct in recent if not is_correct)
        return StruggleStatus(
            skill_code=skill_code,
            is_struggling=failures >= policy.failure_threshold,
            recent_failures=failures,
            window=policy.window,
        )

    def remediation_for(self, learner_id: str, skill_code: str) -> list[RemediationAction]:
        """One 'Review prerequisite' action per blocking prerequisite, heaviest first."""
        edges = self.prerequisite_weights(skill_code)
        progress = self.progress_map(learner_id, (edge.prerequisite_code for edge in edges))
        status = blocking_from_progress(skill_code, (edge.prerequisite_code for edge in edges), progress)
        blocking = set(status.blocking_prerequisites)
        return [
            RemediationAction(
                action="Review prerequisite",
                reason=f"Blocked on {skill_code}, needs {edge.prerequisite_code}",
                skill_code=skill_code,
                prerequisite_code=edge.prerequisite_code,
                weight=edge.weight,
            )
            for edge in edges
            if edge.prerequisite_code in blocking
        ]

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def add_override(
        self,
        skill_code: str,
        prerequisite_code: str,
        weight: float = 1.0,
        description: str | None = None,
    ) -> PrerequisiteEdge:
        """
        Add or re-weight an override edge.

        Raises:
            ValidationError: self-referencing edge or weight outside (0, 1]
        """
        if not skill_code or not prerequisite_code:
            raise ValidationError("skill_code and prerequisite_code are required", field="skill_code")
        if skill_code == prerequisite_code:
            raise ValidationError(f"{skill_code} cannot be its own prerequisite", field="prerequisite_code")
        if not 0 < weight <= 1:
            raise ValidationError(f"weight must be within (0, 1], got {weight}", field="weight")

        with bound_session(self._session) as session:
            row = session.scalars(
                select(PrerequisiteOverride).where(
                    PrerequisiteOverride.skill_code == skill_code,
                    PrerequisiteOverride.prerequisite_code == prerequisite_code,
                )
            ).first()
            if row is None:
                row = PrerequisiteOverride(skill_code=skill_code, prerequisite_code=prerequisite_code)
                session.add(row)
            row.weight = weight
            row.description = description
            session.flush()

        logger.info(f"Prerequisite override {skill_code} <- {prerequisite_code} (weight {weight})")
        return PrerequisiteEdge(skill_code, prerequisite_code, weight, description or "")

    def seed_overrides_from_curriculum(self, level: str | None = None) -> int:
        """
        Replace override rows with the curriculum's declared edges.

        Args:
            level: Only reseed the skills of this level (all levels when None)

        Returns:
            Number of edges written
        """
        edges = self.curriculum.declared_prerequisite_edges(level)
        with bound_session(self._session) as session:
            stmt = delete(PrerequisiteOverride)
            if level is not None:
                codes = [skill.code for skill in self.curriculum.skills_of(level)]
                if not codes:
                    raise NotFoundError(f"Unknown level: {level}", key=level)
                stmt = stmt.where(PrerequisiteOverride.skill_code.in_(codes))
            session.execute(stmt)
            session.add_all(
                PrerequisiteOverride(
                    skill_code=edge.skill_code,
                    prerequisite_code=edge.prerequisite_code,
                    weight=edge.weight,
                    description=edge.description,
                )
                for edge in edges
            )
            session.flush()

        logger.info(f"Seeded {len(edges)} prerequisite edges from curriculum '{self.curriculum.name}'")
        return len(edges)
