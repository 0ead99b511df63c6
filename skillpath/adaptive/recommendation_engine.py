"""
Recommendation Engine.

Read path over a whole level: combines Progress rows, prerequisite blocking
and the curriculum's qualitative-leap markers into a prioritized action list
and a per-learner learning path.

Rules:
1. Any Progress row of the learner needs review (all levels)  -> high / review
Then, per skill of the requested level:
2. No Progress row, not blocked           -> medium / new
   No Progress row, blocked               -> low / prerequisite
3. Qualitative leap still in progress     -> high / remediation

The list is stable-sorted by priority, high first.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from skillpath.adaptive.prerequisite_resolver import PrerequisiteResolver, blocking_from_progress
from skillpath.core.errors import NotFoundError
from skillpath.core.models import (
    BlockingStatus,
    LearningPath,
    MasteryLevel,
    PathSummary,
    Priority,
    Recommendation,
    RecommendationType,
    SkillProgressView,
)
from skillpath.curriculum.models import Skill
from skillpath.curriculum.registry import CurriculumRegistry
from skillpath.db.database import bound_session
from skillpath.db.models import ReviewCard, SkillProgress


class RecommendationEngine:
    """Build recommendations and learning paths for a learner and level."""

    def __init__(
        self,
        curriculum: CurriculumRegistry,
        resolver: PrerequisiteResolver | None = None,
        session: Session | None = None,
    ):
        self.curriculum = curriculum
        self._session = session
        self.resolver = resolver or PrerequisiteResolver(curriculum, session=session)

    def _level_skills(self, level: str) -> list[Skill]:
        skills = self.curriculum.skills_of(level)
        if not skills:
            raise NotFoundError(f"Unknown level: {level}", key=level)
        return skills

    def _level_state(
        self, learner_id: str, skills: list[Skill]
    ) -> tuple[dict[str, SkillProgress], dict[str, BlockingStatus]]:
        """Progress rows and blocking status for every skill of a level."""
        prerequisites = {skill.code: self.resolver.prerequisites_of(skill.code) for skill in skills}
        codes = [skill.code for skill in skills]
        codes.extend(code for prereqs in prerequisites.values() for code in prereqs)
        progress = self.resolver.progress_map(learner_id, codes)
        blocking = {
            skill.code: blocking_from_progress(skill.code, prerequisites[skill.code], progress) for skill in skills
        }
        return progress, blocking

    def _build_recommendations(
        self,
        skills: list[Skill],
        progress: dict[str, SkillProgress],
        blocking: dict[str, BlockingStatus],
        review_codes: list[str],
    ) -> list[Recommendation]:
        recommendations: list[Recommendation] = [
            Recommendation(Priority.HIGH, code, "needs review - low performance", RecommendationType.REVIEW)
            for code in review_codes
        ]

        for skill in skills:
            if skill.code in progress:
                continue
            status = blocking[skill.code]
            if status.is_blocked:
                recommendations.append(
                    Recommendation(
                        Priority.LOW,
                        skill.code,
                        f"missing prerequisites: {', '.join(status.missing_prerequisites)}",
                        RecommendationType.PREREQUISITE,
                    )
                )
            else:
                recommendations.append(
                    Recommendation(Priority.MEDIUM, skill.code, "new skill available", RecommendationType.NEW)
                )

        for skill in skills:
            row = progress.get(skill.code)
            if (
                skill.is_qualitative_leap
                and row is not None
                and row.mastery_level == MasteryLevel.IN_PROGRESS.value
            ):
                recommendations.append(
                    Recommendation(
                        Priority.HIGH, skill.code, "major leap - elevated priority", RecommendationType.REMEDIATION
                    )
                )

        # sorted() is stable, so rule order is kept within a priority
        return sorted(recommendations, key=lambda r: r.priority.rank, reverse=True)

    def recommendations_for(self, learner_id: str, level: str) -> list[Recommendation]:
        """
        Prioritized recommendations for a learner on a level.

        Raises:
            NotFoundError: the level has no skills
        """
        skills = self._level_skills(level)
        progress, blocking = self._level_state(learner_id, skills)
        return self._build_recommendations(skills, progress, blocking, self._review_codes(learner_id))

    def learning_path(self, learner_id: str, level: str) -> LearningPath:
        """
        Progress, scheduling and blocking state of every skill in a level.

        Skills without a Progress row appear as not started.

        Raises:
            NotFoundError: the level has no skills
        """
        skills = self._level_skills(level)
        progress, blocking = self._level_state(learner_id, skills)
        next_reviews = self._next_reviews(learner_id, [skill.code for skill in skills])

        views: list[SkillProgressView] = []
        for skill in skills:
            status = blocking[skill.code]
            view = SkillProgressView(
                skill_code=skill.code,
                level=skill.level,
                next_review_at=next_reviews.get(skill.code),
                is_blocked=status.is_blocked,
                blocking_prerequisites=list(status.blocking_prerequisites),
            )
            row = progress.get(skill.code)
            if row is not None:
                view.progress_percent = row.progress_percent or 0.0
                view.mastery_level = MasteryLevel(row.mastery_level)
                view.total_attempts = row.total_attempts or 0
                view.successful_attempts = row.successful_attempts or 0
                view.average_quality = row.average_quality or 0.0
                view.needs_review = bool(row.needs_review)
                view.last_attempt_at = row.last_attempt_at
                view.mastered_at = row.mastered_at
            views.append(view)

        total = len(views)
        mastered = sum(1 for v in views if v.mastery_level == MasteryLevel.MASTERED)
        summary = PathSummary(
            total_skills=total,
            mastered=mastered,
            in_progress=sum(1 for v in views if v.mastery_level == MasteryLevel.IN_PROGRESS),
            not_started=sum(1 for v in views if v.mastery_level == MasteryLevel.NOT_STARTED),
            blocked=sum(1 for v in views if v.is_blocked),
            overall_progress=round(100.0 * mastered / total, 2) if total else 0.0,
        )

        return LearningPath(
            learner_id=learner_id,
            level=level,
            skills=views,
            recommendations=self._build_recommendations(skills, progress, blocking, self._review_codes(learner_id)),
            summary=summary,
        )

    def _review_codes(self, learner_id: str) -> list[str]:
        """Skill codes of every Progress row flagged for review, whatever the level."""
        with bound_session(self._session, read_only=True) as session:
            return list(
                session.scalars(
                    select(SkillProgress.skill_code)
                    .where(SkillProgress.learner_id == learner_id, SkillProgress.needs_review.is_(True))
                    .order_by(SkillProgress.id)
                )
            )

    def _next_reviews(self, learner_id: str, skill_codes: list[str]) -> dict[str, datetime]:
        with bound_session(self._session, read_only=True) as session:
            rows = session.execute(
                select(ReviewCard.skill_code, ReviewCard.next_review_at).where(
                    ReviewCard.learner_id == learner_id,
                    ReviewCard.skill_code.in_(skill_codes),
                )
            )
            return {code: next_review_at for code, next_review_at in rows}
