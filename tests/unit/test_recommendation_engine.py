"""
Unit tests for the Recommendation Engine.

Tests:
- Rule outputs: review, new, prerequisite, leap remediation
- Priority ordering
- Learning path views and summary
"""

from datetime import timedelta

import pytest

from skillpath.adaptive.recommendation_engine import RecommendationEngine
from skillpath.core.errors import NotFoundError
from skillpath.core.models import MasteryLevel, Priority, RecommendationType
from skillpath.learning.scheduler import ReviewScheduler


@pytest.fixture
def recommender(db, curriculum):
    return RecommendationEngine(curriculum)


def as_tuples(recommendations):
    return [(r.priority, r.skill_code, r.type) for r in recommendations]


class TestRecommendations:
    def test_fresh_learner_gets_new_skills(self, recommender):
        recommendations = recommender.recommendations_for("learner-1", "CP")

        assert len(recommendations) == 8
        assert all(r.priority == Priority.MEDIUM for r in recommendations)
        assert all(r.type == RecommendationType.NEW for r in recommendations)
        assert recommendations[0].reason == "new skill available"

    def test_blocked_skills_point_to_prerequisites(self, recommender):
        recommendations = {r.skill_code: r for r in recommender.recommendations_for("learner-1", "CE1")}

        reading = recommendations["CE1.FR.L1.1"]
        assert reading.priority == Priority.LOW
        assert reading.type == RecommendationType.PREREQUISITE
        assert reading.reason == "missing prerequisites: CP.FR.L1.1, CP.FR.L1.2, CP.FR.L1.3"

    def test_mastered_prerequisites_make_skill_new(self, recommender, set_level):
        set_level("learner-1", "CP.MA.C1.1", MasteryLevel.MASTERED)

        recommendations = {r.skill_code: r for r in recommender.recommendations_for("learner-1", "CE1")}

        assert recommendations["CE1.MA.C1.1"].type == RecommendationType.NEW
        assert recommendations["CE1.MA.C1.1"].priority == Priority.MEDIUM

    def test_review_recommendation(self, recommender, set_level):
        set_level("learner-1", "CP.MA.N1.3", MasteryLevel.IN_PROGRESS, needs_review=True)

        first = recommender.recommendations_for("learner-1", "CP")[0]

        assert (first.priority, first.skill_code, first.type) == (
            Priority.HIGH,
            "CP.MA.N1.3",
            RecommendationType.REVIEW,
        )
        assert first.reason == "needs review - low performance"

    def test_review_from_lower_level_is_included(self, recommender, set_level):
        """A CP row needing review shows up when CE1 recommendations are requested."""
        set_level("learner-1", "CP.MA.N1.1", MasteryLevel.IN_PROGRESS, needs_review=True)

        recommendations = recommender.recommendations_for("learner-1", "CE1")
        reviews = [r.skill_code for r in recommendations if r.type == RecommendationType.REVIEW]

        assert reviews == ["CP.MA.N1.1"]
        assert recommendations[0].skill_code == "CP.MA.N1.1"
        assert recommendations[0].priority == Priority.HIGH
        # rules 2 and 3 stay on the requested level
        assert all(r.skill_code.startswith("CE1.") for r in recommendations[1:])

    def test_other_learner_review_rows_ignored(self, recommender, set_level):
        set_level("learner-2", "CP.MA.N1.1", MasteryLevel.IN_PROGRESS, needs_review=True)

        types = {r.type for r in recommender.recommendations_for("learner-1", "CE1")}

        assert RecommendationType.REVIEW not in types

    def test_started_skill_without_review_is_silent(self, recommender, set_level):
        set_level("learner-1", "CP.MA.N1.3", MasteryLevel.IN_PROGRESS)

        codes = [r.skill_code for r in recommender.recommendations_for("learner-1", "CP")]

        assert "CP.MA.N1.3" not in codes
        assert len(codes) == 7

    def test_leap_in_progress_is_elevated(self, recommender, set_level):
        set_level("learner-1", "CE1.MA.N1.2", MasteryLevel.IN_PROGRESS)

        leaps = [r for r in recommender.recommendations_for("learner-1", "CE1") if r.skill_code == "CE1.MA.N1.2"]

        assert len(leaps) == 1
        assert leaps[0].priority == Priority.HIGH
        assert leaps[0].type == RecommendationType.REMEDIATION
        assert leaps[0].reason == "major leap - elevated priority"

    def test_mastered_leap_not_elevated(self, recommender, set_level):
        set_level("learner-1", "CE1.MA.N1.2", MasteryLevel.MASTERED)
        codes = [r.skill_code for r in recommender.recommendations_for("learner-1", "CE1")]
        assert "CE1.MA.N1.2" not in codes

    def test_priority_order_keeps_rule_order(self, recommender, set_level):
        set_level("learner-1", "CE1.MA.N1.1", MasteryLevel.IN_PROGRESS, needs_review=True)
        set_level("learner-1", "CP.MA.C1.1", MasteryLevel.MASTERED)

        result = as_tuples(recommender.recommendations_for("learner-1", "CE1"))

        assert result == [
            (Priority.HIGH, "CE1.MA.N1.1", RecommendationType.REVIEW),
            (Priority.HIGH, "CE1.MA.N1.1", RecommendationType.REMEDIATION),
            (Priority.MEDIUM, "CE1.MA.C1.1", RecommendationType.NEW),
            (Priority.LOW, "CE1.FR.L1.1", RecommendationType.PREREQUISITE),
            (Priority.LOW, "CE1.FR.L1.2", RecommendationType.PREREQUISITE),
            (Priority.LOW, "CE1.MA.N1.2", RecommendationType.PREREQUISITE),
        ]

    def test_unknown_level(self, recommender):
        with pytest.raises(NotFoundError):
            recommender.recommendations_for("learner-1", "CM2")


class TestLearningPath:
    def test_summary(self, recommender, set_level):
        set_level("learner-1", "CP.MA.N1.1", MasteryLevel.MASTERED)
        set_level("learner-1", "CP.MA.N1.2", MasteryLevel.IN_PROGRESS)

        path = recommender.learning_path("learner-1", "CP")

        assert path.summary.total_skills == 8
        assert path.summary.mastered == 1
        assert path.summary.in_progress == 1
        assert path.summary.not_started == 6
        assert path.summary.blocked == 0
        assert path.summary.overall_progress == 12.5

    def test_skill_views(self, recommender, set_level):
        set_level("learner-1", "CP.MA.N1.1", MasteryLevel.MASTERED)

        views = {v.skill_code: v for v in recommender.learning_path("learner-1", "CP").skills}

        assert views["CP.MA.N1.1"].mastery_level == MasteryLevel.MASTERED
        assert views["CP.MA.N1.1"].progress_percent == 95.0
        assert views["CP.MA.N1.1"].total_attempts == 10
        assert views["CP.FR.L1.1"].mastery_level == MasteryLevel.NOT_STARTED
        assert views["CP.FR.L1.1"].total_attempts == 0

    def test_blocked_counts(self, recommender, set_level):
        set_level("learner-1", "CP.MA.C1.1", MasteryLevel.MASTERED)

        path = recommender.learning_path("learner-1", "CE1")
        views = {v.skill_code: v for v in path.skills}

        assert path.summary.blocked == 4
        assert views["CE1.MA.C1.1"].is_blocked is False
        assert views["CE1.MA.N1.1"].blocking_prerequisites == ["CP.MA.N1.1", "CP.MA.N1.2"]
        assert path.summary.overall_progress == 0.0

    def test_next_review_from_card(self, recommender, clock):
        ReviewScheduler(clock=clock).schedule("learner-1", "CP.MA.N1.1", 4)

        views = {v.skill_code: v for v in recommender.learning_path("learner-1", "CP").skills}

        assert views["CP.MA.N1.1"].next_review_at == clock.now + timedelta(days=1)
        assert views["CP.MA.N1.2"].next_review_at is None

    def test_to_dict(self, recommender):
        data = recommender.learning_path("learner-1", "CP").to_dict()

        assert data["learner_id"] == "learner-1"
        assert data["level"] == "CP"
        assert len(data["skills"]) == 8
        assert len(data["recommendations"]) == 8
        assert data["summary"]["overall_progress"] == 0.0
        assert data["skills"][0]["mastery_level"] == "not_started"

    def test_unknown_level(self, recommender):
        with pytest.raises(NotFoundError):
            recommender.learning_path("learner-1", "CM2")
