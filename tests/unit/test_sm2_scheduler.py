"""
Unit tests for the SM-2 scheduler.

Tests:
- Easiness factor update and its 1.3 floor
- Interval progression (1, 6, round(prev * EF))
- Lapse handling
- Persistent review cards: defaults, replay guard, due queries
"""

from datetime import timedelta

import pytest

from skillpath.config import Settings
from skillpath.core.errors import ValidationError
from skillpath.learning.scheduler import ReviewScheduler, SM2Config, SM2Scheduler, SM2State, _round_half_up


@pytest.fixture
def sm2():
    return SM2Scheduler()


@pytest.fixture
def fresh_state(clock):
    return SM2Scheduler().initial_state(clock())


class TestEasinessFactor:
    """Tests for the EF update formula."""

    def test_perfect_recall_adds_point_one(self, sm2, fresh_state, clock):
        state = sm2.calculate_next_review(fresh_state, 5, clock())
        assert state.easiness_factor == pytest.approx(2.6)

    def test_quality_four_keeps_ef(self, sm2, fresh_state, clock):
        state = sm2.calculate_next_review(fresh_state, 4, clock())
        assert state.easiness_factor == pytest.approx(2.5)

    def test_quality_three_lowers_ef(self, sm2, fresh_state, clock):
        state = sm2.calculate_next_review(fresh_state, 3, clock())
        # 2.5 + (0.1 - 2 * (0.08 + 2 * 0.02)) = 2.36
        assert state.easiness_factor == pytest.approx(2.36)

    def test_floor_under_repeated_blackouts(self, sm2, fresh_state, clock):
        """EF never drops below 1.3, however many q=0 reviews happen."""
        state = fresh_state
        for _ in range(20):
            state = sm2.calculate_next_review(state, 0, clock())
            assert state.easiness_factor >= 1.3
        assert state.easiness_factor == pytest.approx(1.3)

    def test_custom_floor(self, clock):
        sm2 = SM2Scheduler(SM2Config(minimum_easiness=2.0))
        state = SM2State(easiness_factor=2.1, repetition_number=0, interval_days=1)
        assert sm2.calculate_next_review(state, 0, clock()).easiness_factor == 2.0


class TestIntervals:
    """Tests for repetition and interval progression."""

    def test_lapse_resets_repetition(self, sm2, clock):
        """A fresh card graded 2 stays at repetition 0 with a one day interval."""
        state = sm2.calculate_next_review(sm2.initial_state(clock()), 2, clock())

        assert state.repetition_number == 0
        assert state.interval_days == 1
        assert state.next_review_at == clock() + timedelta(days=1)

    def test_lapse_after_progress(self, sm2, clock):
        state = SM2State(easiness_factor=2.5, repetition_number=4, interval_days=40)
        state = sm2.calculate_next_review(state, 1, clock())
        assert (state.repetition_number, state.interval_days) == (0, 1)

    def test_five_perfect_reviews(self, sm2, fresh_state, clock):
        """Repetitions 1..5 with intervals 1, 6, 17, 49, 147."""
        state = fresh_state
        repetitions, intervals = [], []
        for _ in range(5):
            state = sm2.calculate_next_review(state, 5, clock())
            repetitions.append(state.repetition_number)
            intervals.append(state.interval_days)

        assert repetitions == [1, 2, 3, 4, 5]
        assert intervals == [1, 6, 17, 49, 147]

    def test_intervals_grow_monotonically_at_passing_grade(self, sm2, fresh_state, clock):
        state = fresh_state
        previous = 0
        for _ in range(8):
            state = sm2.calculate_next_review(state, 3, clock())
            assert state.interval_days >= previous
            assert state.easiness_factor >= 1.3
            previous = state.interval_days

    def test_intervals_round_half_up(self):
        assert _round_half_up(12.5) == 13
        assert _round_half_up(2.5) == 3
        assert _round_half_up(16.8) == 17
        assert _round_half_up(49.3) == 49

    def test_long_streak_is_capped(self, fresh_state, clock):
        sm2 = SM2Scheduler(SM2Config(maximum_interval=365))
        state = fresh_state
        for _ in range(30):
            state = sm2.calculate_next_review(state, 5, clock())

        assert state.interval_days == 365
        assert state.next_review_at == clock() + timedelta(days=365)

    def test_last_review_is_now(self, sm2, fresh_state, clock):
        state = sm2.calculate_next_review(fresh_state, 4, clock())
        assert state.last_review_at == clock()


class TestConfigFromSettings:
    def test_settings_knobs(self):
        settings = Settings(_env_file=None, sm2_second_interval=4, sm2_minimum_easiness=1.5)
        config = SM2Config.from_settings(settings)
        assert config.second_interval == 4
        assert config.minimum_easiness == 1.5
        assert config.initial_easiness == 2.5


class TestReviewScheduler:
    """Tests for persisted review cards."""

    @pytest.fixture
    def scheduler(self, db, clock):
        return ReviewScheduler(clock=clock)

    def test_card_created_with_defaults(self, scheduler, clock):
        card = scheduler.get_or_create_card("learner-1", "CP.MA.N1.1")

        assert card.easiness_factor == 2.5
        assert card.repetition_number == 0
        assert card.interval_days == 1
        assert card.next_review_at == clock() + timedelta(days=1)
        assert card.last_review_at == clock()

    def test_get_or_create_is_stable(self, scheduler):
        first = scheduler.get_or_create_card("learner-1", "CP.MA.N1.1")
        second = scheduler.get_or_create_card("learner-1", "CP.MA.N1.1")
        assert first.next_review_at == second.next_review_at

    def test_first_low_quality_outcome(self, scheduler, clock):
        result = scheduler.schedule("learner-1", "CP.MA.N1.1", 2)

        assert result.repetition_number == 0
        assert result.interval_days == 1
        assert result.next_review_at == clock() + timedelta(days=1)
        assert result.last_quality == 2

    def test_schedule_persists(self, scheduler):
        scheduler.schedule("learner-1", "CP.MA.N1.1", 5)
        scheduler.schedule("learner-1", "CP.MA.N1.1", 5)

        card = scheduler.get_card("learner-1", "CP.MA.N1.1")
        assert card.repetition_number == 2
        assert card.interval_days == 6
        assert card.easiness_factor == pytest.approx(2.7)

    def test_replayed_outcome_is_not_applied_twice(self, scheduler):
        first = scheduler.schedule("learner-1", "CP.MA.N1.1", 5, outcome_id=7)
        replay = scheduler.schedule("learner-1", "CP.MA.N1.1", 5, outcome_id=7)

        assert replay.repetition_number == first.repetition_number == 1
        assert replay.easiness_factor == first.easiness_factor

    def test_invalid_quality_rejected(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.schedule("learner-1", "CP.MA.N1.1", 5.5)
        assert scheduler.get_card("learner-1", "CP.MA.N1.1") is None

    def test_get_card_missing(self, scheduler):
        assert scheduler.get_card("nobody", "CP.MA.N1.1") is None


class TestDueCards:
    def test_only_strictly_past_due_soonest_first(self, db, clock):
        scheduler = ReviewScheduler(clock=clock)
        scheduler.schedule("learner-1", "CP.MA.N1.1", 5)  # due in 1 day
        scheduler.schedule("learner-1", "CP.MA.N1.2", 5)
        scheduler.schedule("learner-1", "CP.MA.N1.2", 5)  # due in 6 days
        scheduler.schedule("learner-2", "CP.MA.N1.1", 5)

        # Exactly at the due time: not yet due
        clock.advance(days=1)
        assert scheduler.due_cards("learner-1") == []

        clock.advance(days=10)
        due = scheduler.due_cards("learner-1")
        assert [card.skill_code for card in due] == ["CP.MA.N1.1", "CP.MA.N1.2"]

    def test_limit(self, db, clock):
        scheduler = ReviewScheduler(clock=clock)
        for code in ("CP.MA.N1.1", "CP.MA.N1.2", "CP.MA.N1.3"):
            scheduler.schedule("learner-1", code, 4)
        clock.advance(days=2)

        assert len(scheduler.due_cards("learner-1", limit=2)) == 2
