"""
Learning: per-attempt write path.

This package contains the stages that run for every practice attempt:
- outcome_recorder: append outcomes, count error tags
- mastery_estimator: recompute progress from the recent outcome window
- scheduler: SM-2 review cards
- pair_locks: per (learner, skill) serialization
"""

from skillpath.learning.mastery_estimator import MasteryEstimator, MasteryPolicy, compute_snapshot
from skillpath.learning.outcome_recorder import OutcomeRecorder, validate_quality
from skillpath.learning.pair_locks import PairLockRegistry
from skillpath.learning.scheduler import ReviewScheduler, SM2Config, SM2Scheduler, SM2State

__all__ = [
    # Recorder
    "OutcomeRecorder",
    "validate_quality",
    # Mastery
    "MasteryEstimator",
    "MasteryPolicy",
    "compute_snapshot",
    # Scheduler
    "ReviewScheduler",
    "SM2Config",
    "SM2Scheduler",
    "SM2State",
    # Concurrency
    "PairLockRegistry",
]
