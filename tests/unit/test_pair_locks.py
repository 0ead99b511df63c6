"""
Unit tests for the per (learner, skill) lock registry.
"""

import threading
import time

import pytest

from skillpath.core.errors import ConcurrencyConflict
from skillpath.learning.pair_locks import PairLockRegistry


class TestPairLockRegistry:
    def test_same_pair_is_serialized(self):
        locks = PairLockRegistry()
        active = 0
        peak = 0
        guard = threading.Lock()

        def work():
            nonlocal active, peak
            with locks.hold("learner-1", "CP.MA.N1.1"):
                with guard:
                    active += 1
                    peak = max(peak, active)
                time.sleep(0.01)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert peak == 1

    def test_different_pairs_do_not_block(self):
        locks = PairLockRegistry(timeout_seconds=0.5)
        with locks.hold("learner-1", "CP.MA.N1.1"):
            with locks.hold("learner-1", "CP.MA.N1.2"):
                with locks.hold("learner-2", "CP.MA.N1.1"):
                    assert len(locks) == 3

    def test_timeout_raises_conflict(self):
        locks = PairLockRegistry(timeout_seconds=0.05)
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("learner-1", "CP.MA.N1.1"):
                holding.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        holding.wait(2)
        try:
            with pytest.raises(ConcurrencyConflict) as exc:
                with locks.hold("learner-1", "CP.MA.N1.1"):
                    pass
            assert exc.value.learner_id == "learner-1"
            assert exc.value.skill_code == "CP.MA.N1.1"
        finally:
            release.set()
            thread.join()

    def test_entries_dropped_when_unused(self):
        locks = PairLockRegistry()
        with locks.hold("learner-1", "CP.MA.N1.1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_lock_released_on_error(self):
        locks = PairLockRegistry(timeout_seconds=0.05)
        with pytest.raises(RuntimeError):
            with locks.hold("learner-1", "CP.MA.N1.1"):
                raise RuntimeError("boom")

        with locks.hold("learner-1", "CP.MA.N1.1"):
            pass
