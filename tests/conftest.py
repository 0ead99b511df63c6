"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test that touches the database gets its own temporary SQLite file.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from skillpath.adaptive.learning_engine import LearningEngine  # noqa: E402
from skillpath.config import Settings  # noqa: E402
from skillpath.core.models import AttemptOutcome, MasteryLevel  # noqa: E402
from skillpath.curriculum.registry import CurriculumRegistry  # noqa: E402
from skillpath.db.database import configure_engine, init_db, session_scope  # noqa: E402
from skillpath.db.models import SkillProgress  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full pipeline on SQLite)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 9, 2, 8, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def db_url(tmp_path):
    """SQLite URL in a per-test temporary directory."""
    return f"sqlite:///{tmp_path / 'skillpath-test.db'}"


@pytest.fixture
def db(db_url):
    """Configure the module engine on a fresh database with all tables."""
    engine = configure_engine(db_url, echo=False)
    init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    """Fixed clock starting 2024-09-02 08:00 UTC."""
    return FixedClock()


@pytest.fixture(scope="session")
def curriculum():
    """The bundled sample curriculum (CP and CE1)."""
    return CurriculumRegistry.load_default()


@pytest.fixture
def settings(db_url):
    """Settings with defaults, isolated from any local .env file."""
    return Settings(_env_file=None, database_url=db_url)


@pytest.fixture
def engine(db, curriculum, settings, clock):
    """LearningEngine wired to the temporary database and fixed clock."""
    return LearningEngine(curriculum=curriculum, settings=settings, clock=clock)


@pytest.fixture
def make_outcome():
    """Factory for AttemptOutcome with sensible defaults."""

    def _make(
        skill_code: str = "CP.MA.N1.1",
        learner_id: str = "learner-1",
        is_correct: bool = True,
        quality: float = 4,
        exercise_id: str = "ex-1",
        **kwargs,
    ) -> AttemptOutcome:
        return AttemptOutcome(
            learner_id=learner_id,
            exercise_id=exercise_id,
            skill_code=skill_code,
            is_correct=is_correct,
            quality=quality,
            **kwargs,
        )

    return _make


@pytest.fixture
def set_level(db):
    """Write a Progress row with the given mastery level directly."""

    def _set(learner_id: str, skill_code: str, level: MasteryLevel, needs_review: bool = False) -> None:
        with session_scope() as session:
            session.add(
                SkillProgress(
                    learner_id=learner_id,
                    skill_code=skill_code,
                    mastery_level=level.value,
                    progress_percent={"mastered": 95.0, "in_progress": 60.0}.get(level.value, 10.0),
                    total_attempts=10,
                    successful_attempts=6,
                    average_quality=3.5,
                    needs_review=needs_review,
                )
            )

    return _set
