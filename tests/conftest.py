"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from atp_mastery.core.models import (  # noqa: E402
    Attempt,
    CandidateItem,
    MasteryState,
    Skill,
    SkillCoverage,
)
from atp_mastery.core.tuning import DEFAULT_TUNING  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
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


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def tuning():
    return DEFAULT_TUNING


@pytest.fixture
def now():
    """Fixed reference time so time-windowed rules are reproducible."""
    return datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def today(now):
    return now.date()


@pytest.fixture
def make_attempt(now):
    """Factory for attempts on a single skill, offset in hours from `now`."""
    counter = {"n": 0}

    def _make(
        skill_id="civil-pleadings",
        score=0.8,
        mode="timed",
        hours_ago=0.0,
        error_tags=(),
        item_format="written",
        difficulty=3,
        user_id="user-1",
        weight=1.0,
    ) -> Attempt:
        counter["n"] += 1
        return Attempt(
            attempt_id=f"att-{counter['n']:03d}",
            user_id=user_id,
            item_id=f"item-{counter['n']:03d}",
            format=item_format,
            mode=mode,
            score_norm=score,
            submitted_at=now - timedelta(hours=hours_ago),
            skills=(SkillCoverage(skill_id, weight),),
            error_tags=tuple(error_tags),
            difficulty=difficulty,
        )

    return _make


@pytest.fixture
def sample_skills():
    """Small curriculum: civil procedure foundations feeding pleadings."""
    return [
        Skill(
            skill_id="civil-jurisdiction",
            unit_id="atp-100",
            exam_weight=0.3,
            difficulty=2,
            formats=("written", "mcq"),
            is_core=True,
            name="Jurisdiction of courts",
        ),
        Skill(
            skill_id="civil-pleadings",
            unit_id="atp-100",
            exam_weight=0.5,
            difficulty=3,
            formats=("written", "drafting"),
            is_core=True,
            prerequisites=("civil-jurisdiction",),
            name="Drafting pleadings",
        ),
        Skill(
            skill_id="criminal-bail",
            unit_id="atp-101",
            exam_weight=0.2,
            difficulty=2,
            formats=("oral",),
            name="Bail applications",
        ),
    ]


@pytest.fixture
def sample_items():
    return [
        CandidateItem(
            item_id="q-jurisdiction-1",
            format="written",
            difficulty=2,
            estimated_minutes=20,
            skills=(SkillCoverage("civil-jurisdiction", 1.0),),
        ),
        CandidateItem(
            item_id="q-pleadings-1",
            format="drafting",
            difficulty=3,
            estimated_minutes=30,
            skills=(SkillCoverage("civil-pleadings", 1.0),),
            error_tags=("missing_prayer",),
        ),
        CandidateItem(
            item_id="q-bail-1",
            format="oral",
            difficulty=2,
            estimated_minutes=15,
            skills=(SkillCoverage("criminal-bail", 1.0),),
        ),
    ]


@pytest.fixture
def practiced_state(now):
    def _make(skill_id, p_mastery=0.5, attempts=1, **overrides) -> MasteryState:
        values = dict(
            user_id="user-1",
            skill_id=skill_id,
            p_mastery=p_mastery,
            attempt_count=attempts,
            last_practiced_at=now - timedelta(days=2),
            next_review_date=date(2026, 3, 10),
        )
        values.update(overrides)
        return MasteryState(**values)

    return _make
