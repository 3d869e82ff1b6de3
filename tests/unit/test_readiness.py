"""
Unit tests for the readiness rollup.
"""

import pytest

from atp_mastery.adaptive.readiness import compute_readiness
from atp_mastery.core.mastery import MasteryLevel
from atp_mastery.core.models import GateState, Skill


class TestComputeReadiness:
    def test_weighted_by_exam_weight(self, sample_skills, practiced_state):
        states = [
            practiced_state("civil-jurisdiction", p_mastery=0.9),
            practiced_state("civil-pleadings", p_mastery=0.5),
        ]
        report = compute_readiness(sample_skills, states)

        # (0.9*0.3 + 0.5*0.5 + 0*0.2) / 1.0
        assert report.overall == pytest.approx(0.52)
        assert report.level == MasteryLevel.DEVELOPING
        assert report.by_unit["atp-101"] == 0.0
        assert report.by_format["oral"] == 0.0
        assert report.by_format["written"] == pytest.approx((0.27 + 0.25) / 0.8)
        assert "mcq" not in report.by_format

    def test_weakest_first(self, sample_skills, practiced_state):
        states = {"criminal-bail": practiced_state("criminal-bail", p_mastery=0.95)}
        report = compute_readiness(sample_skills, states, weakest_count=2)
        assert [row.skill_id for row in report.weakest] == ["civil-pleadings", "civil-jurisdiction"]

    def test_verified_fraction(self, sample_skills, practiced_state):
        states = [practiced_state("civil-pleadings", p_mastery=0.9, gate=GateState.EXAM_READY)]
        report = compute_readiness(sample_skills, states)
        assert report.verified_count == 1
        assert report.verified_fraction == pytest.approx(1 / 3)

    def test_unweighted_curriculum_uses_plain_mean(self, practiced_state):
        skills = [Skill("a", "u", 0.0), Skill("b", "u", 0.0)]
        states = [practiced_state("a", p_mastery=0.4), practiced_state("b", p_mastery=0.8)]
        assert compute_readiness(skills, states).overall == pytest.approx(0.6)

    def test_empty(self):
        report = compute_readiness([], {})
        assert report.overall == 0.0
        assert report.verified_fraction == 0.0
        assert report.level == MasteryLevel.NOT_STARTED
