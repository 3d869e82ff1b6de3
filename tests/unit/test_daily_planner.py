"""
Unit tests for the daily plan scheduler.

Tests cover:
- Scoring factors and phase multipliers
- Budget packing and the per-skill cap
- Phase input parsing and the optional burnout penalty
- Prerequisite filtering and ordering
- Determinism
"""

import math
from datetime import UTC, date, datetime, timedelta

import pytest

from atp_mastery.adaptive.daily_planner import DailyPlanScheduler, plan
from atp_mastery.core.models import (
    CandidateItem,
    ExamPhase,
    GateState,
    RecentActivity,
    Skill,
    SkillCoverage,
    TaskType,
)
from atp_mastery.core.tuning import EngineTuning, PlannerTuning


def item(item_id, skill_id, minutes, difficulty=3, modes=("practice",), tags=(), fmt="written"):
    return CandidateItem(
        item_id=item_id,
        format=fmt,
        difficulty=difficulty,
        estimated_minutes=minutes,
        skills=(SkillCoverage(skill_id, 1.0),),
        modes=modes,
        error_tags=tags,
    )


@pytest.fixture
def scheduler():
    return DailyPlanScheduler()


@pytest.fixture
def flat_skills():
    return [Skill(f"s{n}", "unit", exam_weight=0.3) for n in (1, 2, 3)]


class TestFactors:
    def test_learning_gain(self, scheduler, practiced_state):
        assert scheduler.learning_gain(None) == 1.0
        assert scheduler.learning_gain(practiced_state("a", p_mastery=0.7)) == pytest.approx(0.3)

    def test_retention_never_practiced(self, scheduler, today):
        assert scheduler.retention_gain(None, today) == 1.0

    def test_retention_overdue(self, scheduler, practiced_state, today):
        state = practiced_state("a", next_review_date=today - timedelta(days=3))
        assert scheduler.retention_gain(state, today) == pytest.approx(0.8)

    def test_retention_due_today(self, scheduler, practiced_state, today):
        state = practiced_state("a", next_review_date=today)
        assert scheduler.retention_gain(state, today) == pytest.approx(0.5)

    def test_retention_not_yet_due(self, scheduler, practiced_state, today):
        value = scheduler.retention_gain(practiced_state("a"), today)
        assert value == pytest.approx(0.5 * (1 - math.exp(-2 / 5)))
        assert value < 0.5

    def test_exam_roi(self, scheduler):
        assert scheduler.exam_roi(0.5, 2.0) == 0.25
        assert scheduler.exam_roi(0.5, 0.0) == 0.0

    def test_error_closure(self, scheduler):
        target = item("i", "a", 10, tags=("missing_prayer",))
        assert scheduler.error_closure({"missing_prayer", "wrong_forum"}, target) == 0.5
        assert scheduler.error_closure(set(), target) == 0.0


class TestPhaseMultiplier:
    def test_critical_boosts_exam_like_and_heavy_skills(self, scheduler):
        skill = Skill("a", "u", exam_weight=0.5)
        target = item("i", "a", 10)
        assert scheduler.phase_multiplier(ExamPhase.CRITICAL, skill, target, "timed", None) == pytest.approx(3.0)
        assert scheduler.phase_multiplier(ExamPhase.CRITICAL, skill, target, "practice", None) == pytest.approx(2.0)

    def test_distant_boosts_foundations(self, scheduler):
        skill = Skill("a", "u", exam_weight=0.5)
        easy = item("i", "a", 10, difficulty=2)
        hard = item("j", "a", 10, difficulty=4)
        assert scheduler.phase_multiplier(ExamPhase.DISTANT, skill, easy, "practice", None) == 1.25
        assert scheduler.phase_multiplier(ExamPhase.DISTANT, skill, hard, "practice", None) == 1.0

    def test_approaching_is_neutral(self, scheduler):
        skill = Skill("a", "u", exam_weight=0.9)
        multiplier = scheduler.phase_multiplier(ExamPhase.APPROACHING, skill, item("i", "a", 10), "timed", None)
        assert multiplier == 1.0

    def test_slipping_verified_skill_resurfaces(self, scheduler, practiced_state):
        skill = Skill("a", "u", exam_weight=0.5)
        slipping = practiced_state("a", p_mastery=0.6, gate=GateState.EXAM_READY)
        holding = practiced_state("a", p_mastery=0.9, gate=GateState.EXAM_READY)
        assert scheduler.phase_multiplier(None, skill, item("i", "a", 10), "practice", slipping) == 1.25
        assert scheduler.phase_multiplier(None, skill, item("i", "a", 10), "practice", holding) == 1.0


class TestBudget:
    def test_skips_items_that_do_not_fit(self, flat_skills, today):
        items = [item("i1", "s1", 20), item("i2", "s2", 45), item("i3", "s3", 20)]
        debts = {"s1": 1.0, "s2": 0.8, "s3": 0.5}

        result = plan(60, None, flat_skills, {}, debts, items, today=today)

        assert [t.item_id for t in result.tasks] == ["i1", "i3"]
        assert result.total_minutes == 40

    def test_never_exceeds_budget(self, sample_skills, sample_items, practiced_state, today):
        states = [practiced_state("civil-jurisdiction")]
        for budget in (15, 20, 35, 50, 64, 65, 200):
            result = plan(budget, ExamPhase.APPROACHING, sample_skills, states, {}, sample_items, today=today)
            assert result.total_minutes <= budget

    def test_zero_budget_gives_empty_plan(self, sample_skills, sample_items, today):
        result = plan(0, None, sample_skills, {}, {}, sample_items, today=today)
        assert result.is_empty
        assert result.budget_minutes == 0

    def test_nothing_fits(self, sample_skills, sample_items, today):
        result = plan(10, None, sample_skills, {}, {}, sample_items, today=today)
        assert result.tasks == ()

    def test_no_items(self, sample_skills, today):
        assert plan(60, None, sample_skills, {}, {}, [], today=today).is_empty

    def test_per_skill_cap(self, flat_skills, today):
        items = [item(f"i{n}", "s1", 10) for n in range(4)]
        result = plan(120, None, flat_skills, {}, {}, items, today=today)
        assert len(result.tasks) == 2

    def test_one_task_per_item(self, flat_skills, today):
        items = [item("i1", "s1", 10, modes=("practice", "timed", "exam_sim"))]
        result = plan(120, ExamPhase.CRITICAL, flat_skills, {}, {}, items, today=today)

        assert len(result.tasks) == 1
        # timed and exam_sim score equally under critical; ties fall to mode name
        assert result.tasks[0].mode == "exam_sim"

    def test_capped_skill_still_packs_smaller_item(self, flat_skills, today):
        items = [
            item("big1", "s1", 50, tags=("t1",)),
            item("big2", "s1", 50, tags=("t1",)),
            item("small", "s1", 20),
        ]
        result = plan(30, None, flat_skills, {}, {}, items, {"s1": ["t1"]}, today=today)

        assert [t.item_id for t in result.tasks] == ["small"]

    def test_inactive_items_skipped(self, flat_skills, today):
        retired = CandidateItem("i1", "written", 3, 10, (SkillCoverage("s1", 1.0),), is_active=False)
        assert plan(60, None, flat_skills, {}, {}, [retired], today=today).is_empty


class TestPrerequisites:
    def test_unmet_prerequisite_filters_skill(self, sample_skills, sample_items, today):
        result = plan(120, None, sample_skills, {}, {}, sample_items, today=today)
        assert "civil-pleadings" not in {t.skill_id for t in result.tasks}

    def test_met_prerequisite_admits_skill(self, sample_skills, sample_items, practiced_state, today):
        states = [practiced_state("civil-jurisdiction")]
        result = plan(120, None, sample_skills, states, {}, sample_items, today=today)
        assert "civil-pleadings" in {t.skill_id for t in result.tasks}

    def test_prerequisites_come_first(self, sample_skills, sample_items, practiced_state, today):
        states = [practiced_state("civil-jurisdiction", p_mastery=0.9)]
        debts = {"civil-pleadings": 1.0, "criminal-bail": 0.5, "civil-jurisdiction": 0.1}

        result = plan(120, None, sample_skills, states, debts, sample_items, today=today)
        order = [t.skill_id for t in result.tasks]

        assert result.tasks[0].priority_score < max(t.priority_score for t in result.tasks)
        assert order.index("civil-jurisdiction") < order.index("civil-pleadings")
        assert [t.order for t in result.tasks] == list(range(1, len(order) + 1))


class TestTaskDetails:
    def test_breakdown_and_rationale(self, sample_skills, sample_items, today):
        result = plan(
            60,
            ExamPhase.DISTANT,
            sample_skills,
            {},
            {"civil-jurisdiction": 0.4, "criminal-bail": 0.2},
            sample_items,
            today=today,
        )
        task = result.tasks[0]

        assert task.skill_id == "civil-jurisdiction"
        assert task.breakdown.phase_multiplier == 1.25
        assert task.breakdown.composite == pytest.approx(task.priority_score)
        assert "Builds foundations" in task.rationale
        assert task.task_type == TaskType.RETENTION_REVIEW
        assert len(task.why_selected) == 3
        values = [abs(w.value) for w in task.why_selected]
        assert values == sorted(values, reverse=True)

    def test_error_remediation(self, sample_skills, sample_items, practiced_state, today):
        states = [
            practiced_state("civil-jurisdiction"),
            practiced_state("civil-pleadings", p_mastery=0.5),
        ]
        result = plan(
            30,
            None,
            sample_skills,
            states,
            {},
            [sample_items[1]],
            recent_error_tags={"civil-pleadings": ["missing_prayer"]},
            today=today,
        )
        task = result.tasks[0]
        assert task.breakdown.error_closure == 1.0
        assert task.task_type == TaskType.ERROR_REMEDIATION
        assert "recurring error" in task.rationale

    def test_timed_proof_for_near_ready_skill(self, flat_skills, practiced_state, today):
        states = [practiced_state("s1", p_mastery=0.9)]
        items = [item("i1", "s1", 10, modes=("timed",))]
        task = plan(60, None, flat_skills, states, {}, items, today=today).tasks[0]
        assert task.task_type == TaskType.TIMED_PROOF


class TestDeterminism:
    def test_same_inputs_same_plan(self, sample_skills, sample_items, practiced_state, today):
        states = [practiced_state("civil-jurisdiction")]
        debts = {"civil-pleadings": 0.7, "criminal-bail": 0.7}
        first = plan(45, ExamPhase.CRITICAL, sample_skills, states, debts, sample_items, today=today)
        second = plan(45, ExamPhase.CRITICAL, sample_skills, states, debts, sample_items, today=today)
        assert first == second

    def test_input_order_does_not_matter(self, sample_skills, sample_items, practiced_state, today):
        states = [practiced_state("civil-jurisdiction")]
        forward = plan(60, None, sample_skills, states, {}, sample_items, today=today)
        backward = plan(60, None, list(reversed(sample_skills)), states, {}, list(reversed(sample_items)), today=today)
        assert forward.tasks == backward.tasks

    def test_plan_date_defaults_and_user(self, sample_skills, sample_items):
        result = plan(60, None, sample_skills, {}, {}, sample_items, user_id="user-1")
        assert result.plan_date == date.today()
        assert result.user_id == "user-1"


class TestPhaseInput:
    def test_phase_given_as_string(self, flat_skills, today):
        result = plan(30, "CRITICAL", flat_skills, {}, {}, [item("i1", "s1", 20)], today=today)
        assert result.exam_phase == ExamPhase.CRITICAL

    def test_unknown_phase_plans_neutrally(self, flat_skills, today):
        items = [item("i1", "s1", 20)]
        result = plan(30, "final_week", flat_skills, {}, {}, items, today=today)
        neutral = plan(30, None, flat_skills, {}, {}, items, today=today)

        assert result.exam_phase is None
        assert result.tasks == neutral.tasks
        assert result.tasks[0].breakdown.phase_multiplier == 1.0


class TestBurnoutPenalty:
    NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    @pytest.fixture
    def burnout_tuning(self):
        return EngineTuning(planner=PlannerTuning(weight_burnout_penalty=0.5))

    def activity(self, skill_id, minutes, hours_ago=1, fmt="oral"):
        return RecentActivity(skill_id, fmt, self.NOW - timedelta(hours=hours_ago), minutes)

    def test_penalty_parts(self, scheduler):
        activities = [self.activity("s1", 90, fmt="written"), self.activity("s2", 30, fmt="written")]
        # 90 min on s1 -> 0.3, two written activities -> 0.2
        assert scheduler.burnout_penalty("s1", "written", activities) == pytest.approx(0.5)
        assert scheduler.burnout_penalty("s3", "oral", activities) == 0.0

    def test_penalty_caps(self, scheduler):
        activities = [self.activity("s1", 300, fmt="written") for _ in range(5)]
        assert scheduler.burnout_penalty("s1", "written", activities) == pytest.approx(0.8)

    def test_recent_skill_yields_to_fresh_one(self, flat_skills, today, burnout_tuning):
        items = [item("i1", "s1", 10), item("i2", "s2", 10)]
        activities = [self.activity("s1", 60)]

        result = plan(
            10, None, flat_skills, {}, {}, items, today=today, tuning=burnout_tuning,
            recent_activities=activities, now=self.NOW,
        )

        assert [t.skill_id for t in result.tasks] == ["s2"]
        assert result.tasks[0].breakdown.burnout_penalty == 0.0

    def test_zero_weight_ignores_activity(self, flat_skills, today):
        items = [item("i1", "s1", 10), item("i2", "s2", 10)]
        result = plan(
            10, None, flat_skills, {}, {}, items, today=today,
            recent_activities=[self.activity("s1", 60)], now=self.NOW,
        )
        assert [t.skill_id for t in result.tasks] == ["s1"]

    def test_activity_outside_window_ignored(self, flat_skills, today, burnout_tuning):
        items = [item("i1", "s1", 10), item("i2", "s2", 10)]
        result = plan(
            10, None, flat_skills, {}, {}, items, today=today, tuning=burnout_tuning,
            recent_activities=[self.activity("s1", 60, hours_ago=30)], now=self.NOW,
        )
        assert [t.skill_id for t in result.tasks] == ["s1"]
