"""
Daily Plan Scheduler.

Selects and orders a day's tasks under a time budget.

Scoring:
    score(c) = (w_l*L + w_r*R + w_e*E + w_c*C - w_b*B) * phase_multiplier

Where, for candidate c = (skill, item, mode):
    L = learning gain     1 - pMastery
    R = retention gain    skill-level review urgency (due/overdue > not due)
    E = exam ROI          coverage debt / largest coverage debt among eligible skills
    C = error closure     share of the skill's unresolved error tags the item targets
    B = burnout penalty   recent load on the same skill and format (w_b defaults to 0)

Phase multiplier:
    critical  timed/exam_sim modes and high exam-weight skills boosted
    distant   foundational (low difficulty) items boosted
    any       verified skills whose pMastery fell below the re-surface threshold boosted

Skills whose prerequisites have no attempt yet are removed before scoring.
Candidates are packed best-score-first, one per item and at most
max_tasks_per_skill per skill, skipping any that would overflow the remaining
budget so smaller candidates further down can still fit.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping

from loguru import logger

from atp_mastery.core.mastery import as_utc, clamp01, to_date, utc_now
from atp_mastery.core.models import (
    CandidateItem,
    CoverageDebt,
    DailyPlan,
    ExamPhase,
    MasteryState,
    PlanTask,
    RecentActivity,
    ScoreBreakdown,
    Skill,
    TaskType,
    WhySelected,
    enum_value,
)
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning

EXAM_LIKE = {"timed", "exam_sim"}


@dataclass(frozen=True)
class _Candidate:
    skill: Skill
    item: CandidateItem
    mode: str
    state: MasteryState | None
    breakdown: ScoreBreakdown
    days_since_practice: int | None

    @property
    def score(self) -> float:
        return self.breakdown.composite

    def sort_key(self) -> tuple:
        return (
            -self.score,
            -self.skill.exam_weight,
            self.item.difficulty,
            self.item.estimated_minutes,
            self.skill.skill_id,
            self.item.item_id,
            self.mode,
        )


class DailyPlanScheduler:
    """
    Builds a DailyPlan from explicit, already-resolved inputs.

    Usage:
        scheduler = DailyPlanScheduler(tuning)
        plan = scheduler.plan(60, ExamPhase.APPROACHING, skills, states, debts, items, tags)
    """

    def __init__(self, tuning: EngineTuning = DEFAULT_TUNING):
        self.tuning = tuning
        self.config = tuning.planner

    # =========================================================================
    # Public API
    # =========================================================================

    def plan(
        self,
        budget_minutes: int,
        exam_phase: ExamPhase | str | None,
        skills: Iterable[Skill],
        mastery_states: Mapping[str, MasteryState] | Iterable[MasteryState],
        coverage_debts: Mapping[str, CoverageDebt | float] | Iterable[CoverageDebt],
        available_items: Iterable[CandidateItem],
        recent_error_tags: Mapping[str, Iterable[str]] | None = None,
        today: date | None = None,
        user_id: str | None = None,
        recent_activities: Iterable[RecentActivity] | None = None,
        now: datetime | None = None,
    ) -> DailyPlan:
        """
        Select and order today's tasks.

        Args:
            budget_minutes: Time available today
            exam_phase: Current exam phase (None when no exam date is set)
            skills: Curriculum skills
            mastery_states: The user's states (mapping by skill id or iterable)
            coverage_debts: Debt per skill (mapping by skill id or iterable)
            available_items: Candidate items from the content store
            recent_error_tags: Unresolved error tags per skill
            today: Plan date (defaults to today)
            user_id: Owner of the plan
            recent_activities: Practice in the burnout window (only read when
                weight_burnout_penalty is non-zero)
            now: Reference time for the burnout window (defaults to UTC now)

        Returns:
            DailyPlan; empty when nothing fits the budget
        """
        today = today or date.today()
        phase = _parse_phase(exam_phase)
        skills_by_id = {skill.skill_id: skill for skill in skills}
        states = _by_skill(mastery_states)
        debts = _debt_values(coverage_debts)
        error_tags = {k: set(v) for k, v in (recent_error_tags or {}).items()}
        activities = self._recent(recent_activities, now)

        empty = DailyPlan(
            plan_date=today, budget_minutes=max(0, budget_minutes), exam_phase=phase, user_id=user_id
        )
        if budget_minutes <= 0:
            logger.debug("No time budget; returning empty plan")
            return empty

        eligible = {
            skill_id
            for skill_id, skill in skills_by_id.items()
            if self.prerequisites_met(skill, states)
        }
        max_debt = max((debts.get(skill_id, 0.0) for skill_id in eligible), default=0.0)

        candidates = self._build_candidates(
            skills_by_id, eligible, states, debts, max_debt, available_items, error_tags, phase, today, activities
        )
        selected = self._pack(candidates, budget_minutes)

        if not selected:
            logger.debug(f"No candidate fits a {budget_minutes} minute budget")
            return empty

        ordered = self._order_by_prerequisites(selected, skills_by_id)
        tasks = tuple(
            self._to_task(order, candidate, phase)
            for order, candidate in enumerate(ordered, start=1)
        )

        daily_plan = DailyPlan(
            plan_date=today,
            budget_minutes=budget_minutes,
            exam_phase=phase,
            tasks=tasks,
            user_id=user_id,
        )
        logger.debug(
            f"Planned {len(tasks)} tasks ({daily_plan.total_minutes}/{budget_minutes} min) "
            f"from {len(candidates)} candidates"
        )
        return daily_plan

    @staticmethod
    def prerequisites_met(skill: Skill, states: Mapping[str, MasteryState]) -> bool:
        """Every prerequisite has at least one completed attempt."""
        for prerequisite in skill.prerequisites:
            state = states.get(prerequisite)
            if state is None or state.attempt_count < 1:
                return False
        return True

    # =========================================================================
    # Factors
    # =========================================================================

    def learning_gain(self, state: MasteryState | None) -> float:
        p = state.p_mastery if state is not None else self.tuning.mastery.default_p_mastery
        return clamp01(1.0 - p)

    def retention_gain(self, state: MasteryState | None, today: date) -> float:
        """
        Skill-level review urgency.

        Never practiced: 1.0. Due or overdue: 0.5 plus 0.1 per day overdue.
        Not yet due: half the forgetting curve, so it stays below any due skill.
        """
        if state is None or state.last_practiced_at is None:
            return 1.0

        days_since = max(0, (today - to_date(state.last_practiced_at)).days)
        stability = max(state.stability, self.tuning.mastery.min_stability)
        forgetting = 1.0 - math.exp(-days_since / (stability * 5.0))

        if state.next_review_date is None:
            return clamp01(forgetting)

        days_overdue = (today - state.next_review_date).days
        if days_overdue >= 0:
            return min(1.0, 0.5 + 0.1 * days_overdue)
        return clamp01(0.5 * forgetting)

    @staticmethod
    def exam_roi(debt: float, max_debt: float) -> float:
        if max_debt <= 0:
            return 0.0
        return clamp01(debt / max_debt)

    @staticmethod
    def error_closure(unresolved_tags: set[str], item: CandidateItem) -> float:
        if not unresolved_tags:
            return 0.0
        return len(unresolved_tags & set(item.error_tags)) / len(unresolved_tags)

    @staticmethod
    def burnout_penalty(skill_id: str, item_format: str, activities: Iterable[RecentActivity]) -> float:
        """
        Load already placed on a skill and a format inside the burnout window.

        Skill part: 0.2 per hour spent on the same skill, capped at 0.5.
        Format part: 0.1 per activity in the same format, capped at 0.3.
        """
        skill_minutes = 0.0
        same_format = 0
        for activity in activities:
            if activity.skill_id == skill_id:
                skill_minutes += activity.minutes
            if str(enum_value(activity.item_format)) == item_format:
                same_format += 1
        return min(0.5, skill_minutes / 60.0 * 0.2) + min(0.3, same_format * 0.1)

    def phase_multiplier(
        self,
        phase: ExamPhase | None,
        skill: Skill,
        item: CandidateItem,
        mode: str,
        state: MasteryState | None,
    ) -> float:
        multiplier = 1.0
        if phase == ExamPhase.CRITICAL:
            if mode in EXAM_LIKE:
                multiplier *= 1.0 + self.config.critical_mode_boost
            multiplier *= 1.0 + clamp01(skill.exam_weight) * self.config.critical_exam_weight_boost
        elif phase == ExamPhase.DISTANT:
            if item.difficulty <= self.config.foundation_max_difficulty:
                multiplier *= 1.0 + self.config.distant_foundation_boost

        if state is not None and state.is_verified and state.p_mastery < self.config.resurface_threshold:
            multiplier *= 1.0 + self.config.resurface_boost
        return multiplier

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _recent(
        self,
        activities: Iterable[RecentActivity] | None,
        now: datetime | None,
    ) -> list[RecentActivity]:
        if not activities or self.config.weight_burnout_penalty == 0:
            return []
        cutoff = as_utc(now or utc_now()) - timedelta(hours=self.config.burnout_window_hours)
        return [a for a in activities if as_utc(a.occurred_at) >= cutoff]

    def _build_candidates(
        self,
        skills_by_id: dict[str, Skill],
        eligible: set[str],
        states: Mapping[str, MasteryState],
        debts: Mapping[str, float],
        max_debt: float,
        items: Iterable[CandidateItem],
        error_tags: Mapping[str, set[str]],
        phase: ExamPhase | None,
        today: date,
        activities: list[RecentActivity],
    ) -> list[_Candidate]:
        weights = self.config.weights
        candidates: list[_Candidate] = []

        for item in items:
            if not item.is_active or item.estimated_minutes <= 0:
                continue
            for coverage in item.skills:
                skill = skills_by_id.get(coverage.skill_id)
                if skill is None or coverage.weight <= 0 or skill.skill_id not in eligible:
                    continue

                state = states.get(skill.skill_id)
                learning = self.learning_gain(state)
                retention = self.retention_gain(state, today)
                roi = self.exam_roi(debts.get(skill.skill_id, 0.0), max_debt)
                closure = self.error_closure(error_tags.get(skill.skill_id, set()), item)
                base = (
                    weights["learning_gain"] * learning
                    + weights["retention_gain"] * retention
                    + weights["exam_roi"] * roi
                    + weights["error_closure"] * closure
                )
                burnout = self.burnout_penalty(skill.skill_id, str(enum_value(item.format)), activities)
                base -= self.config.weight_burnout_penalty * burnout

                days_since = None
                if state is not None and state.last_practiced_at is not None:
                    days_since = max(0, (today - to_date(state.last_practiced_at)).days)

                for mode in dict.fromkeys(str(enum_value(m)) for m in item.modes):
                    multiplier = self.phase_multiplier(phase, skill, item, mode, state)
                    breakdown = ScoreBreakdown(
                        learning_gain=learning,
                        retention_gain=retention,
                        exam_roi=roi,
                        error_closure=closure,
                        phase_multiplier=multiplier,
                        composite=base * multiplier,
                        burnout_penalty=burnout,
                    )
                    candidates.append(
                        _Candidate(skill, item, mode, state, breakdown, days_since)
                    )

        return candidates

    def _pack(self, candidates: list[_Candidate], budget_minutes: int) -> list[_Candidate]:
        """
        Greedy best-score-first fill of the budget.

        A candidate is skipped when its item is already planned, its skill
        already holds max_tasks_per_skill tasks, or it would overflow what is
        left. Only selected tasks count toward those limits.
        """
        remaining = budget_minutes
        planned_items: set[str] = set()
        per_skill: dict[str, int] = {}
        selected: list[_Candidate] = []

        for candidate in sorted(candidates, key=_Candidate.sort_key):
            skill_id = candidate.skill.skill_id
            if candidate.item.item_id in planned_items:
                continue
            if per_skill.get(skill_id, 0) >= self.config.max_tasks_per_skill:
                continue
            minutes = candidate.item.estimated_minutes
            if minutes > remaining:
                continue

            selected.append(candidate)
            planned_items.add(candidate.item.item_id)
            per_skill[skill_id] = per_skill.get(skill_id, 0) + 1
            remaining -= minutes
            if remaining <= 0:
                break
        return selected

    @staticmethod
    def _order_by_prerequisites(
        selected: list[_Candidate],
        skills_by_id: Mapping[str, Skill],
    ) -> list[_Candidate]:
        """Keep score order, except that prerequisites precede their dependents."""
        planned = {c.skill.skill_id for c in selected}

        def ancestors(skill_id: str) -> set[str]:
            found: set[str] = set()
            stack = list(skills_by_id[skill_id].prerequisites) if skill_id in skills_by_id else []
            while stack:
                current = stack.pop()
                if current in found:
                    continue
                found.add(current)
                if current in skills_by_id:
                    stack.extend(skills_by_id[current].prerequisites)
            return found

        blockers = {c.skill.skill_id: ancestors(c.skill.skill_id) & planned for c in selected}
        remaining = list(selected)
        ordered: list[_Candidate] = []

        while remaining:
            pending = {c.skill.skill_id for c in remaining}
            index = next(
                (
                    i
                    for i, c in enumerate(remaining)
                    if not (blockers[c.skill.skill_id] - {c.skill.skill_id}) & pending
                ),
                0,  # cyclic input; fall back to score order
            )
            candidate = remaining.pop(index)
            ordered.append(candidate)

        return ordered

    def _task_type(self, candidate: _Candidate) -> TaskType:
        state = candidate.state
        breakdown = candidate.breakdown
        if (
            state is not None
            and state.p_mastery >= self.tuning.gate.min_p_mastery
            and not state.is_verified
            and candidate.mode in EXAM_LIKE
        ):
            return TaskType.TIMED_PROOF
        if breakdown.retention_gain > 0.6:
            return TaskType.RETENTION_REVIEW
        if breakdown.error_closure > 0.3:
            return TaskType.ERROR_REMEDIATION
        return TaskType.WEAKNESS_DRILL

    def _rationale(self, candidate: _Candidate, phase: ExamPhase | None) -> str:
        breakdown = candidate.breakdown
        reasons: list[str] = []

        if breakdown.learning_gain > 0.5:
            reasons.append("High learning potential (low current mastery)")
        if breakdown.retention_gain > 0.5:
            reasons.append("Due for review (retention at risk)")
        if breakdown.exam_roi > 0.5:
            reasons.append("High exam weight with coverage gaps")
        if breakdown.error_closure > 0.3:
            reasons.append("Targets recurring error patterns")
        if phase == ExamPhase.CRITICAL and candidate.mode in EXAM_LIKE:
            reasons.append("Exam conditions practice in the final week")
        if phase == ExamPhase.DISTANT and candidate.item.difficulty <= self.config.foundation_max_difficulty:
            reasons.append("Builds foundations while the exam is distant")
        if (
            candidate.state is not None
            and candidate.state.is_verified
            and candidate.state.p_mastery < self.config.resurface_threshold
        ):
            reasons.append("Verified skill slipping below target")

        if not reasons:
            reasons.append("Balanced practice to maintain skills")
        return ". ".join(reasons) + "."

    def _why_selected(self, candidate: _Candidate) -> tuple[WhySelected, ...]:
        weights = self.config.weights
        breakdown = candidate.breakdown
        state = candidate.state
        p = state.p_mastery if state is not None else 0.0

        if candidate.days_since_practice is None:
            retention_text = "Never practiced before"
        else:
            retention_text = f"Last practiced {candidate.days_since_practice} days ago"

        contributions = [
            WhySelected(
                "learning_gain",
                breakdown.learning_gain * weights["learning_gain"],
                f"Low mastery ({p:.0%}) - high learning potential" if p < 0.5 else f"Current mastery {p:.0%}",
            ),
            WhySelected(
                "retention_risk",
                breakdown.retention_gain * weights["retention_gain"],
                retention_text,
            ),
            WhySelected(
                "exam_roi",
                breakdown.exam_roi * weights["exam_roi"],
                f"Exam weight {candidate.skill.exam_weight:.0%}, coverage debt rank {breakdown.exam_roi:.2f}",
            ),
            WhySelected(
                "error_patterns",
                breakdown.error_closure * weights["error_closure"],
                (
                    f"Targets {breakdown.error_closure:.0%} of unresolved error patterns"
                    if breakdown.error_closure > 0
                    else "No recurring error patterns"
                ),
            ),
        ]
        contributions.sort(key=lambda c: -abs(c.value))
        return tuple(contributions[:3])

    def _to_task(self, order: int, candidate: _Candidate, phase: ExamPhase | None) -> PlanTask:
        return PlanTask(
            order=order,
            skill_id=candidate.skill.skill_id,
            item_id=candidate.item.item_id,
            format=str(enum_value(candidate.item.format)),
            mode=candidate.mode,
            estimated_minutes=candidate.item.estimated_minutes,
            priority_score=candidate.score,
            breakdown=candidate.breakdown,
            task_type=self._task_type(candidate),
            rationale=self._rationale(candidate, phase),
            why_selected=self._why_selected(candidate),
        )


# =============================================================================
# Helpers
# =============================================================================


def _parse_phase(exam_phase: ExamPhase | str | None) -> ExamPhase | None:
    """Unrecognised phases plan as if no exam date were set."""
    if exam_phase is None:
        return None
    try:
        return ExamPhase(str(enum_value(exam_phase)).lower())
    except ValueError:
        logger.debug(f"Unknown exam phase {exam_phase!r}, planning without phase boosts")
        return None


def _by_skill(
states: Mapping[str, MasteryState] | Iterable[MasteryState]) -> dict[str, MasteryState]:
    if isinstance(states, Mapping):
        return dict(states)
    return {state.skill_id: state for state in states}


def _debt_values(
    debts: Mapping[str, CoverageDebt | float] | Iterable[CoverageDebt],
) -> dict[str, float]:
    if isinstance(debts, Mapping):
        return {
            skill_id: (d.debt if isinstance(d, CoverageDebt) else float(d))
            for skill_id, d in debts.items()
        }
    return {d.skill_id: d.debt for d in debts}


def plan(
    budget_minutes: int,
    exam_phase: ExamPhase | str | None,
    skills: Iterable[Skill],
    mastery_states: Mapping[str, MasteryState] | Iterable[MasteryState],
    coverage_debts: Mapping[str, CoverageDebt | float] | Iterable[CoverageDebt],
    available_items: Iterable[CandidateItem],
    recent_error_tags: Mapping[str, Iterable[str]] | None = None,
    today: date | None = None,
    tuning: EngineTuning = DEFAULT_TUNING,
    user_id: str | None = None,
    recent_activities: Iterable[RecentActivity] | None = None,
    now: datetime | None = None,
) -> DailyPlan:
    """Functional entry point for DailyPlanScheduler.plan()."""
    return DailyPlanScheduler(tuning).plan(
        budget_minutes,
        exam_phase,
        skills,
        mastery_states,
        coverage_debts,
        available_items,
        recent_error_tags,
        today=today,
        user_id=user_id,
        recent_activities=recent_activities,
        now=now,
    )
