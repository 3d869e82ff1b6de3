"""
Mastery Service.

Request-scoped orchestration over the pure engine components:
- Record a graded attempt (update -> gate -> persist)
- Dry-run the gate for a skill
- Build today's plan from persisted history
- Run the card-level review queue

Every call reads fresh state through the repository and writes results back
in the caller's session. Nothing is cached between calls. A concurrent write
surfaces as PersistenceConflictError; retrying means calling again.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Iterable, Mapping

from loguru import logger
from sqlalchemy.orm import Session

from atp_mastery.adaptive.coverage_debt import compute_coverage_debts
from atp_mastery.adaptive.daily_planner import DailyPlanScheduler
from atp_mastery.adaptive.error_signatures import build_error_signatures, recent_error_tags
from atp_mastery.adaptive.gate import GateCheckResult, apply_gate_result, evaluate_gate
from atp_mastery.adaptive.mastery_update import fan_out, initial_mastery_state, unique_coverage
from atp_mastery.adaptive.readiness import ReadinessReport, compute_readiness
from atp_mastery.core.exam_phase import classify_exam_phase, days_until_exam, dominant_mode
from atp_mastery.core.exceptions import UnknownCardError, UnknownSkillError
from atp_mastery.core.mastery import clamp01, to_date, utc_now
from atp_mastery.core.models import (
    Attempt,
    CandidateItem,
    ContentType,
    DailyPlan,
    DominantMode,
    ExamPhase,
    GradingOutput,
    MasteryState,
    MasteryUpdate,
    RecentActivity,
    Skill,
    SkillCoverage,
    SkillVerification,
    SpacedRepetitionCard,
    enum_value,
)
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning
from atp_mastery.db.repository import MasteryRepository
from atp_mastery.integrations.notifier import (
    CARDS_DUE,
    PLAN_READY,
    SKILL_VERIFIED,
    NotificationEvent,
    Notifier,
    NullNotifier,
)
from atp_mastery.review.scheduler import SM2Scheduler
from atp_mastery.review.stats import StudyStats, study_stats


@dataclass(frozen=True)
class AttemptSubmission:
    """A graded submission as handed over by the grading service."""

    item_id: str
    format: str
    mode: str
    grading: GradingOutput
    skills: tuple[SkillCoverage, ...]
    difficulty: int = 3
    attempt_id: str | None = None
    time_taken_sec: int | None = None


@dataclass(frozen=True)
class AttemptOutcomeReport:
    """Everything one recorded attempt changed."""

    attempt: Attempt
    updates: tuple[MasteryUpdate, ...] = ()
    states: tuple[MasteryState, ...] = ()
    gate_results: dict[str, GateCheckResult] = field(default_factory=dict)
    verifications: tuple[SkillVerification, ...] = ()

    @property
    def newly_verified(self) -> list[str]:
        return [v.skill_id for v in self.verifications]


class MasteryService:
    """
    Engine entry point for one request.

    Usage:
        with session_scope() as session:
            service = MasteryService(session, settings.get_tuning())
            report = service.record_attempt(user_id, submission)
    """

    def __init__(
        self,
        session: Session,
        tuning: EngineTuning = DEFAULT_TUNING,
        notifier: Notifier | None = None,
    ):
        self.repository = MasteryRepository(session)
        self.tuning = tuning
        self.notifier = notifier or NullNotifier()
        self.scheduler = SM2Scheduler(tuning)

    # =========================================================================
    # Attempts & Gate
    # =========================================================================

    def record_attempt(
        self,
        user_id: str,
        submission: AttemptSubmission,
        now: datetime | None = None,
        priors: Mapping[str, float] | None = None,
    ) -> AttemptOutcomeReport:
        """
        Persist an attempt and apply it to every skill it covers.

        Args:
            user_id: Learner
            submission: Graded submission
            now: Submission time (defaults to UTC now)
            priors: Onboarding priors for skills with no state yet

        Returns:
            AttemptOutcomeReport with the new states and any verifications

        Raises:
            PersistenceConflictError: a concurrent attempt updated the same skill
        """
        now = now or utc_now()
        attempt = Attempt(
            attempt_id=submission.attempt_id or str(uuid.uuid4()),
            user_id=user_id,
            item_id=submission.item_id,
            format=submission.format,
            mode=submission.mode,
            score_norm=clamp01(submission.grading.score_norm),
            submitted_at=now,
            skills=unique_coverage(submission.skills),
            error_tags=tuple(submission.grading.error_tags),
            difficulty=submission.difficulty,
            time_taken_sec=submission.time_taken_sec,
        )
        self.repository.add_attempt(attempt)

        states = {}
        for coverage in attempt.skills:
            state = self.repository.get_mastery_state(user_id, coverage.skill_id)
            if state is not None:
                states[coverage.skill_id] = state

        updates = fan_out(attempt, states, self.tuning, priors)
        history = self.repository.list_attempts(user_id)

        saved: list[MasteryState] = []
        gate_results: dict[str, GateCheckResult] = {}
        verifications: list[SkillVerification] = []

        for update in updates:
            result = evaluate_gate(update.state, history, now, self.tuning)
            state, verification = apply_gate_result(update.state, result, now)
            saved.append(self.repository.save_mastery_state(state))
            gate_results[update.skill_id] = result

            if verification is not None:
                self.repository.add_verification(verification)
                verifications.append(verification)
                logger.info(f"Skill {update.skill_id} is EXAM_READY for {user_id}")
                self.notifier.notify(
                    NotificationEvent(
                        SKILL_VERIFIED,
                        user_id,
                        {"skill_id": update.skill_id, "p_mastery": round(state.p_mastery, 4)},
                        occurred_at=now,
                    )
                )

        logger.info(
            f"Recorded attempt {attempt.attempt_id} for {user_id}: "
            f"{len(updates)} skills updated, {len(verifications)} verified"
        )
        return AttemptOutcomeReport(
            attempt=attempt,
            updates=tuple(updates),
            states=tuple(saved),
            gate_results=gate_results,
            verifications=tuple(verifications),
        )

    def check_gate(
        self,
        user_id: str,
        skill_id: str,
        now: datetime | None = None,
        skills: Iterable[Skill] | None = None,
    ) -> GateCheckResult:
        """
        Evaluate the gate for a skill without changing anything.

        Raises:
            UnknownSkillError: skills were given and skill_id is not among them
        """
        if skills is not None:
            self.require_skill(skills, skill_id)
        state = self.repository.get_mastery_state(user_id, skill_id)
        if state is None:
            state = initial_mastery_state(user_id, skill_id, tuning=self.tuning)
        history = self.repository.list_attempts(user_id, skill_id)
        return evaluate_gate(state, history, now, self.tuning)

    def get_mastery_states(self, user_id: str) -> list[MasteryState]:
        return self.repository.list_mastery_states(user_id)

    def readiness(self, user_id: str, skills: Iterable[Skill]) -> ReadinessReport:
        return compute_readiness(skills, self.repository.list_mastery_states(user_id))

    # =========================================================================
    # Daily Plan
    # =========================================================================

    def exam_phase_for(
        self,
        today: date,
        written_exam_date: date | None = None,
        oral_exam_date: date | None = None,
    ) -> tuple[ExamPhase | None, DominantMode | None]:
        """Phase of the exam that dominates planning, and which exam that is."""
        days_written = days_until_exam(written_exam_date, today)
        days_oral = days_until_exam(oral_exam_date, today)
        mode = dominant_mode(days_written, days_oral, self.tuning)

        if mode == DominantMode.WRITTEN:
            days = days_written
        elif mode == DominantMode.ORAL:
            days = days_oral
        elif mode == DominantMode.MIXED:
            days = min(d for d in (days_written, days_oral) if d is not None and d >= 0)
        else:
            days = None
        return classify_exam_phase(days, self.tuning), mode

    def build_daily_plan(
        self,
        user_id: str,
        budget_minutes: int,
        skills: Iterable[Skill],
        items: Iterable[CandidateItem],
        written_exam_date: date | None = None,
        oral_exam_date: date | None = None,
        today: date | None = None,
        now: datetime | None = None,
    ) -> DailyPlan:
        """
        Plan today's tasks from persisted state.

        Coverage debts and unresolved error tags are derived from the user's
        attempt history at call time; the plan itself is not stored.
        """
        now = now or utc_now()
        today = today or to_date(now)
        skills = list(skills)

        phase, mode = self.exam_phase_for(today, written_exam_date, oral_exam_date)
        states = {s.skill_id: s for s in self.repository.list_mastery_states(user_id)}
        attempts = self.repository.list_attempts(user_id)

        debts = compute_coverage_debts(skills, states, attempts, now, self.tuning)
        unresolved = recent_error_tags(build_error_signatures(attempts, now), window_days=30)

        daily_plan = DailyPlanScheduler(self.tuning).plan(
            budget_minutes,
            phase,
            skills,
            states,
            debts,
            items,
            unresolved,
            today=today,
            user_id=user_id,
            recent_activities=_recent_activities(attempts),
            now=now,
        )

        logger.info(
            f"Plan for {user_id} on {today}: {len(daily_plan.tasks)} tasks, "
            f"{daily_plan.total_minutes}/{budget_minutes} min, phase={phase.value if phase else None}, "
            f"dominant={mode.value if mode else None}"
        )
        if not daily_plan.is_empty:
            self.notifier.notify(
                NotificationEvent(
                    PLAN_READY,
                    user_id,
                    {
                        "date": today.isoformat(),
                        "tasks": len(daily_plan.tasks),
                        "minutes": daily_plan.total_minutes,
                    },
                    occurred_at=now,
                )
            )
        return daily_plan

    # =========================================================================
    # Review Cards
    # =========================================================================

    def add_card(
        self,
        user_id: str,
        content_type: ContentType | str,
        content_id: str,
        title: str = "",
        unit_id: str | None = None,
        initial_easiness: float | None = None,
        today: date | None = None,
    ) -> SpacedRepetitionCard:
        """Create a card on first exposure; re-adding a removed card reactivates it."""
        existing = self.repository.get_card_by_content(user_id, content_type, content_id)
        if existing is not None:
            if existing.is_active:
                return existing
            logger.info(f"Reactivating card {existing.card_id} for {user_id}")
            return self.repository.save_card(replace(existing, is_active=True))

        card = self.scheduler.new_card(
            user_id,
            content_type,
            content_id,
            title=title,
            unit_id=unit_id,
            initial_easiness=initial_easiness,
            today=today,
        )
        return self.repository.save_card(card)

    def remove_card(self, user_id: str, card_id: str) -> SpacedRepetitionCard:
        """Soft-delete a card."""
        card = self.repository.deactivate_card(user_id, card_id)
        logger.info(f"Removed card {card_id} for {user_id}")
        return card

    def review_card(
        self,
        user_id: str,
        card_id: str,
        quality: float,
        today: date | None = None,
    ) -> SpacedRepetitionCard:
        """
        Apply a 0-5 quality rating to an active card.

        Raises:
            UnknownCardError: no active card with this id for the user
        """
        card = self.repository.get_card(user_id, card_id)
        if card is None or not card.is_active:
            raise UnknownCardError(user_id, card_id)

        updated = self.repository.save_card(self.scheduler.review(card, quality, today))
        logger.info(
            f"Card {card_id} reviewed by {user_id}: q={updated.last_quality}, "
            f"next review {updated.next_review_date}"
        )
        return updated

    def due_cards(
        self,
        user_id: str,
        today: date | None = None,
        limit: int | None = None,
    ) -> list[SpacedRepetitionCard]:
        """Cards due today or earlier, most urgent first."""
        today = today or date.today()
        due = self.repository.list_due_cards(user_id, today, limit)
        if due:
            self.notifier.notify(
                NotificationEvent(CARDS_DUE, user_id, {"count": len(due), "date": today.isoformat()})
            )
        return due

    def study_stats(self, user_id: str, today: date | None = None) -> StudyStats:
        return study_stats(self.repository.list_cards(user_id), today)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def require_skill(skills: Iterable[Skill], skill_id: str) -> Skill:
        """Look up a curriculum skill by id."""
        for skill in skills:
            if skill.skill_id == skill_id:
                return skill
        raise UnknownSkillError(skill_id)


def _recent_activities(attempts: Iterable[Attempt]) -> list[RecentActivity]:
    return [
        RecentActivity(
            skill_id=coverage.skill_id,
            item_format=str(enum_value(attempt.format)),
            occurred_at=attempt.submitted_at,
            minutes=(attempt.time_taken_sec or 0) / 60.0,
        )
        for attempt in attempts
        for coverage in attempt.skills
    ]
