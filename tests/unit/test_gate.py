"""
Unit tests for gate verification.

Covers each blocking condition on its own, the success path and the
idempotency of an already verified skill.
"""

from dataclasses import replace

from atp_mastery.adaptive.gate import (
    GateReason,
    apply_gate_result,
    evaluate_gate,
    timed_passes,
)
from atp_mastery.core.models import GateState, MasteryState
from atp_mastery.core.tuning import DEFAULT_TUNING, GateTuning

SKILL = "civil-pleadings"


def practicing(p=0.90, **kw):
    return MasteryState(
        user_id="user-1", skill_id=SKILL, p_mastery=p, gate=GateState.PRACTICING, **kw
    )


class TestTimedPasses:
    def test_only_exam_like_passing_attempts(self, make_attempt):
        attempts = [
            make_attempt(mode="practice", score=0.9, hours_ago=10),
            make_attempt(mode="timed", score=0.5, hours_ago=9),
            make_attempt(mode="exam_sim", score=0.6, hours_ago=8),
            make_attempt(mode="timed", score=0.95, hours_ago=1),
            make_attempt(skill_id="criminal-bail", mode="timed", score=0.9),
        ]
        passes = timed_passes(attempts, SKILL)
        assert [a.attempt_id for a in passes] == ["att-003", "att-004"]

    def test_lookback_window(self, make_attempt, now):
        tuning = replace(DEFAULT_TUNING, gate=GateTuning(lookback_days=30))
        attempts = [make_attempt(hours_ago=24 * 40), make_attempt(hours_ago=2)]
        assert len(timed_passes(attempts, SKILL, tuning, now)) == 1


class TestEvaluateGate:
    def test_all_conditions_met(self, make_attempt, now):
        attempts = [make_attempt(score=0.8, hours_ago=25), make_attempt(score=0.85, hours_ago=0)]
        result = evaluate_gate(practicing(), attempts, now)

        assert result.passed is True
        assert result.reasons == ()
        assert result.timed_pass_count == 2
        assert result.first_pass_attempt_id == "att-001"
        assert result.second_pass_attempt_id == "att-002"
        assert result.hours_between_passes == 25.0
        assert result.target_state == GateState.EXAM_READY

    def test_passes_too_close_together(self, make_attempt, now):
        attempts = [make_attempt(hours_ago=20), make_attempt(hours_ago=0)]
        result = evaluate_gate(practicing(), attempts, now)

        assert result.passed is False
        assert result.reason_codes == ["too_soon"]

    def test_exactly_twenty_four_hours_is_enough(self, make_attempt, now):
        attempts = [make_attempt(hours_ago=24), make_attempt(hours_ago=0)]
        assert evaluate_gate(practicing(), attempts, now).passed is True

    def test_single_pass(self, make_attempt, now):
        result = evaluate_gate(practicing(), [make_attempt()], now)
        assert result.reason_codes == ["insufficient_passes"]
        assert result.messages == ("1 of 2 timed passes recorded",)

    def test_low_mastery(self, make_attempt, now):
        attempts = [make_attempt(hours_ago=30), make_attempt(hours_ago=0)]
        result = evaluate_gate(practicing(p=0.84), attempts, now)
        assert result.reasons == (GateReason.LOW_MASTERY,)

    def test_reasons_accumulate(self, now):
        result = evaluate_gate(practicing(p=0.3), [], now)
        assert result.reason_codes == ["low_mastery", "insufficient_passes"]
        assert len(result.messages) == 2

    def test_recurring_error_on_a_pass_blocks(self, make_attempt, now):
        attempts = [
            make_attempt(hours_ago=30, error_tags=("missing_prayer",)),
            make_attempt(hours_ago=0, error_tags=("missing_prayer",)),
        ]
        result = evaluate_gate(practicing(), attempts, now)

        assert result.reason_codes == ["recurring_errors"]
        assert result.top_error_tags == ("missing_prayer",)

    def test_tags_only_on_failed_attempts_do_not_block(self, make_attempt, now):
        attempts = [
            make_attempt(score=0.3, mode="practice", hours_ago=60, error_tags=("wrong_forum",)),
            make_attempt(hours_ago=30),
            make_attempt(hours_ago=0),
        ]
        result = evaluate_gate(practicing(), attempts, now)
        assert result.passed is True
        assert result.top_error_tags == ("wrong_forum",)

    def test_clean_older_pair_still_qualifies(self, make_attempt, now):
        attempts = [
            make_attempt(hours_ago=80),
            make_attempt(hours_ago=50),
            make_attempt(hours_ago=1, error_tags=("missing_prayer",)),
        ]
        result = evaluate_gate(practicing(), attempts, now)

        assert result.passed is True
        assert (result.first_pass_attempt_id, result.second_pass_attempt_id) == ("att-001", "att-002")

    def test_optional_stability_condition(self, make_attempt, now):
        tuning = replace(DEFAULT_TUNING, gate=GateTuning(min_stability=1.2))
        attempts = [make_attempt(hours_ago=30), make_attempt(hours_ago=0)]
        result = evaluate_gate(practicing(stability=1.0), attempts, now, tuning)
        assert result.reason_codes == ["low_stability"]

    def test_attempts_on_other_skills_ignored(self, make_attempt, now):
        attempts = [
            make_attempt(skill_id="criminal-bail", hours_ago=30),
            make_attempt(hours_ago=0),
        ]
        result = evaluate_gate(practicing(), attempts, now)
        assert result.reason_codes == ["insufficient_passes"]


class TestApplyGateResult:
    def test_transition_writes_verification(self, make_attempt, now):
        state = practicing()
        attempts = [make_attempt(hours_ago=25), make_attempt(hours_ago=0)]
        result = evaluate_gate(state, attempts, now)

        new_state, verification = apply_gate_result(state, result, now)

        assert new_state.gate == GateState.EXAM_READY
        assert new_state.gate_passed_at == now
        assert verification is not None
        assert verification.p_mastery_at_verification == 0.90
        assert verification.first_pass_attempt_id == "att-001"
        assert verification.hours_between_passes == 25.0
        assert verification.verified_at == now

    def test_failed_check_changes_nothing(self, make_attempt, now):
        state = practicing()
        result = evaluate_gate(state, [make_attempt()], now)
        new_state, verification = apply_gate_result(state, result, now)

        assert new_state == state
        assert verification is None

    def test_already_verified_is_idempotent(self, make_attempt, now):
        state = practicing(p=0.6)
        state = replace(state, gate=GateState.EXAM_READY, gate_passed_at=now)

        result = evaluate_gate(state, [make_attempt()], now)
        assert result.passed is True
        assert result.already_verified is True

        new_state, verification = apply_gate_result(state, result, now)
        assert new_state == state
        assert verification is None
