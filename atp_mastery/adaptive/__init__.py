"""
Adaptive components of the mastery engine.

- mastery_update: attempt outcome -> new per-skill state
- gate: PRACTICING -> EXAM_READY certification
- coverage_debt: per-skill urgency from exam weight and staleness
- error_signatures: recurring error tags per skill
- daily_planner: budgeted, prioritized daily task list
- readiness: exam readiness rollup
"""

from atp_mastery.adaptive.coverage_debt import (
    calculate_coverage_debt,
    compute_coverage_debts,
    coverage_fraction,
    rank_coverage_debts,
)
from atp_mastery.adaptive.daily_planner import DailyPlanScheduler, plan
from atp_mastery.adaptive.error_signatures import build_error_signatures, top_error_tags
from atp_mastery.adaptive.gate import (
    GateCheckResult,
    GateReason,
    apply_gate_result,
    evaluate_gate,
)
from atp_mastery.adaptive.mastery_update import (
    apply_outcome,
    calculate_delta,
    fan_out,
    initial_mastery_state,
)
from atp_mastery.adaptive.readiness import ReadinessReport, compute_readiness

__all__ = [
    "apply_gate_result",
    "apply_outcome",
    "build_error_signatures",
    "calculate_coverage_debt",
    "calculate_delta",
    "compute_coverage_debts",
    "compute_readiness",
    "coverage_fraction",
    "DailyPlanScheduler",
    "evaluate_gate",
    "fan_out",
    "GateCheckResult",
    "GateReason",
    "initial_mastery_state",
    "plan",
    "rank_coverage_debts",
    "ReadinessReport",
    "top_error_tags",
]
