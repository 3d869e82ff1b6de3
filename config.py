"""
Configuration settings for the ATP mastery engine.

Uses Pydantic Settings for environment variable management with .env file support.
Tuning constants live here so operators can adjust them per deployment; the
engine itself only ever sees the immutable EngineTuning built by get_tuning().
"""
from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from atp_mastery.core.tuning import EngineTuning


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ATP_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///atp_mastery.db",
        description="SQLAlchemy connection string (postgresql://... in production)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Notifications
    # ========================================
    notification_webhook_url: str | None = Field(
        default=None,
        description="Webhook receiving 'cards due' / 'plan ready' events (None disables)",
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="HTTP timeout for notification delivery",
    )

    # ========================================
    # Mastery Update
    # ========================================
    mastery_learning_rate: float = Field(
        default=0.15,
        description="Scale applied to (score - pMastery) before weighting",
    )
    mastery_max_delta_positive: float = Field(
        default=0.10,
        description="Largest gain a single attempt can produce",
    )
    mastery_max_delta_negative: float = Field(
        default=-0.12,
        description="Largest loss a single attempt can produce",
    )
    mastery_pass_threshold: float = Field(
        default=0.60,
        description="scoreNorm at or above which an attempt counts as a success",
    )
    mastery_default_p: float = Field(
        default=0.0,
        description="pMastery for a skill with no prior state",
    )
    stability_initial: float = Field(default=1.0, description="Stability of a fresh state")
    stability_growth: float = Field(default=0.10, description="Stability gained on success")
    stability_decay: float = Field(default=0.15, description="Stability lost on failure")
    stability_min: float = Field(default=0.3, description="Stability floor")
    stability_max: float = Field(default=2.0, description="Stability ceiling")
    skill_review_max_interval_days: int = Field(
        default=180,
        description="Cap for the skill-level review interval",
    )

    # ========================================
    # Gate Verification
    # ========================================
    gate_min_p_mastery: float = Field(
        default=0.85,
        description="pMastery required for EXAM_READY",
    )
    gate_required_timed_passes: int = Field(
        default=2,
        description="Timed/exam_sim passes required for EXAM_READY",
    )
    gate_min_hours_between_passes: float = Field(
        default=24.0,
        description="Minimum spacing between the qualifying timed passes",
    )
    gate_top_error_tags: int = Field(
        default=3,
        description="How many of the skill's most frequent error tags must be absent",
    )
    gate_min_stability: float | None = Field(
        default=None,
        description="Optional stability floor for certification (None disables)",
    )
    gate_lookback_days: int | None = Field(
        default=None,
        description="Only consider timed passes this recent (None = full history)",
    )

    # ========================================
    # Daily Plan Scheduler
    # ========================================
    planner_weight_learning_gain: float = Field(default=0.25)
    planner_weight_retention_gain: float = Field(default=0.25)
    planner_weight_exam_roi: float = Field(default=0.25)
    planner_weight_error_closure: float = Field(default=0.25)
    planner_critical_mode_boost: float = Field(
        default=0.5,
        description="Extra weight for timed/exam_sim candidates in the critical phase",
    )
    planner_critical_exam_weight_boost: float = Field(
        default=2.0,
        description="Extra weight per unit of exam weight in the critical phase",
    )
    planner_distant_foundation_boost: float = Field(
        default=0.25,
        description="Extra weight for difficulty 1-2 items in the distant phase",
    )
    planner_foundation_max_difficulty: int = Field(default=2)
    planner_max_tasks_per_skill: int = Field(default=2)
    planner_resurface_threshold: float = Field(
        default=0.70,
        description="pMastery below which a verified skill is boosted back into plans",
    )
    planner_resurface_boost: float = Field(default=0.25)
    planner_weight_burnout_penalty: float = Field(
        default=0.0,
        description="Penalty weight for recent load on the same skill and format (0 disables)",
    )
    planner_burnout_window_hours: float = Field(default=24.0)
    coverage_never_practiced_days: float = Field(
        default=30.0,
        description="Staleness assumed for a skill that was never practiced",
    )

    # ========================================
    # Spaced Repetition (SM-2)
    # ========================================
    sm2_initial_easiness: float = Field(default=2.5)
    sm2_minimum_easiness: float = Field(default=1.3)
    sm2_first_interval: int = Field(default=1)
    sm2_second_interval: int = Field(default=6)
    sm2_max_interval_days: int = Field(default=365)
    sm2_expected_response_ms: int = Field(
        default=10000,
        description="Expected response time when grading from latency",
    )
    sm2_quick_response_ratio: float = Field(default=0.5)

    # ========================================
    # Exam Phase
    # ========================================
    phase_critical_max_days: int = Field(
        default=7,
        description="Days-until-exam at or below which the phase is critical",
    )
    phase_distant_min_days: int = Field(
        default=60,
        description="Days-until-exam at or above which the phase is distant",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_planner_weights(self) -> dict[str, float]:
        """Get daily plan factor weights."""
        return {
            "learning_gain": self.planner_weight_learning_gain,
            "retention_gain": self.planner_weight_retention_gain,
            "exam_roi": self.planner_weight_exam_roi,
            "error_closure": self.planner_weight_error_closure,
        }

    def has_notifications_configured(self) -> bool:
        """Check if a notification webhook is available."""
        return bool(self.notification_webhook_url)

    def get_tuning(self) -> EngineTuning:
        """Build the immutable tuning value object injected into the engine."""
        from atp_mastery.core.tuning import (
            EngineTuning,
            GateTuning,
            MasteryTuning,
            PhaseTuning,
            PlannerTuning,
            ReviewTuning,
        )

        return EngineTuning(
            mastery=MasteryTuning(
                learning_rate=self.mastery_learning_rate,
                max_delta_positive=self.mastery_max_delta_positive,
                max_delta_negative=self.mastery_max_delta_negative,
                pass_threshold=self.mastery_pass_threshold,
                default_p_mastery=self.mastery_default_p,
                initial_stability=self.stability_initial,
                stability_growth=self.stability_growth,
                stability_decay=self.stability_decay,
                min_stability=self.stability_min,
                max_stability=self.stability_max,
                skill_review_max_interval_days=self.skill_review_max_interval_days,
            ),
            gate=GateTuning(
                min_p_mastery=self.gate_min_p_mastery,
                required_timed_passes=self.gate_required_timed_passes,
                min_hours_between_passes=self.gate_min_hours_between_passes,
                top_error_tags=self.gate_top_error_tags,
                min_stability=self.gate_min_stability,
                lookback_days=self.gate_lookback_days,
            ),
            planner=PlannerTuning(
                weight_learning_gain=self.planner_weight_learning_gain,
                weight_retention_gain=self.planner_weight_retention_gain,
                weight_exam_roi=self.planner_weight_exam_roi,
                weight_error_closure=self.planner_weight_error_closure,
                critical_mode_boost=self.planner_critical_mode_boost,
                critical_exam_weight_boost=self.planner_critical_exam_weight_boost,
                distant_foundation_boost=self.planner_distant_foundation_boost,
                foundation_max_difficulty=self.planner_foundation_max_difficulty,
                max_tasks_per_skill=self.planner_max_tasks_per_skill,
                resurface_threshold=self.planner_resurface_threshold,
                resurface_boost=self.planner_resurface_boost,
                never_practiced_days=self.coverage_never_practiced_days,
                weight_burnout_penalty=self.planner_weight_burnout_penalty,
                burnout_window_hours=self.planner_burnout_window_hours,
            ),
            review=ReviewTuning(
                initial_easiness=self.sm2_initial_easiness,
                minimum_easiness=self.sm2_minimum_easiness,
                first_interval=self.sm2_first_interval,
                second_interval=self.sm2_second_interval,
                max_interval_days=self.sm2_max_interval_days,
                expected_response_ms=self.sm2_expected_response_ms,
                quick_response_ratio=self.sm2_quick_response_ratio,
            ),
            phase=PhaseTuning(
                critical_max_days=self.phase_critical_max_days,
                distant_min_days=self.phase_distant_min_days,
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
