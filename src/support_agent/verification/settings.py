"""Tunable parameters for the verifier and controller.

Defaults come from ``support_agent.config`` (environment variables), so
deployments tune behaviour without code changes and tests build their
own ``VerificationConfig`` with whatever values they need.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from support_agent import config
from support_agent.verification.models import RiskCategory

# Per-category curve factor ``k`` in log10(raw * k + 1). A larger k makes
# the curve climb sooner for small raw scores.
DEFAULT_CATEGORY_K: dict[RiskCategory, float] = {
    RiskCategory.REPETITION: 5.0,
    RiskCategory.MEMORY_CONTINUITY: 10.0,
    RiskCategory.HALLUCINATION_DOMAIN: 12.5,
    RiskCategory.EMOTION_MISMATCH: 10.0,
    RiskCategory.CRISIS: 12.5,
}

# Per-category multiplier on the resulting penalty. Crisis must stay the
# largest so a crisis miss alone can sink a reply below rollback.
DEFAULT_CATEGORY_MULTIPLIER: dict[RiskCategory, float] = {
    RiskCategory.REPETITION: 1.0,
    RiskCategory.MEMORY_CONTINUITY: 1.25,
    RiskCategory.HALLUCINATION_DOMAIN: 1.5,
    RiskCategory.EMOTION_MISMATCH: 1.0,
    RiskCategory.CRISIS: 6.0,
}


class VerificationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence_ceiling: float = Field(default=config.CONFIDENCE_CEILING, gt=0.0, lt=1.0)
    prevent_threshold: float = Field(default=config.PREVENT_THRESHOLD, ge=0.0, le=1.0)
    simplify_threshold: float = Field(default=config.SIMPLIFY_THRESHOLD, ge=0.0, le=1.0)
    delay_threshold: float = Field(default=config.DELAY_THRESHOLD, ge=0.0, le=1.0)
    rollback_threshold: float = Field(default=config.ROLLBACK_THRESHOLD, ge=0.0, le=1.0)

    rollback_sigmoid_midpoint: float = config.ROLLBACK_SIGMOID_MIDPOINT
    rollback_sigmoid_steepness: float = Field(default=config.ROLLBACK_SIGMOID_STEEPNESS, gt=0.0)
    rollback_probability: float = Field(default=config.ROLLBACK_PROBABILITY, gt=0.0, lt=1.0)

    near_duplicate_threshold: float = Field(
        default=config.NEAR_DUPLICATE_THRESHOLD, gt=0.0, le=1.0
    )
    ngram_size: int = Field(default=config.NGRAM_SIZE, ge=3, le=7)
    repetition_lookback: int = Field(default=config.REPETITION_LOOKBACK, ge=0)

    # Divisor applied to every log10 penalty before it scales confidence.
    penalty_scale: float = Field(default=10.0, gt=0.0)
    category_k: dict[RiskCategory, float] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_K)
    )
    category_multiplier: dict[RiskCategory, float] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_MULTIPLIER)
    )

    delay_base_ms: float = Field(default=config.DELAY_BASE_MS, ge=0.0)
    delay_scale_ms: float = Field(default=config.DELAY_SCALE_MS, ge=0.0)
    delay_k: float = Field(default=config.DELAY_K, ge=0.0)
    delay_max_ms: float = Field(default=config.DELAY_MAX_MS, ge=0.0)

    @model_validator(mode="after")
    def _check_ordering(self) -> VerificationConfig:
        if not self.prevent_threshold < self.simplify_threshold <= self.delay_threshold:
            raise ValueError(
                "thresholds must satisfy prevent < simplify <= delay, got "
                f"{self.prevent_threshold} / {self.simplify_threshold} / "
                f"{self.delay_threshold}"
            )
        if not self.prevent_threshold < self.rollback_threshold:
            raise ValueError("rollback_threshold must be above prevent_threshold")
        if self.delay_threshold > self.confidence_ceiling:
            raise ValueError("delay_threshold cannot exceed confidence_ceiling")
        missing = set(RiskCategory) - set(self.category_k) | (
            set(RiskCategory) - set(self.category_multiplier)
        )
        if missing:
            names = ", ".join(sorted(c.value for c in missing))
            raise ValueError(f"missing category weights for: {names}")
        crisis = self.category_multiplier[RiskCategory.CRISIS]
        others = [
            m for c, m in self.category_multiplier.items() if c is not RiskCategory.CRISIS
        ]
        if others and crisis <= max(others):
            raise ValueError("crisis multiplier must be strictly the largest")
        return self
