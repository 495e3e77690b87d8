"""Evaluation counters for feature flags."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from prometheus_client import Counter

from qcfl.core.feature_flags.models import EvaluationReason, EvaluationResult

# Names with no definition share one series
UNKNOWN_FEATURE_LABEL = "<unknown>"

feature_flag_evaluations_total = Counter(
    "qcfl_feature_flag_evaluations_total",
    "Feature flag evaluations",
    ["feature", "result", "reason"],
)

feature_flag_config_errors_total = Counter(
    "qcfl_feature_flag_config_errors_total",
    "Feature definitions rejected while loading configuration",
    ["feature"],
)


@dataclass
class EvaluationMetrics:
    """Metrics for one feature's evaluations."""

    feature: str
    total_evaluations: int = 0
    enabled_count: int = 0
    disabled_count: int = 0
    reason_counts: Dict[str, int] = field(default_factory=dict)
    last_evaluation: Optional[datetime] = None

    @property
    def enabled_rate(self) -> float:
        if self.total_evaluations == 0:
            return 0.0
        return self.enabled_count / self.total_evaluations

    def record(self, result: EvaluationResult) -> None:
        self.total_evaluations += 1
        if result.enabled:
            self.enabled_count += 1
        else:
            self.disabled_count += 1
        reason = result.reason.value
        self.reason_counts[reason] = self.reason_counts.get(reason, 0) + 1
        self.last_evaluation = datetime.now(timezone.utc)


def metrics_key(result: EvaluationResult) -> str:
    if result.reason is EvaluationReason.UNKNOWN_FEATURE:
        return UNKNOWN_FEATURE_LABEL
    return result.feature


def observe_evaluation(result: EvaluationResult) -> None:
    """Increment the Prometheus counter for one evaluation."""
    feature_flag_evaluations_total.labels(
        feature=metrics_key(result),
        result="enabled" if result.enabled else "disabled",
        reason=result.reason.value,
    ).inc()


def observe_config_error(feature: Optional[str]) -> None:
    feature_flag_config_errors_total.labels(feature=feature or "<document>").inc()


__all__ = [
    "EvaluationMetrics",
    "UNKNOWN_FEATURE_LABEL",
    "metrics_key",
    "feature_flag_evaluations_total",
    "feature_flag_config_errors_total",
    "observe_evaluation",
    "observe_config_error",
]
