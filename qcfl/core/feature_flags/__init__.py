"""Feature Flags for the Quantum Cash Flow Lattice dashboard.

Provides deterministic feature gating with:
- Master on/off switch per feature
- Email allowlists
- Percentage rollouts via stable hashing
- Dependency checks between features
- Atomic hot reload of YAML/JSON definitions
"""

from qcfl.core.feature_flags.client import FeatureFlagClient, RolloutSimulation
from qcfl.core.feature_flags.decorators import feature_flag
from qcfl.core.feature_flags.environments import EnvironmentFlagClient, resolve_environment
from qcfl.core.feature_flags.evaluator import FeatureFlagEvaluator
from qcfl.core.feature_flags.hashing import HashAlgorithm, rollout_bucket, stable_hash
from qcfl.core.feature_flags.loader import (
    FlagSnapshot,
    interpolate_env,
    load_flags,
    load_flags_file,
    merge_feature_maps,
)
from qcfl.core.feature_flags.metrics import UNKNOWN_FEATURE_LABEL, EvaluationMetrics
from qcfl.core.feature_flags.models import (
    ANONYMOUS_ID,
    EvaluationReason,
    EvaluationResult,
    FeatureConfig,
    UserIdentity,
)
from qcfl.core.feature_flags.watcher import FlagFileWatcher

__all__ = [
    "ANONYMOUS_ID",
    "EnvironmentFlagClient",
    "EvaluationMetrics",
    "EvaluationReason",
    "EvaluationResult",
    "FeatureConfig",
    "FeatureFlagClient",
    "FeatureFlagEvaluator",
    "FlagFileWatcher",
    "FlagSnapshot",
    "HashAlgorithm",
    "RolloutSimulation",
    "UNKNOWN_FEATURE_LABEL",
    "UserIdentity",
    "feature_flag",
    "interpolate_env",
    "load_flags",
    "load_flags_file",
    "merge_feature_maps",
    "resolve_environment",
    "rollout_bucket",
    "stable_hash",
]
