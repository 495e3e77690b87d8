"""Feature flag decision engine.

The evaluator is a pure function object: it reads the definitions it is
given and returns a decision. It holds no flag state of its own, so a single
instance can be shared between threads and coroutines.

Decision order for a single feature:

1. unknown feature -> disabled
2. master switch off -> disabled
3. user email on the allowlist -> enabled
4. rollout percentage set -> enabled iff the user's bucket is below it
5. otherwise enabled only if no allowlist was configured
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Set, Union

from qcfl.core.feature_flags.hashing import HashAlgorithm, rollout_bucket
from qcfl.core.feature_flags.metrics import observe_evaluation
from qcfl.core.feature_flags.models import (
    EvaluationReason,
    EvaluationResult,
    FeatureConfig,
    UserIdentity,
)

logger = logging.getLogger(__name__)

_ANONYMOUS = UserIdentity()


class FeatureFlagEvaluator:
    """Evaluate feature definitions for a user."""

    def __init__(
        self,
        hash_algorithm: Union[HashAlgorithm, str] = HashAlgorithm.MD5,
        record_metrics: bool = False,
    ):
        """Initialize evaluator.

        Args:
            hash_algorithm: Algorithm used to place users into rollout buckets
            record_metrics: Increment Prometheus counters on each evaluation
        """
        self.hash_algorithm = HashAlgorithm(hash_algorithm)
        self.record_metrics = record_metrics

    def bucket_for(self, user: Optional[UserIdentity]) -> int:
        """Rollout bucket (0-99) for a user; users without an id share one."""
        return rollout_bucket((user or _ANONYMOUS).hash_key, self.hash_algorithm)

    def evaluate(
        self,
        feature_name: str,
        config: Optional[FeatureConfig],
        user: Optional[UserIdentity] = None,
    ) -> EvaluationResult:
        """Evaluate one feature and explain the decision."""
        user = user or _ANONYMOUS

        if config is None:
            result = EvaluationResult(feature_name, False, EvaluationReason.UNKNOWN_FEATURE)
        elif not config.enabled:
            result = EvaluationResult(feature_name, False, EvaluationReason.DISABLED)
        elif config.has_allowlist and user.email and user.email in config.allowed_users:
            result = EvaluationResult(feature_name, True, EvaluationReason.ALLOWLIST)
        elif config.has_rollout:
            bucket = self.bucket_for(user)
            if bucket < config.rollout_percentage:
                result = EvaluationResult(feature_name, True, EvaluationReason.ROLLOUT_IN, bucket)
            else:
                result = EvaluationResult(feature_name, False, EvaluationReason.ROLLOUT_OUT, bucket)
        elif config.has_allowlist:
            result = EvaluationResult(feature_name, False, EvaluationReason.NOT_ALLOWLISTED)
        else:
            result = EvaluationResult(feature_name, True, EvaluationReason.DEFAULT_ON)

        if self.record_metrics:
            observe_evaluation(result)
        return result

    def is_enabled(
        self,
        feature_name: str,
        config: Optional[FeatureConfig],
        user: Optional[UserIdentity] = None,
    ) -> bool:
        """Check if a feature is enabled for a user."""
        return self.evaluate(feature_name, config, user).enabled

    def value_of(
        self,
        feature_name: str,
        config: Optional[FeatureConfig],
        default_value: Any = None,
        user: Optional[UserIdentity] = None,
    ) -> Any:
        """Return the feature's payload when it is enabled, else ``default_value``."""
        if config is None or config.value is None:
            return default_value
        if not self.is_enabled(feature_name, config, user):
            return default_value
        return config.value

    def dependencies_satisfied(
        self,
        feature_name: str,
        config_map: Mapping[str, FeatureConfig],
        user: Optional[UserIdentity] = None,
    ) -> bool:
        """Check that every (transitive) dependency is enabled for the same user."""
        return self.check_dependencies(feature_name, config_map, user) is None

    def check_dependencies(
        self,
        feature_name: str,
        config_map: Mapping[str, FeatureConfig],
        user: Optional[UserIdentity] = None,
    ) -> Optional[EvaluationReason]:
        """Walk dependencies and return the failure reason, or None if satisfied."""
        if feature_name not in config_map:
            return EvaluationReason.UNKNOWN_FEATURE
        return self._walk(feature_name, config_map, user or _ANONYMOUS, [], set())

    def _walk(
        self,
        feature_name: str,
        config_map: Mapping[str, FeatureConfig],
        user: UserIdentity,
        path: List[str],
        verified: Set[str],
    ) -> Optional[EvaluationReason]:
        path.append(feature_name)
        try:
            for dependency in config_map[feature_name].dependencies:
                if dependency in path:
                    cycle = path[path.index(dependency):] + [dependency]
                    logger.warning(
                        "Dependency cycle while evaluating '%s': %s",
                        path[0],
                        " -> ".join(cycle),
                    )
                    return EvaluationReason.DEPENDENCY_CYCLE
                if dependency in verified:
                    continue

                if not self.is_enabled(dependency, config_map.get(dependency), user):
                    logger.debug(
                        "Dependency '%s' of '%s' is not enabled", dependency, feature_name
                    )
                    return EvaluationReason.DEPENDENCY_UNSATISFIED

                failure = self._walk(dependency, config_map, user, path, verified)
                if failure is not None:
                    return failure
                verified.add(dependency)
            return None
        finally:
            path.pop()

    def evaluate_active(
        self,
        feature_name: str,
        config_map: Mapping[str, FeatureConfig],
        user: Optional[UserIdentity] = None,
    ) -> EvaluationResult:
        """Evaluate a feature together with its dependencies."""
        result = self.evaluate(feature_name, config_map.get(feature_name), user)
        if not result.enabled:
            return result

        failure = self.check_dependencies(feature_name, config_map, user)
        if failure is None:
            return result
        return EvaluationResult(feature_name, False, failure, result.bucket)

    def is_active(
        self,
        feature_name: str,
        config_map: Mapping[str, FeatureConfig],
        user: Optional[UserIdentity] = None,
    ) -> bool:
        """Feature is enabled and its dependencies are satisfied."""
        return self.evaluate_active(feature_name, config_map, user).enabled


__all__ = ["FeatureFlagEvaluator"]
