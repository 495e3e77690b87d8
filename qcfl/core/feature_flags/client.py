"""Feature Flag Client Implementation.

Holds the current :class:`FlagSnapshot` and answers flag queries against it.
Reload publishes a new snapshot by swapping one reference, so an evaluation
in flight sees either the old or the new definitions, never a mix.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from qcfl.core.config import Settings, get_settings
from qcfl.core.feature_flags.evaluator import FeatureFlagEvaluator
from qcfl.core.feature_flags.hashing import HashAlgorithm
from qcfl.core.feature_flags.loader import FlagSnapshot, load_flags_file
from qcfl.core.feature_flags.metrics import EvaluationMetrics, metrics_key
from qcfl.core.feature_flags.models import EvaluationResult, UserIdentity
from qcfl.core.logging.structured import feature_var, user_id_var

logger = logging.getLogger(__name__)

ReloadListener = Callable[[FlagSnapshot, FlagSnapshot], None]
UserLike = Union[UserIdentity, Dict[str, Any], None]


def _as_user(user: UserLike) -> UserIdentity:
    if isinstance(user, UserIdentity):
        return user
    return UserIdentity.from_dict(user)


@dataclass
class RolloutSimulation:
    """Outcome of evaluating one feature over a list of users."""

    feature: str
    total: int = 0
    enabled: int = 0
    disabled: int = 0
    users: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return self.enabled / self.total * 100


class FeatureFlagClient:
    """Evaluate flags against an atomically replaceable snapshot."""

    def __init__(
        self,
        snapshot: Optional[FlagSnapshot] = None,
        evaluator: Optional[FeatureFlagEvaluator] = None,
        config_path: Optional[Union[str, Path]] = None,
        strict: bool = False,
        check_dependencies: bool = True,
    ):
        """Initialize feature flag client.

        Args:
            snapshot: Initial definitions (empty when omitted)
            evaluator: Decision engine, a default MD5 evaluator when omitted
            config_path: File used by :meth:`reload_from_file`
            strict: Reject a whole file when any feature in it is invalid
            check_dependencies: Require dependencies in :meth:`is_enabled`
        """
        self.evaluator = evaluator or FeatureFlagEvaluator()
        self.config_path = Path(config_path) if config_path else None
        self.strict = strict
        self.check_dependencies = check_dependencies

        self._snapshot: FlagSnapshot = snapshot if snapshot is not None else FlagSnapshot()
        self._reload_lock = threading.Lock()
        self._metrics_lock = threading.Lock()
        self._metrics: Dict[str, EvaluationMetrics] = {}
        self._listeners: List[ReloadListener] = []

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        evaluator: Optional[FeatureFlagEvaluator] = None,
        strict: bool = False,
        check_dependencies: bool = True,
    ) -> "FeatureFlagClient":
        """Create a client from a YAML or JSON file."""
        client = cls(
            evaluator=evaluator,
            config_path=path,
            strict=strict,
            check_dependencies=check_dependencies,
        )
        client.reload_from_file()
        return client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FeatureFlagClient":
        """Create a client configured from environment settings."""
        settings = settings or get_settings()
        evaluator = FeatureFlagEvaluator(
            hash_algorithm=HashAlgorithm(settings.FEATURE_FLAG_HASH_ALGORITHM.lower()),
            record_metrics=True,
        )
        if settings.FEATURE_FLAG_CONFIG_PATH:
            return cls.from_file(
                settings.FEATURE_FLAG_CONFIG_PATH,
                evaluator=evaluator,
                strict=settings.FEATURE_FLAG_STRICT,
                check_dependencies=settings.FEATURE_FLAG_CHECK_DEPENDENCIES,
            )
        return cls(
            evaluator=evaluator,
            strict=settings.FEATURE_FLAG_STRICT,
            check_dependencies=settings.FEATURE_FLAG_CHECK_DEPENDENCIES,
        )

    @property
    def snapshot(self) -> FlagSnapshot:
        return self._snapshot

    # Reload

    def add_reload_listener(self, listener: ReloadListener) -> None:
        """Register a callback receiving (old, new) snapshots after reload."""
        self._listeners.append(listener)

    def reload(self, snapshot: FlagSnapshot) -> FlagSnapshot:
        """Publish a new snapshot and return the previous one."""
        with self._reload_lock:
            previous = self._snapshot
            self._snapshot = snapshot

        logger.info(
            "Feature flags reloaded from %s: %d flags (%d rejected)",
            snapshot.source,
            len(snapshot),
            len(snapshot.errors),
        )
        for listener in list(self._listeners):
            try:
                listener(previous, snapshot)
            except Exception as e:
                logger.error(f"Reload listener error: {e}")
        return previous

    def reload_from_file(self, path: Optional[Union[str, Path]] = None) -> FlagSnapshot:
        """Load the config file and publish it.

        Raises:
            ConfigurationError: if the file is missing or unparsable; the
                current snapshot stays in place.
        """
        if path is not None:
            self.config_path = Path(path)
        if self.config_path is None:
            raise ValueError("No feature flag config path configured")
        return self.reload(load_flags_file(self.config_path, strict=self.strict))

    # Evaluation

    def evaluate(self, name: str, user: UserLike = None) -> EvaluationResult:
        """Evaluate a flag for a user and explain the decision."""
        snapshot = self._snapshot
        identity = _as_user(user)
        feature_token = feature_var.set(name)
        user_token = user_id_var.set(identity.id)
        try:
            if self.check_dependencies:
                result = self.evaluator.evaluate_active(name, snapshot.flags, identity)
            else:
                result = self.evaluator.evaluate(name, snapshot.get(name), identity)
            self._record(result)
            logger.debug(
                "Flag '%s' for %s: %s (%s)",
                name,
                identity.hash_key,
                result.enabled,
                result.reason.value,
            )
        finally:
            user_id_var.reset(user_token)
            feature_var.reset(feature_token)
        return result

    def is_enabled(self, name: str, user: UserLike = None) -> bool:
        """Check if a feature flag is enabled."""
        return self.evaluate(name, user).enabled

    def value_of(self, name: str, default: Any = None, user: UserLike = None) -> Any:
        """Return the flag's value when enabled for the user, else ``default``."""
        snapshot = self._snapshot
        config = snapshot.get(name)
        if config is None or config.value is None:
            return default
        if not self._is_enabled_in(snapshot, name, _as_user(user)):
            return default
        return config.value

    def dependencies_satisfied(self, name: str, user: UserLike = None) -> bool:
        return self.evaluator.dependencies_satisfied(
            name, self._snapshot.flags, _as_user(user)
        )

    def _is_enabled_in(self, snapshot: FlagSnapshot, name: str, user: UserIdentity) -> bool:
        if self.check_dependencies:
            return self.evaluator.is_active(name, snapshot.flags, user)
        return self.evaluator.is_enabled(name, snapshot.get(name), user)

    # Reporting

    def enabled_features(self, user: UserLike = None) -> List[Dict[str, Any]]:
        """List features active for a user."""
        snapshot = self._snapshot
        identity = _as_user(user)
        enabled = []
        for config in snapshot:
            if self._is_enabled_in(snapshot, config.name, identity):
                enabled.append({
                    "name": config.name,
                    "version": config.version,
                    "description": config.description,
                    "value": config.value,
                })
        return enabled

    def export_client_config(self, user: UserLike = None) -> Dict[str, Dict[str, Any]]:
        """Flag states safe to ship to a browser; auth-only and private flags are left out."""
        snapshot = self._snapshot
        identity = _as_user(user)
        exported = {}
        for config in snapshot:
            if config.requires_auth or config.private:
                continue
            enabled = self._is_enabled_in(snapshot, config.name, identity)
            exported[config.name] = {
                "enabled": enabled,
                "value": config.value if enabled else None,
            }
        return exported

    def simulate_rollout(self, name: str, users: Iterable[UserLike]) -> RolloutSimulation:
        """Evaluate one flag over a population without touching metrics."""
        snapshot = self._snapshot
        simulation = RolloutSimulation(feature=name)
        for user in users:
            identity = _as_user(user)
            enabled = self._is_enabled_in(snapshot, name, identity)
            simulation.total += 1
            if enabled:
                simulation.enabled += 1
            else:
                simulation.disabled += 1
            simulation.users.append({
                "id": identity.id,
                "email": identity.email,
                "enabled": enabled,
                "bucket": self.evaluator.bucket_for(identity),
            })
        return simulation

    def _record(self, result: EvaluationResult) -> None:
        key = metrics_key(result)
        with self._metrics_lock:
            metrics = self._metrics.get(key)
            if metrics is None:
                metrics = self._metrics[key] = EvaluationMetrics(feature=key)
            metrics.record(result)

    def get_metrics(self, name: str) -> Optional[EvaluationMetrics]:
        """Get evaluation metrics for a flag."""
        return self._metrics.get(name)

    def get_all_metrics(self) -> Dict[str, EvaluationMetrics]:
        with self._metrics_lock:
            return dict(self._metrics)

    def summary(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        with self._metrics_lock:
            checks = sum(m.total_evaluations for m in self._metrics.values())
        return {
            "source": snapshot.source,
            "total_features": len(snapshot),
            "globally_enabled": sum(1 for config in snapshot if config.enabled),
            "config_errors": {name: str(error) for name, error in snapshot.errors.items()},
            "feature_checks": checks,
        }


__all__ = ["FeatureFlagClient", "RolloutSimulation", "ReloadListener"]
