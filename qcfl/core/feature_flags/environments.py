"""Environment-specific flag configuration.

A multi-environment document looks like::

    defaults:
      features:
        darkMode: {enabled: true, value: auto}
    staging:
      features:
        newDashboard: {enabled: true, rolloutPercentage: 50}
    production:
      features:
        newDashboard: {enabled: true, rolloutPercentage: "${DASHBOARD_PCT:10}"}

The selected environment is merged onto ``defaults``, environment variables
are substituted, and the resulting feature map is handed to a
:class:`FeatureFlagClient`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from qcfl.core.config import get_settings
from qcfl.core.errors import ConfigurationError, ErrorCode
from qcfl.core.feature_flags.client import FeatureFlagClient
from qcfl.core.feature_flags.evaluator import FeatureFlagEvaluator
from qcfl.core.feature_flags.loader import (
    FlagSnapshot,
    interpolate_env,
    load_flags,
    merge_feature_maps,
    read_document,
)

logger = logging.getLogger(__name__)

DEFAULTS_KEY = "defaults"


_SCALAR_KEYS = ("enabled", "rolloutPercentage", "rollout_percentage")


def _parse_scalar(value: str) -> Any:
    # An unset variable leaves "" behind; keep it so validation rejects it
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    return value if parsed is None else parsed


def _coerce_scalars(features: Mapping[str, Any]) -> Dict[str, Any]:
    """Re-parse interpolated switches so ``"${PCT:10}"`` becomes ``10``."""
    result: Dict[str, Any] = {}
    for name, definition in features.items():
        if isinstance(definition, Mapping):
            definition = dict(definition)
            for key in _SCALAR_KEYS:
                if isinstance(definition.get(key), str):
                    definition[key] = _parse_scalar(definition[key])
        result[name] = definition
    return result


def resolve_environment(
    document: Mapping[str, Any],
    environment: str,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Return the merged, interpolated feature map for one environment."""
    if not isinstance(document, Mapping):
        raise ConfigurationError(
            "Environment configuration must be a mapping", code=ErrorCode.PARSE_FAILED
        )

    env_section = document.get(environment)
    if not isinstance(env_section, Mapping):
        raise ConfigurationError(
            f"Configuration for environment '{environment}' not found",
            code=ErrorCode.UNKNOWN_ENVIRONMENT,
        )

    defaults = document.get(DEFAULTS_KEY) or {}
    merged = merge_feature_maps(defaults, env_section)
    features = merged.get("features") or {}
    if not isinstance(features, Mapping):
        raise ConfigurationError(
            f"'features' for environment '{environment}' must be a mapping",
            code=ErrorCode.PARSE_FAILED,
        )
    return _coerce_scalars(interpolate_env(dict(features), environ))


class EnvironmentFlagClient:
    """Flag client bound to one deployment environment."""

    def __init__(
        self,
        document: Mapping[str, Any],
        environment: Optional[str] = None,
        evaluator: Optional[FeatureFlagEvaluator] = None,
        strict: bool = False,
        environ: Optional[Mapping[str, str]] = None,
        source: str = "<memory>",
    ):
        self.environment = environment or get_settings().FEATURE_FLAG_ENVIRONMENT
        self.strict = strict
        self._environ = environ
        self._source = source
        self.client = FeatureFlagClient(evaluator=evaluator, strict=strict)
        self.load(document)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        environment: Optional[str] = None,
        evaluator: Optional[FeatureFlagEvaluator] = None,
        strict: bool = False,
    ) -> "EnvironmentFlagClient":
        return cls(
            read_document(path),
            environment=environment,
            evaluator=evaluator,
            strict=strict,
            source=str(path),
        )

    def load(self, document: Mapping[str, Any]) -> FlagSnapshot:
        """Resolve this environment from ``document`` and publish it."""
        features = resolve_environment(document, self.environment, self._environ)
        snapshot = load_flags(
            features,
            strict=self.strict,
            source=f"{self._source}#{self.environment}",
        )
        self.client.reload(snapshot)
        logger.info(f"{self.environment} feature configuration loaded")
        return snapshot

    @staticmethod
    def available_environments(document: Mapping[str, Any]) -> List[str]:
        return [key for key in document if key != DEFAULTS_KEY]

    def is_enabled(self, name: str, user: Any = None) -> bool:
        return self.client.is_enabled(name, user)

    def value_of(self, name: str, default: Any = None, user: Any = None) -> Any:
        return self.client.value_of(name, default, user)

    def enabled_features(self, user: Any = None) -> List[Dict[str, Any]]:
        return self.client.enabled_features(user)

    def is_development(self) -> bool:
        return self.environment == "development"

    def is_staging(self) -> bool:
        return self.environment == "staging"

    def is_production(self) -> bool:
        return self.environment == "production"


__all__ = ["EnvironmentFlagClient", "resolve_environment"]
