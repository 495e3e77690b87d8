"""Shared error codes and configuration exceptions.

Configuration problems are detected when flag definitions are loaded, never
while a flag is evaluated.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence, Tuple


class ErrorCode(str, Enum):
    CONFIG_INVALID = "CONFIG_INVALID"
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    PARSE_FAILED = "PARSE_FAILED"
    INVALID_ROLLOUT = "INVALID_ROLLOUT"  # Percentage missing range or non-numeric
    INVALID_ALLOWLIST = "INVALID_ALLOWLIST"
    INVALID_DEPENDENCIES = "INVALID_DEPENDENCIES"
    DEPENDENCY_CYCLE = "DEPENDENCY_CYCLE"
    UNKNOWN_ENVIRONMENT = "UNKNOWN_ENVIRONMENT"


class ConfigurationError(Exception):
    """Raised when flag configuration cannot be used."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
        feature: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.feature = feature

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "feature": self.feature,
            "message": self.message,
        }


class FeatureConfigError(ConfigurationError):
    """A single feature definition is malformed."""

    def __init__(
        self,
        feature: str,
        message: str,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
    ):
        super().__init__(f"Feature '{feature}': {message}", code=code, feature=feature)


class DependencyCycleError(FeatureConfigError):
    """A feature participates in a dependency cycle."""

    def __init__(self, feature: str, cycle: Sequence[str]):
        self.cycle: Tuple[str, ...] = tuple(cycle)
        super().__init__(
            feature,
            "dependency cycle " + " -> ".join(self.cycle),
            code=ErrorCode.DEPENDENCY_CYCLE,
        )


__all__ = [
    "ErrorCode",
    "ConfigurationError",
    "FeatureConfigError",
    "DependencyCycleError",
]
