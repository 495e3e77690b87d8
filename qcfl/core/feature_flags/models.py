"""Feature flag data model.

Definitions are validated once, when they are built from configuration, and
are immutable afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from qcfl.core.errors import ErrorCode, FeatureConfigError

ANONYMOUS_ID = "anonymous"

# camelCase keys used by the dashboard YAML files -> field names
_KEY_ALIASES = {
    "rolloutPercentage": "rollout_percentage",
    "allowedUsers": "allowed_users",
    "requiresAuth": "requires_auth",
}

_KNOWN_KEYS = {
    "enabled",
    "rollout_percentage",
    "allowed_users",
    "value",
    "dependencies",
    "description",
    "version",
    "requires_auth",
    "private",
}


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {_KEY_ALIASES.get(key, key): value for key, value in data.items()}


def _parse_percentage(name: str, raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise FeatureConfigError(
            name,
            f"rollout percentage must be a number, got {raw!r}",
            code=ErrorCode.INVALID_ROLLOUT,
        )
    if isinstance(raw, float):
        if not raw.is_integer():
            raise FeatureConfigError(
                name,
                f"rollout percentage must be a whole number, got {raw!r}",
                code=ErrorCode.INVALID_ROLLOUT,
            )
        raw = int(raw)
    if not 0 <= raw <= 100:
        raise FeatureConfigError(
            name,
            f"rollout percentage must be between 0 and 100, got {raw}",
            code=ErrorCode.INVALID_ROLLOUT,
        )
    return raw


def _parse_names(name: str, raw: Any, what: str, code: ErrorCode) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise FeatureConfigError(name, f"{what} must be a list of strings", code=code)
    for entry in raw:
        if not isinstance(entry, str):
            raise FeatureConfigError(
                name, f"{what} entries must be strings, got {entry!r}", code=code
            )
    return tuple(raw)


@dataclass(frozen=True)
class FeatureConfig:
    """Activation policy for one named feature."""

    name: str
    enabled: bool = False
    rollout_percentage: Optional[int] = None
    allowed_users: Tuple[str, ...] = ()
    value: Any = None
    dependencies: Tuple[str, ...] = ()
    description: str = ""
    version: str = ""
    requires_auth: bool = False
    private: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def has_allowlist(self) -> bool:
        return bool(self.allowed_users)

    @property
    def has_rollout(self) -> bool:
        return self.rollout_percentage is not None

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "FeatureConfig":
        """Build a validated definition.

        Raises:
            FeatureConfigError: if any field has the wrong shape.
        """
        if not isinstance(name, str) or not name:
            raise FeatureConfigError(str(name), "feature name must be a non-empty string")
        if not isinstance(data, Mapping):
            raise FeatureConfigError(name, f"definition must be a mapping, got {type(data).__name__}")

        fields = _normalize_keys(data)

        enabled = fields.get("enabled", False)
        if not isinstance(enabled, bool):
            raise FeatureConfigError(name, f"'enabled' must be a boolean, got {enabled!r}")

        rollout = _parse_percentage(name, fields.get("rollout_percentage"))
        allowed = _parse_names(
            name, fields.get("allowed_users"), "allowedUsers", ErrorCode.INVALID_ALLOWLIST
        )
        dependencies = _parse_names(
            name, fields.get("dependencies"), "dependencies", ErrorCode.INVALID_DEPENDENCIES
        )
        if name in dependencies:
            raise FeatureConfigError(
                name, "feature cannot depend on itself", code=ErrorCode.DEPENDENCY_CYCLE
            )

        metadata = {k: v for k, v in fields.items() if k not in _KNOWN_KEYS}

        return cls(
            name=name,
            enabled=enabled,
            rollout_percentage=rollout,
            allowed_users=allowed,
            value=fields.get("value"),
            dependencies=dependencies,
            description=str(fields.get("description") or ""),
            version=str(fields.get("version") or ""),
            requires_auth=bool(fields.get("requires_auth", False)),
            private=bool(fields.get("private", False)),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary using the YAML key names."""
        data: Dict[str, Any] = {"enabled": self.enabled}
        if self.rollout_percentage is not None:
            data["rolloutPercentage"] = self.rollout_percentage
        if self.allowed_users:
            data["allowedUsers"] = list(self.allowed_users)
        if self.value is not None:
            data["value"] = self.value
        if self.dependencies:
            data["dependencies"] = list(self.dependencies)
        if self.description:
            data["description"] = self.description
        if self.version:
            data["version"] = self.version
        if self.requires_auth:
            data["requiresAuth"] = True
        if self.private:
            data["private"] = True
        data.update(self.metadata)
        return data


@dataclass(frozen=True)
class UserIdentity:
    """The subject a flag is evaluated for."""

    id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def anonymous(cls) -> "UserIdentity":
        return cls()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "UserIdentity":
        if not data:
            return cls()
        extra = {k: v for k, v in data.items() if k not in ("id", "email", "role")}
        user_id = data.get("id")
        return cls(
            id=str(user_id) if user_id not in (None, "") else None,
            email=data.get("email") or None,
            role=data.get("role") or None,
            attributes=extra,
        )

    @property
    def hash_key(self) -> str:
        """Stable identifier used for rollout hashing."""
        return self.id or ANONYMOUS_ID

    @property
    def is_anonymous(self) -> bool:
        return not self.id and not self.email


class EvaluationReason(Enum):
    """Why a flag resolved the way it did."""

    UNKNOWN_FEATURE = "unknown_feature"
    DISABLED = "disabled"
    ALLOWLIST = "allowlist"
    ROLLOUT_IN = "rollout_in"
    ROLLOUT_OUT = "rollout_out"
    DEFAULT_ON = "default_on"
    NOT_ALLOWLISTED = "not_allowlisted"
    DEPENDENCY_UNSATISFIED = "dependency_unsatisfied"
    DEPENDENCY_CYCLE = "dependency_cycle"


@dataclass(frozen=True)
class EvaluationResult:
    """Result of a flag evaluation."""

    feature: str
    enabled: bool
    reason: EvaluationReason
    bucket: Optional[int] = None


__all__ = [
    "ANONYMOUS_ID",
    "FeatureConfig",
    "UserIdentity",
    "EvaluationReason",
    "EvaluationResult",
]
