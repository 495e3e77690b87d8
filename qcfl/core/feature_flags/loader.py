"""Feature flag configuration loading.

Turns a parsed configuration document (YAML or JSON) into an immutable
:class:`FlagSnapshot`. Each malformed feature is rejected on its own; the
rest of the document still loads.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import yaml

from qcfl.core.errors import (
    ConfigurationError,
    DependencyCycleError,
    ErrorCode,
    FeatureConfigError,
)
from qcfl.core.feature_flags.metrics import observe_config_error
from qcfl.core.feature_flags.models import FeatureConfig

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([^:}]+)(?::([^}]*))?\}")


@dataclass(frozen=True)
class FlagSnapshot:
    """An immutable, validated set of feature definitions."""

    flags: Mapping[str, FeatureConfig] = field(default_factory=dict)
    errors: Mapping[str, ConfigurationError] = field(default_factory=dict)
    source: str = "<memory>"
    loaded_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "flags", MappingProxyType(dict(self.flags)))
        object.__setattr__(self, "errors", MappingProxyType(dict(self.errors)))

    def get(self, name: str) -> Optional[FeatureConfig]:
        return self.flags.get(name)

    def names(self) -> List[str]:
        return list(self.flags.keys())

    def __contains__(self, name: object) -> bool:
        return name in self.flags

    def __len__(self) -> int:
        return len(self.flags)

    def __iter__(self) -> Iterator[FeatureConfig]:
        return iter(self.flags.values())


def merge_feature_maps(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep merge ``override`` onto ``base``; nested dicts merge, other values replace."""
    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        existing = result.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            result[key] = merge_feature_maps(existing, value)
        else:
            result[key] = value
    return result


def interpolate_env(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """Substitute ``${VAR}`` and ``${VAR:default}`` in strings, recursively."""
    env = os.environ if environ is None else environ

    if isinstance(value, str):
        def _replace(match: "re.Match[str]") -> str:
            key, default = match.group(1), match.group(2)
            if key in env:
                return env[key]
            if default is not None:
                logger.warning(
                    "Environment variable '%s' not found, using default: %s", key, default
                )
                return default
            logger.warning("Environment variable '%s' not found and no default provided", key)
            return ""

        return _ENV_PATTERN.sub(_replace, value)
    if isinstance(value, list):
        return [interpolate_env(item, env) for item in value]
    if isinstance(value, dict):
        return {k: interpolate_env(v, env) for k, v in value.items()}
    return value


def _cycle_through(name: str, flags: Mapping[str, FeatureConfig]) -> Optional[List[str]]:
    """Shortest dependency path from ``name`` back to itself, if any."""
    parents: Dict[str, str] = {}
    queue = deque([name])
    while queue:
        current = queue.popleft()
        for dep in flags[current].dependencies:
            if dep == name:
                path = [current]
                while path[-1] != name:
                    path.append(parents[path[-1]])
                return path[::-1] + [name]
            if dep in flags and dep not in parents:
                parents[dep] = current
                queue.append(dep)
    return None


def _find_cycles(flags: Mapping[str, FeatureConfig]) -> Dict[str, List[str]]:
    """Return feature name -> cycle path for every feature on a dependency cycle."""
    on_cycle: Dict[str, List[str]] = {}
    for name in flags:
        cycle = _cycle_through(name, flags)
        if cycle is not None:
            on_cycle[name] = cycle
    return on_cycle


def _unwrap_features(data: Mapping[str, Any]) -> Any:
    """Return the feature map, unwrapping a ``features`` envelope.

    ``features`` is an envelope when it is the only key or holds a mapping of
    definitions. Otherwise it is a feature of that name in a flat map.
    """
    if "features" not in data:
        return data
    inner = data["features"]
    if len(data) == 1:
        return inner
    if isinstance(inner, Mapping) and all(isinstance(v, Mapping) for v in inner.values()):
        return inner
    return data


def load_flags(
    data: Any,
    strict: bool = False,
    source: str = "<memory>",
) -> FlagSnapshot:
    """Validate a parsed document into a snapshot.

    Args:
        data: Mapping of feature name -> definition, or a document with a
            top-level ``features`` envelope (see :func:`_unwrap_features`)
        strict: Raise on the first invalid feature instead of skipping it
        source: Label recorded on the snapshot and in log messages

    Raises:
        ConfigurationError: if the document is not a mapping, or ``strict``
            is set and a feature is invalid.
    """
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Feature configuration from {source} must be a mapping, got {type(data).__name__}",
            code=ErrorCode.PARSE_FAILED,
        )
    features = _unwrap_features(data)
    if features is None:
        features = {}
    if not isinstance(features, Mapping):
        raise ConfigurationError(
            f"'features' in {source} must be a mapping", code=ErrorCode.PARSE_FAILED
        )

    flags: Dict[str, FeatureConfig] = {}
    errors: Dict[str, ConfigurationError] = {}

    for name, definition in features.items():
        try:
            flags[str(name)] = FeatureConfig.from_dict(str(name), definition)
        except FeatureConfigError as e:
            if strict:
                raise
            errors[str(name)] = e

    for name, cycle in _find_cycles(flags).items():
        error = DependencyCycleError(name, cycle)
        if strict:
            raise error
        errors[name] = error
        del flags[name]

    for name, error in errors.items():
        logger.error("Rejected feature flag from %s: %s", source, error)
        observe_config_error(name)

    logger.info(
        "Loaded %d feature flags from %s (%d rejected)", len(flags), source, len(errors)
    )
    return FlagSnapshot(flags=flags, errors=errors, source=source)


def read_document(path: Union[str, Path]) -> Any:
    """Parse a JSON or YAML configuration file."""
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(
            f"Feature flag config not found: {file_path}", code=ErrorCode.CONFIG_NOT_FOUND
        )

    try:
        content = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ConfigurationError(
            f"Feature flag config {file_path} is not valid UTF-8: {e}",
            code=ErrorCode.PARSE_FAILED,
        ) from e
    try:
        if file_path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content)
        if file_path.suffix == ".json":
            return json.loads(content)
        # Try JSON first, then YAML
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            return yaml.safe_load(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Error parsing feature flag config {file_path}: {e}",
            code=ErrorCode.PARSE_FAILED,
        ) from e


def load_flags_file(path: Union[str, Path], strict: bool = False) -> FlagSnapshot:
    """Load a snapshot from a JSON or YAML file."""
    return load_flags(read_document(path), strict=strict, source=str(path))


__all__ = [
    "FlagSnapshot",
    "load_flags",
    "load_flags_file",
    "read_document",
    "merge_feature_maps",
    "interpolate_env",
]
