"""Tests for feature definition validation and loading."""

import json
import logging

import pytest

from qcfl.core.errors import (
    ConfigurationError,
    DependencyCycleError,
    ErrorCode,
    FeatureConfigError,
)
from qcfl.core.feature_flags import (
    FeatureConfig,
    interpolate_env,
    load_flags,
    load_flags_file,
    merge_feature_maps,
)


class TestFeatureConfig:
    """Tests for FeatureConfig.from_dict."""

    def test_camel_case_keys(self):
        config = FeatureConfig.from_dict(
            "newDashboard",
            {
                "enabled": True,
                "rolloutPercentage": 50,
                "allowedUsers": ["admin@example.com"],
                "requiresAuth": True,
                "rolloutStrategy": "gradual",
            },
        )
        assert config.enabled is True
        assert config.rollout_percentage == 50
        assert config.allowed_users == ("admin@example.com",)
        assert config.requires_auth is True
        assert dict(config.metadata) == {"rolloutStrategy": "gradual"}

    def test_snake_case_keys(self):
        config = FeatureConfig.from_dict(
            "f", {"enabled": True, "rollout_percentage": 10, "allowed_users": []}
        )
        assert config.rollout_percentage == 10
        assert config.allowed_users == ()

    def test_defaults(self):
        config = FeatureConfig.from_dict("f", {})
        assert config.enabled is False
        assert config.rollout_percentage is None
        assert config.value is None
        assert config.dependencies == ()

    def test_integral_float_percentage(self):
        assert FeatureConfig.from_dict("f", {"rolloutPercentage": 25.0}).rollout_percentage == 25

    @pytest.mark.parametrize("raw", [-1, 101, 150, 12.5, "fifty", "50", True, [50]])
    def test_invalid_percentage(self, raw):
        with pytest.raises(FeatureConfigError) as exc_info:
            FeatureConfig.from_dict("f", {"enabled": True, "rolloutPercentage": raw})
        assert exc_info.value.code == ErrorCode.INVALID_ROLLOUT
        assert exc_info.value.feature == "f"

    @pytest.mark.parametrize("raw", ["admin@example.com", [1], ["a@example.com", None], {"a": 1}])
    def test_invalid_allowlist(self, raw):
        with pytest.raises(FeatureConfigError) as exc_info:
            FeatureConfig.from_dict("f", {"enabled": True, "allowedUsers": raw})
        assert exc_info.value.code == ErrorCode.INVALID_ALLOWLIST

    def test_invalid_enabled(self):
        with pytest.raises(FeatureConfigError):
            FeatureConfig.from_dict("f", {"enabled": "true"})

    def test_invalid_dependencies(self):
        with pytest.raises(FeatureConfigError) as exc_info:
            FeatureConfig.from_dict("f", {"dependencies": "other"})
        assert exc_info.value.code == ErrorCode.INVALID_DEPENDENCIES

    def test_self_dependency(self):
        with pytest.raises(FeatureConfigError) as exc_info:
            FeatureConfig.from_dict("f", {"dependencies": ["f"]})
        assert exc_info.value.code == ErrorCode.DEPENDENCY_CYCLE

    def test_definition_must_be_mapping(self):
        with pytest.raises(FeatureConfigError):
            FeatureConfig.from_dict("f", True)

    def test_to_dict(self):
        data = {
            "enabled": True,
            "rolloutPercentage": 25,
            "allowedUsers": ["a@example.com"],
            "value": "dark",
            "description": "Dark mode",
        }
        assert FeatureConfig.from_dict("f", data).to_dict() == data

    def test_immutable(self):
        config = FeatureConfig.from_dict("f", {"enabled": True})
        with pytest.raises(AttributeError):
            config.enabled = False
        with pytest.raises(TypeError):
            config.metadata["x"] = 1


class TestLoadFlags:
    """Tests for load_flags."""

    def test_loads_features(self, dashboard_features):
        snapshot = load_flags(dashboard_features)
        assert len(snapshot) == 4
        assert "newDashboard" in snapshot
        assert snapshot.get("darkMode").value == "auto"
        assert dict(snapshot.errors) == {}

    def test_features_envelope(self, dashboard_features):
        snapshot = load_flags({"features": dashboard_features})
        assert set(snapshot.names()) == set(dashboard_features)

    def test_feature_named_features(self):
        snapshot = load_flags({
            "features": {"enabled": True},
            "darkMode": {"enabled": True},
        })
        assert set(snapshot.names()) == {"features", "darkMode"}
        assert snapshot.get("features").enabled is True

    def test_envelope_with_metadata(self, dashboard_features):
        snapshot = load_flags({"version": 2, "features": dashboard_features})
        assert set(snapshot.names()) == set(dashboard_features)

    def test_empty_document(self):
        assert len(load_flags(None)) == 0
        assert len(load_flags({"features": None})) == 0

    def test_non_mapping_document(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_flags(["newDashboard"])
        assert exc_info.value.code == ErrorCode.PARSE_FAILED

    def test_bad_feature_does_not_block_others(self, caplog):
        data = {
            "good": {"enabled": True},
            "badRollout": {"enabled": True, "rolloutPercentage": 150},
            "badAllowlist": {"enabled": True, "allowedUsers": [42]},
        }
        with caplog.at_level(logging.ERROR, logger="qcfl.core.feature_flags.loader"):
            snapshot = load_flags(data)
        assert snapshot.names() == ["good"]
        assert set(snapshot.errors) == {"badRollout", "badAllowlist"}
        assert snapshot.get("badRollout") is None
        assert "badRollout" in caplog.text

    def test_strict_raises(self):
        with pytest.raises(FeatureConfigError):
            load_flags({"bad": {"rolloutPercentage": "x"}}, strict=True)

    def test_dependency_cycle_rejected(self):
        data = {
            "a": {"enabled": True, "dependencies": ["b"]},
            "b": {"enabled": True, "dependencies": ["a"]},
            "c": {"enabled": True, "dependencies": ["a"]},
            "d": {"enabled": True},
        }
        snapshot = load_flags(data)
        assert set(snapshot.names()) == {"c", "d"}
        assert isinstance(snapshot.errors["a"], DependencyCycleError)
        assert snapshot.errors["a"].cycle == ("a", "b", "a")
        assert snapshot.errors["b"].cycle == ("b", "a", "b")

    def test_cycle_with_shortcut_edge(self):
        """Every member of a cycle is rejected regardless of traversal order."""
        data = {
            "a": {"enabled": True, "dependencies": ["c", "b"]},
            "b": {"enabled": True, "dependencies": ["c"]},
            "c": {"enabled": True, "dependencies": ["a"]},
        }
        snapshot = load_flags(data)
        assert len(snapshot) == 0
        assert set(snapshot.errors) == {"a", "b", "c"}

    def test_strict_cycle_raises(self):
        data = {
            "a": {"enabled": True, "dependencies": ["b"]},
            "b": {"enabled": True, "dependencies": ["a"]},
        }
        with pytest.raises(DependencyCycleError):
            load_flags(data, strict=True)

    def test_snapshot_is_read_only(self, dashboard_features):
        snapshot = load_flags(dashboard_features)
        with pytest.raises(TypeError):
            snapshot.flags["new"] = None


class TestLoadFlagsFile:
    """Tests for file loading."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "features.yaml"
        path.write_text(
            "features:\n"
            "  newDashboard:\n"
            "    enabled: true\n"
            "    rolloutPercentage: 50\n"
            "    allowedUsers:\n"
            "      - admin@example.com\n"
        )
        snapshot = load_flags_file(path)
        assert snapshot.get("newDashboard").rollout_percentage == 50
        assert snapshot.source == str(path)

    def test_json(self, tmp_path):
        path = tmp_path / "features.json"
        path.write_text(json.dumps({"darkMode": {"enabled": True, "value": "auto"}}))
        assert load_flags_file(path).get("darkMode").value == "auto"

    def test_unknown_suffix_falls_back_to_yaml(self, tmp_path):
        path = tmp_path / "features.conf"
        path.write_text("darkMode:\n  enabled: true\n")
        assert load_flags_file(path).get("darkMode").enabled is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_flags_file(tmp_path / "missing.yaml")
        assert exc_info.value.code == ErrorCode.CONFIG_NOT_FOUND

    def test_unparsable_file(self, tmp_path):
        path = tmp_path / "features.yaml"
        path.write_text("features: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_flags_file(path)
        assert exc_info.value.code == ErrorCode.PARSE_FAILED

    def test_invalid_utf8_file(self, tmp_path):
        path = tmp_path / "features.yaml"
        path.write_bytes(b"darkMode:\n  enabled: \xff\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_flags_file(path)
        assert exc_info.value.code == ErrorCode.PARSE_FAILED


class TestHelpers:
    """Tests for merge and interpolation helpers."""

    def test_merge_feature_maps(self):
        base = {"features": {"a": {"enabled": False, "value": 1}, "b": {"enabled": True}}}
        override = {"features": {"a": {"enabled": True}}, "extra": [1]}
        merged = merge_feature_maps(base, override)
        assert merged == {
            "features": {"a": {"enabled": True, "value": 1}, "b": {"enabled": True}},
            "extra": [1],
        }
        assert base["features"]["a"]["enabled"] is False

    def test_interpolate_env(self):
        env = {"HOST": "db.internal"}
        value = {"url": "postgres://${HOST}:${PORT:5432}", "list": ["${MISSING}"]}
        assert interpolate_env(value, env) == {
            "url": "postgres://db.internal:5432",
            "list": [""],
        }

    def test_interpolate_leaves_non_strings(self):
        assert interpolate_env({"n": 5, "b": True}, {}) == {"n": 5, "b": True}
