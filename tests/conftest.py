import os

import pytest

from qcfl.core.config import reset_settings


# Environment variables that tests may modify
_ENV_VARS_TO_ISOLATE = [
    "FEATURE_FLAG_CONFIG_PATH",
    "FEATURE_FLAG_ENVIRONMENT",
    "FEATURE_FLAG_STRICT",
    "FEATURE_FLAG_HASH_ALGORITHM",
    "FEATURE_FLAG_CHECK_DEPENDENCIES",
    "DASHBOARD_PCT",
    "DASHBOARD_ENABLED",
    "DASHBOARD_ROLLOUT_PCT",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


@pytest.fixture
def dashboard_features():
    """Feature definitions used by the dashboard."""
    return {
        "newDashboard": {
            "enabled": True,
            "rolloutPercentage": 50,
            "allowedUsers": ["admin@example.com", "beta@example.com"],
            "description": "Next-generation dashboard interface",
            "version": "2.0.0",
        },
        "experimentalAPI": {
            "enabled": False,
            "value": ["/api/v2/experimental", "/api/v2/beta"],
            "requiresAuth": True,
        },
        "darkMode": {
            "enabled": True,
            "value": "auto",
        },
        "quantumTerminal": {
            "enabled": True,
            "rolloutPercentage": 100,
            "dependencies": ["darkMode"],
        },
    }
