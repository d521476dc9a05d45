"""Tests for configuration module."""

import os
from unittest.mock import patch

import pytest

from ralph.config import DEFAULT_MODEL, MODEL_TIERS, RalphConfig


class TestRalphConfigDefaults:
    """Test default configuration values."""

    def test_agent_defaults(self):
        """Agent CLI settings default to claude with bypassed permissions."""
        config = RalphConfig()

        assert config.agent_binary == "claude"
        assert config.permission_mode == "bypassPermissions"
        assert config.max_turns is None
        assert config.attempt_timeout_seconds == 600

    def test_retry_defaults(self):
        """Retry budget defaults to 3/4/2 attempts with 5s..600s backoff."""
        config = RalphConfig()

        assert config.top_tier_attempts == 3
        assert config.fallback_attempts == 4
        assert config.last_resort_attempts == 2
        assert config.initial_backoff_seconds == 5
        assert config.max_backoff_seconds == 600

    def test_model_tiers_strongest_first(self):
        """Tiers are ordered strongest first and opus is the default."""
        assert MODEL_TIERS == ("opus", "sonnet", "haiku")
        assert DEFAULT_MODEL == "opus"


class TestRalphConfigFromEnv:
    """Test environment variable overrides."""

    def test_from_env_without_variables_matches_defaults(self):
        """from_env() with a clean environment gives the defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = RalphConfig.from_env()

        assert config.agent_binary == "claude"
        assert config.attempt_timeout_seconds == 600
        assert config.max_turns is None
        assert config.otlp_endpoint == "http://localhost:4317"

    def test_from_env_overrides(self):
        """Each RALPH_* variable overrides its setting."""
        env = {
            "RALPH_AGENT_BIN": "/opt/bin/claude",
            "RALPH_PERMISSION_MODE": "acceptEdits",
            "RALPH_MAX_TURNS": "25",
            "RALPH_TIMEOUT": "120",
            "RALPH_FALLBACK_ATTEMPTS": "6",
            "RALPH_LAST_RESORT_ATTEMPTS": "1",
            "OTLP_ENDPOINT": "http://collector:4317",
        }
        with patch.dict(os.environ, env, clear=True):
            config = RalphConfig.from_env()

        assert config.agent_binary == "/opt/bin/claude"
        assert config.permission_mode == "acceptEdits"
        assert config.max_turns == 25
        assert config.attempt_timeout_seconds == 120
        assert config.fallback_attempts == 6
        assert config.last_resort_attempts == 1
        assert config.otlp_endpoint == "http://collector:4317"

    def test_invalid_integer_raises(self):
        """A non-numeric timeout is rejected rather than ignored."""
        with patch.dict(os.environ, {"RALPH_TIMEOUT": "soon"}, clear=True):
            with pytest.raises(ValueError):
                RalphConfig.from_env()
