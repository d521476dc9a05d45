"""Configuration for ralph.

Provides centralized configuration with sensible defaults and environment
variable overrides for the agent CLI, the model-acquisition retry budget,
and telemetry.
"""

import os
from dataclasses import dataclass, field

# Model tiers accepted by --model, strongest first
MODEL_TIERS: tuple[str, ...] = ("opus", "sonnet", "haiku")
DEFAULT_MODEL = "opus"


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


@dataclass
class RalphConfig:
    """Configuration for a ralph run.

    All settings have sensible defaults but can be overridden via environment
    variables using the from_env() factory method, and by CLI flags on top.
    """

    # Agent CLI settings
    agent_binary: str = "claude"
    permission_mode: str = "bypassPermissions"
    max_turns: int | None = None
    attempt_timeout_seconds: int = 600

    # Model-acquisition retry budget
    top_tier_attempts: int = 3
    fallback_attempts: int = 4
    last_resort_attempts: int = 2
    initial_backoff_seconds: int = 5
    max_backoff_seconds: int = 600

    # Telemetry settings
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    )
    service_name: str = "ralph"

    @classmethod
    def from_env(cls) -> "RalphConfig":
        """Load config with environment variable overrides.

        Environment variables:
            RALPH_AGENT_BIN: Agent CLI executable (default: claude)
            RALPH_PERMISSION_MODE: --permission-mode value (default: bypassPermissions)
            RALPH_MAX_TURNS: --max-turns value (default: unset)
            RALPH_TIMEOUT: Per-attempt timeout in seconds (default: 600)
            RALPH_FALLBACK_ATTEMPTS: Attempts in the fallback stage (default: 4)
            RALPH_LAST_RESORT_ATTEMPTS: Attempts in the last-resort stage (default: 2)
            OTLP_ENDPOINT: Override otlp_endpoint (default: http://localhost:4317)
        """
        return cls(
            agent_binary=os.getenv("RALPH_AGENT_BIN", "claude"),
            permission_mode=os.getenv("RALPH_PERMISSION_MODE", "bypassPermissions"),
            max_turns=_optional_int("RALPH_MAX_TURNS"),
            attempt_timeout_seconds=int(os.getenv("RALPH_TIMEOUT", "600")),
            fallback_attempts=int(os.getenv("RALPH_FALLBACK_ATTEMPTS", "4")),
            last_resort_attempts=int(os.getenv("RALPH_LAST_RESORT_ATTEMPTS", "2")),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
        )
