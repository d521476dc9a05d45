"""Data models for ralph.

Defines dataclasses for token usage, parsed agent responses and the
per-iteration metrics record. IterationRecord is JSON serializable via
to_dict() for the append-only metrics log.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TokenUsage:
    """Token counts reported by the agent CLI for one invocation."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenUsage":
        return cls(
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cache_creation_tokens=int(data.get("cache_creation_tokens", 0)),
            cache_read_tokens=int(data.get("cache_read_tokens", 0)),
        )


@dataclass
class AgentResponse:
    """Result from one agent CLI invocation.

    Captures the structured output of ``claude --output-format json`` (or the
    final ``result`` event of ``stream-json``) along with the exit status.

    Attributes:
        result: Free-text result the agent wrote for the user
        model: Model that did most of the work (by input+output tokens)
        models: Every model reported in the response, sorted
        stop_reason: How the invocation ended (e.g. "success")
        usage: Token breakdown
        exit_code: Raw process exit status
        cost_usd: Cost reported by the CLI
        session_id: Agent session identifier
        num_turns: Conversation turns taken
        is_error: Error flag reported by the CLI
        requested_tier: Tier that was asked for on the command line
    """

    result: str
    model: str
    models: list[str]
    stop_reason: str
    usage: TokenUsage
    exit_code: int = 0
    cost_usd: float = 0.0
    session_id: str = ""
    num_turns: int = 0
    is_error: bool = False
    requested_tier: str = ""


@dataclass
class IterationRecord:
    """One line of the metrics log, describing a single completed iteration."""

    iteration: int
    timestamp: str
    duration_seconds: int
    model: str
    stop_reason: str
    usage: TokenUsage
    files_changed: int
    success: bool
    exit_code: int
    models: list[str] = field(default_factory=list)
    cost_usd: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "timestamp": self.timestamp,
            "duration_seconds": self.duration_seconds,
            "model": self.model,
            "models": self.models or [self.model],
            "stop_reason": self.stop_reason,
            "usage": self.usage.to_dict(),
            "files_changed": self.files_changed,
            "success": self.success,
            "exit_code": self.exit_code,
            "cost_usd": self.cost_usd,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IterationRecord":
        """Build a record from a decoded log line.

        Fields added to the log format later (models, cost_usd) are
        optional so older logs still load.
        """
        model = data.get("model", "unknown")
        return cls(
            iteration=int(data["iteration"]),
            timestamp=data.get("timestamp", ""),
            duration_seconds=int(data.get("duration_seconds", 0)),
            model=model,
            stop_reason=data.get("stop_reason", "unknown"),
            usage=TokenUsage.from_dict(data.get("usage") or {}),
            files_changed=int(data.get("files_changed", 0)),
            success=bool(data.get("success", False)),
            exit_code=int(data.get("exit_code", 0)),
            models=list(data.get("models") or [model]),
            cost_usd=float(data.get("cost_usd", 0.0)),
        )
