"""Shared error types for the ralph package."""


class RalphError(Exception):
    """Base exception for ralph errors.

    Use this for user-facing errors that should have actionable messages.
    """

    pass


class PreconditionError(RalphError):
    """Raised when the environment is not fit for a run.

    Carries every problem found so they can be reported together, each with
    its remediation hints.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("\n".join(problems))


class AgentProcessError(RalphError):
    """The coding-agent CLI exited with a non-zero status."""

    def __init__(
        self, exit_code: int, stderr: str = "", message: str | None = None
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message or f"Agent CLI failed with exit code {exit_code}")


class AgentTimeoutError(AgentProcessError):
    """The coding-agent CLI exceeded its per-attempt timeout."""

    def __init__(self, timeout_seconds: int, stderr: str = "") -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            124, stderr, message=f"Agent CLI timed out after {timeout_seconds}s"
        )


class MalformedResponseError(RalphError):
    """The coding-agent CLI produced output that is not a JSON object."""

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)


class AcquisitionError(RalphError):
    """No acceptable model tier answered before the retry stages ran out."""

    def __init__(self, requested: str, attempts: int, last_model: str) -> None:
        self.requested = requested
        self.attempts = attempts
        self.last_model = last_model
        super().__init__(
            f"Could not get model '{requested}' after {attempts} attempts "
            f"(last served: {last_model})"
        )


class Interrupted(Exception):
    """Raised when a run is cancelled by SIGINT/SIGTERM.

    Not a RalphError: interruption is a normal way for a run to end.
    """

    pass
