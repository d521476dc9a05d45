"""Model-acquisition retry engine.

Drives the agent CLI until the requested model tier answers. Under the
strict policy the retry protocol is data: an ordered list of Stages, each
naming the tiers it requests (cycled per attempt) and its attempt budget,
walked by one generic attempt-and-classify loop:

    top (requested tier) -> fallback (alternate lower/requested) -> last-resort

with deterministic exponential backoff between attempts. Under the
permissive policy a single attempt is made and whatever answers is kept.

Process failures and malformed output are not retried: they propagate from
the invoke callable untouched.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from opentelemetry import trace

from ralph import telemetry
from ralph.config import MODEL_TIERS
from ralph.display import log_warn
from ralph.errors import AcquisitionError
from ralph.models import AgentResponse

logger = logging.getLogger(__name__)

InvokeFn = Callable[[str, str], AgentResponse]


class Policy(str, Enum):
    """Which served models are acceptable."""

    STRICT = "strict"
    PERMISSIVE = "permissive"


@dataclass(frozen=True)
class Stage:
    """One stage of the strict acquisition protocol.

    Attributes:
        name: Stage label used in logs and telemetry
        tiers: Tiers requested in turn, cycled per attempt
        max_attempts: Attempt budget for the stage
    """

    name: str
    tiers: tuple[str, ...]
    max_attempts: int

    def tier_for(self, attempt: int) -> str:
        return self.tiers[attempt % len(self.tiers)]


@dataclass
class RetrySession:
    """Per-iteration progress through the stages. Never persisted."""

    stage_index: int = 0
    attempt_in_stage: int = 0
    total_attempts: int = 0
    retries: int = 0
    last_model: str = "unknown"


def build_stages(
    tier: str,
    top_attempts: int,
    fallback_attempts: int,
    last_resort_attempts: int,
    tiers: tuple[str, ...] = MODEL_TIERS,
) -> list[Stage]:
    """Build the strict-policy stage list for a requested tier.

    The fallback tier is the next tier down; the last-resort tier is the
    lowest one. Stages that would have no tier of their own are left out,
    e.g. requesting the lowest tier yields only the top stage.
    """
    index = tiers.index(tier)
    stages = [Stage("top", (tier,), top_attempts)]

    fallback = tiers[index + 1] if index + 1 < len(tiers) else None
    if fallback is not None and fallback_attempts > 0:
        stages.append(Stage("fallback", (fallback, tier), fallback_attempts))

    last_resort = tiers[-1]
    if last_resort not in (tier, fallback) and last_resort_attempts > 0:
        stages.append(Stage("last-resort", (last_resort,), last_resort_attempts))

    return stages


def backoff_delay(retry: int, initial: int, maximum: int) -> int:
    """Delay before retry number ``retry`` (0-based): min(initial * 2**retry, maximum)."""
    return min(initial * (2**retry), maximum)


def tier_matches(tier: str, model: str) -> bool:
    """True if the served model id names the tier (case-insensitive)."""
    return tier.lower() in model.lower()


class ModelAcquirer:
    """Obtains an agent response from an acceptable model tier.

    Usage:
        acquirer = ModelAcquirer(runner.invoke, "opus", stages=build_stages(...))
        response = acquirer.acquire(prompt)
    """

    def __init__(
        self,
        invoke: InvokeFn,
        tier: str,
        policy: Policy = Policy.STRICT,
        stages: list[Stage] | None = None,
        initial_delay: int = 5,
        max_delay: int = 600,
        sleep: Callable[[float], None] = time.sleep,
        tracer: trace.Tracer | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            invoke: Runs one attempt: (prompt, tier) -> AgentResponse
            tier: Requested model tier
            policy: STRICT verifies the served tier, PERMISSIVE accepts any
            stages: Strict-policy stages (default: build_stages with 3/4/2)
            initial_delay: First backoff delay in seconds
            max_delay: Backoff cap in seconds
            sleep: Backoff sleep, e.g. CancellationToken.sleep
            tracer: OpenTelemetry tracer for per-attempt spans
        """
        self.invoke = invoke
        self.tier = tier
        self.policy = policy
        self.stages = stages if stages is not None else build_stages(tier, 3, 4, 2)
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.sleep = sleep
        self.tracer = tracer or trace.get_tracer("ralph")

    def acquire(self, prompt: str) -> AgentResponse:
        """Run the acquisition protocol for one iteration.

        Returns:
            The first acceptable AgentResponse

        Raises:
            AcquisitionError: If every stage is exhausted without a match
            AgentProcessError, MalformedResponseError, Interrupted: From the
                invoke callable or the sleep, never retried
        """
        session = RetrySession()

        if self.policy is Policy.PERMISSIVE:
            return self._attempt(prompt, Stage("accept-any", (self.tier,), 1), session)

        for stage_index, stage in enumerate(self.stages):
            session.stage_index = stage_index
            for attempt in range(stage.max_attempts):
                session.attempt_in_stage = attempt

                if session.total_attempts > 0:
                    delay = backoff_delay(
                        session.retries, self.initial_delay, self.max_delay
                    )
                    log_warn(
                        f"Retrying in {delay}s "
                        f"({stage.name} stage, attempt {attempt + 1}/{stage.max_attempts})"
                    )
                    self.sleep(delay)
                    session.retries += 1

                tier = stage.tier_for(attempt)
                response = self._attempt(prompt, stage, session, tier)
                if tier_matches(tier, response.model):
                    if tier != self.tier:
                        log_warn(f"Accepted fallback model {response.model}")
                    return response

                log_warn(
                    f"Requested {tier} but {response.model} answered "
                    f"({stage.name} stage, attempt {attempt + 1}/{stage.max_attempts})"
                )

        raise AcquisitionError(self.tier, session.total_attempts, session.last_model)

    def _attempt(
        self,
        prompt: str,
        stage: Stage,
        session: RetrySession,
        tier: str | None = None,
    ) -> AgentResponse:
        tier = tier or stage.tier_for(0)
        session.total_attempts += 1

        with self.tracer.start_as_current_span("ralph.attempt") as span:
            span.set_attribute("attempt.stage", stage.name)
            span.set_attribute("attempt.number", session.total_attempts)
            span.set_attribute("attempt.tier", tier)

            try:
                response = self.invoke(prompt, tier)
            except Exception:
                telemetry.record_attempt(stage.name, tier, "error")
                raise

            session.last_model = response.model
            accepted = self.policy is Policy.PERMISSIVE or tier_matches(
                tier, response.model
            )
            outcome = "acquired" if accepted else "mismatch"
            span.set_attribute("attempt.model", response.model)
            span.set_attribute("attempt.outcome", outcome)
            telemetry.record_attempt(stage.name, tier, outcome)

        logger.info(
            f"Attempt {session.total_attempts} ({stage.name}): "
            f"requested {tier}, served {response.model} -> {outcome}"
        )
        return response
