"""Iteration controller: one task cycle end to end.

read task -> acquire a response -> record metrics -> commit -> display ->
check for the completion sentinel.
"""

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from opentelemetry import trace

from ralph import display, telemetry
from ralph.acquisition import ModelAcquirer
from ralph.git import GitRepo
from ralph.metrics import MetricsLog
from ralph.models import AgentResponse, IterationRecord
from ralph.tasks import PlanFiles, first_open_task
from ralph.timer import elapsed_timer

logger = logging.getLogger(__name__)

COMPLETION_SENTINEL = "<promise>COMPLETE</promise>"

_COMMIT_TAG = re.compile(r"<commit>(.*?)</commit>", re.DOTALL)


def build_prompt(files: PlanFiles) -> str:
    """Build the standard task prompt, parameterized only by file paths."""
    todo = files.todo_file
    progress = files.progress_file
    return f"""Find the highest-priority task from the TODO file and work only on that task.

Here are the current TODO items and progress:

@{todo}

@{progress}

Guidelines:
1. Pick ONE task from the TODO file that you determine has the highest priority
2. Work ONLY on that task - do not work on multiple tasks
3. Update the TODO file by marking the task as complete (change [ ] to [x]) or updating its status
4. After completing the task, append your progress to the progress file (@{progress}) with this format:
   - Current date/time
   - Task name
   - What was accomplished
   - Next steps (if any)
5. At the END of your response, output a commit message for your changes:
   <commit>Brief description of changes (imperative mood, under 72 chars)</commit>

IMPORTANT: Only work on a SINGLE task per iteration.
IMPORTANT: NEVER delete the TODO file - only edit it to mark tasks complete.

If, while working on the task, you determine ALL tasks are complete, output exactly this:
{COMPLETION_SENTINEL}"""


def extract_commit_message(result: str) -> str | None:
    """Last non-empty ``<commit>...</commit>`` message in the result text."""
    messages = [m.strip() for m in _COMMIT_TAG.findall(result)]
    messages = [m for m in messages if m]
    if not messages:
        return None
    # Commit subjects are single-line
    return " ".join(messages[-1].split())


def choose_commit_message(result: str, task: str | None, iteration: int) -> str:
    """Pick the commit message: agent tag, then open task, then a label."""
    tagged = extract_commit_message(result)
    if tagged:
        return tagged
    if task:
        return f"Ralph: {task}"
    return f"Ralph: iteration {iteration}"


def is_complete(result: str) -> bool:
    return COMPLETION_SENTINEL in result


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class IterationOutcome:
    """What one iteration produced.

    Attributes:
        record: The metrics record appended to the log
        response: The accepted agent response
        commit_message: Message used (or that would have been used)
        committed: True/False for a commit attempt, None if nothing changed
        complete: The completion sentinel was present
    """

    record: IterationRecord
    response: AgentResponse
    commit_message: str
    committed: bool | None
    complete: bool


def timed_invoke(
    invoke: Callable[[str, str], AgentResponse],
) -> Callable[[str, str], AgentResponse]:
    """Wrap an invoke callable so every attempt shows the elapsed timer."""

    def _invoke(prompt: str, tier: str) -> AgentResponse:
        display.console.print(f"Running {tier}...")
        with elapsed_timer(f"Running {tier}..."):
            return invoke(prompt, tier)

    return _invoke


class IterationController:
    """Executes exactly one task cycle per run() call."""

    def __init__(
        self,
        files: PlanFiles,
        acquirer: ModelAcquirer,
        git: GitRepo,
        metrics_log: MetricsLog,
        tracer: trace.Tracer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.files = files
        self.acquirer = acquirer
        self.git = git
        self.metrics_log = metrics_log
        self.tracer = tracer or trace.get_tracer("ralph")
        self.clock = clock
        self.prompt = build_prompt(files)

    def run(self, iteration: int) -> IterationOutcome:
        """Run one iteration.

        Errors from acquisition (AcquisitionError, AgentProcessError,
        MalformedResponseError, Interrupted) propagate before any record is
        written or commit attempted.
        """
        with self.tracer.start_as_current_span("ralph.iteration") as span:
            span.set_attribute("iteration.number", iteration)

            task = first_open_task(self.files.todo_file)
            logger.info(f"Iteration {iteration} starting (next open task: {task!r})")

            start = self.clock()
            response = self.acquirer.acquire(self.prompt)
            duration = int(self.clock() - start)

            files_changed = self.git.count_changed_files()
            record = IterationRecord(
                iteration=iteration,
                timestamp=utc_timestamp(),
                duration_seconds=duration,
                model=response.model,
                models=response.models,
                stop_reason=response.stop_reason,
                usage=response.usage,
                files_changed=files_changed,
                success=response.exit_code == 0,
                exit_code=response.exit_code,
                cost_usd=response.cost_usd,
            )
            try:
                self.metrics_log.append(record)
            except OSError as e:
                logger.error(f"Failed to write metrics to {self.metrics_log.path}: {e}")
                display.log_warn(f"Failed to write metrics to log file: {e}")
            telemetry.record_iteration(record)

            commit_message = choose_commit_message(response.result, task, iteration)
            committed = self._commit(files_changed, commit_message)

            complete = is_complete(response.result)

            span.set_attribute("iteration.model", response.model)
            span.set_attribute("iteration.tokens", response.usage.total_tokens)
            span.set_attribute("iteration.files_changed", files_changed)
            span.set_attribute("iteration.complete", complete)
            if committed is not None:
                span.set_attribute("iteration.committed", committed)

        display.print_agent_output(response.result)
        display.print_iteration_metrics(record)
        display.console.print()

        return IterationOutcome(
            record=record,
            response=response,
            commit_message=commit_message,
            committed=committed,
            complete=complete,
        )

    def _commit(self, files_changed: int, message: str) -> bool | None:
        if files_changed == 0:
            display.log_info("No changes to commit")
            return None

        committed = self.git.commit_all(message)
        telemetry.record_commit(committed)
        if committed:
            display.log_success(f"Committed: {message}")
        else:
            display.log_warn("Failed to commit changes; continuing")
        return committed
