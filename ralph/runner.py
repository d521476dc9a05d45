"""Run loop for ralph.

Drives the IterationController until the completion sentinel appears, the
iteration budget is spent, a fatal error occurs or the run is interrupted.
Every exit path prints the summary recomputed from the metrics log and the
exact command to resume.
"""

import logging
import shlex
from pathlib import Path

from ralph import display
from ralph.cancellation import CancellationToken
from ralph.config import DEFAULT_MODEL
from ralph.controller import IterationController
from ralph.errors import (
    AcquisitionError,
    AgentProcessError,
    Interrupted,
    MalformedResponseError,
    RalphError,
)
from ralph.metrics import MetricsLog, summarize
from ralph.notifications import send_notification
from ralph.tasks import PlanFiles

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def resume_command(
    plan_dir: Path,
    iterations: int | None,
    model: str = DEFAULT_MODEL,
    accept_any_model: bool = False,
    *,
    max_attempts: int | None = None,
    initial_delay: int | None = None,
    max_delay: int | None = None,
    timeout: int | None = None,
    stream: bool = False,
    notify: bool = False,
) -> str:
    """Shell command that continues this plan with the same settings.

    Only settings given on the command line are carried over; environment
    settings apply again on their own.
    """
    parts = ["ralph", "run"]
    if model != DEFAULT_MODEL:
        parts.extend(["--model", model])
    if accept_any_model:
        parts.append("--accept-any-model")
    tuning = {
        "--max-attempts": max_attempts,
        "--initial-delay": initial_delay,
        "--max-delay": max_delay,
        "--timeout": timeout,
    }
    for flag, value in tuning.items():
        if value is not None:
            parts.extend([flag, str(value)])
    if stream:
        parts.append("--stream")
    if notify:
        parts.append("--notify")
    parts.append(shlex.quote(str(plan_dir)))
    if iterations is not None:
        parts.append(str(iterations))
    return " ".join(parts)


def print_summary(files: PlanFiles, iterations_run: int, budget: int | None) -> None:
    """Print the final summary from whatever the metrics log holds."""
    aggregate = summarize(MetricsLog(files.metrics_file).read())
    display.print_final_summary(aggregate, iterations_run, budget, files.metrics_file)


class RunLoop:
    """Sequential iteration loop with its termination handling."""

    def __init__(
        self,
        controller: IterationController,
        files: PlanFiles,
        budget: int | None,
        resume_cmd: str,
        notify: bool = False,
        token: CancellationToken | None = None,
    ) -> None:
        """Initialize the loop.

        Args:
            controller: Runs one iteration
            files: Plan files (for the summary and messages)
            budget: Maximum iterations, None for unlimited
            resume_cmd: Command printed so the user can continue
            notify: Send a desktop notification when the run ends
            token: Checked before each iteration so a signal that lands
                between iterations stops the loop
        """
        self.controller = controller
        self.files = files
        self.budget = budget
        self.resume_cmd = resume_cmd
        self.notify = notify
        self.token = token
        self.iterations_run = 0

    def run(self) -> int:
        """Run until done and return the process exit code."""
        iteration = 0
        try:
            while True:
                iteration += 1
                if self.budget is not None and iteration > self.budget:
                    break
                if self.token is not None:
                    self.token.raise_if_cancelled()

                display.print_iteration_header(iteration, self.budget)
                outcome = self.controller.run(iteration)
                self.iterations_run += 1

                if outcome.complete:
                    display.print_separator()
                    display.log_success("All tasks complete, exiting")
                    display.print_separator()
                    logger.info(f"Completion signalled at iteration {iteration}")
                    self._finish(
                        "Ralph: all tasks complete",
                        f"All tasks complete after {self.iterations_run} iterations",
                    )
                    return EXIT_OK

                display.console.print()

        except Interrupted:
            display.console.print()
            display.print_separator()
            display.log_warn("Run interrupted (received signal)")
            display.print_separator()
            logger.warning(f"Interrupted during iteration {iteration}")
            self._finish()
            return EXIT_INTERRUPTED

        except RalphError as e:
            self._report_fatal(e)
            self._finish("Ralph: run failed", str(e))
            return EXIT_FAILURE

        display.print_separator()
        display.log_warn(f"Reached maximum iterations ({self.budget})")
        display.log_info(f"Tasks may remain incomplete - check {self.files.todo_file}")
        display.print_separator()
        display.console.print()
        self._finish(
            "Ralph: iteration budget reached",
            f"{self.iterations_run} iterations done; tasks may remain",
        )
        return EXIT_OK

    def _report_fatal(self, error: RalphError) -> None:
        logger.error(f"Fatal: {error}")
        if isinstance(error, AcquisitionError):
            display.log_error(f"Model acquisition failed: {error}")
        elif isinstance(error, MalformedResponseError):
            display.log_error(f"Invalid JSON response from agent CLI: {error}")
            if error.raw:
                display.log_error(f"Response (first 200 chars): {error.raw[:200]}...")
        elif isinstance(error, AgentProcessError):
            display.log_error(f"API call failed: {error}")
            display.print_stderr(error.stderr)
        else:
            display.log_error(str(error))

    def _finish(self, title: str | None = None, message: str | None = None) -> None:
        print_summary(self.files, self.iterations_run, self.budget)
        display.log_info(f"Progress file: {self.files.progress_file}")
        display.log_info(f"To continue, run: {self.resume_cmd}")
        if self.notify and title and message:
            send_notification(title, message)
