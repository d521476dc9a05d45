"""CLI for ralph.

Provides the command-line interface for running a plan, summarizing its
metrics log and checking preconditions.
"""

import re
import sys
from dataclasses import replace
from pathlib import Path

import click

from ralph import display
from ralph.acquisition import ModelAcquirer, Policy, build_stages
from ralph.agent import AgentRunner, format_tool_call
from ralph.cancellation import CancellationToken, handle_signals
from ralph.config import DEFAULT_MODEL, MODEL_TIERS, RalphConfig
from ralph.controller import IterationController, timed_invoke
from ralph.errors import PreconditionError
from ralph.git import GitRepo
from ralph.logging_config import configure_logging
from ralph.metrics import MetricsLog, summarize
from ralph.preflight import run_preflight, validate_environment
from ralph.runner import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    RunLoop,
    resume_command,
)
from ralph.tasks import PlanFiles, count_tasks
from ralph.telemetry import create_metrics, setup_telemetry


@click.group()
@click.version_option(package_name="ralph")
def cli() -> None:
    """Ralph - Automated iterative development with a coding agent."""
    pass


def _parse_iterations(value: str | None) -> int | None:
    """Validate the optional ITERATIONS argument (positive integer)."""
    if value is None:
        return None
    if not re.fullmatch(r"[0-9]+", value) or int(value) == 0:
        raise click.BadParameter(
            f"Iterations must be a positive integer (or omit for unlimited), got: {value}"
        )
    return int(value)


def _on_tool_use(tool_name: str, tool_input: dict) -> None:
    """Display tool calls in real-time during an attempt."""
    display.console.print(f"           {format_tool_call(tool_name, tool_input)}")


@cli.command()
@click.argument("plan_dir", type=click.Path(path_type=Path))
@click.argument("iterations", required=False)
@click.option(
    "-m",
    "--model",
    type=click.Choice(MODEL_TIERS),
    default=DEFAULT_MODEL,
    show_default=True,
    help="Model tier to request",
)
@click.option(
    "--accept-any-model",
    is_flag=True,
    help="Make one attempt and accept whichever model answers",
)
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Attempts at the requested tier before falling back (default: 3)",
)
@click.option(
    "--initial-delay",
    type=click.IntRange(min=1),
    default=None,
    help="First retry delay in seconds (default: 5)",
)
@click.option(
    "--max-delay",
    type=click.IntRange(min=1),
    default=None,
    help="Retry delay cap in seconds (default: 600)",
)
@click.option(
    "--timeout",
    type=click.IntRange(min=1),
    default=None,
    help="Per-attempt timeout in seconds (default: 600, env RALPH_TIMEOUT)",
)
@click.option(
    "--stream/--no-stream", default=False, help="Show tool calls as they happen"
)
@click.option("--notify/--no-notify", default=False, help="Send desktop notifications")
@click.option("--debug", is_flag=True, help="Show debug logging on the console")
def run(
    plan_dir: Path,
    iterations: str | None,
    model: str,
    accept_any_model: bool,
    max_attempts: int | None,
    initial_delay: int | None,
    max_delay: int | None,
    timeout: int | None,
    stream: bool,
    notify: bool,
    debug: bool,
) -> None:
    """Work through PLAN_DIR/TODO.md one task per iteration.

    ITERATIONS caps the number of iterations; omit it to run until the
    agent reports that every task is complete.
    """
    budget = _parse_iterations(iterations)

    config = RalphConfig.from_env()
    overrides = {
        "top_tier_attempts": max_attempts,
        "initial_backoff_seconds": initial_delay,
        "max_backoff_seconds": max_delay,
        "attempt_timeout_seconds": timeout,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

    files = PlanFiles.from_dir(plan_dir)
    configure_logging(debug=debug)

    display.log_info("Ralph Automation Script")
    display.log_info(f"Plan directory: {files.plan_dir}")
    if budget is None:
        display.log_info("Iterations: unlimited (until completion)")
    else:
        display.log_info(f"Iterations: {budget}")
    policy = Policy.PERMISSIVE if accept_any_model else Policy.STRICT
    display.log_info(f"Model: {model} ({policy.value})")
    display.log_info(f"TODO file: {files.todo_file}")
    display.log_info(f"Progress file: {files.progress_file}")
    display.log_info(f"Metrics file: {files.metrics_file}")
    display.console.print()

    try:
        warnings = validate_environment(files, config.agent_binary)
    except PreconditionError as e:
        for problem in e.problems:
            display.log_error(problem)
        display.console.print()
        display.log_error("Pre-flight checks failed - fix the above before running Ralph")
        sys.exit(EXIT_FAILURE)

    for warning in warnings:
        display.log_warn(warning)

    open_tasks, done_tasks = count_tasks(files.todo_file)
    display.log_info(f"Tasks: {open_tasks} open, {done_tasks} done")
    display.console.print()

    configure_logging(files.log_file, debug=debug)
    tracer, meter = setup_telemetry(config)
    create_metrics(meter)

    token = CancellationToken()
    agent = AgentRunner(
        binary=config.agent_binary,
        permission_mode=config.permission_mode,
        timeout_seconds=config.attempt_timeout_seconds,
        token=token,
        max_turns=config.max_turns,
        stream=stream,
        on_tool_use=_on_tool_use if stream else None,
    )
    acquirer = ModelAcquirer(
        timed_invoke(agent.invoke),
        model,
        policy=policy,
        stages=build_stages(
            model,
            config.top_tier_attempts,
            config.fallback_attempts,
            config.last_resort_attempts,
        ),
        initial_delay=config.initial_backoff_seconds,
        max_delay=config.max_backoff_seconds,
        sleep=token.sleep,
        tracer=tracer,
    )
    controller = IterationController(
        files,
        acquirer,
        GitRepo.for_plan(files),
        MetricsLog(files.metrics_file),
        tracer=tracer,
    )
    loop = RunLoop(
        controller,
        files,
        budget,
        resume_command(
            files.plan_dir,
            budget,
            model,
            accept_any_model,
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            max_delay=max_delay,
            timeout=timeout,
            stream=stream,
            notify=notify,
        ),
        notify=notify,
        token=token,
    )

    with handle_signals(token):
        exit_code = loop.run()
    sys.exit(exit_code)


@cli.command()
@click.argument(
    "plan_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
def summary(plan_dir: Path) -> None:
    """Show the aggregate summary of PLAN_DIR's metrics log."""
    files = PlanFiles.from_dir(plan_dir)
    records = MetricsLog(files.metrics_file).read()
    if not records:
        display.console.print("[yellow]No iterations recorded yet[/yellow]")
    display.print_final_summary(summarize(records), None, None, files.metrics_file)


@cli.command()
@click.argument("plan_dir", type=click.Path(path_type=Path))
def check(plan_dir: Path) -> None:
    """Check that PLAN_DIR and this repository are ready for a run."""
    config = RalphConfig.from_env()
    report = run_preflight(PlanFiles.from_dir(plan_dir), config.agent_binary)

    for name, ok, message in report.checks:
        if ok:
            display.log_success(f"{name}: {message}")
        else:
            display.log_error(f"{name}: {message}")
    for warning in report.warnings:
        display.log_warn(warning)

    sys.exit(EXIT_OK if report.ok else EXIT_FAILURE)


def main() -> None:
    """Main entry point for the ralph CLI.

    Usage errors exit with 1 rather than click's default 2.
    """
    try:
        rv = cli.main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(EXIT_FAILURE)
    except (click.exceptions.Abort, KeyboardInterrupt):
        sys.exit(EXIT_INTERRUPTED)
    sys.exit(rv if isinstance(rv, int) else EXIT_OK)


if __name__ == "__main__":
    main()
