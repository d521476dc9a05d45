"""Terminal output for ralph runs.

All user-facing output goes through the rich consoles defined here:
status lines, separators, per-iteration metrics and the final summary.
"""

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ralph.metrics import RunAggregate, cache_hit_rate
from ralph.models import IterationRecord

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

SEPARATOR = "=" * 50


def log_error(message: str) -> None:
    err_console.print(f"[red]✗[/red]  {escape(message)}")


def log_success(message: str) -> None:
    console.print(f"[green]✓[/green]  {escape(message)}")


def log_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue]  {escape(message)}")


def log_warn(message: str) -> None:
    console.print(f"[yellow]⚠[/yellow]  {escape(message)}")


def print_separator() -> None:
    console.print(SEPARATOR)


def format_duration(seconds: int) -> str:
    """Format a duration as "Xm YYs"."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


def format_hit_rate(rate: int | None) -> str:
    return "N/A" if rate is None else f"{rate}%"


def print_stderr(stderr: str) -> None:
    """Show captured agent stderr, if any."""
    if not stderr.strip():
        return
    log_error("Error output:")
    err_console.print(escape(stderr.rstrip()))


def print_iteration_header(iteration: int, budget: int | None) -> None:
    print_separator()
    if budget is None:
        console.print(f"Iteration {iteration} (unlimited)")
    else:
        console.print(f"Iteration {iteration} / {budget}")
    print_separator()
    console.print()


def print_agent_output(result: str) -> None:
    console.print("--- Agent Output ---")
    console.print(escape(result))
    console.print()


def print_iteration_metrics(record: IterationRecord) -> None:
    """Print the metrics of a single iteration as a simple list."""
    usage = record.usage
    hit_rate = format_hit_rate(
        cache_hit_rate(usage.cache_read_tokens, usage.input_tokens)
    )
    status_icon = "[green]✓[/green]" if record.success else "[red]✗[/red]"

    console.print("--- Iteration Metrics ---")
    console.print(f"Duration: {format_duration(record.duration_seconds)}")
    console.print(f"Models: {escape(', '.join(record.models or [record.model]))}")
    console.print(f"Status: {escape(record.stop_reason)}")
    console.print(f"Input tokens: {usage.input_tokens}")
    console.print(f"Output tokens: {usage.output_tokens}")
    console.print(f"Total tokens: {usage.total_tokens}")
    console.print(f"Cache created: {usage.cache_creation_tokens} tokens")
    console.print(
        f"Cache read: {usage.cache_read_tokens} tokens ({hit_rate} hit rate)"
    )
    console.print(f"Files changed: {record.files_changed}")
    console.print(f"Cost: ${record.cost_usd:.2f}")
    console.print(f"Success: {status_icon}")


def print_final_summary(
    aggregate: RunAggregate,
    iterations_run: int | None,
    budget: int | None,
    metrics_path: Path,
) -> None:
    """Print the aggregate summary of the metrics log.

    Args:
        aggregate: Aggregates recomputed from the metrics log
        iterations_run: Iterations recorded by this invocation, None when
            summarizing a log outside of a run
        budget: Iteration budget, None in unlimited mode
        metrics_path: Metrics log the aggregate was computed from
    """
    console.print()
    print_separator()
    console.print("                  FINAL SUMMARY")
    print_separator()
    console.print()

    console.print("Iterations:")
    if iterations_run is not None:
        limit = "(unlimited mode)" if budget is None else f"/ {budget}"
        console.print(f"  This run:        {iterations_run} {limit}")
    console.print(f"  Recorded:        {aggregate.iterations}")
    console.print(f"  Success Rate:    {aggregate.success_rate}%")
    console.print()
    console.print("Duration:")
    console.print(f"  Total:           {format_duration(aggregate.total_duration)}")
    console.print(
        f"  Average:         {format_duration(aggregate.average_duration)} per iteration"
    )
    console.print(f"  Min:             {aggregate.min_duration}s")
    console.print(f"  Max:             {aggregate.max_duration}s")
    console.print()
    console.print("Token Usage:")
    console.print(f"  Total Input:     {aggregate.total_input_tokens} tokens")
    console.print(f"  Total Output:    {aggregate.total_output_tokens} tokens")
    console.print(f"  Total:           {aggregate.total_tokens} tokens")
    console.print(f"  Average Input:   {aggregate.average_input_tokens} tokens per iteration")
    console.print(f"  Average Output:  {aggregate.average_output_tokens} tokens per iteration")
    console.print(f"  Average:         {aggregate.average_tokens} tokens per iteration")
    console.print()
    console.print("Cache Performance:")
    console.print(f"  Total Created:   {aggregate.total_cache_creation_tokens} tokens")
    console.print(f"  Total Read:      {aggregate.total_cache_read_tokens} tokens")
    console.print(f"  Overall Hit Rate: {format_hit_rate(aggregate.cache_hit_rate)}")
    console.print()
    console.print("Files Changed:")
    console.print(f"  Total:           {aggregate.total_files_changed} files")
    if aggregate.iterations > 0:
        console.print(
            f"  Average:         {aggregate.average_files_changed} files per iteration"
        )
    console.print()
    console.print(f"Cost:              ${aggregate.total_cost_usd:.2f}")

    if len(aggregate.by_model) > 1:
        console.print()
        _print_model_table(aggregate)

    console.print()
    log_info(f"Metrics log saved to: {metrics_path}")
    console.print()


def _print_model_table(aggregate: RunAggregate) -> None:
    table = Table(title="By Model")
    table.add_column("Model")
    table.add_column("Iterations", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")

    for model, breakdown in sorted(aggregate.by_model.items()):
        table.add_row(
            escape(model),
            str(breakdown.iterations),
            f"{breakdown.total_tokens / 1000:.1f}k",
            f"${breakdown.cost_usd:.2f}",
        )

    console.print(table)
