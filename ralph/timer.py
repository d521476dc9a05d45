"""Liveness indicator shown while the agent CLI runs.

Purely cosmetic: a spinner with an elapsed-time readout. The display is
torn down, and its line cleared, on every exit from the with-block.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from ralph.display import console as default_console


@contextmanager
def elapsed_timer(
    label: str = "Running...", console: Console | None = None
) -> Iterator[None]:
    """Show a spinner and elapsed time until the block exits.

    Usage:
        with elapsed_timer("Running opus..."):
            response = runner.invoke(prompt, "opus")
    """
    progress = Progress(
        SpinnerColumn(style="cyan"),
        TextColumn("{task.description}"),
        TimeElapsedColumn(),
        console=console or default_console,
        transient=True,
    )
    with progress:
        progress.add_task(label, total=None)
        yield
