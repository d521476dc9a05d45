"""Plan directory files and the markdown task list.

The task list is owned by the agent CLI: ralph only reads it, to pick a
fallback commit message and to report progress counts.
"""

import re
from dataclasses import dataclass
from pathlib import Path

TODO_FILENAME = "TODO.md"
PROGRESS_FILENAME = "progress.txt"
METRICS_FILENAME = "ralph_metrics.jsonl"
LOG_FILENAME = "ralph.log"

_OPEN_TASK = re.compile(r"^\s*[-*]\s+\[ \]\s+(.+?)\s*$", re.MULTILINE)
_DONE_TASK = re.compile(r"^\s*[-*]\s+\[[xX]\]\s+", re.MULTILINE)


@dataclass(frozen=True)
class PlanFiles:
    """Resolved file paths for one plan directory."""

    plan_dir: Path
    todo_file: Path
    progress_file: Path
    metrics_file: Path
    log_file: Path

    @classmethod
    def from_dir(cls, plan_dir: str | Path) -> "PlanFiles":
        plan_dir = Path(str(plan_dir).rstrip("/") or "/")
        return cls(
            plan_dir=plan_dir,
            todo_file=plan_dir / TODO_FILENAME,
            progress_file=plan_dir / PROGRESS_FILENAME,
            metrics_file=plan_dir / METRICS_FILENAME,
            log_file=plan_dir / LOG_FILENAME,
        )


def first_open_task(todo_file: Path) -> str | None:
    """Description of the first ``- [ ]`` line, or None if there is none."""
    if not todo_file.exists():
        return None
    match = _OPEN_TASK.search(todo_file.read_text())
    return match.group(1) if match else None


def count_tasks(todo_file: Path) -> tuple[int, int]:
    """Count (open, done) checkbox tasks in the task list."""
    if not todo_file.exists():
        return 0, 0
    content = todo_file.read_text()
    return len(_OPEN_TASK.findall(content)), len(_DONE_TASK.findall(content))
