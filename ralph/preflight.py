"""Pre-flight validation for a ralph run.

Validates that ralph is running in a usable context:
- Required binaries (agent CLI, git) are on PATH
- Git identity is configured
- The current directory is a git work tree on a branch
- The plan directory holds a task list and its output files are writable

Fatal problems raise PreconditionError with remediation text; uncommitted
changes and untracked files are returned as warnings only.
"""

import shutil
from dataclasses import dataclass, field

from ralph.errors import PreconditionError
from ralph.git import GitRepo
from ralph.tasks import PlanFiles

_INSTALL_HINTS = {
    "claude": [
        "Install: npm install -g @anthropic-ai/claude-code",
        "Or visit: https://docs.anthropic.com/claude-code",
    ],
}


@dataclass
class PreflightReport:
    """Outcome of all checks, in the order they ran.

    Attributes:
        checks: (check name, ok, message) per check
        warnings: Non-fatal findings
    """

    checks: list[tuple[str, bool, str]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def problems(self) -> list[str]:
        return [message for _, ok, message in self.checks if not ok]

    @property
    def ok(self) -> bool:
        return not self.problems

    def add(self, name: str, ok: bool, message: str) -> None:
        self.checks.append((name, ok, message))


def _missing_binary(binary: str) -> str:
    hints = _INSTALL_HINTS.get(
        binary,
        [
            f"Install (Ubuntu/Debian): sudo apt install {binary}",
            f"Install (macOS): brew install {binary}",
            f"Install (Fedora): sudo dnf install {binary}",
        ],
    )
    return "\n  ".join([f"{binary} not found"] + hints)


def check_dependencies(report: PreflightReport, agent_binary: str, git: GitRepo) -> None:
    """Check binaries and git identity, recording every problem found."""
    for binary in (agent_binary, "git"):
        found = shutil.which(binary) is not None
        report.add(
            f"binary:{binary}", found, "ok" if found else _missing_binary(binary)
        )

    if shutil.which("git") is None:
        return

    for key, example in (("user.name", '"Your Name"'), ("user.email", '"your@email.com"')):
        value = git.config_value(key)
        report.add(
            f"git:{key}",
            bool(value),
            value
            or f"Git {key} not configured\n  Run: git config --global {key} {example}",
        )


def check_git_state(report: PreflightReport, git: GitRepo) -> None:
    """Check the repository is usable and collect working-tree warnings."""
    if not git.is_repository():
        report.add(
            "git:repository",
            False,
            "Not a git repository. Ralph requires a git repository.\n"
            "  Run: git init (or cd into your project)",
        )
        return
    report.add("git:repository", True, "ok")

    detached = git.is_detached()
    report.add(
        "git:branch",
        not detached,
        "Repository is in detached HEAD state\n"
        "  Please checkout a branch before running Ralph"
        if detached
        else git.current_branch(),
    )

    if git.has_uncommitted_changes():
        report.warnings.append(
            "Working directory has uncommitted changes; "
            "Ralph may create new commits that include these changes"
        )
    if git.untracked_files():
        report.warnings.append("Working directory has untracked files")


def check_plan(report: PreflightReport, files: PlanFiles) -> None:
    """Check the plan directory and make sure output files can be appended."""
    if not files.plan_dir.is_dir():
        report.add(
            "plan:dir", False, f"Plan directory not found: {files.plan_dir}"
        )
        return
    report.add("plan:dir", True, str(files.plan_dir))

    has_todo = files.todo_file.is_file()
    report.add(
        "plan:todo",
        has_todo,
        str(files.todo_file)
        if has_todo
        else f"TODO.md not found in plan directory: {files.todo_file}",
    )

    for name, path in (("plan:progress", files.progress_file), ("plan:metrics", files.metrics_file)):
        try:
            path.touch(exist_ok=True)
            report.add(name, True, str(path))
        except OSError as e:
            report.add(name, False, f"Cannot write to {path}: {e}")


def run_preflight(
    files: PlanFiles, agent_binary: str, git: GitRepo | None = None
) -> PreflightReport:
    """Run every check and return the report without raising."""
    git = git or GitRepo()
    report = PreflightReport()
    check_plan(report, files)
    check_dependencies(report, agent_binary, git)
    if shutil.which("git") is not None:
        check_git_state(report, git)
    return report


def validate_environment(
    files: PlanFiles, agent_binary: str, git: GitRepo | None = None
) -> list[str]:
    """Validate all preconditions for a run.

    Returns:
        Non-fatal warnings to show the user

    Raises:
        PreconditionError: If any check failed; lists every problem
    """
    report = run_preflight(files, agent_binary, git)
    if not report.ok:
        raise PreconditionError(report.problems)
    return report.warnings
