"""Git interface for ralph.

A thin synchronous wrapper over the git CLI: repository checks, change
listing, staging and committing. Every operation returns plain
booleans/strings; commit failures are reported, never raised.

Files ralph writes itself (its diagnostic log and the metrics log) can be
excluded from change counts, and the log from staging, so an iteration in
which the agent changed nothing counts zero files and commits nothing.

Assumes no other process mutates the working tree during a run.
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from ralph.tasks import PlanFiles

logger = logging.getLogger(__name__)


@dataclass
class GitRepo:
    """Git working tree that ralph commits into.

    Attributes:
        path: Directory git commands run in (default: current directory)
        timeout: Seconds before a git command is abandoned
        uncounted: Glob pathspecs (relative to path) never counted as changes
        unstaged: Glob pathspecs (relative to path) never staged
    """

    path: Path = field(default_factory=lambda: Path("."))
    timeout: int = 60
    uncounted: tuple[str, ...] = ()
    unstaged: tuple[str, ...] = ()

    @classmethod
    def for_plan(cls, files: PlanFiles, path: Path | None = None) -> "GitRepo":
        """Repository that ignores ralph's own output files for a plan.

        The rotating log and its backups are neither counted nor staged. The
        metrics log is not counted but is committed along with the agent's
        changes.
        """
        repo = cls(path=path) if path is not None else cls()
        log = repo.pathspec(files.log_file)
        metrics = repo.pathspec(files.metrics_file)
        logs = (f"{log}*",) if log else ()
        repo.uncounted = logs + ((metrics,) if metrics else ())
        repo.unstaged = logs
        return repo

    def pathspec(self, file: Path) -> str | None:
        """file relative to path, or None when it lies outside path."""
        relative = os.path.relpath(file, self.path)
        if relative == ".." or relative.startswith(".." + os.sep):
            return None
        return Path(relative).as_posix()

    def _excluding(self, patterns: tuple[str, ...]) -> list[str]:
        # ":/" is the whole work tree, whatever subdirectory path is
        return ["--", ":/", *(f":(exclude,glob){p}" for p in patterns)]

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def is_repository(self) -> bool:
        return self._git("rev-parse", "--git-dir").returncode == 0

    def is_detached(self) -> bool:
        """True when HEAD does not point at a branch."""
        return self._git("symbolic-ref", "-q", "HEAD").returncode != 0

    def current_branch(self) -> str:
        result = self._git("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip() if result.returncode == 0 else ""

    def config_value(self, key: str) -> str:
        """Value of a git config key, or "" if unset."""
        result = self._git("config", key)
        return result.stdout.strip() if result.returncode == 0 else ""

    def changed_paths(self) -> list[str]:
        """Modified, staged, deleted and untracked files (porcelain format).

        Untracked directories are listed file by file. Paths matching
        uncounted are left out.
        """
        result = self._git(
            "status",
            "--porcelain",
            "--untracked-files=all",
            *self._excluding(self.uncounted),
        )
        if result.returncode != 0:
            logger.warning(f"git status failed: {result.stderr.strip()}")
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    def count_changed_files(self) -> int:
        return len(self.changed_paths())

    def has_uncommitted_changes(self) -> bool:
        """True when tracked files differ from HEAD (staged or not)."""
        result = self._git("status", "--porcelain", "--untracked-files=no")
        return result.returncode == 0 and bool(result.stdout.strip())

    def untracked_files(self) -> list[str]:
        result = self._git("ls-files", "--others", "--exclude-standard")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def stage_all(self) -> bool:
        result = self._git("add", "-A", *self._excluding(self.unstaged))
        if result.returncode != 0:
            logger.error(f"git add failed: {result.stderr.strip()}")
            return False
        return True

    def commit(self, message: str) -> bool:
        """Commit staged changes with the given message."""
        result = self._git("commit", "-m", message)
        if result.returncode != 0:
            logger.error(
                f"git commit failed: {(result.stderr or result.stdout).strip()}"
            )
            return False
        logger.info(f"Committed: {message}")
        return True

    def commit_all(self, message: str) -> bool:
        """Stage every change and commit it.

        Returns:
            True if the commit was created, False if staging or commit failed
        """
        if not self.stage_all():
            return False
        return self.commit(message)
