"""Tests for the iteration controller."""

import shutil
import subprocess
from pathlib import Path

import pytest

from ralph.controller import (
    COMPLETION_SENTINEL,
    IterationController,
    build_prompt,
    choose_commit_message,
    extract_commit_message,
    is_complete,
)
from ralph.errors import AcquisitionError, MalformedResponseError
from ralph.git import GitRepo
from ralph.logging_config import configure_logging
from ralph.metrics import MetricsLog
from ralph.models import AgentResponse, TokenUsage
from ralph.tasks import PlanFiles


def make_response(result: str = "Done.", model: str = "claude-opus-4") -> AgentResponse:
    """Create a test AgentResponse."""
    return AgentResponse(
        result=result,
        model=model,
        models=[model],
        stop_reason="success",
        usage=TokenUsage(1000, 100, 0, 500),
        cost_usd=0.1,
    )


class FakeAcquirer:
    """Acquirer returning a fixed response, or raising a fixed error."""

    def __init__(self, response=None, error=None):
        self.response = response or make_response()
        self.error = error
        self.prompts: list[str] = []

    def acquire(self, prompt: str) -> AgentResponse:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class FakeGit:
    """Git stand-in counting commit attempts."""

    def __init__(self, changed: int = 0, commit_ok: bool = True):
        self.changed = changed
        self.commit_ok = commit_ok
        self.commits: list[str] = []

    def count_changed_files(self) -> int:
        return self.changed

    def commit_all(self, message: str) -> bool:
        self.commits.append(message)
        return self.commit_ok


@pytest.fixture
def plan(tmp_path: Path) -> PlanFiles:
    files = PlanFiles.from_dir(tmp_path)
    files.todo_file.write_text("- [x] Scaffold\n- [ ] Add parser\n")
    files.progress_file.touch()
    return files


def make_controller(plan, acquirer=None, git=None):
    ticks = iter([100.0, 175.9])
    return IterationController(
        plan,
        acquirer or FakeAcquirer(),
        git or FakeGit(),
        MetricsLog(plan.metrics_file),
        clock=lambda: next(ticks),
    )


class TestCommitMessage:
    """Test commit message selection."""

    def test_extracts_tagged_message(self):
        """The <commit> tag content is used, whitespace collapsed."""
        result = "Work done.\n<commit>\n  Add   parser\n</commit>\n"

        assert extract_commit_message(result) == "Add parser"

    def test_last_tag_wins(self):
        """When several tags appear, the last non-empty one is used."""
        result = "<commit>First</commit> ... <commit>Second</commit><commit> </commit>"

        assert extract_commit_message(result) == "Second"

    def test_no_tag(self):
        assert extract_commit_message("nothing here") is None

    def test_precedence(self):
        """Tag, then open task, then iteration label."""
        assert choose_commit_message("<commit>Tagged</commit>", "Task", 3) == "Tagged"
        assert choose_commit_message("no tag", "Add parser", 3) == "Ralph: Add parser"
        assert choose_commit_message("no tag", None, 3) == "Ralph: iteration 3"


class TestPrompt:
    """Test the task prompt."""

    def test_prompt_references_plan_files(self, plan: PlanFiles) -> None:
        """The prompt points the agent at the task list and progress file."""
        prompt = build_prompt(plan)

        assert f"@{plan.todo_file}" in prompt
        assert f"@{plan.progress_file}" in prompt
        assert COMPLETION_SENTINEL in prompt
        assert "<commit>" in prompt

    def test_completion_detection(self):
        assert is_complete(f"All done\n{COMPLETION_SENTINEL}")
        assert not is_complete("<promise>NOT YET</promise>")


class TestIterationRun:
    """Test IterationController.run."""

    def test_writes_record(self, plan: PlanFiles) -> None:
        """A successful iteration appends one record with its metrics."""
        controller = make_controller(plan, git=FakeGit(changed=2))

        outcome = controller.run(1)

        records = MetricsLog(plan.metrics_file).read()
        assert len(records) == 1
        record = records[0]
        assert record.iteration == 1
        assert record.duration_seconds == 75
        assert record.model == "claude-opus-4"
        assert record.files_changed == 2
        assert record.success is True
        assert record.usage.cache_read_tokens == 500
        assert outcome.record == record

    def test_no_changes_means_no_commit(self, plan: PlanFiles) -> None:
        """With zero files changed no commit is attempted."""
        git = FakeGit(changed=0)

        outcome = make_controller(plan, git=git).run(1)

        assert git.commits == []
        assert outcome.committed is None

    def test_changes_commit_exactly_once(self, plan: PlanFiles) -> None:
        """Any number of changed files gives exactly one commit attempt."""
        git = FakeGit(changed=17)

        outcome = make_controller(plan, git=git).run(1)

        assert len(git.commits) == 1
        assert outcome.committed is True

    def test_commit_uses_open_task_without_tag(self, plan: PlanFiles) -> None:
        """Without a tag, the first open task names the commit."""
        git = FakeGit(changed=1)

        make_controller(plan, git=git).run(1)

        assert git.commits == ["Ralph: Add parser"]

    def test_commit_prefers_tag(self, plan: PlanFiles) -> None:
        """The agent's tagged message wins over the task text."""
        git = FakeGit(changed=1)
        acquirer = FakeAcquirer(make_response("ok <commit>Add CSV parser</commit>"))

        make_controller(plan, acquirer=acquirer, git=git).run(1)

        assert git.commits == ["Add CSV parser"]

    def test_failed_commit_does_not_stop_iteration(self, plan: PlanFiles) -> None:
        """A failed commit is reported and the iteration still completes."""
        git = FakeGit(changed=1, commit_ok=False)

        outcome = make_controller(plan, git=git).run(1)

        assert outcome.committed is False
        assert len(MetricsLog(plan.metrics_file).read()) == 1

    def test_detects_completion(self, plan: PlanFiles) -> None:
        """The sentinel in the result marks the outcome complete."""
        acquirer = FakeAcquirer(make_response(f"Finished\n{COMPLETION_SENTINEL}"))

        outcome = make_controller(plan, acquirer=acquirer).run(1)

        assert outcome.complete is True

    def test_malformed_response_writes_no_record(self, plan: PlanFiles) -> None:
        """A fatal acquisition error leaves no record and no commit."""
        git = FakeGit(changed=3)
        acquirer = FakeAcquirer(error=MalformedResponseError("bad"))

        with pytest.raises(MalformedResponseError):
            make_controller(plan, acquirer=acquirer, git=git).run(1)

        assert MetricsLog(plan.metrics_file).read() == []
        assert git.commits == []

    def test_acquisition_failure_propagates(self, plan: PlanFiles) -> None:
        """Exhausted acquisition propagates to the caller."""
        acquirer = FakeAcquirer(error=AcquisitionError("opus", 9, "claude-haiku"))

        with pytest.raises(AcquisitionError):
            make_controller(plan, acquirer=acquirer).run(1)


def git(path: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=path, capture_output=True, text=True, check=True
    ).stdout


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestRealRepository:
    """Test iterations against a real git repository."""

    @pytest.fixture
    def repo_plan(self, tmp_path: Path) -> PlanFiles:
        """A plan directory inside a repository with everything committed."""
        git(tmp_path, "init", "-q")
        git(tmp_path, "config", "user.name", "Test User")
        git(tmp_path, "config", "user.email", "test@example.com")
        git(tmp_path, "config", "commit.gpgsign", "false")
        files = PlanFiles.from_dir(tmp_path / "plan")
        files.plan_dir.mkdir()
        files.todo_file.write_text("- [ ] Add parser\n")
        files.progress_file.touch()
        git(tmp_path, "add", "-A")
        git(tmp_path, "commit", "-q", "-m", "Add plan")
        return files

    def test_idle_agent_changes_nothing(
        self, repo_plan: PlanFiles, tmp_path: Path
    ) -> None:
        """ralph's own log and metrics never make an idle iteration commit."""
        configure_logging(repo_plan.log_file)
        controller = IterationController(
            repo_plan,
            FakeAcquirer(),
            GitRepo.for_plan(repo_plan, path=tmp_path),
            MetricsLog(repo_plan.metrics_file),
        )

        outcomes = [controller.run(1), controller.run(2)]

        assert repo_plan.log_file.exists()
        assert [o.record.files_changed for o in outcomes] == [0, 0]
        assert [o.committed for o in outcomes] == [None, None]
        assert git(tmp_path, "rev-list", "--count", "HEAD").strip() == "1"

    def test_agent_change_commits_without_log(
        self, repo_plan: PlanFiles, tmp_path: Path
    ) -> None:
        """An agent edit is committed with the metrics log but not ralph.log."""
        configure_logging(repo_plan.log_file)

        class EditingAcquirer(FakeAcquirer):
            def acquire(self, prompt: str) -> AgentResponse:
                (tmp_path / "parser.py").write_text("x = 1\n")
                return super().acquire(prompt)

        controller = IterationController(
            repo_plan,
            EditingAcquirer(),
            GitRepo.for_plan(repo_plan, path=tmp_path),
            MetricsLog(repo_plan.metrics_file),
        )

        outcome = controller.run(1)

        assert outcome.record.files_changed == 1
        assert outcome.committed is True
        committed = git(tmp_path, "show", "--name-only", "--format=", "HEAD").split()
        assert sorted(committed) == ["parser.py", "plan/ralph_metrics.jsonl"]
