"""Adapter for the coding-agent CLI.

Builds the ``claude -p`` command line, runs it as a subprocess that the
cancellation token can terminate, enforces the per-attempt timeout and
parses the JSON (or stream-json) output into an AgentResponse.
"""

import json
import logging
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from ralph.cancellation import CancellationToken
from ralph.errors import AgentProcessError, AgentTimeoutError, MalformedResponseError
from ralph.models import AgentResponse, TokenUsage

logger = logging.getLogger(__name__)


def format_tool_call(tool_name: str, tool_input: dict) -> str:
    """Format a tool call for human-readable display.

    Args:
        tool_name: Name of the tool (Read, Write, Bash, etc.)
        tool_input: Dictionary of tool input parameters

    Returns:
        Formatted string like "→ Reading config.py..."
    """
    if tool_name in ("Read", "Write", "Edit"):
        file_path = tool_input.get("file_path", "")
        filename = Path(file_path).name if file_path else "file"
        verb = {"Read": "Reading", "Write": "Writing", "Edit": "Editing"}[tool_name]
        return f"→ {verb} {filename}..."

    elif tool_name == "Bash":
        command = tool_input.get("command", "")
        if len(command) > 50:
            command = command[:50] + "..."
        return f"→ Running: {command}"

    elif tool_name == "Grep":
        return f"→ Searching for {tool_input.get('pattern', '')}..."

    elif tool_name == "Glob":
        return f"→ Finding {tool_input.get('pattern', '')}..."

    else:
        return f"→ {tool_name}..."


def _model_tokens(entry: Any) -> int:
    if not isinstance(entry, dict):
        return 0
    return int(entry.get("inputTokens", 0)) + int(entry.get("outputTokens", 0))


def response_from_data(data: Any, exit_code: int = 0) -> AgentResponse:
    """Extract an AgentResponse from a decoded result object.

    The serving model is the ``modelUsage`` entry with the most input+output
    tokens; missing token fields count as zero.

    Raises:
        MalformedResponseError: If the data is not a JSON object or its
            fields have the wrong types
    """
    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object from the agent CLI, got {type(data).__name__}"
        )

    try:
        model_usage = data.get("modelUsage") or {}
        if isinstance(model_usage, dict) and model_usage:
            model = max(model_usage, key=lambda name: _model_tokens(model_usage[name]))
            models = sorted(model_usage)
        else:
            model = str(data.get("model") or "unknown")
            models = [model]

        usage = data.get("usage") or {}
        if not isinstance(usage, dict):
            raise TypeError(f"usage is {type(usage).__name__}, not an object")

        return AgentResponse(
            result=str(data.get("result") or ""),
            model=model,
            models=models,
            stop_reason=str(data.get("subtype") or data.get("type") or "unknown"),
            usage=TokenUsage(
                input_tokens=int(usage.get("input_tokens") or 0),
                output_tokens=int(usage.get("output_tokens") or 0),
                cache_creation_tokens=int(usage.get("cache_creation_input_tokens") or 0),
                cache_read_tokens=int(usage.get("cache_read_input_tokens") or 0),
            ),
            exit_code=exit_code,
            cost_usd=float(data.get("total_cost_usd") or 0.0),
            session_id=str(data.get("session_id") or ""),
            num_turns=int(data.get("num_turns") or 0),
            is_error=bool(data.get("is_error", False)),
        )
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Unexpected agent response fields: {e}") from e


def parse_response(stdout: str, exit_code: int = 0) -> AgentResponse:
    """Parse ``--output-format json`` output.

    Raises:
        MalformedResponseError: If stdout is not a single JSON object
    """
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Invalid JSON response from agent CLI: {e}", raw=stdout
        ) from e
    return response_from_data(data, exit_code)


def parse_stream_output(stdout: str, exit_code: int = 0) -> AgentResponse:
    """Parse ``--output-format stream-json`` output (JSONL events).

    The last ``result`` event is the response; lines that are not JSON are
    skipped.

    Raises:
        MalformedResponseError: If no result event is present
    """
    result_event = None
    for line in stdout.splitlines():
        event = _decode_event(line)
        if event is not None and event.get("type") == "result":
            result_event = event

    if result_event is None:
        raise MalformedResponseError(
            "No result event in agent CLI stream output", raw=stdout
        )
    return response_from_data(result_event, exit_code)


def _decode_event(line: str) -> dict | None:
    line = line.strip()
    if not line:
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


@dataclass
class AgentRunner:
    """Runs the coding-agent CLI for one attempt at a time.

    Attributes:
        binary: Agent CLI executable
        permission_mode: Value for --permission-mode
        timeout_seconds: Hard wall-clock cap on one attempt
        token: Cancellation token that may terminate the running process
        max_turns: Optional --max-turns value
        stream: Use stream-json and report tool calls as they happen
        on_tool_use: Callback receiving (tool_name, tool_input) in stream mode
        cwd: Working directory for the subprocess
    """

    binary: str = "claude"
    permission_mode: str = "bypassPermissions"
    timeout_seconds: int = 600
    token: CancellationToken = field(default_factory=CancellationToken)
    max_turns: int | None = None
    stream: bool = False
    on_tool_use: Callable[[str, dict], None] | None = None
    cwd: Path | None = None

    def build_command(self, prompt: str, tier: str) -> list[str]:
        cmd = [self.binary, "-p", prompt]
        if self.stream:
            # --verbose is required for stream-json with -p
            cmd.extend(["--output-format", "stream-json", "--verbose"])
        else:
            cmd.extend(["--output-format", "json"])
        cmd.extend(["--model", tier, "--permission-mode", self.permission_mode])
        if self.max_turns:
            cmd.extend(["--max-turns", str(self.max_turns)])
        return cmd

    def invoke(self, prompt: str, tier: str) -> AgentResponse:
        """Run one attempt of the agent CLI requesting the given tier.

        Returns:
            AgentResponse parsed from stdout

        Raises:
            Interrupted: If the cancellation token fired during the call
            AgentTimeoutError: If the attempt exceeded timeout_seconds
            AgentProcessError: If the CLI could not start or exited non-zero
            MalformedResponseError: If the output could not be parsed
        """
        cmd = self.build_command(prompt, tier)
        logger.debug(f"Invoking agent CLI: {cmd[0]} (model={tier}, stream={self.stream})")

        # stderr goes to a file so a chatty CLI cannot fill the pipe
        with tempfile.TemporaryFile(mode="w+") as stderr_file:
            try:
                process = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    text=True,
                    cwd=self.cwd,
                )
            except OSError as e:
                raise AgentProcessError(127, str(e)) from e

            self.token.attach(process)
            try:
                if self.stream:
                    stdout, timed_out = self._collect_streaming(process)
                else:
                    stdout, timed_out = self._collect(process)
            finally:
                self.token.detach()

            stderr_file.seek(0)
            stderr = stderr_file.read()

        self.token.raise_if_cancelled()

        if timed_out:
            logger.warning(f"Agent CLI timed out after {self.timeout_seconds}s")
            raise AgentTimeoutError(self.timeout_seconds, stderr)

        if process.returncode != 0:
            logger.error(f"Agent CLI exited with {process.returncode}")
            raise AgentProcessError(process.returncode, stderr or stdout[:2000])

        if self.stream:
            response = parse_stream_output(stdout, process.returncode)
        else:
            response = parse_response(stdout, process.returncode)
        response.requested_tier = tier
        return response

    def _collect(self, process: subprocess.Popen) -> tuple[str, bool]:
        try:
            stdout, _ = process.communicate(timeout=self.timeout_seconds)
            return stdout or "", False
        except subprocess.TimeoutExpired:
            process.kill()
            stdout, _ = process.communicate()
            return stdout or "", True

    def _collect_streaming(self, process: subprocess.Popen) -> tuple[str, bool]:
        timed_out = threading.Event()

        def _on_timeout() -> None:
            timed_out.set()
            process.kill()

        watchdog = threading.Timer(self.timeout_seconds, _on_timeout)
        watchdog.daemon = True
        watchdog.start()

        lines: list[str] = []
        try:
            if process.stdout is not None:
                for line in process.stdout:
                    lines.append(line)
                    self._report_tool_uses(line)
            process.wait()
        except BaseException:
            # Never leave the child running behind a failed reader
            process.kill()
            process.wait()
            raise
        finally:
            watchdog.cancel()

        return "".join(lines), timed_out.is_set()

    def _report_tool_uses(self, line: str) -> None:
        if self.on_tool_use is None:
            return
        event = _decode_event(line)
        if event is None or event.get("type") != "assistant":
            return
        # Tool uses are nested in assistant message content
        message = event.get("message")
        if not isinstance(message, dict):
            return
        for item in message.get("content") or []:
            if isinstance(item, dict) and item.get("type") == "tool_use":
                self.on_tool_use(item.get("name", ""), item.get("input") or {})
