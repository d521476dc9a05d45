"""Tests for the metrics log and its aggregation."""

import json
from pathlib import Path

from ralph.metrics import MetricsLog, cache_hit_rate, summarize
from ralph.models import IterationRecord, TokenUsage


def make_record(
    iteration: int = 1,
    duration: int = 60,
    model: str = "claude-opus-4",
    input_tokens: int = 1000,
    output_tokens: int = 500,
    cache_read: int = 0,
    files_changed: int = 1,
    success: bool = True,
    cost: float = 0.1,
) -> IterationRecord:
    """Create a test IterationRecord."""
    return IterationRecord(
        iteration=iteration,
        timestamp="2025-01-01T00:00:00Z",
        duration_seconds=duration,
        model=model,
        stop_reason="success",
        usage=TokenUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_creation_tokens=0,
            cache_read_tokens=cache_read,
        ),
        files_changed=files_changed,
        success=success,
        exit_code=0 if success else 1,
        cost_usd=cost,
    )


class TestCacheHitRate:
    """Test cache_hit_rate."""

    def test_hit_rate_is_truncated_percentage(self):
        """10000 read of 12500 input is 80%."""
        assert cache_hit_rate(10000, 12500) == 80

    def test_hit_rate_truncates(self):
        """Fractions are truncated, not rounded."""
        assert cache_hit_rate(2, 3) == 66

    def test_zero_input_is_not_applicable(self):
        """No input tokens yields None (shown as N/A)."""
        assert cache_hit_rate(0, 0) is None
        assert cache_hit_rate(100, 0) is None


class TestMetricsLog:
    """Test the JSONL metrics log."""

    def test_read_missing_file_is_empty(self, tmp_path: Path) -> None:
        """A log that does not exist reads as empty."""
        assert MetricsLog(tmp_path / "missing.jsonl").read() == []

    def test_append_writes_one_line_per_record(self, tmp_path: Path) -> None:
        """Each append adds exactly one JSON line."""
        path = tmp_path / "ralph_metrics.jsonl"
        log = MetricsLog(path)

        log.append(make_record(1))
        log.append(make_record(2))

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["iteration"] == 2

    def test_resumed_run_appends_without_duplicating(self, tmp_path: Path) -> None:
        """A second run appends after existing records; nothing is rewritten."""
        path = tmp_path / "ralph_metrics.jsonl"
        MetricsLog(path).append(make_record(1))
        before = path.read_text()

        resumed = MetricsLog(path)
        resumed.touch()
        resumed.append(make_record(1, duration=30))

        content = path.read_text()
        assert content.startswith(before)
        assert [r.duration_seconds for r in resumed.read()] == [60, 30]

    def test_touch_does_not_truncate(self, tmp_path: Path) -> None:
        """touch() keeps existing records."""
        path = tmp_path / "ralph_metrics.jsonl"
        MetricsLog(path).append(make_record())

        MetricsLog(path).touch()

        assert len(MetricsLog(path).read()) == 1

    def test_unreadable_lines_are_skipped(self, tmp_path: Path) -> None:
        """Blank and corrupt lines do not stop the rest from loading."""
        path = tmp_path / "ralph_metrics.jsonl"
        log = MetricsLog(path)
        log.append(make_record(1))
        with open(path, "a") as f:
            f.write("\n")
            f.write('{"iteration": 2, "dur')
            f.write("\n")
        log.append(make_record(3))

        assert [r.iteration for r in log.read()] == [1, 3]


class TestSummarize:
    """Test summarize()."""

    def test_empty_log(self):
        """No records gives zeros and an N/A hit rate."""
        aggregate = summarize([])

        assert aggregate.iterations == 0
        assert aggregate.total_tokens == 0
        assert aggregate.average_tokens == 0
        assert aggregate.success_rate == 0
        assert aggregate.cache_hit_rate is None
        assert aggregate.by_model == {}

    def test_totals_and_averages(self):
        """Totals are sums and averages are truncated integers."""
        records = [
            make_record(1, duration=61, input_tokens=1000, output_tokens=100),
            make_record(2, duration=30, input_tokens=2000, output_tokens=201),
            make_record(3, duration=90, input_tokens=500, output_tokens=0),
        ]

        aggregate = summarize(records)

        assert aggregate.iterations == 3
        assert aggregate.total_duration == 181
        assert aggregate.average_duration == 60
        assert aggregate.min_duration == 30
        assert aggregate.max_duration == 90
        assert aggregate.total_input_tokens == 3500
        assert aggregate.total_output_tokens == 301
        assert aggregate.total_tokens == 3801
        assert aggregate.average_input_tokens == 1166
        assert aggregate.average_output_tokens == 100
        assert aggregate.average_tokens == 1267

    def test_success_rate(self):
        """Success rate is the truncated percentage of successful records."""
        records = [make_record(1), make_record(2), make_record(3, success=False)]

        aggregate = summarize(records)

        assert aggregate.success_count == 2
        assert aggregate.success_rate == 66

    def test_overall_cache_hit_rate(self):
        """The overall hit rate uses summed read and input tokens."""
        records = [
            make_record(1, input_tokens=10000, cache_read=9000),
            make_record(2, input_tokens=2500, cache_read=1000),
        ]

        assert summarize(records).cache_hit_rate == 80

    def test_files_changed_and_cost(self):
        """Files changed and cost are summed."""
        records = [
            make_record(1, files_changed=4, cost=0.5),
            make_record(2, files_changed=1, cost=0.25),
        ]

        aggregate = summarize(records)

        assert aggregate.total_files_changed == 5
        assert aggregate.average_files_changed == 2
        assert aggregate.total_cost_usd == 0.75

    def test_breakdown_by_model(self):
        """Records are grouped by their primary model."""
        records = [
            make_record(1, model="claude-opus-4", input_tokens=100, output_tokens=0),
            make_record(2, model="claude-sonnet-4", input_tokens=50, output_tokens=50),
            make_record(3, model="claude-opus-4", input_tokens=300, output_tokens=0),
        ]

        by_model = summarize(records).by_model

        assert set(by_model) == {"claude-opus-4", "claude-sonnet-4"}
        assert by_model["claude-opus-4"].iterations == 2
        assert by_model["claude-opus-4"].total_tokens == 400
        assert by_model["claude-sonnet-4"].total_tokens == 100
