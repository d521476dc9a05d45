"""Metrics store for ralph iterations.

The JSONL metrics log is the single source of truth: one IterationRecord is
appended per completed iteration and every summary is recomputed by folding
over the re-read log, so a summary printed after an interruption reflects
exactly what was durably written.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ralph.models import IterationRecord

logger = logging.getLogger(__name__)


def cache_hit_rate(cache_read_tokens: int, input_tokens: int) -> int | None:
    """Cache hit rate as a truncated integer percentage.

    Returns:
        None when there were no input tokens (displayed as "N/A"),
        otherwise cache_read_tokens * 100 // input_tokens
    """
    if input_tokens <= 0:
        return None
    return (cache_read_tokens * 100) // input_tokens


class MetricsLog:
    """Append-only JSONL log of IterationRecords.

    Lines are only ever appended, never rewritten, so an external reader
    tailing the file always sees whole records.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def touch(self) -> None:
        """Create the log if it does not exist yet (without truncating)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a"):
            pass

    def append(self, record: IterationRecord) -> None:
        """Durably append one record as a single JSON line."""
        line = json.dumps(record.to_dict()) + "\n"
        with open(self.path, "a") as f:
            f.write(line)
            f.flush()
            os.fsync(f.fileno())
        logger.debug(f"Appended iteration {record.iteration} to {self.path}")

    def read(self) -> list[IterationRecord]:
        """Load every record in the log.

        A missing file is an empty log. Lines that do not decode (for example
        a torn final line after a crash) are skipped with a warning.
        """
        if not self.path.exists():
            return []

        records: list[IterationRecord] = []
        with open(self.path) as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(IterationRecord.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                    logger.warning(
                        f"Skipping unreadable metrics line {line_number} "
                        f"in {self.path}: {e}"
                    )
        return records


@dataclass
class ModelBreakdown:
    """Per-model slice of the aggregate, for display only."""

    iterations: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0


@dataclass
class RunAggregate:
    """Aggregates over every record in a metrics log.

    Derived on demand by summarize(); never persisted.
    """

    iterations: int = 0
    success_count: int = 0
    success_rate: int = 0
    total_duration: int = 0
    average_duration: int = 0
    min_duration: int = 0
    max_duration: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    average_input_tokens: int = 0
    average_output_tokens: int = 0
    average_tokens: int = 0
    total_cache_creation_tokens: int = 0
    total_cache_read_tokens: int = 0
    cache_hit_rate: int | None = None
    total_files_changed: int = 0
    average_files_changed: int = 0
    total_cost_usd: float = 0.0
    by_model: dict[str, ModelBreakdown] = field(default_factory=dict)


def summarize(records: list[IterationRecord]) -> RunAggregate:
    """Fold a list of records into a RunAggregate.

    Averages are integer-truncated. An empty list yields all zeros and a
    None cache hit rate.
    """
    aggregate = RunAggregate()
    if not records:
        return aggregate

    count = len(records)
    durations = [r.duration_seconds for r in records]

    aggregate.iterations = count
    aggregate.success_count = sum(1 for r in records if r.success)
    aggregate.success_rate = (aggregate.success_count * 100) // count

    aggregate.total_duration = sum(durations)
    aggregate.average_duration = aggregate.total_duration // count
    aggregate.min_duration = min(durations)
    aggregate.max_duration = max(durations)

    aggregate.total_input_tokens = sum(r.usage.input_tokens for r in records)
    aggregate.total_output_tokens = sum(r.usage.output_tokens for r in records)
    aggregate.total_tokens = aggregate.total_input_tokens + aggregate.total_output_tokens
    aggregate.average_input_tokens = aggregate.total_input_tokens // count
    aggregate.average_output_tokens = aggregate.total_output_tokens // count
    aggregate.average_tokens = aggregate.total_tokens // count

    aggregate.total_cache_creation_tokens = sum(
        r.usage.cache_creation_tokens for r in records
    )
    aggregate.total_cache_read_tokens = sum(r.usage.cache_read_tokens for r in records)
    aggregate.cache_hit_rate = cache_hit_rate(
        aggregate.total_cache_read_tokens, aggregate.total_input_tokens
    )

    aggregate.total_files_changed = sum(r.files_changed for r in records)
    aggregate.average_files_changed = aggregate.total_files_changed // count

    aggregate.total_cost_usd = sum(r.cost_usd for r in records)

    for record in records:
        breakdown = aggregate.by_model.setdefault(record.model, ModelBreakdown())
        breakdown.iterations += 1
        breakdown.total_tokens += record.usage.total_tokens
        breakdown.cost_usd += record.cost_usd

    return aggregate
