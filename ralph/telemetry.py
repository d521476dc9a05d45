"""Telemetry setup for OpenTelemetry traces and metrics.

Configures tracing and metrics export over OTLP when OTLP_ENABLED=true;
otherwise installs in-process SDK providers so spans and counters are
recorded but never exported.
"""

import logging
import os

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

from ralph.config import RalphConfig
from ralph.models import IterationRecord

# Suppress gRPC warnings when collector is unavailable
logging.getLogger("opentelemetry.exporter.otlp.proto.grpc").setLevel(logging.ERROR)

# Module-level metric instruments (set by create_metrics)
iterations_counter: metrics.Counter
tokens_counter: metrics.Counter
cost_counter: metrics.Counter
iteration_duration: metrics.Histogram
acquisition_attempts_counter: metrics.Counter
commits_counter: metrics.Counter


def setup_telemetry(config: RalphConfig) -> tuple[trace.Tracer, metrics.Meter]:
    """Initialize OpenTelemetry, with OTLP export if enabled.

    Args:
        config: Ralph configuration with OTLP endpoint and service name

    Returns:
        Tuple of (tracer, meter) for creating spans and recording metrics
    """
    otlp_enabled = os.getenv("OTLP_ENABLED", "false").lower() == "true"

    if otlp_enabled and config.otlp_endpoint:
        # Import OTLP exporters only when needed
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        trace_provider = TracerProvider()
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otlp_endpoint))
        )
        trace.set_tracer_provider(trace_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=config.otlp_endpoint)
        )
        metrics.set_meter_provider(MeterProvider(metric_readers=[metric_reader]))
    else:
        trace.set_tracer_provider(TracerProvider())
        metrics.set_meter_provider(MeterProvider())

    tracer = trace.get_tracer(config.service_name)
    meter = metrics.get_meter(config.service_name)

    return tracer, meter


def create_metrics(meter: metrics.Meter) -> None:
    """Create metric instruments for run tracking.

    Args:
        meter: OpenTelemetry meter for creating instruments
    """
    global iterations_counter, tokens_counter, cost_counter, iteration_duration
    global acquisition_attempts_counter, commits_counter

    iterations_counter = meter.create_counter(
        "ralph_iterations_total",
        description="Total iterations recorded",
    )

    tokens_counter = meter.create_counter(
        "ralph_tokens_total",
        description="Total tokens used",
    )

    cost_counter = meter.create_counter(
        "ralph_cost_usd_total",
        description="Total cost in USD",
    )

    iteration_duration = meter.create_histogram(
        "ralph_iteration_duration_seconds",
        description="Iteration duration including retries",
        unit="s",
    )

    acquisition_attempts_counter = meter.create_counter(
        "ralph_acquisition_attempts_total",
        description="Agent CLI attempts made while acquiring a model tier",
    )

    commits_counter = meter.create_counter(
        "ralph_commits_total",
        description="Commit attempts after iterations",
    )


def record_iteration(record: IterationRecord) -> None:
    """Record an iteration on the metric instruments, if created."""
    try:
        iterations_counter.add(1, {"success": str(record.success).lower()})
        tokens_counter.add(record.usage.input_tokens, {"direction": "input"})
        tokens_counter.add(record.usage.output_tokens, {"direction": "output"})
        cost_counter.add(record.cost_usd)
        iteration_duration.record(record.duration_seconds, {"model": record.model})
    except NameError:
        pass  # Metrics not initialized


def record_attempt(stage: str, tier: str, outcome: str) -> None:
    try:
        acquisition_attempts_counter.add(
            1, {"stage": stage, "tier": tier, "outcome": outcome}
        )
    except NameError:
        pass  # Metrics not initialized


def record_commit(committed: bool) -> None:
    try:
        commits_counter.add(1, {"status": "ok" if committed else "failed"})
    except NameError:
        pass  # Metrics not initialized
