"""Telemetry setup for OpenTelemetry traces and metrics.

Exports over OTLP when enabled; otherwise installs in-memory providers so
spans and instruments are no-ops.
"""

from dataclasses import dataclass

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.trace import TracerProvider

from lisa.config import LisaSettings


@dataclass
class InterviewMetrics:
    """Metric instruments recorded by the orchestrator."""

    turns_counter: metrics.Counter
    errors_counter: metrics.Counter
    retries_counter: metrics.Counter
    turn_duration: metrics.Histogram


def setup_telemetry(settings: LisaSettings) -> tuple[trace.Tracer, metrics.Meter]:
    """Initialize OpenTelemetry.

    Args:
        settings: Runtime settings with OTLP switch, endpoint and service name

    Returns:
        Tuple of (tracer, meter)
    """
    if settings.otlp_enabled and settings.otlp_endpoint:
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
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )
        trace.set_tracer_provider(trace_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        )
        metrics.set_meter_provider(MeterProvider(metric_readers=[metric_reader]))
    else:
        trace.set_tracer_provider(TracerProvider())
        metrics.set_meter_provider(MeterProvider())

    return trace.get_tracer(settings.service_name), metrics.get_meter(
        settings.service_name
    )


def create_metrics(meter: metrics.Meter) -> InterviewMetrics:
    """Create the interview metric instruments."""
    return InterviewMetrics(
        turns_counter=meter.create_counter(
            "lisa_turns_total",
            description="Interview turns completed, by provider",
        ),
        errors_counter=meter.create_counter(
            "lisa_errors_total",
            description="Interview errors, by category",
        ),
        retries_counter=meter.create_counter(
            "lisa_retries_total",
            description="Provider start retries",
        ),
        turn_duration=meter.create_histogram(
            "lisa_turn_duration_seconds",
            description="Time from sending a turn to its terminal response",
            unit="s",
        ),
    )
