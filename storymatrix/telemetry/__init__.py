"""Logging and tracing for storymatrix.

Usage:
    from storymatrix.telemetry import init_telemetry, step_span

    # Initialize once at startup
    init_telemetry()

    with step_span("02-mvi", "Minimum Viable Implementation", "mvi", False) as span:
        ...

Environment Variables:
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR) - default: WARNING
    OTEL_SERVICE_NAME: Service name for traces - default: storymatrix
    OTEL_TRACES_EXPORTER: Exporter type (console, none) - default: none
    OTEL_SDK_DISABLED: Disable all tracing - default: false
"""

from .config import (
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from .spans import (
    get_tracer,
    record_error,
    record_failure,
    record_step_event,
    step_span,
    workflow_span,
)

__all__ = [
    # Configuration
    "TelemetryConfig",
    "init_telemetry",
    "shutdown_telemetry",
    "is_telemetry_enabled",
    # Spans
    "get_tracer",
    "workflow_span",
    "step_span",
    "record_step_event",
    "record_error",
    "record_failure",
]
