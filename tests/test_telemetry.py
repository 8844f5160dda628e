"""Tests for storymatrix.telemetry (configuration and spans)."""

from unittest import mock

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from storymatrix.config import RunConfig
from storymatrix.telemetry import (
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    record_failure,
    shutdown_telemetry,
    step_span,
    workflow_span,
)
from storymatrix.telemetry.config import ExporterType
from storymatrix.workflow.runner import WorkflowRunner


@pytest.fixture
def exporter():
    """Route spans created through get_tracer() to an in-memory exporter."""
    memory_exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(memory_exporter))
    with mock.patch(
        "storymatrix.telemetry.spans.get_tracer",
        return_value=provider.get_tracer("test"),
    ):
        yield memory_exporter


# =============================================================================
# Configuration
# =============================================================================


class TestTelemetryConfig:
    """Tests for reading telemetry configuration."""

    def test_defaults(self):
        config = TelemetryConfig.from_env()
        assert config.log_level == "WARNING"
        assert config.service_name == "storymatrix"
        assert config.traces_exporter == ExporterType.NONE
        assert config.otel_disabled is False

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("OTEL_SERVICE_NAME", "usm-test")
        monkeypatch.setenv("OTEL_TRACES_EXPORTER", "console")
        monkeypatch.setenv("OTEL_SDK_DISABLED", "true")

        config = TelemetryConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.service_name == "usm-test"
        assert config.traces_exporter == ExporterType.CONSOLE
        assert config.otel_disabled is True

    def test_unknown_exporter(self, monkeypatch):
        monkeypatch.setenv("OTEL_TRACES_EXPORTER", "carrier-pigeon")
        assert TelemetryConfig.from_env().traces_exporter == ExporterType.NONE

    def test_init_without_exporter(self):
        init_telemetry(TelemetryConfig(log_level="INFO"))
        try:
            assert not is_telemetry_enabled()
        finally:
            shutdown_telemetry()


# =============================================================================
# Spans
# =============================================================================


class TestSpans:
    """Tests for workflow and step spans."""

    def test_step_span_attributes_and_status(self, exporter):
        with step_span("02-mvi", "Minimum Viable Implementation", "mvi", False):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "step:02-mvi"
        assert span.attributes["step.id"] == "02-mvi"
        assert span.attributes["step.phase"] == "mvi"
        assert span.attributes["step.is_test"] is False
        assert span.status.status_code == StatusCode.OK

    def test_step_span_records_errors(self, exporter):
        with pytest.raises(RuntimeError):
            with step_span("02-mvi", "MVI", "mvi", False):
                raise RuntimeError("disk on fire")

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error.type"] == "RuntimeError"
        assert span.attributes["error.message"] == "disk on fire"

    def test_workflow_span(self, exporter):
        with workflow_span("docs/x.blueprint.md", reset=True):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "workflow:code"
        assert span.attributes["workflow.change_request"] == "docs/x.blueprint.md"
        assert span.attributes["workflow.reset"] is True

    def test_reported_failure_is_not_overwritten_with_ok(self, exporter):
        with workflow_span("docs/x.blueprint.md") as span:
            record_failure(span, "Error: File docs/x.blueprint.md not found.")

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["error"] is True
        assert span.attributes["error.message"] == "Error: File docs/x.blueprint.md not found."

    def test_run_produces_nested_spans(self, exporter, memory_fs, doc_path):
        WorkflowRunner(memory_fs).run(RunConfig(doc_path))

        spans = {span.name: span for span in exporter.get_finished_spans()}
        assert set(spans) == {"workflow:code", "step:01-laying-the-foundation"}
        step = spans["step:01-laying-the-foundation"]
        assert step.parent.span_id == spans["workflow:code"].context.span_id
        assert [event.name for event in step.events] == ["prompt_rendered", "artifact_written"]
        assert spans["workflow:code"].attributes["workflow.outcome"] == "step_completed"
        assert spans["workflow:code"].status.status_code == StatusCode.OK

    def test_failed_run_marks_workflow_span_as_error(self, exporter, memory_fs, doc_path):
        memory_fs.read_only.add("docs/changes-request/2025-03-26-code-command.01-laying-the-foundation.md")

        result = WorkflowRunner(memory_fs).run(RunConfig(doc_path))

        spans = {span.name: span for span in exporter.get_finished_spans()}
        workflow = spans["workflow:code"]
        assert workflow.attributes["workflow.outcome"] == "step_failed"
        assert workflow.status.status_code == StatusCode.ERROR
        assert workflow.attributes["error.message"] == result.error
        assert spans["step:01-laying-the-foundation"].status.status_code == StatusCode.ERROR

    def test_missing_document_marks_workflow_span_as_error(self, exporter, memory_fs):
        WorkflowRunner(memory_fs).run(RunConfig("docs/missing.blueprint.md"))

        (span,) = exporter.get_finished_spans()
        assert span.attributes["workflow.outcome"] == "document_not_found"
        assert span.status.status_code == StatusCode.ERROR
