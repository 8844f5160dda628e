"""Custom spans for workflow runs and step executions.

Span Hierarchy:
    workflow_span (one per `usm code` invocation)
    └── step_span (the step executed by that invocation)
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "storymatrix.workflow"


def get_tracer() -> trace.Tracer:
    """Get the tracer for custom spans.

    Resolved on every call so a provider installed after import is honored.
    """
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def workflow_span(
    change_request_path: str,
    reset: bool = False,
    **attributes: Any,
) -> Generator[Span, None, None]:
    """Create the root span for one workflow invocation.

    Args:
        change_request_path: Change request being worked on
        reset: Whether the run started with a reset
        **attributes: Additional span attributes

    Example:
        with workflow_span("docs/x.blueprint.md") as span:
            span.set_attribute("workflow.step_index", 2)
    """
    span_attributes = {
        "workflow.change_request": change_request_path,
        "workflow.reset": reset,
    }
    span_attributes.update(attributes)

    with get_tracer().start_as_current_span(
        name="workflow:code",
        attributes=span_attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            if not _has_error_status(span):
                span.set_status(StatusCode.OK)
        except Exception as e:
            record_error(span, e)
            raise


@contextmanager
def step_span(
    step_id: str,
    description: str,
    phase: str,
    is_test: bool,
    **attributes: Any,
) -> Generator[Span, None, None]:
    """Create a span for a step execution.

    Args:
        step_id: Step identifier (e.g., "02-mvi")
        description: Human-readable step description
        phase: Phase value the step belongs to
        is_test: Whether the step is a test step
        **attributes: Additional span attributes
    """
    span_attributes = {
        "step.id": step_id,
        "step.description": description,
        "step.phase": phase,
        "step.is_test": is_test,
    }
    span_attributes.update(attributes)

    with get_tracer().start_as_current_span(
        name=f"step:{step_id}",
        attributes=span_attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            if not _has_error_status(span):
                span.set_status(StatusCode.OK)
        except Exception as e:
            record_error(span, e)
            raise


def _has_error_status(span: Span) -> bool:
    status = getattr(span, "status", None)
    return status is not None and status.status_code is StatusCode.ERROR


def record_step_event(span: Span, event_name: str, **attributes: Any) -> None:
    """Record an event (e.g. "prompt_rendered", "artifact_written") on a span."""
    span.add_event(event_name, attributes=attributes)


def record_error(span: Span, error: Exception) -> None:
    """Record an error to a span with structured attributes."""
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(error).__name__)
    span.set_attribute("error.message", str(error)[:500])
    span.record_exception(error)
    span.set_status(StatusCode.ERROR, str(error))


def record_failure(span: Span, message: str) -> None:
    """Mark a span as failed for an outcome reported without an exception."""
    span.set_attribute("error", True)
    span.set_attribute("error.message", message[:500])
    span.set_status(StatusCode.ERROR, message)
