"""Per-document progress tracking for the implementation workflow.

Each change request has a side-car marker file next to it:

    docs/changes-request/
    ├── 2025-03-26-code-command.blueprint.md
    ├── .2025-03-26-code-command.blueprint.md.step     # progress marker
    ├── 2025-03-26-code-command.01-laying-the-foundation.md
    └── 2025-03-26-code-command.01-laying-the-foundation-test.md

The marker is written as JSON:

    {
      "change_request_path": "docs/changes-request/2025-03-26-code-command.blueprint.md",
      "current_step_index": 2,
      "completed_steps": ["01-laying-the-foundation", "01-laying-the-foundation-test"],
      "last_modified": "2025-03-26T02:00:55Z"
    }

A hand-written marker holding a bare index (``3``), a step id (``02-mvi``,
the next step to run) or ``complete`` is accepted too. Anything else is
treated as an unrecognized marker: a warning is emitted and the workflow
restarts at the first step. A bad marker never fails the command.
"""

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from storymatrix.config import (
    BLUEPRINT_SUFFIX,
    MARKER_COMPLETE_TOKEN,
    MARKER_PREFIX,
    MARKER_SUFFIX,
)
from storymatrix.filesystem import FileSystem

from .errors import MSG_UNREADABLE_MARKER, MSG_UNRECOGNIZED_STEP, StateUpdateError
from .step_registry import StepRegistry, WorkflowStep, get_step_registry

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ProgressMarker(BaseModel):
    """Persisted progress of one change request.

    Field names written by earlier releases (``ChangeRequestPath``,
    ``CurrentStepIndex``, ...) are still accepted on read.
    """

    change_request_path: str = Field(
        default="",
        validation_alias=AliasChoices("change_request_path", "ChangeRequestPath"),
    )
    current_step_index: int = Field(
        default=0,
        validation_alias=AliasChoices("current_step_index", "CurrentStepIndex"),
    )
    completed_steps: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("completed_steps", "CompletedSteps"),
    )
    last_modified: str | None = Field(
        default=None,
        validation_alias=AliasChoices("last_modified", "LastModified"),
    )

    @field_validator("completed_steps", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


@dataclass
class MarkerReadResult:
    """Outcome of reading a progress marker.

    Attributes:
        step_index: Number of completed steps (0 when absent or unrecognized)
        marker: Parsed marker, None when absent or unrecognized
        warnings: Recoverable problems met while reading
    """

    step_index: int
    marker: ProgressMarker | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def recognized(self) -> bool:
        return self.marker is not None


def marker_path_for(change_request_path: str) -> str:
    """Side-car marker path for a change request (pure)."""
    directory = os.path.dirname(change_request_path)
    base = os.path.basename(change_request_path)
    return os.path.join(directory, f"{MARKER_PREFIX}{base}{MARKER_SUFFIX}")


def document_base_name(change_request_path: str) -> str:
    """Base name used in artifact file names.

    ``x.blueprint.md`` → ``x``; any other name is kept whole (``x.md`` →
    ``x.md``) so documents sharing a stem never share artifacts.
    """
    base = os.path.basename(change_request_path)
    if base.endswith(BLUEPRINT_SUFFIX) and len(base) > len(BLUEPRINT_SUFFIX):
        return base[: -len(BLUEPRINT_SUFFIX)]
    return base


class ProgressTracker:
    """Reads and writes progress markers.

    The tracker is the only component that mutates a marker, and it does so
    only when asked after a step has been fully executed. Markers are keyed
    by document path, so two documents never share state.

    Args:
        file_system: File system capability
        registry: Step catalogue (defaults to the standard one)
        clock: Time source for ``last_modified``
    """

    def __init__(
        self,
        file_system: FileSystem,
        registry: StepRegistry | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.fs = file_system
        self.registry = registry or get_step_registry()
        self._clock = clock

    @property
    def total_steps(self) -> int:
        return len(self.registry)

    # =========================================================================
    # Reading
    # =========================================================================

    def load_marker(self, change_request_path: str) -> MarkerReadResult:
        """Read the marker of a change request.

        Absence yields index 0 with no warning. An unreadable or
        unrecognized marker yields index 0 and a warning.
        """
        marker_path = marker_path_for(change_request_path)
        if not self.fs.exists(marker_path):
            return MarkerReadResult(step_index=0)

        try:
            raw = self.fs.read_file(marker_path).decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            message = MSG_UNREADABLE_MARKER.format(marker=marker_path, reason=e)
            logger.warning(message)
            return MarkerReadResult(step_index=0, warnings=[message])

        marker = self._parse_marker(raw, change_request_path)
        if marker is None:
            message = MSG_UNRECOGNIZED_STEP.format(marker=marker_path)
            logger.warning(message)
            return MarkerReadResult(step_index=0, warnings=[message])

        return MarkerReadResult(step_index=marker.current_step_index, marker=marker)

    def _parse_marker(self, raw: str, change_request_path: str) -> ProgressMarker | None:
        """Turn marker text into a ProgressMarker, or None if unrecognized."""
        text = raw.strip()
        if not text:
            return None

        if text.startswith("{"):
            try:
                marker = ProgressMarker.model_validate(json.loads(text))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.debug(f"Marker for {change_request_path} is not valid JSON state: {e}")
                return None
        else:
            index = self._parse_token(text)
            if index is None:
                return None
            marker = self._build_marker(change_request_path, index)

        if not 0 <= marker.current_step_index <= self.total_steps:
            logger.debug(
                f"Marker for {change_request_path} has out-of-range index "
                f"{marker.current_step_index}"
            )
            return None
        return marker

    def _parse_token(self, token: str) -> int | None:
        """Interpret a bare marker token as a step index."""
        if token.lower() == MARKER_COMPLETE_TOKEN:
            return self.total_steps
        try:
            return int(token)
        except ValueError:
            pass
        if self.registry.contains(token):
            return self.registry.index_of(token)
        return None

    def determine_next_step(self, change_request_path: str) -> int | None:
        """Index of the next step to execute, or None when all are done."""
        index = self.load_marker(change_request_path).step_index
        if index >= self.total_steps:
            return None
        return index

    def is_complete(self, change_request_path: str) -> bool:
        """True if every step of the workflow has been executed."""
        return self.load_marker(change_request_path).step_index >= self.total_steps

    # =========================================================================
    # Writing
    # =========================================================================

    def _build_marker(self, change_request_path: str, index: int) -> ProgressMarker:
        return ProgressMarker(
            change_request_path=change_request_path,
            current_step_index=index,
            completed_steps=self.registry.step_ids()[: max(index, 0)],
            last_modified=self._clock().isoformat().replace("+00:00", "Z"),
        )

    def update_state(self, change_request_path: str, new_index: int) -> ProgressMarker:
        """Persist the number of completed steps.

        The marker is written to a temporary sibling and moved into place, so
        either the new value is stored or the previous marker stands.

        Args:
            change_request_path: Change request the marker belongs to
            new_index: Number of completed steps (0..total)

        Returns:
            The marker that was written

        Raises:
            ValueError: If new_index is outside 0..total
            StateUpdateError: If the marker cannot be written
        """
        if not 0 <= new_index <= self.total_steps:
            raise ValueError(f"new_index must be within 0..{self.total_steps}, got: {new_index}")

        marker = self._build_marker(change_request_path, new_index)
        marker_path = marker_path_for(change_request_path)
        temp_path = f"{marker_path}.tmp"
        payload = marker.model_dump_json(indent=2).encode("utf-8")

        try:
            self.fs.write_file(temp_path, payload)
            self.fs.replace(temp_path, marker_path)
        except OSError as e:
            self._discard_temp(temp_path)
            raise StateUpdateError(
                f"Failed to write workflow state {marker_path}: {e}",
                document_path=change_request_path,
            ) from e

        logger.debug(f"Workflow state for {change_request_path} set to step index {new_index}")
        return marker

    def _discard_temp(self, temp_path: str) -> None:
        if not self.fs.exists(temp_path):
            return
        try:
            self.fs.remove(temp_path)
        except OSError as e:
            logger.warning(f"Could not remove temporary state file {temp_path}: {e}")

    def reset_workflow(self, change_request_path: str) -> ProgressMarker:
        """Restart the workflow of a change request at the first step."""
        marker = self.update_state(change_request_path, 0)
        logger.info(f"Workflow reset for {change_request_path}")
        return marker

    # =========================================================================
    # Naming
    # =========================================================================

    def generate_output_filename(self, change_request_path: str, step: WorkflowStep) -> str:
        """Artifact path for a step (pure function of document and step)."""
        directory = os.path.dirname(change_request_path)
        filename = step.output_file_pattern % document_base_name(change_request_path)
        return os.path.join(directory, filename)
