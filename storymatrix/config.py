"""Centralized configuration for storymatrix.

This module provides a single source of truth for the constants and enums
shared by the workflow engine and the command driver.

Design Principles:
- Naming conventions for side-car and artifact files in one place
- Enums for type-safe phase, mode and outcome values
- Run configuration passed explicitly into the engine entry call
"""

from dataclasses import dataclass
from enum import Enum

# =============================================================================
# Enums for Type Safety
# =============================================================================


class StepPhase(Enum):
    """Implementation phase a workflow step belongs to.

    Every phase has one build step followed by one test step.
    """

    FOUNDATION = "foundation"
    MVI = "mvi"
    EXTEND = "extend"
    FINAL = "final"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid phase values as strings."""
        return [phase.value for phase in cls]


class ContentMode(Enum):
    """How the step executor builds an artifact body."""

    PROMPT = "prompt"  # Numbered instructions derived from the rendered prompt
    PLACEHOLDER = "placeholder"  # Fixed per-phase checklist

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid content modes as strings."""
        return [mode.value for mode in cls]


class RunOutcome(Enum):
    """Result of one invocation of the workflow runner."""

    STEP_COMPLETED = "step_completed"
    ALREADY_COMPLETE = "already_complete"
    DOCUMENT_NOT_FOUND = "document_not_found"
    STEP_FAILED = "step_failed"
    STATE_UPDATE_FAILED = "state_update_failed"

    @property
    def exit_code(self) -> int:
        """Process exit code the command driver should use."""
        if self in (RunOutcome.STEP_COMPLETED, RunOutcome.ALREADY_COMPLETE):
            return 0
        return 1


# =============================================================================
# File Naming
# =============================================================================

# Suffix stripped from a change request name before building artifact names
BLUEPRINT_SUFFIX = ".blueprint.md"

# Progress marker: ".<document-basename>.step" next to the document
MARKER_PREFIX = "."
MARKER_SUFFIX = ".step"

# Bare token accepted in a marker file for a finished workflow
MARKER_COMPLETE_TOKEN = "complete"

# Permissions for created directories and written files
DIR_MODE = 0o755
FILE_MODE = 0o644


# =============================================================================
# Prompt Variables
# =============================================================================

VAR_CHANGE_REQUEST_FILE_PATH = "change_request_file_path"

# Line written when a prompt yields no usable instruction
NO_INSTRUCTIONS_FALLBACK = "No specific instructions provided."

# Default content mode when neither the environment nor the CLI choose one
DEFAULT_CONTENT_MODE = ContentMode.PROMPT


# =============================================================================
# Run Configuration
# =============================================================================


@dataclass(frozen=True)
class RunConfig:
    """Inputs of a single `usm code` invocation.

    Passed explicitly to WorkflowRunner.run.
    """

    change_request_path: str
    reset: bool = False
