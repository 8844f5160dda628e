"""Step execution engine for the change request implementation workflow.

A change request goes through eight fixed steps. Each `usm code` invocation
reads the document's progress marker, executes the next pending step, writes
its artifact and advances the marker.
"""

# Errors (no external dependencies)
from .errors import (
    ArtifactWriteError,
    CatalogueValidationError,
    DocumentNotFoundError,
    DocumentUnreadableError,
    StateUpdateError,
    UnknownStepError,
    WorkflowError,
)

# Prompt interpolation
from .prompt import (
    InterpolationError,
    build_prompt_context,
    interpolate,
    interpolate_with_diagnostics,
    validate,
)

# Progress tracking
from .progress import MarkerReadResult, ProgressMarker, ProgressTracker, marker_path_for

# Engine entry points
from .runner import RunResult, StepStatus, WorkflowRunner
from .step_content import StepContentGenerator, format_prompt_as_instructions
from .step_executor import ExecutionPhase, StepExecutionResult, StepExecutor

# Step registry
from .step_registry import (
    STEPS,
    TOTAL_STEPS,
    StepRegistry,
    WorkflowStep,
    build_step_registry,
    get_step_by_id,
    get_step_registry,
)

__all__ = [
    # Errors
    "WorkflowError",
    "DocumentNotFoundError",
    "DocumentUnreadableError",
    "ArtifactWriteError",
    "StateUpdateError",
    "UnknownStepError",
    "CatalogueValidationError",
    # Prompt
    "InterpolationError",
    "interpolate",
    "interpolate_with_diagnostics",
    "validate",
    "build_prompt_context",
    # Progress
    "ProgressMarker",
    "ProgressTracker",
    "MarkerReadResult",
    "marker_path_for",
    # Registry
    "WorkflowStep",
    "StepRegistry",
    "STEPS",
    "TOTAL_STEPS",
    "build_step_registry",
    "get_step_registry",
    "get_step_by_id",
    # Execution
    "StepContentGenerator",
    "format_prompt_as_instructions",
    "ExecutionPhase",
    "StepExecutionResult",
    "StepExecutor",
    "RunResult",
    "StepStatus",
    "WorkflowRunner",
]
