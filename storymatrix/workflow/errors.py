"""Error taxonomy for the workflow engine.

Fatal conditions are raised as ``WorkflowError`` subclasses carrying the
document path and step id they relate to. Recoverable conditions (corrupt
marker, prompt variable problems) are never raised; they are logged and
returned as warnings.
"""

# =============================================================================
# User-facing message templates
# =============================================================================

MSG_FILE_NOT_FOUND = "Error: File {path} not found."
MSG_FILE_UNREADABLE = "Could not read change request {path}: {reason}"
MSG_OUTPUT_WRITE_FAILED = "Failed to create output file {path}: {reason}"
MSG_STATE_UPDATE_FAILED = "Error: Failed to update workflow state for {path}: {reason}"
MSG_STEP_EXECUTION_FAILED = "Error: Failed to execute step {step_id}: {reason}"
MSG_UNRECOGNIZED_STEP = (
    "Warning: Unrecognized step in {marker}. Starting from the beginning. "
    "Consider resetting the workflow with --reset."
)
MSG_UNREADABLE_MARKER = "Warning: Could not read workflow state {marker}: {reason}. Starting from the beginning."
MSG_UNDEFINED_VARIABLES = "Step {step_id} contains undefined variables: [{names}]"
MSG_MALFORMED_VARIABLES = "Step {step_id} contains malformed variables: [{names}]"
MSG_ALL_STEPS_COMPLETED = "All steps completed successfully for change request: {path}"


class WorkflowError(Exception):
    """Base class for fatal workflow engine errors.

    Attributes:
        document_path: Change request the error relates to, if any
        step_id: Workflow step the error relates to, if any
        result: Partial result of the failing operation, if any
    """

    def __init__(
        self,
        message: str,
        document_path: str | None = None,
        step_id: str | None = None,
    ):
        super().__init__(message)
        self.document_path = document_path
        self.step_id = step_id
        self.result = None


class DocumentNotFoundError(WorkflowError):
    """The change request document does not exist."""


class DocumentUnreadableError(WorkflowError):
    """The change request document exists but cannot be read."""


class ArtifactWriteError(WorkflowError):
    """A step artifact (or its directory) could not be written."""


class StateUpdateError(WorkflowError):
    """The progress marker could not be persisted."""


class UnknownStepError(WorkflowError):
    """A step id that is not part of the catalogue was requested."""


class CatalogueValidationError(WorkflowError):
    """One or more catalogue entries are malformed.

    Raised when the step registry is initialized, before any step runs.
    """

    def __init__(self, message: str, problems: list[str]):
        super().__init__(message)
        self.problems = problems

    def __str__(self) -> str:
        return f"{self.args[0]}: " + "; ".join(self.problems)
