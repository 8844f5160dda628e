"""Step Executor for the implementation workflow.

Executes exactly one workflow step for one change request:

1. Validate the change request exists and can be read
2. Render the step prompt against the interpolation context
3. Generate the artifact content
4. Create the artifact directory if needed and write the artifact

The executor never reads or writes the progress marker; advancing progress
is the runner's job once execution has returned.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from storymatrix.filesystem import FileSystem
from storymatrix.telemetry import record_step_event, step_span

from .errors import (
    MSG_FILE_UNREADABLE,
    MSG_MALFORMED_VARIABLES,
    MSG_OUTPUT_WRITE_FAILED,
    MSG_UNDEFINED_VARIABLES,
    ArtifactWriteError,
    DocumentUnreadableError,
    WorkflowError,
)
from .prompt import build_prompt_context, interpolate_with_diagnostics
from .step_content import StepContentGenerator
from .step_registry import StepRegistry, WorkflowStep, get_step_registry

logger = logging.getLogger(__name__)


class ExecutionPhase(Enum):
    """Progress of a single step execution.

    Phases only move forward; ERROR is terminal.
    """

    START = "start"
    INPUT_VALIDATED = "input_validated"
    PROMPT_RENDERED = "prompt_rendered"
    CONTENT_GENERATED = "content_generated"
    WRITTEN = "written"
    DONE = "done"
    ERROR = "error"


@dataclass
class StepExecutionResult:
    """What one step execution produced.

    Attributes:
        step: Step that was executed
        output_path: Artifact that was written
        rendered_prompt: Prompt after interpolation
        content: Artifact body
        warnings: Prompt variable problems (never fatal)
        phase: Last phase reached
    """

    step: WorkflowStep
    output_path: str
    rendered_prompt: str = ""
    content: str = ""
    warnings: list[str] = field(default_factory=list)
    phase: ExecutionPhase = ExecutionPhase.START


class StepExecutor:
    """Executes workflow steps against a file system.

    Args:
        file_system: File system capability
        content_generator: Artifact body builder (prompt mode by default)
        registry: Step catalogue
    """

    def __init__(
        self,
        file_system: FileSystem,
        content_generator: StepContentGenerator | None = None,
        registry: StepRegistry | None = None,
    ) -> None:
        self.fs = file_system
        self.registry = registry or get_step_registry()
        self.content_generator = content_generator or StepContentGenerator(registry=self.registry)

    def execute(self, document_path: str, step: WorkflowStep, output_path: str) -> StepExecutionResult:
        """Execute one step and write its artifact.

        A raised WorkflowError carries the partial result, with phase ERROR,
        as its ``result`` attribute.

        Args:
            document_path: Change request the step runs for
            step: Step to execute
            output_path: Artifact path to write

        Returns:
            Result with phase DONE

        Raises:
            DocumentUnreadableError: If the change request cannot be read
            UnknownStepError: If the step is not part of the catalogue
            ArtifactWriteError: If the artifact or its directory cannot be written
        """
        result = StepExecutionResult(step=step, output_path=output_path)

        with step_span(
            step_id=step.id,
            description=step.description,
            phase=step.phase.value,
            is_test=step.is_test,
            **{"step.output_path": output_path},
        ) as span:
            try:
                self._validate_input(document_path, step)
                result.phase = ExecutionPhase.INPUT_VALIDATED

                result.rendered_prompt, result.warnings = self._render_prompt(document_path, step)
                result.phase = ExecutionPhase.PROMPT_RENDERED
                record_step_event(span, "prompt_rendered", warnings=len(result.warnings))

                result.content = self.content_generator.generate_content(
                    step, result.rendered_prompt, document_path
                )
                result.phase = ExecutionPhase.CONTENT_GENERATED

                self._write_artifact(document_path, step, output_path, result.content)
                result.phase = ExecutionPhase.WRITTEN
                record_step_event(span, "artifact_written", bytes=len(result.content.encode("utf-8")))
            except WorkflowError as e:
                result.phase = ExecutionPhase.ERROR
                e.result = result
                raise

            result.phase = ExecutionPhase.DONE

        logger.info(f"Step {step.id} executed for {document_path}, artifact: {output_path}")
        return result

    def _validate_input(self, document_path: str, step: WorkflowStep) -> None:
        """Make sure the change request exists and can be read."""
        if not self.fs.exists(document_path):
            raise DocumentUnreadableError(
                MSG_FILE_UNREADABLE.format(path=document_path, reason="file does not exist"),
                document_path=document_path,
                step_id=step.id,
            )
        try:
            self.fs.read_file(document_path)
        except OSError as e:
            raise DocumentUnreadableError(
                MSG_FILE_UNREADABLE.format(path=document_path, reason=e),
                document_path=document_path,
                step_id=step.id,
            ) from e

    def _render_prompt(self, document_path: str, step: WorkflowStep) -> tuple[str, list[str]]:
        """Render the step prompt, turning variable problems into warnings."""
        context = build_prompt_context(document_path)
        rendered, problem = interpolate_with_diagnostics(step.prompt, context)

        warnings: list[str] = []
        if problem is not None:
            if problem.has_missing:
                warnings.append(
                    MSG_UNDEFINED_VARIABLES.format(
                        step_id=step.id, names=", ".join(problem.missing_variables)
                    )
                )
            if problem.has_malformed:
                warnings.append(
                    MSG_MALFORMED_VARIABLES.format(
                        step_id=step.id, names=", ".join(problem.malformed_variables)
                    )
                )
            for warning in warnings:
                logger.warning(warning)

        return rendered, warnings

    def _write_artifact(
        self, document_path: str, step: WorkflowStep, output_path: str, content: str
    ) -> None:
        """Create the artifact directory if missing and write the artifact."""
        directory = os.path.dirname(output_path)
        try:
            if directory and not self.fs.exists(directory):
                self.fs.mkdir_all(directory)
            self.fs.write_file(output_path, content.encode("utf-8"))
        except OSError as e:
            raise ArtifactWriteError(
                MSG_OUTPUT_WRITE_FAILED.format(path=output_path, reason=e),
                document_path=document_path,
                step_id=step.id,
            ) from e
