"""Workflow Runner: one `usm code` invocation, start to finish.

The runner ties the progress tracker and the step executor together:

    document exists? ──no──▶ DOCUMENT_NOT_FOUND
        │yes
    reset requested? ──yes─▶ marker := 0
        │
    marker complete? ──yes─▶ ALREADY_COMPLETE (nothing written)
        │no
    execute catalogue[index] ──fails─▶ STEP_FAILED (marker untouched)
        │
    marker := index + 1 ──fails─▶ STATE_UPDATE_FAILED
        │
    STEP_COMPLETED

Engine errors never escape ``run``; they become a failed ``RunResult`` whose
``exit_code`` the command driver passes to the shell.
"""

import logging
from dataclasses import dataclass, field

from storymatrix.config import RunConfig, RunOutcome
from storymatrix.filesystem import FileSystem
from storymatrix.settings import Settings
from storymatrix.telemetry import record_failure, workflow_span

from .errors import (
    MSG_ALL_STEPS_COMPLETED,
    MSG_FILE_NOT_FOUND,
    MSG_STATE_UPDATE_FAILED,
    MSG_STEP_EXECUTION_FAILED,
    DocumentNotFoundError,
    StateUpdateError,
    WorkflowError,
)
from .progress import ProgressTracker
from .step_content import StepContentGenerator
from .step_executor import StepExecutor
from .step_registry import StepRegistry, WorkflowStep, get_step_registry

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Structured outcome of one invocation.

    Attributes:
        outcome: What happened
        change_request_path: Document the run was for
        step: Step executed (or attempted), None when nothing ran
        step_index: 0-based index of that step
        output_path: Artifact path of that step
        rendered_prompt: Prompt printed to the user on success
        warnings: Recoverable problems (corrupt marker, prompt variables)
        next_step: Step the following invocation will run, None when done
        error: User-facing error message for failed outcomes
    """

    outcome: RunOutcome
    change_request_path: str
    step: WorkflowStep | None = None
    step_index: int | None = None
    output_path: str | None = None
    rendered_prompt: str = ""
    warnings: list[str] = field(default_factory=list)
    next_step: WorkflowStep | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @property
    def completion_message(self) -> str:
        return MSG_ALL_STEPS_COMPLETED.format(path=self.change_request_path)


@dataclass
class StepStatus:
    """One row of the ``usm status`` listing."""

    index: int
    step: WorkflowStep
    state: str  # "done", "next" or "pending"
    output_path: str


class WorkflowRunner:
    """Runs the next pending step of a change request.

    Args:
        file_system: File system capability
        settings: Resolved user settings (content mode)
        registry: Step catalogue
    """

    def __init__(
        self,
        file_system: FileSystem,
        settings: Settings | None = None,
        registry: StepRegistry | None = None,
    ) -> None:
        self.fs = file_system
        self.settings = settings or Settings()
        self.registry = registry or get_step_registry()
        self.tracker = ProgressTracker(file_system, registry=self.registry)
        self.executor = StepExecutor(
            file_system,
            content_generator=StepContentGenerator(self.settings.content_mode, self.registry),
            registry=self.registry,
        )

    def run(self, config: RunConfig) -> RunResult:
        """Execute at most one step for ``config.change_request_path``."""
        path = config.change_request_path

        with workflow_span(path, reset=config.reset) as span:
            result = self._run(config)
            span.set_attribute("workflow.outcome", result.outcome.value)
            if result.step_index is not None:
                span.set_attribute("workflow.step_index", result.step_index)
            if result.error:
                record_failure(span, result.error)

        return result

    def _run(self, config: RunConfig) -> RunResult:
        path = config.change_request_path

        if not self.fs.exists(path):
            message = MSG_FILE_NOT_FOUND.format(path=path)
            logger.error(message)
            return RunResult(RunOutcome.DOCUMENT_NOT_FOUND, path, error=message)

        if config.reset:
            try:
                self.tracker.reset_workflow(path)
            except StateUpdateError as e:
                message = MSG_STATE_UPDATE_FAILED.format(path=path, reason=e)
                logger.error(message)
                return RunResult(RunOutcome.STATE_UPDATE_FAILED, path, error=message)

        read = self.tracker.load_marker(path)
        warnings = list(read.warnings)

        if read.step_index >= self.tracker.total_steps:
            logger.info(MSG_ALL_STEPS_COMPLETED.format(path=path))
            return RunResult(RunOutcome.ALREADY_COMPLETE, path, warnings=warnings)

        index = read.step_index
        step = self.registry.get_by_index(index)
        output_path = self.tracker.generate_output_filename(path, step)
        logger.info(f"Executing step {index + 1}/{self.tracker.total_steps}: {step.description}")

        try:
            execution = self.executor.execute(path, step, output_path)
        except WorkflowError as e:
            message = MSG_STEP_EXECUTION_FAILED.format(step_id=step.id, reason=e)
            logger.error(message)
            return RunResult(
                RunOutcome.STEP_FAILED,
                path,
                step=step,
                step_index=index,
                output_path=output_path,
                warnings=warnings,
                error=message,
            )
        warnings.extend(execution.warnings)

        result = RunResult(
            RunOutcome.STEP_COMPLETED,
            path,
            step=step,
            step_index=index,
            output_path=output_path,
            rendered_prompt=execution.rendered_prompt,
            warnings=warnings,
            next_step=self.registry.next_after(index),
        )

        try:
            self.tracker.update_state(path, index + 1)
        except StateUpdateError as e:
            result.outcome = RunOutcome.STATE_UPDATE_FAILED
            result.next_step = step
            result.error = MSG_STATE_UPDATE_FAILED.format(path=path, reason=e)
            logger.error(result.error)

        return result

    def status(self, change_request_path: str) -> list[StepStatus]:
        """Completion state of every step of a change request.

        Raises:
            DocumentNotFoundError: If the change request does not exist
        """
        if not self.fs.exists(change_request_path):
            raise DocumentNotFoundError(
                MSG_FILE_NOT_FOUND.format(path=change_request_path),
                document_path=change_request_path,
            )

        completed = self.tracker.load_marker(change_request_path).step_index
        rows = []
        for index, step in enumerate(self.registry):
            if index < completed:
                state = "done"
            elif index == completed:
                state = "next"
            else:
                state = "pending"
            rows.append(
                StepStatus(
                    index=index,
                    step=step,
                    state=state,
                    output_path=self.tracker.generate_output_filename(change_request_path, step),
                )
            )
        return rows

