"""Centralized Step Registry for the implementation workflow.

This module is the single source of truth for the eight workflow steps a
change request goes through. The order is fixed: each of the four phases has
a build step followed by a test step that verifies it.

Phases:
- FOUNDATION: architecture and structure
- MVI: minimum viable implementation
- EXTEND: additional functionality
- FINAL: polish and final verification

The catalogue is validated once, when the registry is first built. A
malformed prompt template is an authoring error and is reported before any
workflow runs.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from storymatrix.config import StepPhase

from .errors import CatalogueValidationError, UnknownStepError
from .prompt import validate


@dataclass(frozen=True)
class WorkflowStep:
    """Immutable definition of one workflow step."""

    # Identifier, e.g. "01-laying-the-foundation" (kebab-case, used in file names)
    id: str

    # User-facing label
    description: str

    # Instruction template, may reference ${change_request_file_path}
    prompt: str

    # Artifact name pattern consuming the change request base name
    output_file_pattern: str

    phase: StepPhase

    # True for the step that verifies the preceding build step
    is_test: bool = False


# =============================================================================
# Step Definitions - Single Source of Truth
# =============================================================================

_STEPS: tuple[WorkflowStep, ...] = (
    # =========================================================================
    # PHASE 1: FOUNDATION
    # =========================================================================
    WorkflowStep(
        id="01-laying-the-foundation",
        description="Laying the foundation - Setting up the architecture and structure",
        prompt=(
            "Read the change request in ${change_request_file_path} and every user story it references. "
            "Validate the blueprint against the current code base. "
            "Create the packages, modules and interfaces the change needs without implementing behaviour yet. "
            "Define the core data structures and the file organization. "
            "Set up the testing infrastructure the next steps will rely on."
        ),
        output_file_pattern="%s.01-laying-the-foundation.md",
        phase=StepPhase.FOUNDATION,
    ),
    WorkflowStep(
        id="01-laying-the-foundation-test",
        description="Laying the foundation testing - Verifying the foundational changes",
        prompt=(
            "Review the foundation built for ${change_request_file_path}. "
            "Write tests that check the package structure and the completeness of the interfaces. "
            "Verify the integrity of the core data structures. "
            "Run the whole test suite and fix anything the foundation broke."
        ),
        output_file_pattern="%s.01-laying-the-foundation-test.md",
        phase=StepPhase.FOUNDATION,
        is_test=True,
    ),
    # =========================================================================
    # PHASE 2: MINIMUM VIABLE IMPLEMENTATION
    # =========================================================================
    WorkflowStep(
        id="02-mvi",
        description="Minimum Viable Implementation - Building the core functionality",
        prompt=(
            "Implement the core behaviour described in ${change_request_file_path} with the smallest useful scope. "
            "Focus on the essential business logic and the happy path. "
            "Add basic error handling for the obvious failure cases. "
            "Keep the public surface minimal."
        ),
        output_file_pattern="%s.02-mvi.md",
        phase=StepPhase.MVI,
    ),
    WorkflowStep(
        id="02-mvi-test",
        description="Minimum Viable Implementation testing - Verifying the core functionality",
        prompt=(
            "Write tests for the minimum viable implementation of ${change_request_file_path}. "
            "Cover the core functionality and the basic error handling. "
            "Add integration tests for the main flow. "
            "Run the whole test suite and make it pass."
        ),
        output_file_pattern="%s.02-mvi-test.md",
        phase=StepPhase.MVI,
        is_test=True,
    ),
    # =========================================================================
    # PHASE 3: EXTEND FUNCTIONALITIES
    # =========================================================================
    WorkflowStep(
        id="03-extend-functionalities",
        description="Extending functionalities - Adding additional features and improvements",
        prompt=(
            "Implement the remaining acceptance criteria of ${change_request_file_path}. "
            "Handle the edge cases left out of the minimum viable implementation. "
            "Improve error messages and the user experience. "
            "Address performance issues found so far."
        ),
        output_file_pattern="%s.03-extend-functionalities.md",
        phase=StepPhase.EXTEND,
    ),
    WorkflowStep(
        id="03-extend-functionalities-test",
        description="Extending functionalities testing - Verifying the additional features",
        prompt=(
            "Write tests for the extended functionality of ${change_request_file_path}. "
            "Cover every edge case and error path added in the previous step. "
            "Run the whole test suite and make it pass."
        ),
        output_file_pattern="%s.03-extend-functionalities-test.md",
        phase=StepPhase.EXTEND,
        is_test=True,
    ),
    # =========================================================================
    # PHASE 4: FINAL ITERATION
    # =========================================================================
    WorkflowStep(
        id="04-final-iteration",
        description="Final iteration - Polishing and final adjustments",
        prompt=(
            "Polish the implementation of ${change_request_file_path}. "
            "Remove dead code and clean up naming. "
            "Update the documentation and the change request with what was actually built. "
            "Apply any remaining review feedback."
        ),
        output_file_pattern="%s.04-final-iteration.md",
        phase=StepPhase.FINAL,
    ),
    WorkflowStep(
        id="04-final-iteration-test",
        description="Final iteration testing - Final verification and validation",
        prompt=(
            "Perform the final verification of ${change_request_file_path}. "
            "Run the end-to-end tests and check the documentation against the behaviour. "
            "Confirm every acceptance criterion of the referenced user stories is met. "
            "Run the linters and the whole test suite one last time."
        ),
        output_file_pattern="%s.04-final-iteration-test.md",
        phase=StepPhase.FINAL,
        is_test=True,
    ),
)


class StepRegistry:
    """Registry for workflow steps with efficient lookups.

    Usage:
        registry = StepRegistry()

        # Step to run for a given progress index
        step = registry.get_by_index(0)

        # Step by identifier
        step = registry.get_by_id("02-mvi")

        # Build/test pair of a phase
        build, test = registry.phase_steps(StepPhase.MVI)
    """

    def __init__(self, steps: tuple[WorkflowStep, ...] | None = None):
        """Initialize the registry.

        Args:
            steps: Optional custom step list. Uses the standard catalogue if
                not provided.
        """
        self._steps = tuple(steps) if steps is not None else _STEPS
        self._by_id: dict[str, WorkflowStep] = {s.id: s for s in self._steps}
        self._index_by_id: dict[str, int] = {s.id: i for i, s in enumerate(self._steps)}

    # =========================================================================
    # Lookup Methods
    # =========================================================================

    def get_by_id(self, step_id: str) -> WorkflowStep:
        """Get a step by identifier.

        Raises:
            UnknownStepError: If the id is not part of the catalogue
        """
        if step_id not in self._by_id:
            raise UnknownStepError(
                f"Unknown step id: {step_id}. Valid ids: {list(self._by_id.keys())}",
                step_id=step_id,
            )
        return self._by_id[step_id]

    def get_by_id_safe(self, step_id: str) -> WorkflowStep | None:
        """Get a step by identifier, returning None if not found."""
        return self._by_id.get(step_id)

    def get_by_index(self, index: int) -> WorkflowStep:
        """Get the step at a 0-based position.

        Raises:
            UnknownStepError: If the index is outside the catalogue
        """
        if not 0 <= index < len(self._steps):
            raise UnknownStepError(f"Step index {index} is outside 0..{len(self._steps) - 1}")
        return self._steps[index]

    def index_of(self, step_id: str) -> int:
        """Get the 0-based position of a step."""
        self.get_by_id(step_id)
        return self._index_by_id[step_id]

    def contains(self, step_id: str) -> bool:
        return step_id in self._by_id

    # =========================================================================
    # Collection Methods
    # =========================================================================

    def all_steps(self) -> list[WorkflowStep]:
        """Get all steps in workflow order."""
        return list(self._steps)

    def step_ids(self) -> list[str]:
        return [s.id for s in self._steps]

    def phase_steps(self, phase: StepPhase) -> list[WorkflowStep]:
        """Get the steps of a phase in order (build step first)."""
        return [s for s in self._steps if s.phase == phase]

    def next_after(self, index: int) -> WorkflowStep | None:
        """Get the step following ``index``, or None at the end."""
        following = index + 1
        if 0 <= following < len(self._steps):
            return self._steps[following]
        return None

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[WorkflowStep]:
        return iter(self._steps)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> list[str]:
        """Check every step definition.

        Returns:
            List of problem descriptions, empty when the catalogue is valid
        """
        problems: list[str] = []
        seen: set[str] = set()

        for position, step in enumerate(self._steps):
            label = step.id or f"#{position}"
            if not step.id:
                problems.append(f"step {label} is missing an id")
            elif step.id in seen:
                problems.append(f"step {label} is defined more than once")
            seen.add(step.id)

            if not step.description:
                problems.append(f"step {label} is missing a description")
            if not step.output_file_pattern:
                problems.append(f"step {label} is missing an output file pattern")
            elif step.output_file_pattern.count("%s") != 1:
                problems.append(
                    f"step {label} output file pattern must contain exactly one %s: "
                    f"{step.output_file_pattern!r}"
                )

            prompt_error = validate(step.prompt)
            if prompt_error is not None:
                problems.append(f"step {label} has an invalid prompt: {prompt_error}")

        return problems


# =============================================================================
# Module-level singleton
# =============================================================================

_registry: StepRegistry | None = None


def build_step_registry(steps: tuple[WorkflowStep, ...] | None = None) -> StepRegistry:
    """Build a registry and validate its catalogue.

    Raises:
        CatalogueValidationError: If any step definition is invalid
    """
    registry = StepRegistry(steps)
    problems = registry.validate()
    if problems:
        raise CatalogueValidationError("Workflow catalogue is invalid", problems)
    return registry


def get_step_registry() -> StepRegistry:
    """Get the validated standard registry (created on first use)."""
    global _registry
    if _registry is None:
        _registry = build_step_registry()
    return _registry


def get_step_by_id(step_id: str) -> WorkflowStep:
    """Convenience function to get a step by id."""
    return get_step_registry().get_by_id(step_id)


STEPS: tuple[WorkflowStep, ...] = _STEPS

TOTAL_STEPS = len(_STEPS)
