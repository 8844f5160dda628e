"""Artifact content for executed workflow steps.

Two modes are supported:

- ``prompt``: the rendered prompt restated as a numbered instruction list,
  one sentence per line. This is the default.
- ``placeholder``: a fixed checklist per phase, independent of the prompt.

Both are deterministic for the same inputs.
"""

import re

from storymatrix.config import (
    DEFAULT_CONTENT_MODE,
    NO_INSTRUCTIONS_FALLBACK,
    ContentMode,
    StepPhase,
)

from .step_registry import StepRegistry, WorkflowStep, get_step_registry

# Runs of the same mark before a space or the end: "..." -> ".", "!!!" -> "!"
_REPEATED_PUNCTUATION_RE = re.compile(r"([.!?,;:])\1+(?=\s|$)")

# Sentence boundary: terminal mark followed by whitespace, or any line break
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\s*\n\s*")

_TERMINAL_MARKS = (".", "!", "?")


def clean_punctuation(text: str) -> str:
    """Collapse repeated punctuation marks into one."""
    return _REPEATED_PUNCTUATION_RE.sub(r"\1", text)


def is_invalid_sentence(fragment: str) -> bool:
    """True for fragments with no letter or digit (empty, spaces, '...')."""
    return not any(char.isalnum() for char in fragment)


def extract_sentences(text: str) -> list[str]:
    """Split text into trimmed sentences ending with terminal punctuation."""
    sentences = []
    for fragment in _SENTENCE_SPLIT_RE.split(clean_punctuation(text)):
        sentence = fragment.strip()
        if is_invalid_sentence(sentence):
            continue
        if not sentence.endswith(_TERMINAL_MARKS):
            sentence += "."
        sentences.append(sentence)
    return sentences


def format_prompt_as_instructions(prompt: str) -> str:
    """Render a prompt as a numbered instruction list.

    Example:
        >>> format_prompt_as_instructions("Do X. Do Y.")
        '1. Do X.\\n2. Do Y.\\n'
    """
    sentences = extract_sentences(prompt)
    if not sentences:
        return NO_INSTRUCTIONS_FALLBACK
    return "".join(f"{number}. {sentence}\n" for number, sentence in enumerate(sentences, 1))


# =============================================================================
# Placeholder checklists
# =============================================================================

# (phase, is_test) -> (section title, summary, focus heading, focus items)
_PLACEHOLDER_SECTIONS: dict[tuple[StepPhase, bool], tuple[str, str, str, list[str]]] = {
    (StepPhase.FOUNDATION, False): (
        "Architecture & Design",
        "This step focuses on setting up the architecture and structure for the implementation.",
        "Key Activities",
        [
            "Create necessary packages and interfaces",
            "Define core data structures",
            "Establish file organization",
            "Set up testing infrastructure",
        ],
    ),
    (StepPhase.FOUNDATION, True): (
        "Foundation Testing",
        "This step verifies the foundational changes made in the previous step.",
        "Test Coverage",
        [
            "Package structure validation",
            "Interface completeness",
            "Data structure integrity",
            "Test infrastructure functionality",
        ],
    ),
    (StepPhase.MVI, False): (
        "Minimum Viable Implementation",
        "This step implements the core functionality with minimal features.",
        "Implementation Focus",
        [
            "Core business logic",
            "Essential functionality",
            "Basic error handling",
            "Minimal user interface",
        ],
    ),
    (StepPhase.MVI, True): (
        "MVI Testing",
        "This step verifies the minimum viable implementation.",
        "Test Coverage",
        [
            "Core functionality tests",
            "Basic error handling tests",
            "Integration tests",
            "User interface tests",
        ],
    ),
    (StepPhase.EXTEND, False): (
        "Extended Functionality",
        "This step adds additional features and improvements.",
        "Implementation Focus",
        [
            "Additional features",
            "Enhanced error handling",
            "Performance optimizations",
            "User experience improvements",
        ],
    ),
    (StepPhase.EXTEND, True): (
        "Extended Functionality Testing",
        "This step verifies the extended functionality.",
        "Test Coverage",
        [
            "Feature tests",
            "Error handling tests",
            "Performance tests",
            "User experience tests",
        ],
    ),
    (StepPhase.FINAL, False): (
        "Final Iteration",
        "This step focuses on polishing and final adjustments.",
        "Implementation Focus",
        [
            "Code cleanup",
            "Documentation updates",
            "Final optimizations",
            "User feedback incorporation",
        ],
    ),
    (StepPhase.FINAL, True): (
        "Final Testing",
        "This step performs final verification and validation.",
        "Test Coverage",
        [
            "End-to-end tests",
            "Documentation verification",
            "Performance benchmarks",
            "User acceptance tests",
        ],
    ),
}


def _placeholder_content(step: WorkflowStep, document_path: str) -> str:
    title, summary, focus, items = _PLACEHOLDER_SECTIONS[(step.phase, step.is_test)]
    lines = [f"# {step.description}", "", f"## {title}", "", summary, "", f"### {focus}"]
    lines.extend(f"{number}. {item}" for number, item in enumerate(items, 1))
    lines.extend(
        [
            "",
            "## Change Request Context",
            "",
            f"Change request: {document_path}",
            f"Step ID: {step.id}",
            f"Step Description: {step.description}",
            "",
        ]
    )
    return "\n".join(lines)


class StepContentGenerator:
    """Builds the body of a step artifact.

    Args:
        mode: Content mode (prompt-derived or placeholder checklist)
        registry: Catalogue used to reject unknown steps
    """

    def __init__(
        self,
        mode: ContentMode = DEFAULT_CONTENT_MODE,
        registry: StepRegistry | None = None,
    ) -> None:
        self.mode = mode
        self.registry = registry or get_step_registry()

    def generate_content(self, step: WorkflowStep, rendered_prompt: str, document_path: str) -> str:
        """Produce the artifact text for a step.

        Args:
            step: Step being executed
            rendered_prompt: Prompt after interpolation
            document_path: Change request the step runs for

        Returns:
            Artifact body

        Raises:
            UnknownStepError: If the step is not part of the catalogue
        """
        self.registry.get_by_id(step.id)

        if self.mode == ContentMode.PLACEHOLDER:
            return _placeholder_content(step, document_path)
        return format_prompt_as_instructions(rendered_prompt)
