"""Prompt interpolation for workflow steps.

Step prompts reference variables with ``${name}``. Names may contain letters,
digits, underscores and hyphens. Rendering never aborts:

- a well-formed reference whose name is in the context is substituted;
- a well-formed reference whose name is missing renders as an empty string
  and is reported as a missing variable;
- a malformed reference (bad characters, empty name, or ``${`` without a
  closing brace) is left verbatim and reported as a malformed variable. An
  unclosed ``${`` ends at the next ``${`` or newline, and scanning resumes
  there.

``interpolate`` only renders; ``interpolate_with_diagnostics`` renders and
reports; ``validate`` checks syntax without any context.
"""

import re
from dataclasses import dataclass, field

from storymatrix.config import VAR_CHANGE_REQUEST_FILE_PATH

# Any closed reference, including malformed ones such as ${var with spaces}.
# A reference never spans another "${".
_REFERENCE_RE = re.compile(r"\$\{((?:[^}$]|\$(?!\{))*)\}")

# Allowed alphabet for variable names
_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

_OPEN_TOKEN = "${"


@dataclass
class InterpolationError(Exception):
    """Problems found while interpolating a prompt.

    Returned as a value by the diagnostic functions; it is an ``Exception``
    so callers that want to abort can raise it directly.

    Attributes:
        message: Summary of the problem
        malformed_variables: Fragments with invalid reference syntax
        missing_variables: Well-formed names absent from the context
    """

    message: str
    malformed_variables: list[str] = field(default_factory=list)
    missing_variables: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = []
        if self.malformed_variables:
            parts.append(f"malformed variables [{', '.join(self.malformed_variables)}]")
        if self.missing_variables:
            parts.append(f"missing variables [{', '.join(self.missing_variables)}]")
        if not parts:
            return self.message
        return f"{self.message}: {', '.join(parts)}"

    @property
    def has_malformed(self) -> bool:
        return bool(self.malformed_variables)

    @property
    def has_missing(self) -> bool:
        return bool(self.missing_variables)


def _is_valid_name(name: str) -> bool:
    return bool(_NAME_RE.match(name))


def _fragment_end(template: str, position: int) -> int:
    """End of an unclosed reference: the next "${" or newline, whichever comes first."""
    candidates = [template.find(_OPEN_TOKEN, position), template.find("\n", position)]
    found = [index for index in candidates if index != -1]
    return min(found) if found else len(template)


def _render(template: str, context: dict[str, str]) -> tuple[str, list[str], list[str]]:
    """Render a template and collect problems.

    Returns:
        Tuple of (rendered text, malformed fragments, missing names). Both
        lists keep first-seen order and hold each entry once.
    """
    malformed: list[str] = []
    missing: list[str] = []

    def _note(bucket: list[str], value: str) -> None:
        if value not in bucket:
            bucket.append(value)

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if not _is_valid_name(name):
            _note(malformed, name.strip() or match.group(0))
            return match.group(0)
        if name in context:
            return context[name]
        _note(missing, name)
        return ""

    pieces: list[str] = []
    position = 0
    while position < len(template):
        start = template.find(_OPEN_TOKEN, position)
        if start == -1:
            pieces.append(template[position:])
            break
        pieces.append(template[position:start])

        match = _REFERENCE_RE.match(template, start)
        if match is None:
            # Unclosed "${": keep it verbatim up to the next "${" or the end of the line
            end = _fragment_end(template, start + len(_OPEN_TOKEN))
            fragment = template[start + len(_OPEN_TOKEN) : end].strip()
            _note(malformed, fragment or _OPEN_TOKEN)
            pieces.append(template[start:end])
            position = end
            continue

        pieces.append(_substitute(match))
        position = match.end()

    return "".join(pieces), malformed, missing


def interpolate(template: str, context: dict[str, str]) -> str:
    """Replace every ``${name}`` reference with its value from ``context``.

    Missing names render as an empty string; malformed references are kept
    verbatim.

    Example:
        >>> interpolate("Path: ${change_request_file_path}",
        ...             {"change_request_file_path": "docs/x.blueprint.md"})
        'Path: docs/x.blueprint.md'
    """
    rendered, _, _ = _render(template, context)
    return rendered


def interpolate_with_diagnostics(
    template: str, context: dict[str, str]
) -> tuple[str, InterpolationError | None]:
    """Render a template and report malformed and missing variables.

    Args:
        template: Prompt template
        context: Variable name to value mapping

    Returns:
        Tuple of (rendered text, InterpolationError or None). The rendered
        text is identical to what ``interpolate`` returns.
    """
    rendered, malformed, missing = _render(template, context)
    if malformed or missing:
        return rendered, InterpolationError(
            "prompt interpolation encountered issues",
            malformed_variables=malformed,
            missing_variables=missing,
        )
    return rendered, None


def validate(template: str) -> InterpolationError | None:
    """Check a template for malformed variable syntax.

    Missing variables are not reported since no context is involved.
    """
    _, malformed, _ = _render(template, {})
    if malformed:
        return InterpolationError(
            "prompt contains malformed variables",
            malformed_variables=malformed,
        )
    return None


def build_prompt_context(change_request_path: str) -> dict[str, str]:
    """Build the interpolation context for one execution."""
    return {VAR_CHANGE_REQUEST_FILE_PATH: change_request_path}
