"""Shared test fixtures and helpers.

Most engine tests run against ``MemoryFileSystem`` seeded with a single
change request; CLI tests use the real disk under ``tmp_path``.
"""

import logging
from datetime import UTC, datetime

import pytest

from storymatrix.filesystem import MemoryFileSystem
from storymatrix.workflow.progress import ProgressTracker
from storymatrix.workflow.runner import WorkflowRunner
from storymatrix.workflow.step_registry import get_step_registry

DOC_PATH = "docs/changes-request/2025-03-26-code-command.blueprint.md"

FIXED_NOW = datetime(2025, 3, 26, 2, 0, 55, tzinfo=UTC)

CHANGE_REQUEST_TEXT = """\
# Change Request: code command

## User Stories
- docs/user-stories/code/01-run-next-step.md
- docs/user-stories/code/02-reset-workflow.md
"""

_ENV_VARS = (
    "LOG_LEVEL",
    "USM_CONTENT_MODE",
    "USM_CONFIG",
    "OTEL_SERVICE_NAME",
    "OTEL_TRACES_EXPORTER",
    "OTEL_SDK_DISABLED",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """Keep the developer's environment out of settings and telemetry."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo root logger changes made by init_telemetry."""
    root = logging.getLogger()
    package = logging.getLogger("storymatrix")
    handlers = root.handlers[:]
    root_level = root.level
    package_level = package.level
    yield
    root.handlers[:] = handlers
    root.setLevel(root_level)
    package.setLevel(package_level)


@pytest.fixture
def doc_path() -> str:
    return DOC_PATH


@pytest.fixture
def memory_fs() -> MemoryFileSystem:
    """In-memory file system holding one change request at DOC_PATH."""
    return MemoryFileSystem({DOC_PATH: CHANGE_REQUEST_TEXT})


@pytest.fixture
def registry():
    return get_step_registry()


@pytest.fixture
def tracker(memory_fs) -> ProgressTracker:
    """Tracker with a frozen clock."""
    return ProgressTracker(memory_fs, clock=lambda: FIXED_NOW)


@pytest.fixture
def runner(memory_fs) -> WorkflowRunner:
    return WorkflowRunner(memory_fs)


@pytest.fixture
def change_request(tmp_path, monkeypatch):
    """A change request on disk, with the working directory set to tmp_path."""
    monkeypatch.chdir(tmp_path)
    directory = tmp_path / "docs" / "changes-request"
    directory.mkdir(parents=True)
    path = directory / "2025-03-26-code-command.blueprint.md"
    path.write_text(CHANGE_REQUEST_TEXT)
    return path
