"""Tests for storymatrix.workflow.runner.

End-to-end behaviour of one `usm code` invocation against an in-memory file
system: progress only moves forward one step per run, a finished workflow is
left alone, documents never share progress, a corrupt marker restarts the
workflow and failures leave the marker untouched.
"""

import os

import pytest

from storymatrix.config import ContentMode, RunConfig, RunOutcome
from storymatrix.settings import Settings
from storymatrix.workflow.errors import DocumentNotFoundError
from storymatrix.workflow.progress import ProgressTracker, marker_path_for
from storymatrix.workflow.runner import WorkflowRunner
from storymatrix.workflow.step_registry import STEPS


def _index(memory_fs, path) -> int:
    return ProgressTracker(memory_fs).load_marker(path).step_index


# =============================================================================
# Single run
# =============================================================================


class TestRun:
    """Tests for one invocation."""

    def test_first_run_executes_first_step(self, runner, memory_fs, doc_path):
        result = runner.run(RunConfig(doc_path))

        assert result.outcome == RunOutcome.STEP_COMPLETED
        assert result.exit_code == 0
        assert result.step_index == 0
        assert result.step.id == "01-laying-the-foundation"
        assert result.output_path == (
            "docs/changes-request/2025-03-26-code-command.01-laying-the-foundation.md"
        )
        assert memory_fs.exists(result.output_path)
        assert doc_path in result.rendered_prompt
        assert result.next_step.id == "01-laying-the-foundation-test"
        assert _index(memory_fs, doc_path) == 1

    def test_missing_document(self, runner, memory_fs):
        writes_before = memory_fs.write_count

        result = runner.run(RunConfig("docs/missing.blueprint.md"))

        assert result.outcome == RunOutcome.DOCUMENT_NOT_FOUND
        assert result.exit_code == 1
        assert result.error == "Error: File docs/missing.blueprint.md not found."
        assert memory_fs.write_count == writes_before

    def test_content_mode_from_settings(self, memory_fs, doc_path):
        runner = WorkflowRunner(memory_fs, Settings(content_mode=ContentMode.PLACEHOLDER))

        result = runner.run(RunConfig(doc_path))

        assert "## Architecture & Design" in memory_fs.text(result.output_path)


# =============================================================================
# Full workflow
# =============================================================================


class TestFullWorkflow:
    """Tests for driving a change request through every step."""

    def test_progress_is_monotonic_one_step_per_run(self, runner, memory_fs, doc_path):
        executed = []
        for expected in range(1, len(STEPS) + 1):
            result = runner.run(RunConfig(doc_path))
            assert result.outcome == RunOutcome.STEP_COMPLETED
            executed.append(result.step.id)
            assert _index(memory_fs, doc_path) == expected

        assert executed == [s.id for s in STEPS]
        assert result.next_step is None

    def test_every_step_writes_its_artifact(self, runner, memory_fs, doc_path):
        for _ in STEPS:
            runner.run(RunConfig(doc_path))

        directory = os.path.dirname(doc_path)
        for step in STEPS:
            artifact = os.path.join(directory, f"2025-03-26-code-command.{step.id}.md")
            assert memory_fs.exists(artifact)

    def test_completed_workflow_is_left_alone(self, runner, memory_fs, doc_path):
        for _ in STEPS:
            runner.run(RunConfig(doc_path))
        writes_before = memory_fs.write_count
        files_before = dict(memory_fs.files)

        for _ in range(3):
            result = runner.run(RunConfig(doc_path))
            assert result.outcome == RunOutcome.ALREADY_COMPLETE
            assert result.exit_code == 0
            assert result.step is None

        assert memory_fs.write_count == writes_before
        assert memory_fs.files == files_before
        assert "All steps completed successfully" in result.completion_message

    def test_reset_restarts_at_first_step(self, runner, memory_fs, doc_path):
        for _ in range(3):
            runner.run(RunConfig(doc_path))

        result = runner.run(RunConfig(doc_path, reset=True))

        assert result.step.id == "01-laying-the-foundation"
        assert _index(memory_fs, doc_path) == 1

    def test_reset_after_completion(self, runner, memory_fs, doc_path):
        for _ in STEPS:
            runner.run(RunConfig(doc_path))

        result = runner.run(RunConfig(doc_path, reset=True))

        assert result.outcome == RunOutcome.STEP_COMPLETED
        assert result.step_index == 0

    def test_documents_do_not_share_progress(self, runner, memory_fs, doc_path):
        other = "docs/changes-request/2025-04-01-status-command.blueprint.md"
        memory_fs.add_file(other, "# Status command")

        for _ in range(3):
            runner.run(RunConfig(doc_path))
        result = runner.run(RunConfig(other))

        assert result.step_index == 0
        assert _index(memory_fs, doc_path) == 3
        assert _index(memory_fs, other) == 1

    def test_documents_sharing_a_stem_do_not_share_artifacts(self, runner, memory_fs, doc_path):
        plain = "docs/changes-request/2025-03-26-code-command.md"
        memory_fs.add_file(plain, "# Code command notes")

        blueprint_result = runner.run(RunConfig(doc_path))
        plain_result = runner.run(RunConfig(plain))

        assert blueprint_result.output_path == (
            "docs/changes-request/2025-03-26-code-command.01-laying-the-foundation.md"
        )
        assert plain_result.output_path == (
            "docs/changes-request/2025-03-26-code-command.md.01-laying-the-foundation.md"
        )
        assert doc_path in memory_fs.text(blueprint_result.output_path)
        assert plain in memory_fs.text(plain_result.output_path)
        assert doc_path not in memory_fs.text(plain_result.output_path)


# =============================================================================
# Recovery and failures
# =============================================================================


class TestRecoveryAndFailures:
    """Tests for corrupt markers and failed writes."""

    def test_corrupt_marker_restarts_with_warning(self, runner, memory_fs, doc_path):
        memory_fs.add_file(marker_path_for(doc_path), "definitely-not-a-step")

        result = runner.run(RunConfig(doc_path))

        assert result.outcome == RunOutcome.STEP_COMPLETED
        assert result.step_index == 0
        assert any("Unrecognized step" in w for w in result.warnings)
        assert _index(memory_fs, doc_path) == 1

    def test_artifact_write_failure_keeps_marker(self, runner, memory_fs, doc_path):
        runner.run(RunConfig(doc_path))
        blocked = "docs/changes-request/2025-03-26-code-command.01-laying-the-foundation-test.md"
        memory_fs.read_only.add(os.path.normpath(blocked))

        result = runner.run(RunConfig(doc_path))

        assert result.outcome == RunOutcome.STEP_FAILED
        assert result.exit_code == 1
        assert result.error.startswith(
            "Error: Failed to execute step 01-laying-the-foundation-test:"
        )
        assert blocked in result.error
        assert _index(memory_fs, doc_path) == 1

    def test_unreadable_document_fails_step(self, runner, memory_fs, doc_path):
        memory_fs.unreadable.add(os.path.normpath(doc_path))

        result = runner.run(RunConfig(doc_path))

        assert result.outcome == RunOutcome.STEP_FAILED
        assert result.exit_code == 1
        assert not memory_fs.exists(marker_path_for(doc_path))

    def test_state_update_failure(self, runner, memory_fs, doc_path):
        memory_fs.read_only.add(os.path.normpath(marker_path_for(doc_path) + ".tmp"))

        result = runner.run(RunConfig(doc_path))

        assert result.outcome == RunOutcome.STATE_UPDATE_FAILED
        assert result.exit_code == 1
        assert result.error.startswith("Error: Failed to update workflow state")
        assert memory_fs.exists(result.output_path)
        assert not memory_fs.exists(marker_path_for(doc_path))
        assert result.next_step.id == result.step.id

    def test_reset_failure(self, runner, memory_fs, doc_path):
        memory_fs.read_only.add(os.path.normpath(marker_path_for(doc_path) + ".tmp"))

        result = runner.run(RunConfig(doc_path, reset=True))

        assert result.outcome == RunOutcome.STATE_UPDATE_FAILED
        assert result.step is None


# =============================================================================
# Status
# =============================================================================


class TestStatus:
    """Tests for the per-step status listing."""

    def test_rows_reflect_progress(self, runner, doc_path):
        runner.run(RunConfig(doc_path))
        runner.run(RunConfig(doc_path))

        rows = runner.status(doc_path)

        assert [row.state for row in rows] == ["done", "done", "next"] + ["pending"] * 5
        assert rows[2].step.id == "02-mvi"
        assert rows[2].output_path.endswith("2025-03-26-code-command.02-mvi.md")

    def test_completed_workflow_has_no_next_row(self, runner, doc_path):
        for _ in STEPS:
            runner.run(RunConfig(doc_path))

        assert {row.state for row in runner.status(doc_path)} == {"done"}

    def test_missing_document_raises(self, runner):
        with pytest.raises(DocumentNotFoundError):
            runner.status("docs/missing.blueprint.md")
