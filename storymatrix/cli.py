"""Command-line driver for the implementation workflow.

Usage:
    usm code docs/changes-request/2025-03-26-code-command.blueprint.md
    usm code --reset docs/changes-request/2025-03-26-code-command.blueprint.md
    usm code --content-mode placeholder docs/changes-request/x.blueprint.md
    usm status docs/changes-request/2025-03-26-code-command.blueprint.md
    usm --debug code docs/changes-request/x.blueprint.md

Each `usm code` run executes exactly one step and prints its rendered prompt
to stdout. Run it again to move on to the next step.
"""

import argparse
import logging
import sys
from dataclasses import replace

from dotenv import load_dotenv

from storymatrix.config import ContentMode, RunConfig
from storymatrix.filesystem import LocalFileSystem
from storymatrix.settings import Settings
from storymatrix.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry
from storymatrix.workflow import DocumentNotFoundError, WorkflowRunner

logger = logging.getLogger(__name__)

_STATE_MARKS = {"done": "[x]", "next": "[>]", "pending": "[ ]"}


# =============================================================================
# Subcommands
# =============================================================================


def _cmd_code(args: argparse.Namespace, settings: Settings) -> int:
    runner = WorkflowRunner(LocalFileSystem(), settings)
    result = runner.run(RunConfig(change_request_path=args.path, reset=args.reset))

    if result.error:
        print(result.error, file=sys.stderr)
        return result.exit_code

    if result.rendered_prompt:
        print(result.rendered_prompt)

    if settings.debug:
        if result.step is not None and result.step_index is not None:
            print(f"Completed step {result.step_index + 1}: {result.step.description}")
            if result.next_step is not None:
                print(f"\nNext step: {result.next_step.description}")
            else:
                print(result.completion_message)
        else:
            print(result.completion_message)

    return result.exit_code


def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    runner = WorkflowRunner(LocalFileSystem(), settings)
    try:
        rows = runner.status(args.path)
    except DocumentNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1

    done = sum(1 for row in rows if row.state == "done")
    print(f"Workflow status for {args.path} ({done}/{len(rows)} steps completed)")
    for row in rows:
        print(f"  {_STATE_MARKS[row.state]} {row.index + 1}. {row.step.id}: {row.step.description}")
    return 0


# =============================================================================
# CLI Entry Point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the `usm` argument parser."""
    parser = argparse.ArgumentParser(
        prog="usm",
        description="Implement change requests step by step",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show progress messages and debug logs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    code = subparsers.add_parser(
        "code",
        help="Execute the next step of a change request's workflow",
        description=(
            "Execute the next pending workflow step for a change request and print "
            "its prompt. Use --reset to start the workflow from the beginning."
        ),
    )
    code.add_argument("path", help="Path to the change request document")
    code.add_argument(
        "--reset",
        action="store_true",
        help="Reset the workflow and start from the beginning",
    )
    code.add_argument(
        "--content-mode",
        choices=ContentMode.values(),
        default=None,
        help="How step artifacts are written (default: prompt)",
    )
    code.set_defaults(handler=_cmd_code)

    status = subparsers.add_parser(
        "status",
        help="Show which workflow steps are done for a change request",
    )
    status.add_argument("path", help="Path to the change request document")
    status.set_defaults(handler=_cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Process exit code (0 success, 1 workflow error, 2 usage error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    settings = Settings.load().with_overrides(
        content_mode=getattr(args, "content_mode", None),
        debug=args.debug,
    )
    init_telemetry(replace(TelemetryConfig.from_env(), log_level=settings.log_level))
    logger.debug(
        f"Settings: content_mode={settings.content_mode.value}, "
        f"log_level={settings.log_level}, config_file={settings.config_file}"
    )

    try:
        return args.handler(args, settings)
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    sys.exit(main())
