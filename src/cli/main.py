#!/usr/bin/env python3
"""
acpied - ACPI table override editor, command line entry point.

Typical session::

    sudo acpied init                 # dump and disassemble the live tables
    sudo acpied show dsdt > dsdt.dsl
    $EDITOR dsdt.dsl
    sudo acpied write dsdt --file dsdt.dsl
    sudo acpied apply                # applies every changed table
"""

import argparse
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from acpied.__version__ import __title__, __version__
from acpied.cli.prerequisites import check_prerequisites, run_checks
from acpied.config import PipelineConfig
from acpied.exceptions import AcpiedError, PipelineCancelled
from acpied.log_config import get_logger, setup_logging
from acpied.pipeline.composer import remove_image
from acpied.pipeline.orchestrator import ApplyFailure, ApplyOutcome, OverridePipeline
from acpied.string_utils import (
    format_failure_lines,
    format_size_short,
    log_error_safe,
    log_warning_safe,
)
from acpied.utils.image_manifest import read_manifest

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARTIAL = 2
EXIT_CANCELLED = 130

console = Console()
logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="acpied",
        description="Edit firmware ACPI tables and boot with the overrides",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  ACPIED_WORKSPACE_ROOT   Scratch directory (default /tmp/acpidump)
  ACPIED_BOOT_DIR         Where override images are written (default /boot)
  ACPIED_TOOL_TIMEOUT     Seconds allowed per external tool run
  ACPIED_LOG_FILE         Log file (empty to disable)
        """,
    )
    parser.add_argument("--version", action="version", version=f"{__title__} v{__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log errors")
    parser.add_argument("--workspace", type=Path, help="Workspace root directory")
    parser.add_argument("--boot-dir", type=Path, help="Directory for override images")
    parser.add_argument("--timeout", type=float, help="Per-tool timeout in seconds")
    parser.add_argument("--log-file", help="Log file path")
    parser.add_argument(
        "--skip-checks",
        action="store_true",
        help="Do not verify root privileges and tools before running",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("check", help="Check privileges and required tools")
    subparsers.add_parser("init", help="Reset the workspace and extract live tables")
    subparsers.add_parser("list", help="List editable tables")
    subparsers.add_parser("diff", help="List tables whose source was changed")

    show = subparsers.add_parser("show", help="Print a table's editable source")
    show.add_argument("table", help="Table identifier, e.g. dsdt")

    write = subparsers.add_parser("write", help="Replace a table's editable source")
    write.add_argument("table", help="Table identifier, e.g. dsdt")
    write.add_argument("--file", "-f", type=Path, help="Read source from file (default: stdin)")

    revert = subparsers.add_parser("revert", help="Discard edits to a table")
    revert.add_argument("table", help="Table identifier")

    apply = subparsers.add_parser("apply", help="Reassemble tables and update the boot entry")
    apply.add_argument(
        "tables",
        nargs="*",
        help="Tables to apply (default: every changed table)",
    )

    subparsers.add_parser("entry", help="Show the default boot entry")

    images = subparsers.add_parser("images", help="List override images")
    images.add_argument(
        "--prune",
        action="store_true",
        help="Delete images the default boot entry does not use",
    )

    return parser


def build_config(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig.from_env(
        workspace_root=args.workspace,
        boot_dir=args.boot_dir,
        tool_timeout=args.timeout,
        log_file=args.log_file,
    )


def run_cancellable(pipeline: OverridePipeline, func: Callable[..., Any], *args: Any) -> Any:
    """Run ``func`` on a worker thread so Ctrl-C can cancel it cleanly.

    The interrupt sets the pipeline's cancel token; the worker then kills the
    running tool, removes partial files and returns or raises normally.
    """
    outcome = {}

    def target():
        try:
            outcome["value"] = func(*args)
        except BaseException as e:  # re-raised on the calling thread
            outcome["error"] = e

    worker = threading.Thread(target=target, name="acpied-pipeline", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        log_warning_safe(logger, "Interrupted; cancelling...", prefix="APPLY")
        pipeline.cancel()
        worker.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


def handle_check(config: PipelineConfig) -> int:
    table = Table(title="acpied prerequisites")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")

    statuses = run_checks(config)
    for status in statuses:
        table.add_row(
            status.name,
            "[green]ok[/green]" if status.ok else "[red]missing[/red]",
            status.detail,
        )
    console.print(table)
    return EXIT_OK if all(s.ok for s in statuses) else EXIT_FAILURE


def handle_init(pipeline: OverridePipeline) -> int:
    identifiers = run_cancellable(pipeline, pipeline.initialize)
    console.print(
        f"Extracted [bold]{len(identifiers)}[/bold] tables into "
        f"{pipeline.workspace.modified_dir}"
    )
    return EXIT_OK


def handle_list(pipeline: OverridePipeline) -> int:
    changed = set(pipeline.list_changed_tables())
    table = Table(title=str(pipeline.workspace.root))
    table.add_column("Table")
    table.add_column("Size", justify="right")
    table.add_column("State")

    index = pipeline.workspace.modified_index()
    for identifier in pipeline.list_editable_tables():
        state = "[yellow]modified[/yellow]" if identifier in changed else ""
        size = format_size_short(index[identifier].stat().st_size)
        table.add_row(identifier, size, state)
    console.print(table)
    return EXIT_OK


def handle_diff(pipeline: OverridePipeline) -> int:
    for identifier in pipeline.list_changed_tables():
        console.print(identifier)
    return EXIT_OK


def handle_show(pipeline: OverridePipeline, identifier: str) -> int:
    sys.stdout.write(pipeline.read_modified_source(identifier))
    return EXIT_OK


def handle_write(pipeline: OverridePipeline, identifier: str, source: Optional[Path]) -> int:
    if source is None:
        text = sys.stdin.read()
    else:
        text = source.read_text(encoding="utf-8")
    pipeline.write_modified_source(identifier, text)
    console.print(f"Saved [bold]{identifier}[/bold]")
    return EXIT_OK


def handle_revert(pipeline: OverridePipeline, identifier: str) -> int:
    pipeline.revert_table(identifier)
    console.print(f"Reverted [bold]{identifier}[/bold]")
    return EXIT_OK


def handle_apply(pipeline: OverridePipeline, tables: List[str]) -> int:
    selected = tables or pipeline.list_changed_tables()
    if not selected:
        console.print("No modified tables to apply")
        return EXIT_OK

    outcome = run_cancellable(pipeline, pipeline.apply_selected, selected)
    print_outcome(outcome)

    if isinstance(outcome, ApplyFailure):
        if isinstance(outcome.cause, PipelineCancelled):
            return EXIT_CANCELLED
        return EXIT_FAILURE
    return EXIT_PARTIAL if outcome.partial else EXIT_OK


def print_outcome(outcome: ApplyOutcome) -> None:
    failure_lines = format_failure_lines(outcome.failures)

    if isinstance(outcome, ApplyFailure):
        body = [f"Failed while [bold]{outcome.stage.value}[/bold]: {outcome.cause}"]
        if outcome.image_path is not None:
            body.append(f"Composed image kept at {outcome.image_path}")
        body.append("Boot entry unchanged.")
        body.extend(failure_lines)
        console.print(Panel("\n".join(body), title="apply failed", border_style="red"))
        return

    body = [
        f"Applied: {', '.join(outcome.applied_tables)}",
        f"Image:   {outcome.applied_path}",
    ]
    if outcome.previous_initrd is not None:
        body.append(f"Previous initrd: {outcome.previous_initrd}")
    if failure_lines:
        body.append("Not applied:")
        body.extend(f"  {line}" for line in failure_lines)
    console.print(
        Panel(
            "\n".join(body),
            title="applied, reboot to take effect",
            border_style="yellow" if outcome.partial else "green",
        )
    )


def handle_entry(pipeline: OverridePipeline) -> int:
    entry = pipeline.boot_updater.current_entry()
    console.print(f"kernel: {entry.kernel}")
    console.print(f"initrd: {entry.initrd}")
    manifest = read_manifest(entry.initrd)
    if manifest is not None:
        console.print(f"tables: {', '.join(manifest.tables)}")
        console.print(f"base:   {manifest.base_initrd}")
    return EXIT_OK


def _same_file(image: Path, active: Optional[Path]) -> bool:
    """Boot configs may name the initrd through a symlink or relative path."""
    if active is None:
        return False
    try:
        return os.path.samefile(image, active)
    except OSError:
        return image.resolve() == Path(active).resolve()


def handle_images(pipeline: OverridePipeline, prune: bool) -> int:
    active = pipeline.boot_updater.current_initrd() if prune else None

    table = Table(title="override images")
    table.add_column("Image")
    table.add_column("Size", justify="right")
    table.add_column("Tables")
    for image in pipeline.composer.list_images():
        manifest = read_manifest(image)
        tables = ", ".join(manifest.tables) if manifest else "?"
        size = format_size_short(image.stat().st_size)
        if prune and not _same_file(image, active):
            remove_image(image)
            tables = "[red]removed[/red]"
        table.add_row(image.name, size, tables)
    console.print(table)
    return EXIT_OK


def dispatch(args: argparse.Namespace, config: PipelineConfig) -> int:
    if args.command == "check":
        return handle_check(config)

    if not args.skip_checks and args.command in ("init", "apply", "entry", "images"):
        check_prerequisites(config)

    pipeline = OverridePipeline.from_config(config)
    if args.command == "init":
        return handle_init(pipeline)
    if args.command == "list":
        return handle_list(pipeline)
    if args.command == "diff":
        return handle_diff(pipeline)
    if args.command == "show":
        return handle_show(pipeline, args.table)
    if args.command == "write":
        return handle_write(pipeline, args.table, args.file)
    if args.command == "revert":
        return handle_revert(pipeline, args.table)
    if args.command == "apply":
        return handle_apply(pipeline, args.tables)
    if args.command == "entry":
        return handle_entry(pipeline)
    if args.command == "images":
        return handle_images(pipeline, args.prune)
    raise AssertionError(f"unhandled command {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_FAILURE

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.INFO

    try:
        config = build_config(args)
    except AcpiedError as e:
        setup_logging(level=level)
        log_error_safe(logger, "{err}", prefix="CONFIG", err=e)
        return EXIT_FAILURE

    setup_logging(level=level, log_file=config.log_file)

    try:
        return dispatch(args, config)
    except PipelineCancelled as e:
        log_error_safe(logger, "{err}", prefix="APPLY", err=e)
        return EXIT_CANCELLED
    except AcpiedError as e:
        log_error_safe(logger, "{err}", prefix="APPLY", err=e)
        return EXIT_FAILURE
    except OSError as e:
        log_error_safe(logger, "I/O error: {err}", prefix="APPLY", err=e)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log_error_safe(logger, "Interrupted", prefix="APPLY")
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
