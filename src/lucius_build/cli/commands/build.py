"""lucius-build build command - Run the two-stage pipeline."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import click

from lucius_build.cli import output
from lucius_build.cli.context import apply_overrides, connect_engine, load_config
from lucius_build.cli.errors import CLIError, exit_code_for, handle_permission_error

if TYPE_CHECKING:
    from lucius_build.models import PipelineResult


def _write_report(result: PipelineResult, report_path: str) -> None:
    path = Path(report_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(result.to_report(), indent=2) + "\n")
    except PermissionError:
        handle_permission_error(report_path, "write")


@click.command("build")
@click.option(
    "-f",
    "--file",
    "file_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to lucius.yaml [default: ./lucius.yaml, or built-in defaults]",
)
@click.option(
    "-t",
    "--tag",
    "tag",
    type=str,
    default=None,
    help="Tag for the runtime image (overrides runtime.tag)",
)
@click.option(
    "--pull/--no-pull",
    "pull",
    default=None,
    help="Pull the base image before assembling (overrides runtime.pull)",
)
@click.option(
    "--report",
    "report_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a JSON build report to this path",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format [default: table]",
)
def build(
    file_path: str | None,
    tag: str | None,
    pull: bool | None,
    report_path: str | None,
    output_format: str,
) -> None:
    """Compile the worker and tag the runtime image.

    Runs the Build Stage in a throwaway toolchain container, then copies
    the compiled binary onto the base image. Nothing is tagged when either
    stage fails.

    Exit codes: 0 success, 3 compilation failure, 4 packaging failure.

    Examples:

        lucius-build build

        lucius-build build --tag lucius-mcp-worker:1.4.0 --report build.json

        lucius-build build --file deploy/lucius.yaml --no-pull
    """
    from lucius_build.errors import LuciusBuildError
    from lucius_build.pipeline import PipelineRunner
    from lucius_build.report import print_pipeline_result
    from lucius_build.source import SourceTree

    config, base_dir = load_config(file_path)
    config = apply_overrides(config, tag=tag, pull=pull)
    engine = connect_engine()

    try:
        source = SourceTree.from_config(config.source, base_dir=base_dir)
        runner = PipelineRunner(config, engine, source)
        result = runner.run()
    except LuciusBuildError as e:
        if e.result is not None:
            print_pipeline_result(e.result, output_format=output_format, console=output.console)
            if report_path:
                _write_report(e.result, report_path)
        raise CLIError(e.user_message, exit_code=exit_code_for(e)) from None

    print_pipeline_result(result, output_format=output_format, console=output.console)
    if report_path:
        _write_report(result, report_path)
    if output_format == "table":
        output.success(f"Built {result.image.tag if result.image else config.runtime.tag}")
