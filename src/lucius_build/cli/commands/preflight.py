"""lucius-build preflight command - Pre-build checks."""

from __future__ import annotations

import click

from lucius_build.cli import output
from lucius_build.cli.context import load_config
from lucius_build.cli.errors import EXIT_USER_ERROR
from lucius_build.engine import create_engine


@click.command()
@click.option(
    "-f",
    "--file",
    "file_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to lucius.yaml [default: ./lucius.yaml, or built-in defaults]",
)
@click.option(
    "--engine/--no-engine",
    "check_engine",
    default=True,
    help="Enable/disable the container engine check",
)
@click.option(
    "--fail-fast",
    is_flag=True,
    default=False,
    help="Stop on first failure",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format [default: table]",
)
def preflight(file_path: str | None, check_engine: bool, fail_fast: bool, output_format: str) -> None:
    """Run pre-build checks.

    Checks that the container engine answers, that the build context holds
    a Cargo manifest, and that the artifact path can become the image's
    command. Nothing is built.

    Examples:

        lucius-build preflight

        lucius-build preflight --no-engine --format json
    """
    from lucius_build.checks.preflight import run_preflight
    from lucius_build.report import print_checks
    from lucius_build.source import SourceTree

    config, base_dir = load_config(file_path)
    source = SourceTree.from_config(config.source, base_dir=base_dir)

    result = run_preflight(
        config,
        source,
        connect=create_engine if check_engine else None,
        fail_fast=fail_fast,
    )
    print_checks(result, output_format=output_format, console=output.console)

    if result.passed:
        if output_format == "table":
            output.success("Preflight checks passed")
        return
    if output_format == "table":
        output.error("Preflight checks failed")
    raise SystemExit(EXIT_USER_ERROR)
