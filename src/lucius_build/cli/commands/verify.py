"""lucius-build verify command - Check a built runtime image."""

from __future__ import annotations

import click

from lucius_build.cli import output
from lucius_build.cli.context import connect_engine, load_config
from lucius_build.cli.errors import EXIT_USER_ERROR


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
    "-t",
    "--tag",
    "tag",
    type=str,
    default=None,
    help="Image to verify [default: runtime.tag]",
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
def verify(file_path: str | None, tag: str | None, fail_fast: bool, output_format: str) -> None:
    """Verify a runtime image built by `lucius-build build`.

    Checks that the image runs the worker as PID 1 with no arguments, that
    the binary is the only file added to the base image, and that no
    toolchain or source path leaked into it.

    Examples:

        lucius-build verify

        lucius-build verify --tag lucius-mcp-worker:1.4.0 --format json
    """
    from lucius_build.checks.image import verify_image
    from lucius_build.report import print_checks

    config, _ = load_config(file_path)
    engine = connect_engine()

    result = verify_image(config, engine, tag=tag, fail_fast=fail_fast)
    print_checks(result, output_format=output_format, console=output.console)

    if result.passed:
        if output_format == "table":
            output.success("Image verified")
        return
    if output_format == "table":
        output.error("Image verification failed")
    raise SystemExit(EXIT_USER_ERROR)
