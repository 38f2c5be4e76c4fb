"""lucius-build validate command - Validate lucius.yaml configuration."""

from __future__ import annotations

import click

from lucius_build.cli.context import load_config
from lucius_build.cli.output import info, success, warning
from lucius_build.config import DEFAULT_CONFIG_FILENAME


@click.command()
@click.option(
    "-f",
    "--file",
    "file_path",
    type=click.Path(dir_okay=False),
    default=f"./{DEFAULT_CONFIG_FILENAME}",
    help=f"Path to {DEFAULT_CONFIG_FILENAME} [default: ./{DEFAULT_CONFIG_FILENAME}]",
)
def validate(file_path: str) -> None:
    """Validate lucius.yaml configuration.

    Reports validation errors with field paths, then summarizes what the
    pipeline would build.

    Examples:

        lucius-build validate

        lucius-build validate --file deploy/lucius.yaml
    """
    config, _ = load_config(file_path)
    success("Configuration valid")

    info(f"  Build:   {config.build.image} -> {config.artifact_build_path}", markup=False)
    info(f"  Runtime: {config.runtime.base_image} -> {config.runtime.tag}", markup=False)
    info(f"  Command: {config.runtime_command}", markup=False)

    if not config.artifact_name_is_valid:
        warning(f"Artifact name '{config.artifact_name}' is not a usable command name")
