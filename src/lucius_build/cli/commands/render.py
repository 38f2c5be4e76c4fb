"""lucius-build render command - Print the equivalent Dockerfile."""

from __future__ import annotations

from pathlib import Path

import click

from lucius_build.cli.context import load_config
from lucius_build.cli.errors import handle_permission_error
from lucius_build.cli.output import success
from lucius_build.dockerfile import (
    render_dockerignore,
    render_multistage_dockerfile,
    render_runtime_dockerfile,
)


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
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write to this file instead of stdout",
)
@click.option(
    "--stage",
    type=click.Choice(["all", "runtime"]),
    default="all",
    help="Render both stages, or only the runtime stage [default: all]",
)
@click.option(
    "--dockerignore",
    is_flag=True,
    default=False,
    help="Render the build context ignore patterns as .dockerignore instead",
)
def render(file_path: str | None, output_path: str | None, stage: str, dockerignore: bool) -> None:
    """Render the pipeline as a plain Dockerfile.

    The multi-stage Dockerfile builds the same runtime image with a plain
    `docker build`: a builder stage compiles the worker and the final
    stage copies only the binary.

    Examples:

        lucius-build render

        lucius-build render -o Dockerfile

        lucius-build render --dockerignore -o .dockerignore
    """
    config, _ = load_config(file_path)

    if dockerignore:
        content = render_dockerignore(config.source.ignore)
    elif stage == "runtime":
        content = render_runtime_dockerfile(config)
    else:
        content = render_multistage_dockerfile(config)

    if output_path is None:
        click.echo(content, nl=False)
        return

    try:
        Path(output_path).write_text(content)
    except PermissionError:
        handle_permission_error(output_path, "write")
    success(f"Wrote {output_path}")
