"""lucius-build init command - Write a starter lucius.yaml."""

from __future__ import annotations

from pathlib import Path
import re

import click

from lucius_build.cli.errors import EXIT_SYSTEM_ERROR, EXIT_USER_ERROR
from lucius_build.cli.output import error, success, warning
from lucius_build.config import DEFAULT_CONFIG_FILENAME, DEFAULT_WORKER_NAME

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

LUCIUS_YAML_TEMPLATE = """\
# {{ name }} - lucius-build pipeline configuration
#
# Build Stage: compile the sources in a throwaway toolchain container.
# Runtime Stage: copy the single binary onto a minimal base image.

name: "{{ name }}"

source:
  context: .
  ignore:
    - target/
    - .git/

build:
  image: "{{ build_image }}"
  workdir: /usr/src/{{ name }}
  command: [cargo, build, --release]
  artifact: target/release/{{ name }}
{% if environment %}
  environment:
{% for key, value in environment %}
    {{ key | tojson }}: {{ value | tojson }}
{% endfor %}
{% endif %}

runtime:
  base_image: "{{ base_image }}"
  workdir: /root/
  tag: "{{ name | lower }}:latest"
  pull: true
"""

DOCKERIGNORE_TEMPLATE = """\
target/
.git/
{{ config_file }}
"""


@click.command()
@click.option(
    "-n",
    "--name",
    "name",
    type=str,
    default=DEFAULT_WORKER_NAME,
    help=f"Binary (and image) name [default: {DEFAULT_WORKER_NAME}]",
)
@click.option(
    "--build-image",
    type=str,
    default="rust:1.78",
    help="Toolchain image [default: rust:1.78]",
)
@click.option(
    "--base-image",
    type=str,
    default="debian:buster-slim",
    help="Runtime base image [default: debian:buster-slim]",
)
@click.option(
    "-e",
    "--env",
    "env_pairs",
    multiple=True,
    metavar="KEY=VALUE",
    help="Build environment variable (repeatable)",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Overwrite existing files",
)
def init(
    name: str,
    build_image: str,
    base_image: str,
    env_pairs: tuple[str, ...],
    force: bool,
) -> None:
    """Write a starter lucius.yaml.

    Also writes a .dockerignore excluding build output, unless one exists.

    Examples:

        lucius-build init

        lucius-build init --name my-worker --base-image debian:bookworm-slim

        lucius-build init --env CARGO_NET_OFFLINE=true --force
    """
    config_path = Path(DEFAULT_CONFIG_FILENAME)
    existed = config_path.exists()
    if existed and not force:
        error(f"{DEFAULT_CONFIG_FILENAME} already exists.")
        error("Use --force to overwrite.")
        raise SystemExit(EXIT_USER_ERROR)

    if not _NAME_PATTERN.match(name):
        error(f"Invalid name: {name}")
        error("Name must be alphanumeric (hyphens and underscores allowed).")
        raise SystemExit(EXIT_USER_ERROR)

    environment: list[tuple[str, str]] = []
    for pair in env_pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            error(f"Invalid --env value: {pair} (expected KEY=VALUE)")
            raise SystemExit(EXIT_USER_ERROR)
        environment.append((key, value))

    from jinja2.sandbox import SandboxedEnvironment

    env = SandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)
    config_content = env.from_string(LUCIUS_YAML_TEMPLATE).render(
        name=name,
        build_image=build_image,
        base_image=base_image,
        environment=environment,
    )
    dockerignore_content = env.from_string(DOCKERIGNORE_TEMPLATE).render(
        config_file=DEFAULT_CONFIG_FILENAME,
    )

    try:
        config_path.write_text(config_content)

        dockerignore_path = Path(".dockerignore")
        if not dockerignore_path.exists():
            dockerignore_path.write_text(dockerignore_content)
    except PermissionError:
        error("Cannot write to current directory.")
        raise SystemExit(EXIT_SYSTEM_ERROR) from None

    if existed:
        warning(f"Overwrote existing {DEFAULT_CONFIG_FILENAME}")
    success(f"Created {DEFAULT_CONFIG_FILENAME} for {name}")
