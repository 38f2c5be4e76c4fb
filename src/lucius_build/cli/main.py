"""CLI entry point for lucius-build.

The command group loads subcommands lazily so ``--help`` does not
import the docker SDK or the pipeline.
"""

from __future__ import annotations

import importlib
from typing import Any

import click
import rich_click as rclick

from lucius_build import __version__
from lucius_build.cli.output import set_no_color
from lucius_build.observability import configure_logging, default_log_level

rclick.rich_click.TEXT_MARKUP = "markdown"
rclick.rich_click.SHOW_ARGUMENTS = True
rclick.rich_click.GROUP_ARGUMENTS_OPTIONS = True

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LazyGroup(rclick.RichGroup):
    """Click group that loads commands lazily.

    Attributes:
        lazy_subcommands: Mapping of command names to module paths.
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize LazyGroup.

        Args:
            *args: Positional arguments for parent class.
            lazy_subcommands: Mapping of command name to module path.
                Format: {"build": "lucius_build.cli.commands.build.build"}
            **kwargs: Keyword arguments for parent class.
        """
        super().__init__(*args, **kwargs)
        self.lazy_subcommands: dict[str, str] = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return sorted command names, lazy and directly registered."""
        commands = set(super().list_commands(ctx))
        commands.update(self.lazy_subcommands.keys())
        return sorted(commands)

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Get a command by name, loading lazily if needed."""
        cmd = super().get_command(ctx, cmd_name)  # type: ignore[arg-type]
        if cmd is not None:
            return cmd

        if cmd_name not in self.lazy_subcommands:
            return None

        module_path = self.lazy_subcommands[cmd_name]
        module_name, attr_name = module_path.rsplit(".", 1)
        mod = importlib.import_module(module_name)
        return getattr(mod, attr_name)  # type: ignore[no-any-return]


LAZY_COMMANDS = {
    "build": "lucius_build.cli.commands.build.build",
    "init": "lucius_build.cli.commands.init.init",
    "preflight": "lucius_build.cli.commands.preflight.preflight",
    "render": "lucius_build.cli.commands.render.render",
    "validate": "lucius_build.cli.commands.validate.validate",
    "verify": "lucius_build.cli.commands.verify.verify",
}


@click.command(cls=LazyGroup, lazy_subcommands=LAZY_COMMANDS)
@click.version_option(version=__version__, prog_name="lucius-build")
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable colored output.",
    is_eager=True,
    expose_value=False,
    callback=lambda ctx, param, value: set_no_color(value) if value else None,
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=default_log_level,
    show_default="WARNING or $LUCIUS_BUILD_LOG_LEVEL",
    help="Minimum level of log events written to stderr.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Write log events as JSON lines.",
)
def cli(log_level: str, log_json: bool) -> None:
    """lucius-build - two-stage container build for lucius-mcp-worker.

    Compiles the worker in a throwaway toolchain container, then copies the
    single binary onto a minimal base image.

    **Getting Started:**

    - `lucius-build init` - Write a default lucius.yaml
    - `lucius-build preflight` - Check engine, sources, and artifact path
    - `lucius-build build` - Compile and tag the runtime image
    - `lucius-build verify` - Check the tagged image
    """
    configure_logging(log_level=log_level, json_format=log_json)


if __name__ == "__main__":
    cli()
