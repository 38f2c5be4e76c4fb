"""Configuration and engine loading shared by the commands."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
import structlog

from lucius_build.cli.errors import (
    EXIT_SYSTEM_ERROR,
    CLIError,
    handle_file_not_found,
    handle_permission_error,
    handle_validation_error,
)
from lucius_build.config import DEFAULT_CONFIG_FILENAME, PipelineConfig
from lucius_build.engine import ContainerEngine, create_engine
from lucius_build.errors import ConfigurationError, EngineError

logger = structlog.get_logger(__name__)


def load_config(file_path: str | None) -> tuple[PipelineConfig, Path]:
    """Load the pipeline configuration for a command.

    Without ``--file``, ``./lucius.yaml`` is used when present and the
    built-in defaults otherwise. An explicit path must exist.

    Args:
        file_path: Value of the ``--file`` option.

    Returns:
        Tuple of (config, directory the source context is relative to).

    Raises:
        CLIError: If the file is missing, unreadable, or invalid.
    """
    explicit = file_path is not None
    path = Path(file_path) if explicit else Path(DEFAULT_CONFIG_FILENAME)

    if not path.exists():
        if explicit:
            handle_file_not_found(str(path))
        logger.info("config_defaults_used", missing=str(path))
        return PipelineConfig.default(), Path.cwd()

    try:
        config = PipelineConfig.from_yaml(path)
    except FileNotFoundError:
        handle_file_not_found(str(path))
    except PermissionError:
        handle_permission_error(str(path), "read")
    except ConfigurationError as e:
        raise CLIError(e.user_message) from None

    return config, path.resolve().parent


def apply_overrides(
    config: PipelineConfig,
    *,
    tag: str | None = None,
    pull: bool | None = None,
) -> PipelineConfig:
    """Return the config with command line overrides applied and re-validated."""
    runtime: dict[str, object] = {}
    if tag is not None:
        runtime["tag"] = tag
    if pull is not None:
        runtime["pull"] = pull
    if not runtime:
        return config

    data = config.model_dump()
    data["runtime"].update(runtime)
    try:
        return PipelineConfig.model_validate(data)
    except PydanticValidationError as e:
        handle_validation_error(e, "command line options")


def connect_engine(name: str = "docker") -> ContainerEngine:
    """Create the container engine.

    Raises:
        CLIError: If the engine cannot be reached (exit code 2).
    """
    try:
        return create_engine(name)
    except EngineError as e:
        raise CLIError(e.user_message, exit_code=EXIT_SYSTEM_ERROR) from None
