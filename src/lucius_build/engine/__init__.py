"""Container engines for running the pipeline stages."""

from __future__ import annotations

from lucius_build.engine.base import ContainerEngine

SUPPORTED_ENGINES = ("docker",)


def create_engine(name: str = "docker") -> ContainerEngine:
    """Create a container engine by name.

    Args:
        name: Engine name. Only ``docker`` is supported.

    Returns:
        Connected engine instance.

    Raises:
        ValueError: If the engine name is unknown.
        EngineError: If the engine cannot be reached.
    """
    if name == "docker":
        # Import here so the docker SDK is only loaded when needed
        from lucius_build.engine.docker import DockerEngine

        return DockerEngine()

    msg = f"Unknown engine '{name}'. Supported: {', '.join(SUPPORTED_ENGINES)}"
    raise ValueError(msg)


__all__ = [
    "SUPPORTED_ENGINES",
    "ContainerEngine",
    "create_engine",
]
