"""Abstract container engine.

Both pipeline stages talk to the container runtime through this
interface, so the stages can be exercised against an in-memory engine
and run against Docker in production.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping


class ContainerEngine(ABC):
    """Operations the build pipeline needs from a container runtime.

    Implementations raise :class:`lucius_build.errors.EngineError` for
    runtime failures and :class:`lucius_build.errors.ArtifactNotFoundError`
    when a requested container path does not exist.
    """

    name: str = "engine"

    @abstractmethod
    def ping(self) -> None:
        """Check that the engine is reachable."""

    @abstractmethod
    def image_exists(self, ref: str) -> bool:
        """Check whether an image reference resolves locally."""

    @abstractmethod
    def ensure_image(self, ref: str, *, pull: bool = False) -> None:
        """Make an image available locally.

        Args:
            ref: Image reference.
            pull: Pull even if the image is already present.
        """

    @abstractmethod
    def create_container(
        self,
        image: str,
        command: list[str],
        *,
        workdir: str,
        environment: Mapping[str, str] | None = None,
    ) -> str:
        """Create (but do not start) a container.

        Returns:
            Container identifier.
        """

    @abstractmethod
    def put_archive(self, container_id: str, path: str, data: bytes) -> None:
        """Extract a tar archive into a container at ``path``."""

    @abstractmethod
    def run(self, container_id: str, on_output: Callable[[str], None] | None = None) -> int:
        """Start a container and block until it exits.

        Args:
            container_id: Container to start.
            on_output: Called with each line of combined stdout/stderr.

        Returns:
            The container's exit status.
        """

    @abstractmethod
    def get_file(self, container_id: str, path: str) -> bytes:
        """Copy a path out of a container.

        Returns:
            Tar archive bytes holding the path.
        """

    @abstractmethod
    def remove_container(self, container_id: str) -> None:
        """Remove a container and its filesystem."""

    @abstractmethod
    def build_image(self, context: bytes, tag: str, *, pull: bool = False) -> str:
        """Build and tag an image from a tar context holding a Dockerfile.

        Returns:
            Image identifier.
        """

    @abstractmethod
    def inspect_image(self, ref: str) -> dict[str, Any]:
        """Return the image configuration (``Cmd``, ``Entrypoint``, ``WorkingDir``, ``Env``)."""

    @abstractmethod
    def list_image_files(self, ref: str) -> set[str]:
        """Return absolute paths of every file and directory in an image."""
