"""Docker implementation of the container engine.

Uses the Docker SDK for Python. Connection settings come from the
environment (``DOCKER_HOST``, ``DOCKER_TLS_VERIFY``, ``DOCKER_CERT_PATH``)
via ``docker.from_env()``.
"""

from __future__ import annotations

import io
import tarfile
from typing import TYPE_CHECKING, Any

import docker
from docker.errors import APIError, BuildError, DockerException, ImageNotFound, NotFound
import structlog

from lucius_build.engine.base import ContainerEngine
from lucius_build.errors import ArtifactNotFoundError, EngineError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from docker import DockerClient

logger = structlog.get_logger(__name__)


def _iter_lines(chunks: Iterable[bytes]) -> Iterable[str]:
    """Split a stream of byte chunks into decoded lines."""
    pending = b""
    for chunk in chunks:
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line.decode("utf-8", errors="replace").rstrip("\r")
    if pending:
        yield pending.decode("utf-8", errors="replace").rstrip("\r")


class DockerEngine(ContainerEngine):
    """Container engine backed by a Docker daemon.

    Attributes:
        client: Docker SDK client.

    Example:
        >>> engine = DockerEngine()
        >>> engine.ping()
    """

    name = "docker"

    def __init__(self, client: DockerClient | None = None) -> None:
        """Initialize the engine.

        Args:
            client: Existing Docker client. Created from the environment if None.

        Raises:
            EngineError: If no client can be created from the environment.
        """
        if client is None:
            try:
                client = docker.from_env()
            except DockerException as e:
                raise EngineError(
                    "Cannot connect to the Docker daemon. Is it running?",
                    internal_details=str(e),
                ) from e
        self.client = client
        self._log = logger.bind(engine=self.name)

    def ping(self) -> None:
        try:
            self.client.ping()
        except DockerException as e:
            raise EngineError(
                "Docker daemon is not responding", internal_details=str(e)
            ) from e

    def image_exists(self, ref: str) -> bool:
        try:
            self.client.images.get(ref)
        except ImageNotFound:
            return False
        except APIError as e:
            raise EngineError(f"Cannot look up image {ref}", internal_details=str(e)) from e
        return True

    def ensure_image(self, ref: str, *, pull: bool = False) -> None:
        if not pull and self.image_exists(ref):
            return
        self._log.info("image_pull_started", image=ref)
        try:
            self.client.images.pull(ref)
        except (ImageNotFound, NotFound) as e:
            raise EngineError(f"Image not found: {ref}", internal_details=str(e)) from e
        except APIError as e:
            raise EngineError(f"Cannot pull image {ref}", internal_details=str(e)) from e
        self._log.info("image_pull_completed", image=ref)

    def create_container(
        self,
        image: str,
        command: list[str],
        *,
        workdir: str,
        environment: Mapping[str, str] | None = None,
    ) -> str:
        try:
            container = self.client.containers.create(
                image,
                command=command,
                working_dir=workdir,
                environment=dict(environment or {}),
                detach=True,
            )
        except APIError as e:
            raise EngineError(
                f"Cannot create container from {image}", internal_details=str(e)
            ) from e
        self._log.debug("container_created", container_id=container.id, image=image)
        return str(container.id)

    def put_archive(self, container_id: str, path: str, data: bytes) -> None:
        try:
            ok = self.client.api.put_archive(container_id, path, data)
        except APIError as e:
            raise EngineError(
                "Cannot copy files into container", internal_details=str(e)
            ) from e
        if not ok:
            raise EngineError("Cannot copy files into container", internal_details=path)

    def run(self, container_id: str, on_output: Callable[[str], None] | None = None) -> int:
        try:
            container = self.client.containers.get(container_id)
            container.start()
            for line in _iter_lines(container.logs(stream=True, follow=True)):
                if on_output is not None:
                    on_output(line)
            status: dict[str, Any] = container.wait()
        except APIError as e:
            raise EngineError("Container execution failed", internal_details=str(e)) from e
        return int(status.get("StatusCode", -1))

    def get_file(self, container_id: str, path: str) -> bytes:
        try:
            stream, stat = self.client.api.get_archive(container_id, path)
            data = b"".join(stream)
        except NotFound as e:
            raise ArtifactNotFoundError(path, internal_details=str(e)) from e
        except APIError as e:
            raise EngineError(
                f"Cannot copy {path} out of container", internal_details=str(e)
            ) from e
        self._log.debug("file_copied", path=path, stat=stat)
        return data

    def remove_container(self, container_id: str) -> None:
        try:
            self.client.api.remove_container(container_id, v=True, force=True)
        except NotFound:
            self._log.debug("container_already_removed", container_id=container_id)
        except APIError as e:
            raise EngineError("Cannot remove container", internal_details=str(e)) from e

    def build_image(self, context: bytes, tag: str, *, pull: bool = False) -> str:
        try:
            image, build_log = self.client.images.build(
                fileobj=io.BytesIO(context),
                custom_context=True,
                tag=tag,
                pull=pull,
                rm=True,
                forcerm=True,
            )
        except BuildError as e:
            details = "".join(
                str(entry.get("stream") or entry.get("error") or "") for entry in e.build_log
            )
            raise EngineError(
                f"Image build failed: {e.msg}", internal_details=details or str(e)
            ) from e
        except APIError as e:
            raise EngineError("Image build failed", internal_details=str(e)) from e

        for entry in build_log:
            if "stream" in entry:
                self._log.debug("image_build_output", line=str(entry["stream"]).rstrip())
        return str(image.id)

    def inspect_image(self, ref: str) -> dict[str, Any]:
        try:
            data = self.client.api.inspect_image(ref)
        except (ImageNotFound, NotFound) as e:
            raise EngineError(f"Image not found: {ref}", internal_details=str(e)) from e
        except APIError as e:
            raise EngineError(f"Cannot inspect image {ref}", internal_details=str(e)) from e
        config: dict[str, Any] = data.get("Config") or {}
        return config

    def list_image_files(self, ref: str) -> set[str]:
        try:
            # Never started; the command only satisfies images without a default
            created = self.client.api.create_container(ref, command=["true"])
        except (ImageNotFound, NotFound) as e:
            raise EngineError(f"Image not found: {ref}", internal_details=str(e)) from e
        except APIError as e:
            raise EngineError(f"Cannot read image {ref}", internal_details=str(e)) from e

        container_id = created["Id"]
        try:
            data = b"".join(self.client.api.export(container_id))
        except APIError as e:
            raise EngineError(f"Cannot export image {ref}", internal_details=str(e)) from e
        finally:
            self.remove_container(container_id)

        paths: set[str] = set()
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            for member in tar.getmembers():
                name = member.name.strip("/")
                if name.startswith("./"):
                    name = name[2:]
                if name and name != ".":
                    paths.add(f"/{name}")
        return paths
