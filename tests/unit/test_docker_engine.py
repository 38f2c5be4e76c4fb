"""Unit tests for the Docker engine, against a mocked SDK client."""

from __future__ import annotations

import io
import tarfile
from unittest.mock import MagicMock, patch

from docker.errors import APIError, BuildError, DockerException, ImageNotFound, NotFound
import pytest

from lucius_build.engine import create_engine
from lucius_build.engine.docker import DockerEngine, _iter_lines
from lucius_build.errors import ArtifactNotFoundError, EngineError


@pytest.fixture
def client() -> MagicMock:
    """Return a mocked DockerClient."""
    return MagicMock()


@pytest.fixture
def engine(client: MagicMock) -> DockerEngine:
    """Return a DockerEngine over the mocked client."""
    return DockerEngine(client=client)


class TestIterLines:
    """Tests for splitting streamed log chunks."""

    def test_lines_split_across_chunks(self) -> None:
        """Partial lines are joined before being yielded."""
        chunks = [b"   Compiling ser", b"de v1.0\nerror: ", b"aborting\r\n", b"tail"]
        assert list(_iter_lines(chunks)) == [
            "   Compiling serde v1.0",
            "error: aborting",
            "tail",
        ]

    def test_invalid_utf8_replaced(self) -> None:
        """Undecodable bytes do not break streaming."""
        assert list(_iter_lines([b"\xff\n"])) == ["�"]


class TestConnection:
    """Tests for connecting to the daemon."""

    @patch("lucius_build.engine.docker.docker.from_env")
    def test_from_env_failure(self, mock_from_env: MagicMock) -> None:
        """No daemon is an EngineError with a readable message."""
        mock_from_env.side_effect = DockerException("Error while fetching server API version")
        with pytest.raises(EngineError, match="Cannot connect to the Docker daemon"):
            DockerEngine()

    @patch("lucius_build.engine.docker.docker.from_env")
    def test_create_engine(self, mock_from_env: MagicMock) -> None:
        """create_engine builds a DockerEngine from the environment."""
        engine = create_engine("docker")
        assert isinstance(engine, DockerEngine)
        mock_from_env.assert_called_once_with()

    def test_create_engine_unknown(self) -> None:
        """Only docker is supported."""
        with pytest.raises(ValueError, match="Unknown engine 'podman'"):
            create_engine("podman")

    def test_ping_failure(self, engine: DockerEngine, client: MagicMock) -> None:
        """A failing ping is an EngineError."""
        client.ping.side_effect = APIError("500 Server Error")
        with pytest.raises(EngineError, match="not responding"):
            engine.ping()


class TestImages:
    """Tests for image operations."""

    def test_image_exists(self, engine: DockerEngine, client: MagicMock) -> None:
        """ImageNotFound means the image is absent."""
        client.images.get.side_effect = ImageNotFound("no such image")
        assert engine.image_exists("rust:1.78") is False

    def test_ensure_image_skips_pull_when_present(
        self, engine: DockerEngine, client: MagicMock
    ) -> None:
        """Present images are not pulled unless asked."""
        engine.ensure_image("rust:1.78")
        client.images.pull.assert_not_called()

    def test_ensure_image_pull(self, engine: DockerEngine, client: MagicMock) -> None:
        """pull=True always pulls."""
        engine.ensure_image("debian:buster-slim", pull=True)
        client.images.pull.assert_called_once_with("debian:buster-slim")

    def test_ensure_image_not_found(self, engine: DockerEngine, client: MagicMock) -> None:
        """A missing image is an EngineError."""
        client.images.get.side_effect = ImageNotFound("no such image")
        client.images.pull.side_effect = NotFound("manifest unknown")
        with pytest.raises(EngineError, match="Image not found: rust:0.0"):
            engine.ensure_image("rust:0.0")

    def test_build_image(self, engine: DockerEngine, client: MagicMock) -> None:
        """Images are built from the context archive and tagged."""
        image = MagicMock(id="sha256:abc")
        client.images.build.return_value = (image, [{"stream": "Step 1/4 : FROM debian\n"}])

        image_id = engine.build_image(b"context", "worker:1", pull=True)

        assert image_id == "sha256:abc"
        kwargs = client.images.build.call_args.kwargs
        assert kwargs["custom_context"] is True
        assert kwargs["tag"] == "worker:1"
        assert kwargs["pull"] is True
        assert kwargs["fileobj"].read() == b"context"

    def test_build_image_failure(self, engine: DockerEngine, client: MagicMock) -> None:
        """BuildError is translated with the build log as details."""
        client.images.build.side_effect = BuildError(
            "COPY failed", [{"error": "COPY failed: no such file"}]
        )
        with pytest.raises(EngineError, match="Image build failed") as exc_info:
            engine.build_image(b"context", "worker:1")
        assert exc_info.value.internal_details == "COPY failed: no such file"

    def test_inspect_image_config(self, engine: DockerEngine, client: MagicMock) -> None:
        """Only the image Config section is returned."""
        client.api.inspect_image.return_value = {"Id": "x", "Config": {"Cmd": ["./app"]}}
        assert engine.inspect_image("worker:1") == {"Cmd": ["./app"]}

    def test_list_image_files(self, engine: DockerEngine, client: MagicMock) -> None:
        """Exported paths are returned absolute; the temporary container is removed."""
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            for name in ("root", "root/app", "./etc"):
                info = tarfile.TarInfo(name)
                tar.addfile(info, io.BytesIO(b""))
        client.api.create_container.return_value = {"Id": "tmp"}
        client.api.export.return_value = [buffer.getvalue()]

        assert engine.list_image_files("worker:1") == {"/root", "/root/app", "/etc"}
        client.api.remove_container.assert_called_once_with("tmp", v=True, force=True)


class TestContainers:
    """Tests for container operations."""

    def test_create_container(self, engine: DockerEngine, client: MagicMock) -> None:
        """Command, workdir and environment are passed through."""
        client.containers.create.return_value = MagicMock(id="c1")
        container_id = engine.create_container(
            "rust:1.78",
            ["cargo", "build", "--release"],
            workdir="/usr/src/app",
            environment={"RUSTFLAGS": "-Dwarnings"},
        )
        assert container_id == "c1"
        client.containers.create.assert_called_once_with(
            "rust:1.78",
            command=["cargo", "build", "--release"],
            working_dir="/usr/src/app",
            environment={"RUSTFLAGS": "-Dwarnings"},
            detach=True,
        )

    def test_run_streams_output(self, engine: DockerEngine, client: MagicMock) -> None:
        """Output lines are forwarded and the exit status returned."""
        container = client.containers.get.return_value
        container.logs.return_value = iter([b"line one\nline two\n"])
        container.wait.return_value = {"StatusCode": 101}
        lines: list[str] = []

        assert engine.run("c1", on_output=lines.append) == 101
        assert lines == ["line one", "line two"]
        container.start.assert_called_once_with()

    def test_put_archive_rejected(self, engine: DockerEngine, client: MagicMock) -> None:
        """A refused upload is an EngineError."""
        client.api.put_archive.return_value = False
        with pytest.raises(EngineError):
            engine.put_archive("c1", "/", b"data")

    def test_get_file_not_found(self, engine: DockerEngine, client: MagicMock) -> None:
        """A missing path is ArtifactNotFoundError."""
        client.api.get_archive.side_effect = NotFound("Could not find the file")
        with pytest.raises(ArtifactNotFoundError) as exc_info:
            engine.get_file("c1", "/usr/src/app/target/release/app")
        assert exc_info.value.path == "/usr/src/app/target/release/app"

    def test_get_file(self, engine: DockerEngine, client: MagicMock) -> None:
        """The archive stream is joined into bytes."""
        client.api.get_archive.return_value = (iter([b"ab", b"cd"]), {"name": "app"})
        assert engine.get_file("c1", "/x/app") == b"abcd"

    def test_remove_missing_container(self, engine: DockerEngine, client: MagicMock) -> None:
        """Removing an already removed container is not an error."""
        client.api.remove_container.side_effect = NotFound("No such container")
        engine.remove_container("c1")

    def test_remove_failure(self, engine: DockerEngine, client: MagicMock) -> None:
        """Other removal failures are EngineError."""
        client.api.remove_container.side_effect = APIError("removal in progress")
        with pytest.raises(EngineError):
            engine.remove_container("c1")
