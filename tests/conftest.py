"""Shared pytest fixtures for lucius-build tests.

Provides an in-memory container engine, a Cargo-shaped source tree, and
CliRunner fixtures.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Mapping
from dataclasses import dataclass, field
import hashlib
import io
import json
import logging
from pathlib import Path, PurePosixPath
import sys
import tarfile
from typing import Any

from click.testing import CliRunner
import pytest
import structlog

from lucius_build.config import PipelineConfig
from lucius_build.engine.base import ContainerEngine
from lucius_build.errors import ArtifactNotFoundError, EngineError
from lucius_build.source import SourceTree

FAKE_BINARY = b"\x7fELF\x02\x01\x01\x00lucius-mcp-worker"
DEFAULT_ARTIFACT = "target/release/lucius-mcp-worker"

BASE_FILES = frozenset(
    {
        "/bin",
        "/bin/sh",
        "/etc",
        "/etc/os-release",
        "/root",
        "/usr",
        "/usr/lib",
        "/usr/lib/libc.so.6",
    }
)
TOOLCHAIN_FILES = frozenset(
    {
        "/usr/local",
        "/usr/local/cargo",
        "/usr/local/cargo/bin/cargo",
        "/usr/local/rustup",
    }
)


@pytest.fixture(autouse=True)
def configure_structlog_for_tests() -> None:
    """Configure structlog to write warnings and errors to stderr.

    Info and debug events are dropped so they never mix with command output
    captured by CliRunner.
    """
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,  # Important for test isolation
    )


# -- In-memory engine -------------------------------------------------------


@dataclass
class FakeContainer:
    """A container held by FakeEngine."""

    image: str
    command: list[str]
    workdir: str
    environment: dict[str, str]
    files: dict[str, tuple[bytes, int]] = field(default_factory=dict)
    started: bool = False


def _image(cmd: list[str], files: frozenset[str] | set[str]) -> dict[str, Any]:
    return {
        "config": {
            "Cmd": cmd,
            "Entrypoint": None,
            "WorkingDir": "",
            "Env": ["PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"],
        },
        "files": set(files),
    }


def _parse_dockerfile(text: str) -> dict[str, Any]:
    parsed: dict[str, Any] = {"copies": [], "env": []}
    for line in text.splitlines():
        if not line or line.startswith("#"):
            continue
        instruction, _, args = line.partition(" ")
        if instruction == "FROM":
            parsed["from"] = args.split()[0]
        elif instruction == "WORKDIR":
            parsed["workdir"] = args
        elif instruction == "COPY":
            parsed["copies"].append(args.split()[0])
        elif instruction == "CMD":
            parsed["cmd"] = json.loads(args)
        elif instruction == "ENV":
            parsed["env"].append(args)
    return parsed


class FakeEngine(ContainerEngine):
    """In-memory container engine.

    The builder "compiles" by writing ``produces`` (paths relative to the
    container workdir) after running, when ``exit_code`` is zero. Runtime
    images are assembled by parsing the generated Dockerfile.

    Attributes:
        tags: Every tag applied by build_image, in order.
        removed: Container ids removed.
        build_contexts: Context archives passed to build_image.
    """

    name = "fake"

    def __init__(
        self,
        *,
        exit_code: int = 0,
        produces: Mapping[str, bytes] | None = None,
        output: list[str] | None = None,
        reachable: bool = True,
        missing_images: set[str] | None = None,
        fail_build: bool = False,
        fail_remove: bool = False,
    ) -> None:
        self.exit_code = exit_code
        self.produces = dict(produces if produces is not None else {DEFAULT_ARTIFACT: FAKE_BINARY})
        self.output = output if output is not None else ["   Compiling lucius-mcp-worker v0.1.0"]
        self.reachable = reachable
        self.missing_images = missing_images or set()
        self.fail_build = fail_build
        self.fail_remove = fail_remove

        self.images: dict[str, dict[str, Any]] = {
            "rust:1.78": _image(["bash"], BASE_FILES | TOOLCHAIN_FILES),
            "debian:buster-slim": _image(["bash"], BASE_FILES),
        }
        self.containers: dict[str, FakeContainer] = {}
        self.tags: list[str] = []
        self.pulls: list[str] = []
        self.removed: list[str] = []
        self.build_contexts: list[bytes] = []
        self._next_id = 0

    def ping(self) -> None:
        if not self.reachable:
            raise EngineError("Docker daemon is not responding")

    def image_exists(self, ref: str) -> bool:
        return ref in self.images

    def ensure_image(self, ref: str, *, pull: bool = False) -> None:
        if ref in self.missing_images:
            raise EngineError(f"Image not found: {ref}")
        if pull or ref not in self.images:
            self.pulls.append(ref)
            self.images.setdefault(ref, _image(["bash"], BASE_FILES))

    def create_container(
        self,
        image: str,
        command: list[str],
        *,
        workdir: str,
        environment: Mapping[str, str] | None = None,
    ) -> str:
        if image not in self.images:
            raise EngineError(f"Cannot create container from {image}")
        self._next_id += 1
        container_id = f"container-{self._next_id}"
        self.containers[container_id] = FakeContainer(
            image=image,
            command=list(command),
            workdir=workdir,
            environment=dict(environment or {}),
        )
        return container_id

    def put_archive(self, container_id: str, path: str, data: bytes) -> None:
        container = self.containers[container_id]
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
            for member in tar.getmembers():
                extracted = tar.extractfile(member)
                content = extracted.read() if extracted else b""
                target = PurePosixPath(path) / member.name
                container.files[str(target)] = (content, member.mode)

    def run(self, container_id: str, on_output: Callable[[str], None] | None = None) -> int:
        container = self.containers[container_id]
        container.started = True
        for line in self.output:
            if on_output is not None:
                on_output(line)
        if self.exit_code == 0:
            for rel, content in self.produces.items():
                container.files[str(PurePosixPath(container.workdir) / rel)] = (content, 0o755)
        return self.exit_code

    def get_file(self, container_id: str, path: str) -> bytes:
        container = self.containers[container_id]
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            if path in container.files:
                content, mode = container.files[path]
                info = tarfile.TarInfo(PurePosixPath(path).name)
                info.size = len(content)
                info.mode = mode
                tar.addfile(info, io.BytesIO(content))
            else:
                below = {p: v for p, v in container.files.items() if p.startswith(f"{path}/")}
                if not below:
                    raise ArtifactNotFoundError(path)
                info = tarfile.TarInfo(PurePosixPath(path).name)
                info.type = tarfile.DIRTYPE
                tar.addfile(info)
                for p, (content, mode) in sorted(below.items()):
                    member = tarfile.TarInfo(f"{info.name}/{p[len(path) + 1:]}")
                    member.size = len(content)
                    member.mode = mode
                    tar.addfile(member, io.BytesIO(content))
        return buffer.getvalue()

    def remove_container(self, container_id: str) -> None:
        if self.fail_remove:
            raise EngineError("Cannot remove container")
        self.containers.pop(container_id, None)
        self.removed.append(container_id)

    def build_image(self, context: bytes, tag: str, *, pull: bool = False) -> str:
        self.build_contexts.append(context)
        if self.fail_build:
            raise EngineError("Image build failed: no space left on device")

        with tarfile.open(fileobj=io.BytesIO(context), mode="r:") as tar:
            names = tar.getnames()
            dockerfile_member = tar.extractfile("Dockerfile")
            assert dockerfile_member is not None
            parsed = _parse_dockerfile(dockerfile_member.read().decode())

        base_ref = parsed["from"]
        self.ensure_image(base_ref, pull=pull)
        base = self.images[base_ref]

        workdir = PurePosixPath(parsed.get("workdir", "/"))
        files = set(base["files"])
        files.update(str(p) for p in workdir.parents if str(p) != "/")
        files.add(str(workdir))
        for src in parsed["copies"]:
            assert src in names
            files.add(str(workdir / src))

        config = dict(base["config"])
        config["Cmd"] = parsed.get("cmd", config["Cmd"])
        config["WorkingDir"] = parsed.get("workdir", "")
        image_id = "sha256:" + hashlib.sha256(context).hexdigest()
        self.images[tag] = {"config": config, "files": files, "id": image_id}
        self.tags.append(tag)
        return image_id

    def inspect_image(self, ref: str) -> dict[str, Any]:
        if ref not in self.images:
            raise EngineError(f"Image not found: {ref}")
        return dict(self.images[ref]["config"])

    def list_image_files(self, ref: str) -> set[str]:
        if ref not in self.images:
            raise EngineError(f"Image not found: {ref}")
        return set(self.images[ref]["files"])


# -- Fixtures ---------------------------------------------------------------


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Return an engine whose build succeeds and produces the default artifact."""
    return FakeEngine()


@pytest.fixture
def config() -> PipelineConfig:
    """Return the default pipeline configuration with pulling disabled."""
    return PipelineConfig.model_validate({"runtime": {"pull": False}})


@pytest.fixture
def cargo_project(tmp_path: Path) -> Path:
    """Create a minimal Cargo project with local build output to be ignored.

    Returns:
        Path to the project root.
    """
    root = tmp_path / "worker"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text(
        '[package]\nname = "lucius-mcp-worker"\nversion = "0.1.0"\nedition = "2021"\n'
    )
    (root / "Cargo.lock").write_text("# lock\n")
    (root / "src" / "main.rs").write_text('fn main() { println!("worker"); }\n')
    (root / "target" / "release").mkdir(parents=True)
    (root / "target" / "release" / "lucius-mcp-worker").write_bytes(b"stale build")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return root


@pytest.fixture
def source_tree(cargo_project: Path, config: PipelineConfig) -> SourceTree:
    """Return the source tree of the Cargo project fixture."""
    return SourceTree.from_config(config.source, base_dir=cargo_project)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def isolated_runner(cli_runner: CliRunner) -> Generator[CliRunner, None, None]:
    """Create a Click test runner with an isolated filesystem."""
    with cli_runner.isolated_filesystem():
        yield cli_runner


@pytest.fixture
def worker_project(isolated_runner: CliRunner) -> Path:
    """Create a Cargo project with a lucius.yaml in the isolated working directory.

    Returns:
        Path to the project root (the current directory).
    """
    root = Path.cwd()
    (root / "src").mkdir()
    (root / "Cargo.toml").write_text('[package]\nname = "lucius-mcp-worker"\nversion = "0.1.0"\n')
    (root / "src" / "main.rs").write_text("fn main() {}\n")
    (root / "lucius.yaml").write_text("runtime:\n  pull: false\n")
    return root
