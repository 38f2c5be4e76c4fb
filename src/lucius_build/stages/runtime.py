"""Runtime Stage: package the artifact into the runtime image.

Copies exactly the compiled artifact out of the builder, lays it on the
pinned base image, declares it as the default command, and tags the
result. Nothing is compiled here and the source tree is never read.
"""

from __future__ import annotations

import hashlib
import io
import tarfile
from typing import TYPE_CHECKING, Any

from lucius_build.dockerfile import render_runtime_dockerfile
from lucius_build.errors import (
    ArtifactNotFoundError,
    EngineError,
    LuciusBuildError,
    PackagingFailure,
)
from lucius_build.models import BuildOutput, CompiledArtifact, RuntimeImage, StageName
from lucius_build.stages.base import Stage

if TYPE_CHECKING:
    from lucius_build.config import PipelineConfig

EXECUTABLE_BITS = 0o111


def extract_single_file(archive: bytes, path: str) -> tuple[bytes, int]:
    """Read the single regular file out of a copied-out tar archive.

    Args:
        archive: Tar bytes as returned by the engine.
        path: Container path the archive was taken from (for messages).

    Returns:
        Tuple of (file content, file mode).

    Raises:
        PackagingFailure: If the archive does not hold exactly one regular file.
    """
    try:
        with tarfile.open(fileobj=io.BytesIO(archive), mode="r:") as tar:
            members = tar.getmembers()
            if len(members) != 1 or not members[0].isfile():
                kinds = ", ".join(
                    f"{m.name} ({'file' if m.isfile() else 'dir' if m.isdir() else 'other'})"
                    for m in members
                )
                raise PackagingFailure(
                    f"Artifact path {path} is not a single executable file",
                    artifact_path=path,
                    internal_details=f"archive members: {kinds or 'none'}",
                )
            member = members[0]
            extracted = tar.extractfile(member)
            if extracted is None:
                raise PackagingFailure(f"Cannot read artifact at {path}", artifact_path=path)
            return extracted.read(), member.mode
    except tarfile.TarError as e:
        raise PackagingFailure(
            f"Cannot read artifact at {path}",
            artifact_path=path,
            internal_details=str(e),
        ) from e


def build_runtime_context(config: PipelineConfig, content: bytes, mode: int) -> bytes:
    """Pack the runtime image build context.

    The context holds only the generated Dockerfile and the artifact.

    Args:
        config: Pipeline configuration.
        content: Artifact bytes.
        mode: Artifact file mode.

    Returns:
        Tar archive bytes.
    """
    dockerfile = render_runtime_dockerfile(config).encode()
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, data, file_mode in (
            ("Dockerfile", dockerfile, 0o644),
            (config.artifact_name, content, mode),
        ):
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = file_mode
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class RuntimeStage(Stage[BuildOutput, tuple[CompiledArtifact, RuntimeImage]]):
    """Assemble and tag the runtime image from the Build Stage's artifact."""

    name = StageName.RUNTIME

    def _execute(
        self, stage_input: BuildOutput
    ) -> tuple[tuple[CompiledArtifact, RuntimeImage], str, dict[str, Any]]:
        path = stage_input.artifact_path
        runtime = self.config.runtime

        try:
            archive = self.engine.get_file(stage_input.container_id, path)
        except ArtifactNotFoundError as e:
            raise PackagingFailure(
                f"Compiled artifact not found at {path}",
                artifact_path=path,
                internal_details=e.internal_details,
            ) from e
        except EngineError as e:
            raise PackagingFailure(
                f"Cannot copy artifact from the Build Stage: {e.user_message}",
                artifact_path=path,
                internal_details=e.internal_details,
            ) from e

        content, mode = extract_single_file(archive, path)
        mode |= EXECUTABLE_BITS
        artifact = CompiledArtifact(
            name=self.config.artifact_name,
            build_path=path,
            size_bytes=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
            mode=mode,
        )
        self._log.info(
            "artifact_copied",
            artifact=artifact.name,
            size_bytes=artifact.size_bytes,
            sha256=artifact.sha256,
        )

        context = build_runtime_context(self.config, content, mode)
        try:
            image_id = self.engine.build_image(context, runtime.tag, pull=runtime.pull)
        except EngineError as e:
            raise PackagingFailure(
                f"Cannot assemble runtime image: {e.user_message}",
                artifact_path=path,
                internal_details=e.internal_details,
            ) from e

        image = RuntimeImage(
            tag=runtime.tag,
            image_id=image_id,
            base_image=runtime.base_image,
            artifact_path=self.config.artifact_runtime_path,
            command=self.config.runtime_command,
        )
        details = {
            "tag": image.tag,
            "image_id": image.image_id,
            "base_image": image.base_image,
            "artifact_path": image.artifact_path,
            "sha256": artifact.sha256,
        }
        return (artifact, image), f"Tagged {image.tag}", details

    def _failure_details(self, error: LuciusBuildError) -> dict[str, Any]:
        details = super()._failure_details(error)
        if isinstance(error, PackagingFailure):
            details["artifact_path"] = error.artifact_path
        return details
