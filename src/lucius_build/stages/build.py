"""Build Stage: compile the source tree into the artifact.

The sources are copied into a fresh builder container created from the
toolchain image, and the release build command runs there. The compiled
artifact stays inside the builder; only a reference to it is handed on.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

from lucius_build.errors import CompilationFailure, EngineError, LuciusBuildError
from lucius_build.models import BuildOutput, StageName
from lucius_build.stages.base import Stage

if TYPE_CHECKING:
    from lucius_build.source import SourceTree

# Lines of compiler output kept for failure reports
LOG_TAIL_LINES = 40


class BuildStage(Stage["SourceTree", BuildOutput]):
    """Compile the source tree in an ephemeral builder container.

    Attributes:
        container_id: Builder container of the current run, once created.
            The pipeline removes it when the run ends.
    """

    name = StageName.BUILD

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.container_id: str | None = None
        self._tail: deque[str] = deque(maxlen=LOG_TAIL_LINES)

    def _execute(self, stage_input: SourceTree) -> tuple[BuildOutput, str, dict[str, Any]]:
        build = self.config.build
        self._tail.clear()

        context = stage_input.to_tar(build.workdir)

        try:
            self.engine.ensure_image(build.image)
            self.container_id = self.engine.create_container(
                build.image,
                build.command,
                workdir=build.workdir,
                environment=build.environment,
            )
            self.engine.put_archive(self.container_id, "/", context)
            self._log.info(
                "build_command_started",
                image=build.image,
                command=build.command,
                container_id=self.container_id,
            )
            exit_code = self.engine.run(self.container_id, on_output=self._on_output)
        except EngineError as e:
            raise CompilationFailure(
                f"Build Stage could not run: {e.user_message}",
                internal_details=e.internal_details,
            ) from e

        if exit_code != 0:
            raise CompilationFailure(
                f"Compilation failed with exit code {exit_code}",
                exit_code=exit_code,
                log_tail=list(self._tail),
            )

        output = BuildOutput(
            container_id=self.container_id,
            artifact_path=self.config.artifact_build_path,
            log_tail=list(self._tail),
        )
        details = {
            "image": build.image,
            "command": build.command,
            "exit_code": exit_code,
            "artifact_path": output.artifact_path,
        }
        return output, f"Compiled with {build.image}", details

    def _on_output(self, line: str) -> None:
        self._tail.append(line)
        self._log.debug("build_output", line=line)

    def _failure_details(self, error: LuciusBuildError) -> dict[str, Any]:
        details = super()._failure_details(error)
        if isinstance(error, CompilationFailure):
            details["exit_code"] = error.exit_code
            details["log_tail"] = error.log_tail
        return details
