"""Unit tests for the pipeline runner and its state machine."""

from __future__ import annotations

from pathlib import Path

from conftest import FAKE_BINARY, FakeEngine
import pytest

from lucius_build.config import PipelineConfig
from lucius_build.errors import (
    CompilationFailure,
    PackagingFailure,
    PipelineStateError,
    SourceTreeError,
)
from lucius_build.models import (
    ALLOWED_TRANSITIONS,
    PipelineResult,
    PipelineState,
    StageName,
    StageStatus,
)
from lucius_build.pipeline import PipelineRunner, run_pipeline
from lucius_build.source import SourceTree


def _trail(result: PipelineResult) -> list[str]:
    return [f"{t.source.value}->{t.target.value}" for t in result.transitions]


class TestSuccessfulRun:
    """A clean source tree yields exactly one tagged image."""

    def test_reaches_ready(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """The run ends READY with both stages succeeded."""
        result = PipelineRunner(config, fake_engine, source_tree).run()

        assert result.state == PipelineState.READY
        assert result.succeeded
        assert [s.stage for s in result.stages] == [StageName.BUILD, StageName.RUNTIME]
        assert all(s.status == StageStatus.SUCCEEDED for s in result.stages)

    def test_transitions_in_order(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """Every state is visited once, in order."""
        result = PipelineRunner(config, fake_engine, source_tree).run()
        assert _trail(result) == [
            "not_started->building",
            "building->built",
            "built->packaging",
            "packaging->ready",
        ]

    def test_exactly_one_tag(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """One run tags one image."""
        result = PipelineRunner(config, fake_engine, source_tree).run()
        assert fake_engine.tags == ["lucius-mcp-worker:latest"]
        assert result.image is not None
        assert result.artifact is not None
        assert result.artifact.size_bytes == len(FAKE_BINARY)

    def test_builder_removed(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """The ephemeral builder does not outlive the run."""
        PipelineRunner(config, fake_engine, source_tree).run()
        assert fake_engine.containers == {}
        assert len(fake_engine.removed) == 1

    def test_rebuild_is_idempotent(
        self, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """An unchanged source tree yields the same artifact and command."""
        first = PipelineRunner(config, FakeEngine(), source_tree).run()
        second = PipelineRunner(config, FakeEngine(), source_tree).run()
        assert first.artifact is not None and second.artifact is not None
        assert first.artifact.sha256 == second.artifact.sha256
        assert first.image is not None and second.image is not None
        assert first.image.command == second.image.command

    def test_report_is_json_compatible(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """to_report() holds only JSON types."""
        report = PipelineRunner(config, fake_engine, source_tree).run().to_report()
        assert report["state"] == "ready"
        assert report["image"]["tag"] == "lucius-mcp-worker:latest"
        assert report["stages"][0]["stage"] == "build"


class TestCompilationFailure:
    """A source tree that does not compile yields no image."""

    def test_build_failed_state(self, config: PipelineConfig, source_tree: SourceTree) -> None:
        """The run ends BUILD_FAILED and the Runtime Stage never starts."""
        engine = FakeEngine(exit_code=101, output=["error: expected one of `.`, `;`"])
        runner = PipelineRunner(config, engine, source_tree)

        with pytest.raises(CompilationFailure) as exc_info:
            runner.run()

        result = exc_info.value.result
        assert result is not None
        assert result.state == PipelineState.BUILD_FAILED
        assert runner.state == PipelineState.BUILD_FAILED
        assert [s.stage for s in result.stages] == [StageName.BUILD]
        assert result.image is None
        assert result.artifact is None

    def test_no_image_tagged(self, config: PipelineConfig, source_tree: SourceTree) -> None:
        """Nothing is tagged when compilation fails."""
        engine = FakeEngine(exit_code=1)
        with pytest.raises(CompilationFailure):
            PipelineRunner(config, engine, source_tree).run()
        assert engine.tags == []
        assert engine.build_contexts == []

    def test_builder_removed(self, config: PipelineConfig, source_tree: SourceTree) -> None:
        """The builder is removed even when compilation fails."""
        engine = FakeEngine(exit_code=1)
        with pytest.raises(CompilationFailure):
            PipelineRunner(config, engine, source_tree).run()
        assert engine.containers == {}


class TestPackagingFailure:
    """A wrong artifact path yields no image."""

    def test_package_failed_state(self, source_tree: SourceTree) -> None:
        """Misconfigured artifact path ends PACKAGE_FAILED."""
        config = PipelineConfig.model_validate(
            {"build": {"artifact": "target/release/wrong-name"}, "runtime": {"pull": False}}
        )
        engine = FakeEngine()

        with pytest.raises(PackagingFailure) as exc_info:
            PipelineRunner(config, engine, source_tree).run()

        result = exc_info.value.result
        assert result is not None
        assert result.state == PipelineState.PACKAGE_FAILED
        assert [s.status for s in result.stages] == [StageStatus.SUCCEEDED, StageStatus.FAILED]
        assert engine.tags == []
        assert engine.containers == {}

    def test_cleanup_failure_does_not_mask_error(
        self, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """The stage failure is raised even if removing the builder fails."""
        engine = FakeEngine(fail_build=True, fail_remove=True)
        with pytest.raises(PackagingFailure):
            PipelineRunner(config, engine, source_tree).run()


class TestStateMachine:
    """Tests for one-shot transitions."""

    def test_runner_is_single_use(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """A second run on the same runner is rejected."""
        runner = PipelineRunner(config, fake_engine, source_tree)
        runner.run()
        with pytest.raises(PipelineStateError):
            runner.run()
        assert fake_engine.tags == ["lucius-mcp-worker:latest"]

    def test_failed_runner_is_not_retried(
        self, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """A failed run cannot be restarted."""
        runner = PipelineRunner(config, FakeEngine(exit_code=1), source_tree)
        with pytest.raises(CompilationFailure):
            runner.run()
        with pytest.raises(PipelineStateError):
            runner.run()

    def test_illegal_transition(
        self, fake_engine: FakeEngine, config: PipelineConfig, source_tree: SourceTree
    ) -> None:
        """Skipping the Build Stage is not allowed."""
        runner = PipelineRunner(config, fake_engine, source_tree)
        with pytest.raises(PipelineStateError):
            runner._transition(PipelineState.PACKAGING)

    @pytest.mark.parametrize(
        "state",
        [PipelineState.READY, PipelineState.BUILD_FAILED, PipelineState.PACKAGE_FAILED],
    )
    def test_terminal_states_have_no_exits(self, state: PipelineState) -> None:
        """Terminal states allow no transitions."""
        assert state.terminal
        assert ALLOWED_TRANSITIONS[state] == frozenset()


class TestRunPipeline:
    """Tests for run_pipeline."""

    def test_resolves_source_from_base_dir(
        self, fake_engine: FakeEngine, config: PipelineConfig, cargo_project: Path
    ) -> None:
        """The context is resolved against base_dir."""
        result = run_pipeline(config, engine=fake_engine, base_dir=cargo_project)
        assert result.succeeded

    def test_missing_source_fails_build(
        self, fake_engine: FakeEngine, config: PipelineConfig, tmp_path: Path
    ) -> None:
        """A missing source tree fails the Build Stage; nothing is tagged."""
        with pytest.raises(SourceTreeError) as exc_info:
            run_pipeline(config, engine=fake_engine, base_dir=tmp_path / "missing")
        assert exc_info.value.result is not None
        assert exc_info.value.result.state == PipelineState.BUILD_FAILED
        assert fake_engine.tags == []
