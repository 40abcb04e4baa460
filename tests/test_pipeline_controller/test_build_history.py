"""Tests for PipelineRun persistence and the retained build history."""

from __future__ import annotations

import json
from pathlib import Path

from src.pipeline_controller.history import BuildHistory
from src.pipeline_controller.state import PipelineRun, run_dir
from src.pipeline_shared.models import (
    ContainerImage,
    FailurePolicy,
    RunStatus,
    StageResult,
    StageStatus,
)


def _finished_run(number: int, status: RunStatus = RunStatus.SUCCESS) -> PipelineRun:
    return PipelineRun(
        build_number=number,
        revision="deadbeef",
        trigger="push",
        ref="main",
        current_state="finished",
        stage_results=[
            StageResult("install_backend", StageStatus.OK),
            StageResult("test_backend", StageStatus.SOFT_FAIL, FailurePolicy.SOFT, reason="1 failing"),
            StageResult("build_images", StageStatus.SKIPPED),
        ],
        status=status,
        images=[ContainerImage("backend", str(number), number)],
    )


class TestPipelineRun:
    def test_save_and_load(self, tmp_path: Path) -> None:
        run = _finished_run(4, RunStatus.UNSTABLE)
        path = run.save(tmp_path)
        assert path == tmp_path / "builds" / "4" / "run.json"

        loaded = PipelineRun.load(4, tmp_path)
        assert loaded is not None
        assert loaded.status is RunStatus.UNSTABLE
        assert loaded.images == [ContainerImage("backend", "4", 4)]
        assert loaded.stage_results[1].status is StageStatus.SOFT_FAIL
        assert loaded.stage_results[1].reason == "1 failing"

    def test_json_is_plain(self, tmp_path: Path) -> None:
        path = _finished_run(1).save(tmp_path)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["status"] == "success"
        assert data["stage_results"][2]["status"] == "skipped"

    def test_load_missing(self, tmp_path: Path) -> None:
        assert PipelineRun.load(99, tmp_path) is None

    def test_unknown_fields_ignored(self, tmp_path: Path) -> None:
        target = run_dir(2, tmp_path) / "run.json"
        target.parent.mkdir(parents=True)
        target.write_text(json.dumps({"build_number": 2, "legacy": True}), encoding="utf-8")
        loaded = PipelineRun.load(2, tmp_path)
        assert loaded is not None and loaded.build_number == 2
        assert loaded.status is None

    def test_executed_stages_excludes_skipped(self) -> None:
        assert _finished_run(1).executed_stages == ["install_backend", "test_backend"]

    def test_result_for(self) -> None:
        run = _finished_run(1)
        assert run.result_for("test_backend").status is StageStatus.SOFT_FAIL
        assert run.result_for("release") is None

    def test_clear(self, tmp_path: Path) -> None:
        _finished_run(3).save(tmp_path)
        PipelineRun.clear(3, tmp_path)
        assert not run_dir(3, tmp_path).exists()
        PipelineRun.clear(3, tmp_path)


class TestBuildHistory:
    def test_numbers_are_monotonic_across_reopen(self, tmp_path: Path) -> None:
        history = BuildHistory.open(tmp_path)
        assert history.allocate() == 1
        assert history.allocate() == 2
        assert BuildHistory.open(tmp_path).allocate() == 3

    def test_allocation_persisted_before_run_finishes(self, tmp_path: Path) -> None:
        BuildHistory.open(tmp_path).allocate()
        data = json.loads((tmp_path / "history.json").read_text(encoding="utf-8"))
        assert data["next_build_number"] == 2
        assert data["retained"] == []

    def test_retention_discards_oldest(self, tmp_path: Path) -> None:
        history = BuildHistory.open(tmp_path, max_builds=2)
        discarded: list[int] = []
        for _ in range(4):
            run = _finished_run(history.allocate())
            run.save(tmp_path)
            discarded += history.record(run)

        assert discarded == [1, 2]
        assert history.retained == [3, 4]
        assert not run_dir(1, tmp_path).exists()
        assert run_dir(4, tmp_path).exists()
        assert history.allocate() == 5

    def test_runs_and_latest(self, tmp_path: Path) -> None:
        history = BuildHistory.open(tmp_path)
        for status in (RunStatus.SUCCESS, RunStatus.FAILURE):
            run = _finished_run(history.allocate(), status)
            run.save(tmp_path)
            history.record(run)
        assert [r.build_number for r in history.runs()] == [1, 2]
        latest = history.latest()
        assert latest is not None and latest.status is RunStatus.FAILURE

    def test_latest_empty(self, tmp_path: Path) -> None:
        assert BuildHistory.open(tmp_path).latest() is None

    def test_record_is_idempotent(self, tmp_path: Path) -> None:
        history = BuildHistory.open(tmp_path)
        run = _finished_run(history.allocate())
        history.record(run)
        history.record(run)
        assert history.retained == [1]
