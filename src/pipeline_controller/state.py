"""Build run state persistence with atomic writes."""

from __future__ import annotations

import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from src.pipeline_shared.constants import BUILDS_DIR, RUN_FILE, STATE_DIR
from src.pipeline_shared.models import ContainerImage, RunStatus, StageResult, StageStatus
from src.pipeline_shared.utils import atomic_write_json, load_json, now_iso


def run_dir(build_number: int, state_dir: Path | str = STATE_DIR) -> Path:
    """Directory holding one run's persisted state."""
    return Path(state_dir) / BUILDS_DIR / str(build_number)


@dataclass
class PipelineRun:
    """Represents the full state of one build run.

    Persisted to ``<state_dir>/builds/<N>/run.json`` using atomic writes.
    """

    build_number: int = 0
    revision: str = ""
    trigger: str = "manual"
    ref: str = ""
    current_state: str = "pending"
    planned_stages: list[str] = field(default_factory=list)
    stage_results: list[StageResult] = field(default_factory=list)
    status: RunStatus | None = None
    images: list[ContainerImage] = field(default_factory=list)
    pushed_images: list[str] = field(default_factory=list)
    archive_path: str = ""
    release_manifest: str = ""
    cleanup_runs: int = 0
    started_at: str = field(default_factory=now_iso)
    finished_at: str = ""
    interrupted: bool = False
    interrupt_reason: str = ""
    schema_version: int = 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def result_for(self, stage: str) -> StageResult | None:
        for result in self.stage_results:
            if result.name == stage:
                return result
        return None

    @property
    def executed_stages(self) -> list[str]:
        """Stages that actually ran (not skipped)."""
        return [r.name for r in self.stage_results if r.status is not StageStatus.SKIPPED]

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialise the run to a plain dictionary."""
        data = asdict(self)
        data["stage_results"] = [r.to_dict() for r in self.stage_results]
        data["status"] = self.status.value if self.status else None
        data["images"] = [asdict(i) for i in self.images]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineRun:
        # Filter to only known fields
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        filtered["stage_results"] = [
            StageResult.from_dict(r) for r in data.get("stage_results", [])
        ]
        status = data.get("status")
        filtered["status"] = RunStatus(status) if status else None
        filtered["images"] = [ContainerImage(**i) for i in data.get("images", [])]
        return cls(**filtered)

    def save(self, state_dir: Path | str = STATE_DIR) -> Path:
        """Persist the run to disk using atomic writes.

        Returns:
            The path the state was written to.
        """
        target = run_dir(self.build_number, state_dir) / RUN_FILE
        atomic_write_json(target, self.to_dict())
        return target

    @classmethod
    def load(cls, build_number: int, state_dir: Path | str = STATE_DIR) -> PipelineRun | None:
        """Load a run, or ``None`` if it is missing or unreadable."""
        data = load_json(run_dir(build_number, state_dir) / RUN_FILE)
        if data is None:
            return None
        return cls.from_dict(data)

    @classmethod
    def clear(cls, build_number: int, state_dir: Path | str = STATE_DIR) -> None:
        """Remove a run's directory (logs, state) if it exists."""
        directory = run_dir(build_number, state_dir)
        if directory.exists():
            shutil.rmtree(directory)
