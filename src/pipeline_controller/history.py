"""Build numbering and retained build history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from src.pipeline_controller.state import PipelineRun
from src.pipeline_shared.constants import DEFAULT_MAX_BUILDS, HISTORY_FILE, STATE_DIR
from src.pipeline_shared.utils import atomic_write_json, load_json

logger = logging.getLogger(__name__)


@dataclass
class BuildHistory:
    """Allocates build numbers and keeps at most ``max_builds`` runs.

    The next build number only ever grows, even when old runs are
    discarded or a run never finishes.
    """

    state_dir: Path = Path(STATE_DIR)
    max_builds: int = DEFAULT_MAX_BUILDS
    next_build_number: int = 1
    retained: list[int] = field(default_factory=list)

    @property
    def index_path(self) -> Path:
        return Path(self.state_dir) / HISTORY_FILE

    @classmethod
    def open(cls, state_dir: Path | str = STATE_DIR, max_builds: int = DEFAULT_MAX_BUILDS) -> BuildHistory:
        """Load the history index, starting fresh if none exists."""
        history = cls(state_dir=Path(state_dir), max_builds=max_builds)
        data = load_json(history.index_path)
        if data:
            history.next_build_number = int(data.get("next_build_number", 1))
            history.retained = [int(n) for n in data.get("retained", [])]
        return history

    def save(self) -> None:
        atomic_write_json(
            self.index_path,
            {"next_build_number": self.next_build_number, "retained": self.retained},
        )

    def allocate(self) -> int:
        """Reserve and persist the next build number."""
        number = self.next_build_number
        self.next_build_number += 1
        self.save()
        return number

    def record(self, run: PipelineRun) -> list[int]:
        """Add a finished run and discard the oldest beyond the cap.

        Returns:
            Build numbers that were discarded.
        """
        if run.build_number not in self.retained:
            self.retained.append(run.build_number)
            self.retained.sort()
        discarded: list[int] = []
        while len(self.retained) > self.max_builds:
            oldest = self.retained.pop(0)
            PipelineRun.clear(oldest, self.state_dir)
            discarded.append(oldest)
        if discarded:
            logger.info("Discarded old builds: %s", ", ".join(map(str, discarded)))
        self.save()
        return discarded

    def runs(self) -> list[PipelineRun]:
        """Retained runs, oldest first (unreadable ones are skipped)."""
        result = []
        for number in self.retained:
            run = PipelineRun.load(number, self.state_dir)
            if run is not None:
                result.append(run)
        return result

    def latest(self) -> PipelineRun | None:
        for number in reversed(self.retained):
            run = PipelineRun.load(number, self.state_dir)
            if run is not None:
                return run
        return None
