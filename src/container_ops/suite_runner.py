"""Runs test, lint and audit commands whose failures are soft."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.exceptions import SoftStageError
from src.pipeline_shared.models import CommandResult

logger = logging.getLogger(__name__)


async def run_suite(
    runtime: RuntimeContext,
    label: str,
    directory: Path | str,
    command: Sequence[str],
) -> CommandResult:
    """Run a check suite (tests, lint, audit) in *directory*.

    A non-zero exit is reported as :class:`SoftStageError`; the caller's
    stage boundary turns that into a logged warning, not an abort.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise SoftStageError(f"{label}: directory {directory} not found")

    logger.info("Running %s in %s", label, directory)
    result = await runtime.run(command, cwd=directory)
    if not result.ok:
        logger.warning("%s failed with exit code %d", label, result.returncode)
        raise SoftStageError(
            f"{label} failed (exit {result.returncode}): {result.tail(10)}"
        )
    return result
