"""Dependency installer: a pass-through to the package manager."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.exceptions import DependencyInstallError
from src.pipeline_shared.models import CommandResult

logger = logging.getLogger(__name__)


async def install_dependencies(
    runtime: RuntimeContext,
    component: str,
    directory: Path | str,
    command: Sequence[str],
) -> CommandResult:
    """Install *component*'s packages by running *command* in *directory*.

    Raises:
        DependencyInstallError: On a missing directory or non-zero exit.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise DependencyInstallError(component, f"directory {directory} not found")

    logger.info("Installing %s dependencies in %s", component, directory)
    result = await runtime.run(command, cwd=directory)
    if not result.ok:
        logger.error("%s install exited with %d", component, result.returncode)
        raise DependencyInstallError(component, result.tail())
    return result
