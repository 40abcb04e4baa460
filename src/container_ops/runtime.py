"""Runtime context shared by every stage.

The container runtime and the package managers are process-wide shared
resources.  Stages never reach for them directly; they go through a
:class:`RuntimeContext` passed in by the controller, so a test can swap
in a recording fake.  The context also carries the run's single
wall-clock deadline: every subprocess is given the remaining time as its
timeout.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Iterator, Mapping, Sequence

from src.pipeline_controller.exceptions import RunTimeoutError
from src.pipeline_shared.models import CommandResult

logger = logging.getLogger(__name__)

# Keys to filter from subprocess environments to avoid leaking secrets.
_FILTERED_ENV_KEYS = {"REGISTRY_PASSWORD", "AWS_SECRET_ACCESS_KEY"}


def _filtered_env() -> dict[str, str]:
    """Return a copy of ``os.environ`` with secret keys removed."""
    return {k: v for k, v in os.environ.items() if k not in _FILTERED_ENV_KEYS}


class RuntimeContext:
    """Gateway to subprocesses, Docker and ``docker compose``."""

    def __init__(self, workdir: Path | str = ".", timeout_seconds: float | None = None) -> None:
        self.workdir = Path(workdir)
        self.timeout_seconds = timeout_seconds
        self._deadline: float | None = None

    # ------------------------------------------------------------------
    # Deadline
    # ------------------------------------------------------------------

    def start_clock(self, timeout_seconds: float | None = None) -> None:
        """Start the run's wall-clock budget."""
        if timeout_seconds is not None:
            self.timeout_seconds = timeout_seconds
        if self.timeout_seconds is not None:
            self._deadline = time.monotonic() + self.timeout_seconds

    def stop_clock(self) -> None:
        """Lift the deadline (used for post-run cleanup)."""
        self._deadline = None

    @contextlib.contextmanager
    def unbounded(self) -> Iterator[None]:
        """Suspend the deadline for release steps that must always run."""
        saved = self._deadline
        self._deadline = None
        try:
            yield
        finally:
            self._deadline = saved

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` if unbounded."""
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def check_deadline(self) -> None:
        """Raise :class:`RunTimeoutError` if the budget is exhausted."""
        left = self.remaining()
        if left is not None and left <= 0:
            raise RunTimeoutError(self.timeout_seconds or 0)

    # ------------------------------------------------------------------
    # Subprocesses
    # ------------------------------------------------------------------

    def run_sync(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run *command* to completion and capture its output.

        Raises:
            RunTimeoutError: If the run deadline passes before or while
                the command executes.  The child is killed.
        """
        self.check_deadline()
        cmd = [str(part) for part in command]
        run_env = _filtered_env()
        if env:
            run_env.update(env)
        workdir = Path(cwd) if cwd is not None else self.workdir
        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), workdir)

        started = time.monotonic()
        try:
            completed = subprocess.run(
                cmd,
                cwd=str(workdir),
                env=run_env,
                input=input_text,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.remaining(),
            )
        except subprocess.TimeoutExpired as exc:
            raise RunTimeoutError(self.timeout_seconds or 0) from exc
        except FileNotFoundError as exc:
            # Executable missing: report it like a failed command.
            return CommandResult(
                command=cmd,
                returncode=127,
                stderr=str(exc),
                duration_seconds=time.monotonic() - started,
            )
        return CommandResult(
            command=cmd,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            duration_seconds=time.monotonic() - started,
        )

    async def run(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Async wrapper around :meth:`run_sync`.

        The blocking call runs in a dedicated single-thread executor so
        the event loop only ever waits on one stage command at a time.
        """
        loop = asyncio.get_running_loop()
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return await loop.run_in_executor(
                pool, lambda: self.run_sync(command, cwd=cwd, env=env, input_text=input_text)
            )

    async def docker(
        self,
        *args: str,
        cwd: Path | str | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """Run ``docker <args>``."""
        return await self.run(["docker", *args], cwd=cwd, input_text=input_text)

    async def compose(
        self,
        compose_file: Path | str,
        project_name: str,
        *args: str,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run ``docker compose -f <file> -p <project> <args>``."""
        cmd = ["docker", "compose", "-f", str(compose_file), "-p", project_name, *args]
        return await self.run(cmd, env=env)

    async def sleep(self, seconds: float) -> None:
        """Sleep, bounded by the run deadline."""
        left = self.remaining()
        if left is not None and seconds >= left:
            await asyncio.sleep(max(left, 0))
            raise RunTimeoutError(self.timeout_seconds or 0)
        await asyncio.sleep(seconds)
