"""Graceful shutdown handler for a build run.

A signal never cancels the stage in flight; it asks the controller to
stop before the next stage.  Handles both Windows (``signal.signal``)
and Unix (``loop.add_signal_handler``) registration with a reentrancy
guard.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from src.pipeline_shared.constants import STATE_DIR

if TYPE_CHECKING:
    from src.pipeline_controller.state import PipelineRun

logger = logging.getLogger(__name__)


class GracefulShutdown:
    """Manages graceful shutdown on SIGINT / SIGTERM.

    Usage::

        shutdown = GracefulShutdown(state_dir)
        shutdown.install()
        shutdown.set_run(run)

        # Between stages:
        if shutdown.should_stop:
            ...
    """

    def __init__(self, state_dir: Path | str = STATE_DIR) -> None:
        self.state_dir = Path(state_dir)
        self._should_stop = False
        self._run: PipelineRun | None = None
        self._handling = False  # reentrancy guard
        self._installed_loop: asyncio.AbstractEventLoop | None = None

    @property
    def should_stop(self) -> bool:
        """Whether a shutdown signal has been received."""
        return self._should_stop

    @should_stop.setter
    def should_stop(self, value: bool) -> None:
        self._should_stop = value

    def set_run(self, run: Any) -> None:
        """Inject the run for emergency saving.

        Deferred so the handler can be installed before the run exists.
        """
        self._run = run

    def install(self) -> None:
        """Register signal handlers for SIGINT and SIGTERM."""
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)
            return
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._handle)
            self._installed_loop = loop
        except RuntimeError:
            # No running loop -- fall back to signal.signal
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

    def uninstall(self) -> None:
        """Remove loop signal handlers registered by :meth:`install`."""
        if self._installed_loop is None:
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._installed_loop.remove_signal_handler(sig)
        self._installed_loop = None

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows / fallback)."""
        self._handle()

    def _handle(self) -> None:
        if self._handling:
            return  # reentrancy guard
        self._handling = True
        logger.warning("Received shutdown signal -- stopping after the current stage")
        self._should_stop = True
        self._emergency_save()
        self._handling = False

    def _emergency_save(self) -> None:
        """Attempt to save the run during emergency shutdown."""
        if self._run is None:
            logger.warning("No build run to save during emergency shutdown")
            return
        try:
            self._run.interrupted = True
            self._run.interrupt_reason = "Signal received"
            self._run.save(self.state_dir)
            logger.info("Emergency state save completed")
        except Exception:
            logger.exception("Failed to save state during emergency shutdown")
