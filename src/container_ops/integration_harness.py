"""Integration harness.

Brings up the full service graph from the validated descriptor, waits a
fixed settle period, probes the health endpoint once, and tears the
graph down (volumes included).

Bring-up is the acquire and teardown the release of one scoped
resource: :meth:`IntegrationHarness.service_graph` guarantees
``docker compose down -v`` on every exit path, including a bring-up
that failed halfway.

The probe result is informational only.  A failed probe is logged and
recorded in the :class:`HarnessReport` but never raised, so it cannot
change the run's status.
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping

from src.container_ops.health_probe import probe_health
from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.exceptions import SoftStageError
from src.pipeline_controller.state_machine import create_harness_machine
from src.pipeline_shared.constants import (
    DEFAULT_HEALTH_URL,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_SETTLE_SECONDS,
)
from src.pipeline_shared.models import HarnessReport, ProbeResult

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str, float], Awaitable[ProbeResult]]


class IntegrationHarness:
    """Runs one validation window against the live service graph."""

    def __init__(
        self,
        runtime: RuntimeContext,
        compose_file: Path | str,
        project_name: str,
        health_url: str = DEFAULT_HEALTH_URL,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        env: Mapping[str, str] | None = None,
        probe: ProbeFn | None = None,
    ) -> None:
        self.runtime = runtime
        self.compose_file = Path(compose_file)
        self.project_name = project_name
        self.health_url = health_url
        self.settle_seconds = settle_seconds
        self.probe_timeout_seconds = probe_timeout_seconds
        self.env = dict(env or {})
        self._probe = probe or probe_health
        self.report = HarnessReport()
        self.teardown_count = 0
        self.state: str = "idle"
        self.machine = create_harness_machine(self)

    def record_transition(self, event: Any) -> None:
        """``after_state_change`` callback: keep the path for the report."""
        self.report.transitions.append(self.state)
        logger.debug("Harness entered state '%s'", self.state)

    # ------------------------------------------------------------------
    # Scoped acquisition
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def service_graph(self) -> AsyncIterator[IntegrationHarness]:
        """Bring the graph up for the duration of the block.

        Raises:
            SoftStageError: If ``docker compose up`` fails.  Teardown has
                already run by the time the error reaches the caller.
        """
        await self.begin_startup()  # type: ignore[attr-defined]
        try:
            logger.info("Starting service graph from %s", self.compose_file)
            result = await self.runtime.compose(
                self.compose_file, self.project_name, "up", "-d", env=self.env
            )
            if not result.ok:
                self.report.error = f"bring-up failed: {result.tail(10)}"
                raise SoftStageError(
                    f"docker compose up failed (exit {result.returncode}): "
                    f"{result.tail(10)}"
                )
            self.report.started = True
            yield self
        finally:
            await self.begin_teardown()  # type: ignore[attr-defined]
            await self._release()
            await self.finish_teardown()  # type: ignore[attr-defined]

    async def _release(self) -> None:
        """Tear the graph down, volumes included.  Never raises."""
        self.teardown_count += 1
        logger.info("Tearing down service graph '%s'", self.project_name)
        try:
            with self.runtime.unbounded():
                result = await self.runtime.compose(
                    self.compose_file,
                    self.project_name,
                    "down", "-v", "--remove-orphans",
                    env=self.env,
                )
            self.report.teardown_ok = result.ok
            if not result.ok:
                logger.warning("Teardown exited with %d: %s", result.returncode, result.tail(5))
        except Exception as exc:
            self.report.teardown_ok = False
            logger.warning("Failed to tear down service graph: %s", exc)

    # ------------------------------------------------------------------
    # Validation window
    # ------------------------------------------------------------------

    async def run(self) -> HarnessReport:
        """Execute one full window and return its report."""
        self.report = HarnessReport()
        async with self.service_graph():
            await self.begin_settle()  # type: ignore[attr-defined]
            logger.info("Waiting %.0fs for services to settle", self.settle_seconds)
            await self.runtime.sleep(self.settle_seconds)

            await self.begin_probe()  # type: ignore[attr-defined]
            probe = await self._probe(self.health_url, self.probe_timeout_seconds)
            self.report.probe = probe
            if probe.healthy:
                logger.info("Health check passed: %s -> %s", probe.url, probe.status_code)
            else:
                # Informational only; not gating.
                logger.info("Health check failed: %s (%s)", probe.url, probe.error)
        return self.report
