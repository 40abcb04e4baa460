"""Pipeline controller -- the top-level stage sequencer.

Drives one build run through the job graph its trigger selects:

    install -> lint/test -> frontend bundle -> images -> compose validation
    -> integration test -> archive -> push -> release

then always runs cleanup and exactly one notification hook.

.. rubric:: Key design decisions

* **Sequential executor** -- stages run one at a time in declared order on
  a single event loop.  After a fatal failure the remaining stages are
  recorded as skipped and never executed.
* **Tagged results** -- every stage yields a ``StageResult``; the run
  status is the fold :func:`aggregate_status` over them, nothing else.
* **Injected runtime** -- the :class:`RuntimeContext` is created once per
  controller and handed to every stage; it also carries the single
  wall-clock deadline for the whole run.
* **try/finally cleanup** -- cleanup, status aggregation, persistence and
  hooks happen in a ``finally`` block so they run on every exit path.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Sequence

from src.container_ops.image_tags import ImageLedger
from src.container_ops.integration_harness import ProbeFn
from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller import display
from src.pipeline_controller.config import PipelineConfig, load_pipeline_config
from src.pipeline_controller.history import BuildHistory
from src.pipeline_controller.notifications import (
    LogNotifier,
    NotificationHooks,
    Notifier,
    WebhookNotifier,
)
from src.pipeline_controller.shutdown import GracefulShutdown
from src.pipeline_controller.stages import (
    Stage,
    StageContext,
    resolve_stages,
    run_stage,
)
from src.pipeline_controller.state import PipelineRun
from src.pipeline_controller.state_machine import create_run_machine
from src.pipeline_controller.triggers import TriggerEvent, select_stages
from src.pipeline_shared.models import (
    StageResult,
    StageStatus,
    aggregate_status,
)
from src.pipeline_shared.utils import ensure_dir, now_iso
from src.shared.config import RegistryCredentials, ServiceEnvironment
from src.shared.logging import build_context

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# RunModel -- state machine model with guard methods
# ---------------------------------------------------------------------------


class RunModel:
    """Model object for the run lifecycle ``AsyncMachine``."""

    def __init__(self, run: PipelineRun, stages: Sequence[Stage]) -> None:
        self._run = run
        self._stages = stages
        self.state: str = run.current_state

    def has_stages(self, *args, **kwargs) -> bool:
        """True when the job graph has at least one stage."""
        return bool(self._stages)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class PipelineController:
    """Executes build runs for one project configuration."""

    def __init__(
        self,
        config: PipelineConfig,
        runtime: RuntimeContext | None = None,
        hooks: NotificationHooks | None = None,
        history: BuildHistory | None = None,
        service_env: ServiceEnvironment | None = None,
        credentials: RegistryCredentials | None = None,
        probe: ProbeFn | None = None,
        shutdown: GracefulShutdown | None = None,
        catalog: dict[str, Stage] | None = None,
        show_progress: bool = True,
    ) -> None:
        self.config = config
        self.state_dir = config.resolve(config.state_dir)
        self.runtime = runtime or RuntimeContext(workdir=config.project.root)
        self.hooks = hooks or NotificationHooks(
            _notifiers_for(config), notify_on=config.notifications.notify_on
        )
        self.history = history or BuildHistory.open(
            self.state_dir, max_builds=config.history.max_builds
        )
        self.service_env = service_env or ServiceEnvironment()
        self.credentials = credentials
        self.probe = probe
        self.shutdown = shutdown
        self.catalog = catalog
        self.show_progress = show_progress

    async def execute(self, event: TriggerEvent) -> PipelineRun:
        """Run *event*'s job graph to completion and return the finished run."""
        ensure_dir(self.state_dir)
        stage_names = select_stages(event, self.config)
        stages = resolve_stages(stage_names, self.catalog)

        run = PipelineRun(
            build_number=self.history.allocate(),
            revision=event.revision,
            trigger=event.kind.value,
            ref=event.ref,
            planned_stages=stage_names,
        )
        if self.shutdown is not None:
            self.shutdown.set_run(run)

        model = RunModel(run, stages)
        create_run_machine(model)
        ctx = StageContext(
            runtime=self.runtime,
            config=self.config,
            run=run,
            event=event,
            ledger=ImageLedger(run.build_number),
            service_env=self.service_env,
            credentials=self.credentials,
            probe=self.probe,
        )

        with build_context(run.build_number):
            logger.info(
                "Build #%d started (%s %s, %d stages)",
                run.build_number, run.trigger, run.ref, len(stages),
            )
            if self.show_progress:
                display.print_run_header(run)
            run.save(self.state_dir)
            try:
                await model.start()  # type: ignore[attr-defined]
                run.current_state = model.state
                self.runtime.start_clock(self.config.timeout_minutes * 60)
                await self._run_stages(run, ctx, stages)
                await model.stages_done()  # type: ignore[attr-defined]
            except Exception as exc:
                logger.exception("Unexpected controller error in build #%d", run.build_number)
                run.stage_results.append(
                    StageResult(
                        name="controller",
                        status=StageStatus.FATAL_FAIL,
                        reason=f"{type(exc).__name__}: {exc}",
                    )
                )
            finally:
                self.runtime.stop_clock()
                if model.state != "cleaning_up":
                    await model.abort()  # type: ignore[attr-defined]
                run.current_state = model.state
                await self._cleanup(run, ctx)
                await self._finalize(run, model)
        return run

    async def _run_stages(
        self,
        run: PipelineRun,
        ctx: StageContext,
        stages: Sequence[Stage],
    ) -> None:
        """Execute *stages* in order, skipping the rest after a fatal failure."""
        abort_reason = ""
        for stage in stages:
            if not abort_reason and self.shutdown is not None and self.shutdown.should_stop:
                run.interrupted = True
                run.interrupt_reason = "Signal received"
                run.stage_results.append(
                    StageResult(
                        name=stage.name,
                        status=StageStatus.FATAL_FAIL,
                        policy=stage.policy,
                        reason="Shutdown requested before stage started",
                    )
                )
                abort_reason = "run interrupted"
                continue

            if abort_reason:
                run.stage_results.append(
                    StageResult(
                        name=stage.name,
                        status=StageStatus.SKIPPED,
                        policy=stage.policy,
                        reason=abort_reason,
                    )
                )
                continue

            if self.show_progress:
                display.print_stage_start(stage.name)
            result = await run_stage(stage, ctx)
            run.stage_results.append(result)
            run.images = ctx.ledger.images
            run.save(self.state_dir)
            if self.show_progress:
                display.print_stage_result(result)

            if result.status is StageStatus.FATAL_FAIL:
                abort_reason = f"skipped after fatal failure in '{stage.name}'"

        if run.interrupted and abort_reason != "run interrupted":
            # The signal stopped no stage.
            logger.info("Shutdown requested but no stage was stopped; clearing interrupt flag")
            run.interrupted = False
            run.interrupt_reason = ""

    async def _cleanup(self, run: PipelineRun, ctx: StageContext) -> None:
        """Always-run post step: tear down the project's containers.

        The compose teardown is skipped when the integration harness
        already released the service graph.  Never raises; failures are
        logged.
        """
        run.cleanup_runs += 1
        compose_file = self.config.resolve(self.config.integration.compose_file)
        report = ctx.harness_report
        if report is not None and report.teardown_ok:
            logger.debug("Service graph already released by the integration harness")
        elif compose_file.exists():
            args = ["down", "--remove-orphans"]
            if self.config.cleanup.remove_volumes:
                args.insert(1, "-v")
            try:
                result = await self.runtime.compose(
                    compose_file, self.config.integration.project_name, *args
                )
                if not result.ok:
                    logger.warning("Cleanup teardown exited with %d", result.returncode)
            except Exception as exc:
                logger.warning("Cleanup teardown failed: %s", exc)
        else:
            logger.debug("No compose file at %s; nothing to tear down", compose_file)

        if self.config.cleanup.clean_workspace:
            dist = self.config.resolve(self.config.project.frontend_dist_dir)
            shutil.rmtree(dist, ignore_errors=True)
            logger.info("Removed workspace build output %s", dist)

    async def _finalize(self, run: PipelineRun, model: RunModel) -> None:
        """Aggregate status, persist, record history, fire the hook."""
        run.status = aggregate_status(run.stage_results)
        await model.finish()  # type: ignore[attr-defined]
        run.current_state = model.state
        run.finished_at = now_iso()
        run.save(self.state_dir)
        self.history.record(run)
        logger.info("Build #%d finished: %s", run.build_number, run.status.value)
        if self.show_progress:
            display.print_stage_table(run)
            display.print_final_summary(run)
        await self.hooks.fire(run)


def _notifiers_for(config: PipelineConfig) -> list[Notifier]:
    notifiers: list[Notifier] = [LogNotifier()]
    if config.notifications.webhook_url:
        notifiers.append(WebhookNotifier(config.notifications.webhook_url))
    return notifiers


async def execute_pipeline(
    event: TriggerEvent,
    config_path: str | Path | None = None,
    config: PipelineConfig | None = None,
    **controller_kwargs: Any,
) -> PipelineRun:
    """Execute one build run end to end.

    This is the top-level entry point used by the CLI.  It loads the
    configuration, installs the graceful-shutdown handler for the
    duration of the run and returns the finished run.

    Parameters
    ----------
    event:
        The trigger that started this run.
    config_path:
        Optional path to the pipeline YAML.
    config:
        Already-loaded configuration; takes precedence over *config_path*.
    """
    config = config or load_pipeline_config(config_path)
    shutdown = controller_kwargs.pop("shutdown", None) or GracefulShutdown(
        config.resolve(config.state_dir)
    )
    shutdown.install()
    try:
        controller = PipelineController(config, shutdown=shutdown, **controller_kwargs)
        return await controller.execute(event)
    finally:
        shutdown.uninstall()


__all__ = [
    "PipelineController",
    "RunModel",
    "execute_pipeline",
]
