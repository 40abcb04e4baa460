"""Stage definitions and the stage boundary.

A :class:`Stage` pairs a name with an async action and a
:class:`FailurePolicy`.  :func:`run_stage` is the only place stage
errors are caught: every raw exception is converted into a tagged
:class:`StageResult` there, so nothing escapes to the controller.

Conversion rules:

* :class:`RunTimeoutError` and :class:`FatalStageError` -> fatal failure
* :class:`SoftStageError` -> soft failure (non-fatal stages: logged only)
* anything else -> the stage's declared policy
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from src.container_ops.compose_validator import ComposeValidator
from src.container_ops.image_builder import ImageBuilder, ImageSpec, build_frontend_bundle
from src.container_ops.image_tags import ImageLedger
from src.container_ops.installer import install_dependencies
from src.container_ops.integration_harness import IntegrationHarness, ProbeFn
from src.container_ops.publisher import (
    PublishError,
    RegistryPublisher,
    archive_frontend_dist,
    write_release_manifest,
)
from src.container_ops.runtime import RuntimeContext
from src.container_ops.suite_runner import run_suite
from src.pipeline_controller.config import PipelineConfig
from src.pipeline_controller.exceptions import (
    FatalStageError,
    RunTimeoutError,
    SoftStageError,
)
from src.pipeline_controller.state import PipelineRun
from src.pipeline_controller.triggers import TriggerEvent, publish_tags
from src.pipeline_shared.constants import (
    SERVICE_BACKEND,
    SERVICE_FRONTEND,
    SERVICE_NGINX,
    STAGE_ARCHIVE,
    STAGE_AUDIT,
    STAGE_BUILD_FRONTEND,
    STAGE_BUILD_IMAGES,
    STAGE_INSTALL_BACKEND,
    STAGE_INSTALL_FRONTEND,
    STAGE_INTEGRATION,
    STAGE_LINT_FRONTEND,
    STAGE_PUSH_IMAGES,
    STAGE_RELEASE,
    STAGE_TEST_BACKEND,
    STAGE_TEST_FRONTEND,
    STAGE_VALIDATE_COMPOSE,
)
from src.pipeline_shared.models import (
    FailurePolicy,
    HarnessReport,
    StageResult,
    StageStatus,
)
from src.shared.config import RegistryCredentials, ServiceEnvironment

logger = logging.getLogger(__name__)


@dataclass
class StageContext:
    """Everything a stage action may touch, passed in explicitly."""

    runtime: RuntimeContext
    config: PipelineConfig
    run: PipelineRun
    event: TriggerEvent
    ledger: ImageLedger
    service_env: ServiceEnvironment = field(default_factory=ServiceEnvironment)
    credentials: RegistryCredentials | None = None
    probe: ProbeFn | None = None
    harness_report: HarnessReport | None = None


StageAction = Callable[[StageContext], Awaitable["list[str] | None"]]


@dataclass(frozen=True)
class Stage:
    """A named unit of pipeline work."""

    name: str
    action: StageAction
    policy: FailurePolicy = FailurePolicy.FATAL


def _status_for(policy: FailurePolicy) -> StageStatus:
    if policy is FailurePolicy.FATAL:
        return StageStatus.FATAL_FAIL
    if policy is FailurePolicy.SOFT:
        return StageStatus.SOFT_FAIL
    return StageStatus.OK


async def run_stage(stage: Stage, ctx: StageContext) -> StageResult:
    """Execute *stage* and convert its outcome into a :class:`StageResult`."""
    result = StageResult(name=stage.name, policy=stage.policy)
    started = time.monotonic()
    try:
        notes = await stage.action(ctx)
        if notes:
            result.notes.extend(notes)
    except (RunTimeoutError, FatalStageError) as exc:
        result.status = StageStatus.FATAL_FAIL
        result.reason = str(exc)
        logger.error("Stage '%s' failed fatally: %s", stage.name, exc)
    except SoftStageError as exc:
        result.status = _status_for(
            FailurePolicy.NON_FATAL if stage.policy is FailurePolicy.NON_FATAL else FailurePolicy.SOFT
        )
        result.reason = str(exc)
        logger.warning("Stage '%s' failed (continuing): %s", stage.name, exc)
    except Exception as exc:
        result.status = _status_for(stage.policy)
        result.reason = f"{type(exc).__name__}: {exc}"
        if stage.policy is FailurePolicy.FATAL:
            logger.error("Stage '%s' failed fatally: %s", stage.name, exc)
        else:
            logger.warning("Stage '%s' failed (continuing): %s", stage.name, exc)
    result.duration_seconds = time.monotonic() - started
    return result


# ---------------------------------------------------------------------------
# Stage actions
# ---------------------------------------------------------------------------


async def _install_backend(ctx: StageContext) -> None:
    cfg = ctx.config
    await install_dependencies(
        ctx.runtime, SERVICE_BACKEND, cfg.resolve(cfg.project.backend_dir), cfg.commands.install
    )


async def _install_frontend(ctx: StageContext) -> None:
    cfg = ctx.config
    await install_dependencies(
        ctx.runtime, SERVICE_FRONTEND, cfg.resolve(cfg.project.frontend_dir), cfg.commands.install
    )


async def _lint_frontend(ctx: StageContext) -> None:
    cfg = ctx.config
    await run_suite(
        ctx.runtime, "frontend lint", cfg.resolve(cfg.project.frontend_dir), cfg.commands.frontend_lint
    )


async def _test_backend(ctx: StageContext) -> None:
    cfg = ctx.config
    await run_suite(
        ctx.runtime, "backend tests", cfg.resolve(cfg.project.backend_dir), cfg.commands.backend_test
    )


async def _test_frontend(ctx: StageContext) -> None:
    cfg = ctx.config
    await run_suite(
        ctx.runtime, "frontend tests", cfg.resolve(cfg.project.frontend_dir), cfg.commands.frontend_test
    )


async def _audit(ctx: StageContext) -> list[str]:
    """Audit both trees; report every finding before failing."""
    cfg = ctx.config
    failures: list[str] = []
    for component, directory in (
        (SERVICE_BACKEND, cfg.project.backend_dir),
        (SERVICE_FRONTEND, cfg.project.frontend_dir),
    ):
        try:
            await run_suite(
                ctx.runtime, f"{component} audit", cfg.resolve(directory), cfg.commands.audit
            )
        except SoftStageError as exc:
            failures.append(str(exc))
    if failures:
        raise SoftStageError("; ".join(failures))
    return ["no high-severity advisories"]


async def _build_frontend(ctx: StageContext) -> None:
    cfg = ctx.config
    await build_frontend_bundle(
        ctx.runtime, cfg.resolve(cfg.project.frontend_dir), cfg.commands.frontend_build
    )


async def _build_images(ctx: StageContext) -> list[str]:
    cfg = ctx.config
    specs = [
        ImageSpec(SERVICE_BACKEND, cfg.resolve(cfg.project.backend_dir)),
        ImageSpec(SERVICE_FRONTEND, cfg.resolve(cfg.project.frontend_dir)),
        ImageSpec(SERVICE_NGINX, cfg.resolve(cfg.project.nginx_dir)),
    ]
    images = await ImageBuilder(ctx.runtime, ctx.ledger).build_all(specs)
    return [image.reference for image in images]


async def _validate_compose(ctx: StageContext) -> list[str]:
    cfg = ctx.config
    validator = ComposeValidator(ctx.runtime, cfg.integration.project_name)
    result = await validator.validate_or_raise(cfg.resolve(cfg.integration.compose_file))
    return [f"services: {', '.join(result.services)}"]


async def _integration_test(ctx: StageContext) -> list[str]:
    cfg = ctx.config
    env = ctx.service_env.as_env()
    env["BUILD_NUMBER"] = str(ctx.run.build_number)
    harness = IntegrationHarness(
        ctx.runtime,
        compose_file=cfg.resolve(cfg.integration.compose_file),
        project_name=cfg.integration.project_name,
        health_url=cfg.integration.health_url,
        settle_seconds=cfg.integration.settle_seconds,
        probe_timeout_seconds=cfg.integration.probe_timeout_seconds,
        env=env,
        probe=ctx.probe,
    )
    try:
        report = await harness.run()
    finally:
        ctx.harness_report = harness.report
    probe = report.probe
    if probe is None:
        return []
    if probe.healthy:
        return [f"health check passed ({probe.status_code})"]
    return [f"health check failed: {probe.error or probe.status_code} (not gating)"]


async def _archive(ctx: StageContext) -> list[str]:
    cfg = ctx.config
    path = archive_frontend_dist(
        cfg.resolve(cfg.project.frontend_dist_dir),
        cfg.resolve(cfg.publish.artifacts_dir),
        ctx.run.build_number,
    )
    ctx.run.archive_path = str(path)
    return [path.name, *ctx.ledger.references()]


async def _push_images(ctx: StageContext) -> list[str]:
    if not ctx.ledger.services:
        raise PublishError("No images were built in this run")
    publisher = RegistryPublisher(
        ctx.runtime,
        registry=ctx.config.publish.registry,
        namespace=ctx.config.publish.namespace,
        credentials=ctx.credentials,
    )
    pushed = await publisher.push(ctx.ledger, publish_tags(ctx.event, ctx.run.build_number))
    ctx.run.pushed_images = pushed
    return pushed


async def _release(ctx: StageContext) -> list[str]:
    version = ctx.event.version
    if not version:
        raise PublishError(f"'{ctx.event.ref}' is not a release tag")
    path = write_release_manifest(
        ctx.config.resolve(ctx.config.publish.artifacts_dir),
        version=version,
        build_number=ctx.run.build_number,
        revision=ctx.event.revision,
        images=ctx.run.pushed_images or ctx.ledger.references(),
        archive_path=ctx.run.archive_path,
    )
    ctx.run.release_manifest = str(path)
    return [path.name]


STAGE_CATALOG: dict[str, Stage] = {
    stage.name: stage
    for stage in (
        Stage(STAGE_INSTALL_BACKEND, _install_backend, FailurePolicy.FATAL),
        Stage(STAGE_INSTALL_FRONTEND, _install_frontend, FailurePolicy.FATAL),
        Stage(STAGE_LINT_FRONTEND, _lint_frontend, FailurePolicy.SOFT),
        Stage(STAGE_TEST_BACKEND, _test_backend, FailurePolicy.SOFT),
        Stage(STAGE_TEST_FRONTEND, _test_frontend, FailurePolicy.SOFT),
        Stage(STAGE_AUDIT, _audit, FailurePolicy.SOFT),
        Stage(STAGE_BUILD_FRONTEND, _build_frontend, FailurePolicy.FATAL),
        Stage(STAGE_BUILD_IMAGES, _build_images, FailurePolicy.FATAL),
        Stage(STAGE_VALIDATE_COMPOSE, _validate_compose, FailurePolicy.FATAL),
        Stage(STAGE_INTEGRATION, _integration_test, FailurePolicy.SOFT),
        Stage(STAGE_ARCHIVE, _archive, FailurePolicy.NON_FATAL),
        Stage(STAGE_PUSH_IMAGES, _push_images, FailurePolicy.NON_FATAL),
        Stage(STAGE_RELEASE, _release, FailurePolicy.NON_FATAL),
    )
}


def resolve_stages(names: list[str], catalog: dict[str, Stage] | None = None) -> list[Stage]:
    """Look up *names* in the catalog, preserving order.

    Raises:
        KeyError: For an unknown stage name.
    """
    catalog = STAGE_CATALOG if catalog is None else catalog
    return [catalog[name] for name in names]
