"""Typer command-line interface for the MEAN pipeline.

Commands: ``init``, ``run``, ``validate``, ``compose``, ``status`` and
``history``.  Asynchronous commands wrap exactly one ``asyncio.run`` call.
"""

from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.pipeline_controller import display
from src.pipeline_controller.config import PipelineConfig, load_pipeline_config
from src.pipeline_controller.exceptions import ConfigurationError, PipelineError
from src.pipeline_controller.history import BuildHistory
from src.pipeline_controller.state import PipelineRun
from src.pipeline_controller.triggers import TriggerEvent
from src.pipeline_shared import __version__
from src.pipeline_shared.models import RunStatus, TriggerKind
from src.shared.logging import setup_logging

app = typer.Typer(
    name="mean-pipeline",
    help="Build, verify and publish the MEAN tutorial application.",
    no_args_is_help=True,
)

_console = Console()

DEFAULT_CONFIG_FILE = "pipeline.yml"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_UNSTABLE_STRICT = 2

_DEFAULT_CONFIG_TEMPLATE = """\
# MEAN pipeline configuration
# Every key is optional; missing values fall back to the defaults shown.

project:
  root: "."
  backend_dir: backend
  frontend_dir: frontend
  nginx_dir: nginx
  frontend_dist_dir: frontend/dist

# Commands run by the install, test and build stages
commands:
  install: [npm, ci]
  backend_test: [npm, test]
  frontend_test: [npm, test, "--", "--watch=false", "--browsers=ChromeHeadless"]
  frontend_lint: [npm, run, lint]
  frontend_build: [npm, run, build, "--", "--configuration", production]
  audit: [npm, audit, "--audit-level=high"]

integration:
  compose_file: docker-compose.yml
  project_name: mean-app
  settle_seconds: 30           # static wait before the single health probe
  health_url: http://localhost:80/api/tutorials
  probe_timeout_seconds: 10

publish:
  registry: ""                 # e.g. ghcr.io; empty keeps images local
  namespace: ""
  artifacts_dir: artifacts
  branches: [main, develop]    # branch pushes that also push images

history:
  max_builds: 10               # older runs are discarded

cleanup:
  remove_volumes: true
  clean_workspace: false

notifications:
  webhook_url: ""
  notify_on: [success, unstable, failure]

timeout_minutes: 30            # wall-clock budget for the whole run
state_dir: .pipeline
log_level: INFO
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        _console.print(f"mean-pipeline {__version__}")
        raise typer.Exit()


def _check_docker() -> bool:
    """Return True when the docker CLI answers ``docker info``."""
    try:
        result = subprocess.run(
            ["docker", "info"], capture_output=True, text=True, timeout=15
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def _git_revision(root: str) -> str:
    """Return ``git rev-parse HEAD`` in *root*, or an empty string."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return ""
    return result.stdout.strip() if result.returncode == 0 else ""


def _load_config(config: Path) -> PipelineConfig:
    try:
        return load_pipeline_config(config)
    except ConfigurationError as exc:
        display.print_error_panel(exc)
        raise typer.Exit(code=EXIT_FAILURE)


def _exit_code(status: RunStatus | None, strict: bool) -> int:
    if status is RunStatus.SUCCESS:
        return EXIT_SUCCESS
    if status is RunStatus.UNSTABLE:
        return EXIT_UNSTABLE_STRICT if strict else EXIT_SUCCESS
    return EXIT_FAILURE


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """MEAN tutorial application CI/CD pipeline."""


@app.command()
def init(
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Where to write the config."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file."),
) -> None:
    """Write a default pipeline.yml."""
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / DEFAULT_CONFIG_FILE
    if target.exists() and not force:
        _console.print(f"[red]Refusing to overwrite existing config[/red] {target} (use --force)")
        raise typer.Exit(code=EXIT_FAILURE)
    target.write_text(_DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    _console.print(f"[green]Wrote {target}[/green]")

    if not _check_docker():
        _console.print(
            "[yellow]Warning: Docker is not available. "
            "Image and integration stages will fail.[/yellow]"
        )


@app.command(name="run")
def run_cmd(
    trigger: TriggerKind = typer.Option(TriggerKind.MANUAL, "--trigger", "-t", help="What started the run."),
    ref: str = typer.Option("main", "--ref", "-r", help="Branch name, or version tag for tag triggers."),
    revision: str = typer.Option("", "--revision", help="Commit sha (defaults to git HEAD)."),
    config: Path = typer.Option(Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="Pipeline config file."),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 2 for unstable runs."),
) -> None:
    """Execute the job graph for one trigger."""
    from src.pipeline_controller import pipeline
    from src.shared.config import RegistryCredentials

    cfg = _load_config(config)
    setup_logging("mean-pipeline", cfg.log_level)

    try:
        event = TriggerEvent(
            kind=trigger,
            ref=ref,
            revision=revision or _git_revision(cfg.project.root),
        )
    except ConfigurationError as exc:
        display.print_error_panel(exc)
        raise typer.Exit(code=EXIT_FAILURE)

    try:
        run = asyncio.run(
            pipeline.execute_pipeline(
                event, config=cfg, credentials=RegistryCredentials()
            )
        )
    except PipelineError as exc:
        display.print_error_panel(exc)
        raise typer.Exit(code=EXIT_FAILURE)

    if run.status is RunStatus.UNSTABLE:
        _console.print("[yellow]Build is unstable: some soft stages failed.[/yellow]")
    code = _exit_code(run.status, strict)
    if code != EXIT_SUCCESS:
        raise typer.Exit(code=code)


@app.command()
def validate(
    config: Path = typer.Option(Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="Pipeline config file."),
    compose_file: Optional[Path] = typer.Option(None, "--file", "-f", help="Compose file to validate."),
) -> None:
    """Validate the compose descriptor without starting anything."""
    from src.container_ops.compose_validator import ComposeValidator
    from src.container_ops.runtime import RuntimeContext

    cfg = _load_config(config)
    target = compose_file or cfg.resolve(cfg.integration.compose_file)
    validator = ComposeValidator(
        RuntimeContext(workdir=cfg.resolve(".")), cfg.integration.project_name
    )
    result = asyncio.run(validator.validate(target))

    if result.valid:
        _console.print(f"[green]Compose file is valid[/green]: {result.compose_file}")
        _console.print(f"Services: {', '.join(result.services)}")
        return
    _console.print(f"[red]Compose file is invalid[/red]: {result.compose_file}")
    for problem in result.problems:
        _console.print(f"  - {problem}")
    raise typer.Exit(code=EXIT_FAILURE)


@app.command()
def compose(
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Write files here instead of printing."),
    project_name: str = typer.Option("mean-app", "--project-name", help="Compose project / container prefix."),
    database: str = typer.Option("dd_db", "--database", help="Application database name."),
) -> None:
    """Generate docker-compose.yml and the MongoDB init script."""
    from src.container_ops.compose_generator import ComposeGenerator

    generator = ComposeGenerator(project_name=project_name, database=database)
    result = generator.generate(output_dir)
    if output_dir is None:
        typer.echo(result)
    else:
        _console.print(f"[green]Wrote {result}[/green]")


@app.command()
def status(
    build: Optional[int] = typer.Argument(None, help="Build number (defaults to the latest)."),
    config: Path = typer.Option(Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="Pipeline config file."),
) -> None:
    """Show the stage table for one build."""
    cfg = _load_config(config)
    state_dir = cfg.resolve(cfg.state_dir)
    if build is None:
        run = BuildHistory.open(state_dir, cfg.history.max_builds).latest()
    else:
        run = PipelineRun.load(build, state_dir)
    if run is None:
        _console.print("[red]No build found.[/red]")
        raise typer.Exit(code=EXIT_FAILURE)

    display.print_run_header(run)
    display.print_stage_table(run)
    if run.status is not None:
        display.print_final_summary(run)


@app.command()
def history(
    config: Path = typer.Option(Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="Pipeline config file."),
) -> None:
    """List retained builds."""
    cfg = _load_config(config)
    builds = BuildHistory.open(cfg.resolve(cfg.state_dir), cfg.history.max_builds)
    display.print_history_table(builds.runs())


if __name__ == "__main__":
    app()
