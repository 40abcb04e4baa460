"""Configuration dataclasses and loader for the pipeline controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.pipeline_shared.constants import (
    DEFAULT_HEALTH_URL,
    DEFAULT_MAX_BUILDS,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_PROJECT_NAME,
    DEFAULT_RUN_TIMEOUT_MINUTES,
    DEFAULT_SETTLE_SECONDS,
    STATE_DIR,
)
from src.pipeline_controller.exceptions import ConfigurationError


@dataclass
class ProjectConfig:
    """Where the application's source trees live."""

    root: str = "."
    backend_dir: str = "backend"
    frontend_dir: str = "frontend"
    nginx_dir: str = "nginx"
    frontend_dist_dir: str = "frontend/dist"


@dataclass
class CommandsConfig:
    """Package-manager commands run by the install, test and build stages."""

    install: list[str] = field(default_factory=lambda: ["npm", "ci"])
    backend_test: list[str] = field(default_factory=lambda: ["npm", "test"])
    frontend_test: list[str] = field(
        default_factory=lambda: [
            "npm", "test", "--", "--watch=false", "--browsers=ChromeHeadless",
        ]
    )
    frontend_lint: list[str] = field(default_factory=lambda: ["npm", "run", "lint"])
    frontend_build: list[str] = field(
        default_factory=lambda: [
            "npm", "run", "build", "--", "--configuration", "production",
        ]
    )
    audit: list[str] = field(
        default_factory=lambda: ["npm", "audit", "--audit-level=high"]
    )


@dataclass
class IntegrationConfig:
    """Configuration for compose validation and the integration harness."""

    compose_file: str = "docker-compose.yml"
    project_name: str = DEFAULT_PROJECT_NAME
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    health_url: str = DEFAULT_HEALTH_URL
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS


@dataclass
class PublishConfig:
    """Configuration for archiving and registry publishing."""

    registry: str = ""
    namespace: str = ""
    artifacts_dir: str = "artifacts"
    branches: list[str] = field(default_factory=lambda: ["main", "develop"])


@dataclass
class HistoryConfig:
    """Retention of finished build runs."""

    max_builds: int = DEFAULT_MAX_BUILDS


@dataclass
class CleanupConfig:
    """What the always-run post stage removes."""

    remove_volumes: bool = True
    clean_workspace: bool = False


@dataclass
class NotificationConfig:
    """Post-run notification hooks."""

    webhook_url: str = ""
    notify_on: list[str] = field(
        default_factory=lambda: ["success", "unstable", "failure"]
    )


@dataclass
class PipelineConfig:
    """Top-level configuration composing all sub-configs."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    commands: CommandsConfig = field(default_factory=CommandsConfig)
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    timeout_minutes: float = DEFAULT_RUN_TIMEOUT_MINUTES
    state_dir: str = STATE_DIR
    log_level: str = "INFO"

    def resolve(self, relative: str) -> Path:
        """Resolve *relative* against the project root (always absolute)."""
        path = Path(relative)
        if path.is_absolute():
            return path
        return (Path(self.project.root) / path).absolute()


_SECTIONS: dict[str, type] = {
    "project": ProjectConfig,
    "commands": CommandsConfig,
    "integration": IntegrationConfig,
    "publish": PublishConfig,
    "history": HistoryConfig,
    "cleanup": CleanupConfig,
    "notifications": NotificationConfig,
}


def _pick(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter *data* to only keys accepted by *cls*."""
    valid = {f.name for f in cls.__dataclass_fields__.values()}
    return {k: v for k, v in data.items() if k in valid}


def load_pipeline_config(path: Path | str | None = None) -> PipelineConfig:
    """Load pipeline configuration from a YAML file.

    Missing sections fall back to defaults.  Unknown keys are silently
    ignored so that forward-compatible config files work.

    Args:
        path: Path to config YAML.  If ``None`` or the file does not
              exist, returns full defaults.

    Returns:
        Populated configuration dataclass.

    Raises:
        ConfigurationError: If the file is not valid YAML or is not a mapping.
    """
    if path is None:
        return PipelineConfig()

    path = Path(path)
    if not path.exists():
        return PipelineConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")

    sections: dict[str, Any] = {}
    for key, cls in _SECTIONS.items():
        section_raw = raw.get(key) or {}
        if not isinstance(section_raw, dict):
            raise ConfigurationError(f"Section '{key}' in {path} must be a mapping")
        sections[key] = cls(**_pick(section_raw, cls))

    top_level = _pick(raw, PipelineConfig)
    for key in _SECTIONS:
        top_level.pop(key, None)

    cfg = PipelineConfig(**sections, **top_level)
    if cfg.history.max_builds < 1:
        raise ConfigurationError("history.max_builds must be at least 1")
    if cfg.timeout_minutes <= 0:
        raise ConfigurationError("timeout_minutes must be positive")
    return cfg
