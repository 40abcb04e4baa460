"""Static validation of the service-graph descriptor.

Checks the compose file's structure in Python, then asks ``docker
compose config --quiet`` to confirm.  Nothing is started: no containers,
networks or volumes are created.  Validation holds no state between
calls, so an unchanged descriptor always yields the same verdict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.exceptions import ComposeValidationError

logger = logging.getLogger(__name__)


@dataclass
class ComposeValidationResult:
    """Verdict for one compose file."""

    compose_file: str
    valid: bool = True
    problems: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)


def _named_volume(spec: Any) -> str | None:
    """Return the named volume in a service volume entry, if any."""
    if isinstance(spec, dict):
        if spec.get("type", "volume") != "volume":
            return None
        source = spec.get("source")
    elif isinstance(spec, str):
        parts = spec.split(":")
        if len(parts) < 2:
            return None
        source = parts[0]
    else:
        return None
    if not isinstance(source, str) or not source or source.startswith((".", "/", "~", "$")):
        return None
    return source


def _names(svc: dict, key: str, service: str, problems: list[str]) -> list[str]:
    """Return the names listed under *key* (a list or a mapping).

    Entries that are not plain strings are reported in *problems* and
    dropped.
    """
    value = svc.get(key) or []
    if not isinstance(value, (list, dict)):
        problems.append(f"service '{service}': '{key}' must be a list or mapping")
        return []
    names = []
    for item in value:
        if isinstance(item, str):
            names.append(item)
        else:
            problems.append(f"service '{service}': '{key}' entries must be names, got {item!r}")
    return names


def check_structure(document: Any) -> tuple[list[str], list[str]]:
    """Structural checks on a parsed compose document.

    Returns:
        Tuple of (problems, service_names).
    """
    problems: list[str] = []
    if not isinstance(document, dict):
        return (["top level must be a mapping"], [])

    services = document.get("services")
    if not isinstance(services, dict) or not services:
        return (["'services' must be a non-empty mapping"], [])

    networks = document.get("networks") or {}
    volumes = document.get("volumes") or {}
    if not isinstance(networks, dict):
        problems.append("'networks' must be a mapping")
        networks = {}
    if not isinstance(volumes, dict):
        problems.append("'volumes' must be a mapping")
        volumes = {}

    names = list(services)
    for name, svc in services.items():
        if not isinstance(svc, dict):
            problems.append(f"service '{name}' must be a mapping")
            continue
        if "image" not in svc and "build" not in svc:
            problems.append(f"service '{name}' needs 'image' or 'build'")

        for target in _names(svc, "depends_on", name, problems):
            if target not in services:
                problems.append(f"service '{name}' depends on unknown service '{target}'")
            elif target == name:
                problems.append(f"service '{name}' depends on itself")

        for net in _names(svc, "networks", name, problems):
            if net != "default" and net not in networks:
                problems.append(f"service '{name}' uses undeclared network '{net}'")

        svc_volumes = svc.get("volumes") or []
        if not isinstance(svc_volumes, list):
            problems.append(f"service '{name}': 'volumes' must be a list")
            svc_volumes = []
        for entry in svc_volumes:
            volume = _named_volume(entry)
            if volume is not None and volume not in volumes:
                problems.append(f"service '{name}' uses undeclared volume '{volume}'")

    return (problems, names)


class ComposeValidator:
    """Validates a compose descriptor without creating anything."""

    def __init__(self, runtime: RuntimeContext, project_name: str) -> None:
        self.runtime = runtime
        self.project_name = project_name

    async def validate(self, compose_file: Path | str) -> ComposeValidationResult:
        """Return the validation verdict for *compose_file*."""
        compose_file = Path(compose_file)
        result = ComposeValidationResult(compose_file=str(compose_file))

        try:
            text = compose_file.read_text(encoding="utf-8")
        except OSError as exc:
            result.valid = False
            result.problems.append(f"cannot read file: {exc}")
            return result

        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            result.valid = False
            result.problems.append(f"invalid YAML: {exc}")
            return result

        problems, services = check_structure(document)
        result.services = services
        if problems:
            result.valid = False
            result.problems.extend(problems)
            return result

        cmd = await self.runtime.compose(
            compose_file, self.project_name, "config", "--quiet"
        )
        if not cmd.ok:
            result.valid = False
            result.problems.append(
                f"docker compose config failed: {cmd.tail(5) or cmd.returncode}"
            )
        return result

    async def validate_or_raise(self, compose_file: Path | str) -> ComposeValidationResult:
        """Like :meth:`validate` but raise on an invalid descriptor.

        Raises:
            ComposeValidationError: If any problem was found.
        """
        result = await self.validate(compose_file)
        if not result.valid:
            logger.error(
                "Compose validation failed for %s: %s",
                result.compose_file,
                "; ".join(result.problems),
            )
            raise ComposeValidationError(result.compose_file, result.problems)
        logger.info(
            "Compose file %s is valid (%d services)",
            result.compose_file,
            len(result.services),
        )
        return result
