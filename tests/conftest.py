"""Shared test fixtures for the pipeline test suite.

No test needs Docker, npm or the network: every stage goes through a
:class:`FakeRuntime` that records commands and answers from rules.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

import pytest

from src.container_ops.compose_generator import ComposeGenerator
from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.config import (
    IntegrationConfig,
    PipelineConfig,
    ProjectConfig,
)
from src.pipeline_controller.exceptions import RunTimeoutError
from src.pipeline_shared.models import CommandResult, ProbeResult


def _contains(command: Sequence[str], fragment: Sequence[str]) -> bool:
    """True when *fragment* appears as a contiguous run inside *command*."""
    n = len(fragment)
    return any(list(command[i:i + n]) == list(fragment) for i in range(len(command) - n + 1))


class FakeRuntime(RuntimeContext):
    """Recording runtime: succeeds unless a rule says otherwise."""

    def __init__(self, workdir: Path | str = ".", timeout_seconds: float | None = None) -> None:
        super().__init__(workdir=workdir, timeout_seconds=timeout_seconds)
        self.calls: list[dict[str, Any]] = []
        self.sleeps: list[float] = []
        self._rules: list[tuple[tuple[str, ...], str | None, int, str, bool]] = []

    # -- rules ---------------------------------------------------------

    def fail_when(self, *fragment: str, cwd: str | None = None, returncode: int = 1, stderr: str = "boom") -> None:
        """Commands containing *fragment* (optionally in a directory named *cwd*) fail."""
        self._rules.append((fragment, cwd, returncode, stderr, False))

    def timeout_when(self, *fragment: str, cwd: str | None = None) -> None:
        """Commands containing *fragment* exhaust the run deadline."""
        self._rules.append((fragment, cwd, 0, "", True))

    # -- queries -------------------------------------------------------

    @property
    def commands(self) -> list[list[str]]:
        return [call["command"] for call in self.calls]

    def count(self, *fragment: str) -> int:
        return sum(1 for cmd in self.commands if _contains(cmd, fragment))

    def ran(self, *fragment: str) -> bool:
        return self.count(*fragment) > 0

    # -- RuntimeContext overrides --------------------------------------

    def run_sync(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        self.check_deadline()
        cmd = [str(part) for part in command]
        workdir = Path(cwd) if cwd is not None else self.workdir
        self.calls.append(
            {"command": cmd, "cwd": workdir, "env": dict(env or {}), "input_text": input_text}
        )
        for fragment, rule_cwd, returncode, stderr, timeout in self._rules:
            if not _contains(cmd, fragment):
                continue
            if rule_cwd is not None and workdir.name != rule_cwd:
                continue
            if timeout:
                raise RunTimeoutError(self.timeout_seconds or 0)
            return CommandResult(command=cmd, returncode=returncode, stderr=stderr)
        return CommandResult(command=cmd, returncode=0, stdout="ok")

    async def run(
        self,
        command: Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        return self.run_sync(command, cwd=cwd, env=env, input_text=input_text)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.check_deadline()


async def healthy_probe(url: str, timeout: float) -> ProbeResult:
    return ProbeResult(url=url, healthy=True, status_code=200)


async def unhealthy_probe(url: str, timeout: float) -> ProbeResult:
    return ProbeResult(url=url, healthy=False, error="ConnectError: connection refused")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runtime(tmp_path: Path) -> FakeRuntime:
    return FakeRuntime(workdir=tmp_path)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A MEAN checkout: service trees, a built bundle and a compose file."""
    for name in ("backend", "frontend", "nginx"):
        (tmp_path / name).mkdir()
        (tmp_path / name / "Dockerfile").write_text("FROM scratch\n", encoding="utf-8")
    dist = tmp_path / "frontend" / "dist"
    dist.mkdir()
    (dist / "index.html").write_text("<app-root></app-root>\n", encoding="utf-8")
    ComposeGenerator(project_name="test-app").generate(tmp_path)
    return tmp_path


@pytest.fixture
def pipeline_config(project_dir: Path) -> PipelineConfig:
    return PipelineConfig(
        project=ProjectConfig(root=str(project_dir)),
        integration=IntegrationConfig(project_name="test-app", settle_seconds=0),
    )
