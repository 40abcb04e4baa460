"""Tests for the dependency installer and the soft-failing suite runner."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.container_ops.installer import install_dependencies
from src.container_ops.suite_runner import run_suite
from src.pipeline_controller.exceptions import DependencyInstallError, SoftStageError
from tests.conftest import FakeRuntime


class TestInstaller:
    @pytest.mark.asyncio
    async def test_runs_install_in_component_dir(self, runtime: FakeRuntime, project_dir: Path) -> None:
        result = await install_dependencies(runtime, "backend", project_dir / "backend", ["npm", "ci"])
        assert result.ok
        assert runtime.calls[0]["command"] == ["npm", "ci"]
        assert runtime.calls[0]["cwd"] == project_dir / "backend"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_fatal(self, runtime: FakeRuntime, project_dir: Path) -> None:
        runtime.fail_when("npm", "ci", stderr="npm ERR! lockfile out of sync")
        with pytest.raises(DependencyInstallError) as exc_info:
            await install_dependencies(runtime, "frontend", project_dir / "frontend", ["npm", "ci"])
        assert exc_info.value.component == "frontend"
        assert "lockfile" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_directory(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        with pytest.raises(DependencyInstallError, match="not found"):
            await install_dependencies(runtime, "backend", tmp_path / "nope", ["npm", "ci"])
        assert runtime.calls == []


class TestSuiteRunner:
    @pytest.mark.asyncio
    async def test_success(self, runtime: FakeRuntime, project_dir: Path) -> None:
        result = await run_suite(runtime, "backend tests", project_dir / "backend", ["npm", "test"])
        assert result.ok

    @pytest.mark.asyncio
    async def test_failure_is_soft(self, runtime: FakeRuntime, project_dir: Path) -> None:
        runtime.fail_when("npm", "run", "lint", returncode=2, stderr="3 problems")
        with pytest.raises(SoftStageError, match="exit 2"):
            await run_suite(runtime, "frontend lint", project_dir / "frontend", ["npm", "run", "lint"])

    @pytest.mark.asyncio
    async def test_missing_directory_is_soft(self, runtime: FakeRuntime, tmp_path: Path) -> None:
        with pytest.raises(SoftStageError):
            await run_suite(runtime, "backend audit", tmp_path / "missing", ["npm", "audit"])
