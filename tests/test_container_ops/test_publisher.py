"""Tests for artifact archiving, registry pushes and release manifests."""

from __future__ import annotations

import json
import tarfile
from pathlib import Path

import pytest

from src.container_ops.image_tags import ImageLedger
from src.container_ops.publisher import (
    PublishError,
    RegistryPublisher,
    archive_frontend_dist,
    archive_name,
    write_release_manifest,
)
from src.shared.config import RegistryCredentials
from tests.conftest import FakeRuntime


def _ledger(build_number: int = 8) -> ImageLedger:
    ledger = ImageLedger(build_number)
    for service in ("backend", "frontend", "nginx"):
        ledger.record_numbered(service)
        ledger.record_latest(service)
    return ledger


class TestArchive:
    def test_archive_name(self) -> None:
        assert archive_name(14) == "frontend-dist-14.tar.gz"

    def test_archives_dist(self, project_dir: Path, tmp_path: Path) -> None:
        path = archive_frontend_dist(project_dir / "frontend" / "dist", tmp_path / "artifacts", 3)
        assert path == tmp_path / "artifacts" / "frontend-dist-3.tar.gz"
        with tarfile.open(path, "r:gz") as tar:
            assert "dist/index.html" in tar.getnames()

    def test_missing_dist(self, tmp_path: Path) -> None:
        with pytest.raises(PublishError, match="No frontend build output"):
            archive_frontend_dist(tmp_path / "dist", tmp_path / "artifacts", 1)

    def test_empty_dist(self, tmp_path: Path) -> None:
        (tmp_path / "dist").mkdir()
        with pytest.raises(PublishError):
            archive_frontend_dist(tmp_path / "dist", tmp_path / "artifacts", 1)


class TestRegistryPublisher:
    @pytest.mark.asyncio
    async def test_push_every_service_and_tag(self, runtime: FakeRuntime) -> None:
        publisher = RegistryPublisher(runtime, registry="ghcr.io", namespace="acme")
        pushed = await publisher.push(_ledger(), ["8", "main", "latest"])
        assert len(pushed) == 9
        assert "ghcr.io/acme/backend:8" in pushed
        assert "ghcr.io/acme/nginx:latest" in pushed
        assert runtime.ran("docker", "tag", "frontend:8", "ghcr.io/acme/frontend:main")
        assert runtime.count("docker", "push") == 9

    @pytest.mark.asyncio
    async def test_pushes_from_numbered_image(self, runtime: FakeRuntime) -> None:
        await RegistryPublisher(runtime).push(_ledger(2), ["latest"])
        sources = {cmd[2] for cmd in runtime.commands if cmd[:2] == ["docker", "tag"]}
        assert sources == {"backend:2", "frontend:2", "nginx:2"}

    @pytest.mark.asyncio
    async def test_login_with_credentials(self, runtime: FakeRuntime) -> None:
        creds = RegistryCredentials(username="ci-bot", password="token")
        await RegistryPublisher(runtime, registry="ghcr.io", credentials=creds).push(_ledger(), ["8"])
        login = runtime.calls[0]
        assert login["command"] == ["docker", "login", "-u", "ci-bot", "--password-stdin", "ghcr.io"]
        assert login["input_text"] == "token"

    @pytest.mark.asyncio
    async def test_no_login_without_credentials(self, runtime: FakeRuntime) -> None:
        await RegistryPublisher(runtime).push(_ledger(), ["8"])
        assert not runtime.ran("docker", "login")

    @pytest.mark.asyncio
    async def test_push_failure(self, runtime: FakeRuntime) -> None:
        runtime.fail_when("docker", "push", stderr="denied: requested access")
        with pytest.raises(PublishError, match="denied"):
            await RegistryPublisher(runtime).push(_ledger(), ["8"])

    @pytest.mark.asyncio
    async def test_login_failure(self, runtime: FakeRuntime) -> None:
        runtime.fail_when("docker", "login", stderr="unauthorized")
        creds = RegistryCredentials(username="ci-bot", password="wrong")
        with pytest.raises(PublishError, match="docker login failed"):
            await RegistryPublisher(runtime, credentials=creds).push(_ledger(), ["8"])
        assert not runtime.ran("docker", "push")


def test_release_manifest(tmp_path: Path) -> None:
    path = write_release_manifest(
        tmp_path,
        version="1.4.0",
        build_number=21,
        revision="0a1b2c3d4e",
        images=["backend:1.4.0"],
        archive_path="artifacts/frontend-dist-21.tar.gz",
    )
    assert path.name == "release-1.4.0.json"
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["version"] == "1.4.0"
    assert data["build_number"] == 21
    assert data["images"] == ["backend:1.4.0"]
    assert data["archive"] == "artifacts/frontend-dist-21.tar.gz"
