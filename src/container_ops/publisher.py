"""Artifact publisher.

Archives the frontend build output under a build-numbered name, pushes
images to the registry, and writes release manifests.  Every failure in
here is a side-effect failure: the controller logs it and moves on.
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path
from typing import Sequence

from src.container_ops.image_tags import ImageLedger, registry_reference
from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.exceptions import PipelineError
from src.pipeline_shared.constants import ARCHIVE_NAME_TEMPLATE
from src.pipeline_shared.utils import atomic_write_json, ensure_dir, now_iso
from src.shared.config import RegistryCredentials

logger = logging.getLogger(__name__)


class PublishError(PipelineError):
    """Raised when archiving or pushing fails."""

    pass


def archive_name(build_number: int) -> str:
    return ARCHIVE_NAME_TEMPLATE.format(build_number=build_number)


def archive_frontend_dist(
    dist_dir: Path | str,
    artifacts_dir: Path | str,
    build_number: int,
) -> Path:
    """Pack *dist_dir* into ``frontend-dist-{N}.tar.gz`` under *artifacts_dir*.

    Raises:
        PublishError: If the dist directory is missing or empty.
    """
    dist_dir = Path(dist_dir)
    if not dist_dir.is_dir() or not any(dist_dir.iterdir()):
        raise PublishError(f"No frontend build output in {dist_dir}")

    target = ensure_dir(artifacts_dir) / archive_name(build_number)
    with tarfile.open(target, "w:gz") as tar:
        tar.add(dist_dir, arcname=dist_dir.name)
    logger.info("Archived %s to %s", dist_dir, target)
    return target


class RegistryPublisher:
    """Tags local ``service:N`` images with registry references and pushes them."""

    def __init__(
        self,
        runtime: RuntimeContext,
        registry: str = "",
        namespace: str = "",
        credentials: RegistryCredentials | None = None,
    ) -> None:
        self.runtime = runtime
        self.registry = registry
        self.namespace = namespace
        self.credentials = credentials

    async def login(self) -> None:
        """``docker login`` when credentials are configured."""
        if self.credentials is None or not self.credentials.configured:
            logger.debug("No registry credentials configured; skipping login")
            return
        args = ["login", "-u", self.credentials.username, "--password-stdin"]
        if self.registry:
            args.append(self.registry)
        result = await self.runtime.docker(*args, input_text=self.credentials.password)
        if not result.ok:
            raise PublishError(f"docker login failed: {result.tail(5)}")

    async def push(self, ledger: ImageLedger, tags: Sequence[str]) -> list[str]:
        """Push every service in *ledger* under each of *tags*.

        Returns:
            Registry references that were pushed.

        Raises:
            PublishError: On the first failing ``docker tag`` or ``docker push``.
        """
        await self.login()
        pushed: list[str] = []
        for service in ledger.services:
            source = f"{service}:{ledger.build_number}"
            for tag in tags:
                ref = registry_reference(service, tag, self.registry, self.namespace)
                result = await self.runtime.docker("tag", source, ref)
                if not result.ok:
                    raise PublishError(f"docker tag {source} {ref} failed: {result.tail(5)}")
                result = await self.runtime.docker("push", ref)
                if not result.ok:
                    raise PublishError(f"docker push {ref} failed: {result.tail(5)}")
                pushed.append(ref)
                logger.info("Pushed %s", ref)
        return pushed


def write_release_manifest(
    artifacts_dir: Path | str,
    version: str,
    build_number: int,
    revision: str,
    images: Sequence[str],
    archive_path: str = "",
) -> Path:
    """Write ``release-{version}.json`` describing what a release shipped."""
    target = Path(artifacts_dir) / f"release-{version}.json"
    atomic_write_json(
        target,
        {
            "version": version,
            "build_number": build_number,
            "revision": revision,
            "images": list(images),
            "archive": archive_path,
            "created_at": now_iso(),
        },
    )
    logger.info("Wrote release manifest %s", target)
    return target
