"""Build Producer.

Compiles the frontend production bundle, then builds one image per
service (backend, frontend, nginx) in that order.  Each image is tagged
with the build number first; only once that build succeeded is the same
image tagged ``latest``.  The first failure aborts the remaining work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from src.container_ops.image_tags import ImageLedger
from src.container_ops.runtime import RuntimeContext
from src.pipeline_controller.exceptions import BundleBuildError, ImageBuildError
from src.pipeline_shared.constants import LATEST_TAG
from src.pipeline_shared.models import ContainerImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageSpec:
    """Source tree for one service image."""

    service: str
    context: Path
    dockerfile: str = "Dockerfile"


async def build_frontend_bundle(
    runtime: RuntimeContext,
    frontend_dir: Path | str,
    command: Sequence[str],
) -> None:
    """Compile the frontend into its static production bundle.

    Raises:
        BundleBuildError: If the build command exits non-zero.
    """
    logger.info("Building frontend production bundle in %s", frontend_dir)
    result = await runtime.run(command, cwd=frontend_dir)
    if not result.ok:
        raise BundleBuildError(
            f"Frontend bundle build failed (exit {result.returncode}): {result.tail()}"
        )


class ImageBuilder:
    """Builds and locally tags the service images for one run."""

    def __init__(self, runtime: RuntimeContext, ledger: ImageLedger) -> None:
        self.runtime = runtime
        self.ledger = ledger

    async def build_one(self, spec: ImageSpec) -> list[ContainerImage]:
        """Build ``service:N`` and then tag it ``service:latest``.

        Raises:
            ImageBuildError: If ``docker build`` or ``docker tag`` fails.
        """
        number = self.ledger.build_number
        numbered = f"{spec.service}:{number}"
        dockerfile = spec.context / spec.dockerfile

        logger.info("Building image %s from %s", numbered, spec.context)
        result = await self.runtime.docker(
            "build", "-t", numbered, "-f", str(dockerfile), str(spec.context)
        )
        if not result.ok:
            raise ImageBuildError(spec.service, result.tail())
        self.ledger.record_numbered(spec.service)

        latest = f"{spec.service}:{LATEST_TAG}"
        result = await self.runtime.docker("tag", numbered, latest)
        if not result.ok:
            raise ImageBuildError(spec.service, f"tagging {latest}: {result.tail()}")
        self.ledger.record_latest(spec.service)

        return [image for image in self.ledger.images if image.name == spec.service]

    async def build_all(self, specs: Sequence[ImageSpec]) -> list[ContainerImage]:
        """Build every image sequentially, stopping at the first failure."""
        for spec in specs:
            await self.build_one(spec)
        logger.info("Built images: %s", ", ".join(self.ledger.references()))
        return self.ledger.images
