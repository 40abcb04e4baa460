"""Image naming, registry references, and the local tag ledger."""

from __future__ import annotations

import logging

from src.pipeline_controller.exceptions import ImageTagError
from src.pipeline_shared.constants import LATEST_TAG
from src.pipeline_shared.models import ContainerImage

logger = logging.getLogger(__name__)


def registry_reference(
    service: str,
    tag: str,
    registry: str = "",
    namespace: str = "",
) -> str:
    """Build ``{registry}/{namespace}/{service}:{tag}``.

    Empty registry or namespace segments are omitted, so with neither set
    the result is the plain local reference ``service:tag``.
    """
    parts = [p.strip("/") for p in (registry, namespace) if p and p.strip("/")]
    parts.append(service)
    return f"{'/'.join(parts)}:{tag}"


class ImageLedger:
    """Records the images one build run has produced.

    Enforces that ``latest`` is only ever attached to an image whose
    build-numbered tag was produced earlier in the same run.
    """

    def __init__(self, build_number: int) -> None:
        self.build_number = build_number
        self._images: list[ContainerImage] = []

    def record_numbered(self, service: str) -> ContainerImage:
        image = ContainerImage(service, str(self.build_number), self.build_number)
        if image not in self._images:
            self._images.append(image)
        return image

    def has_numbered(self, service: str) -> bool:
        return ContainerImage(service, str(self.build_number), self.build_number) in self._images

    def record_latest(self, service: str) -> ContainerImage:
        """Record ``service:latest``.

        Raises:
            ImageTagError: If ``service:{build_number}`` was not recorded first.
        """
        if not self.has_numbered(service):
            raise ImageTagError(
                f"Refusing to tag {service}:{LATEST_TAG} without "
                f"{service}:{self.build_number} from build {self.build_number}"
            )
        image = ContainerImage(service, LATEST_TAG, self.build_number)
        if image not in self._images:
            self._images.append(image)
        return image

    @property
    def images(self) -> list[ContainerImage]:
        return list(self._images)

    @property
    def services(self) -> list[str]:
        seen: list[str] = []
        for image in self._images:
            if image.name not in seen:
                seen.append(image.name)
        return seen

    def references(self) -> list[str]:
        return [image.reference for image in self._images]
