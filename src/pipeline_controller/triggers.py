"""Trigger events, the job graph each one runs, and the tag policy."""

from __future__ import annotations

import re
from dataclasses import dataclass

from src.pipeline_controller.config import PipelineConfig
from src.pipeline_controller.exceptions import ConfigurationError
from src.pipeline_shared.constants import (
    LATEST_TAG,
    SHORT_SHA_LENGTH,
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
from src.pipeline_shared.models import TriggerKind
from src.pipeline_shared.utils import sanitize_tag

_VERSION_TAG = re.compile(r"^v(?P<version>\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?)$")

_VERIFY_STAGES = [
    STAGE_INSTALL_BACKEND,
    STAGE_INSTALL_FRONTEND,
    STAGE_LINT_FRONTEND,
    STAGE_TEST_BACKEND,
    STAGE_TEST_FRONTEND,
    STAGE_BUILD_FRONTEND,
    STAGE_BUILD_IMAGES,
    STAGE_VALIDATE_COMPOSE,
    STAGE_INTEGRATION,
]


@dataclass
class TriggerEvent:
    """What started a run.

    ``ref`` is the branch name for push / pull_request / manual / schedule
    triggers and the tag name (``v1.2.3``) for tag triggers.
    """

    kind: TriggerKind = TriggerKind.MANUAL
    ref: str = "main"
    revision: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.kind, str):
            self.kind = TriggerKind(self.kind)
        if self.kind is TriggerKind.TAG and not _VERSION_TAG.match(self.ref):
            raise ConfigurationError(
                f"Tag trigger ref '{self.ref}' is not a version tag (v<major>.<minor>.<patch>)"
            )

    @property
    def short_sha(self) -> str:
        return self.revision[:SHORT_SHA_LENGTH]

    @property
    def version(self) -> str:
        """Semantic version for tag triggers, else an empty string."""
        match = _VERSION_TAG.match(self.ref)
        return match.group("version") if match else ""


def select_stages(event: TriggerEvent, config: PipelineConfig) -> list[str]:
    """Return the ordered stage names the trigger's job graph runs."""
    if event.kind is TriggerKind.SCHEDULE:
        return [
            STAGE_INSTALL_BACKEND,
            STAGE_INSTALL_FRONTEND,
            STAGE_AUDIT,
            STAGE_TEST_BACKEND,
            STAGE_TEST_FRONTEND,
        ]
    if event.kind is TriggerKind.PULL_REQUEST:
        return list(_VERIFY_STAGES)

    stages = [*_VERIFY_STAGES, STAGE_ARCHIVE]
    if event.kind is TriggerKind.TAG:
        stages += [STAGE_PUSH_IMAGES, STAGE_RELEASE]
    elif event.ref in config.publish.branches:
        stages.append(STAGE_PUSH_IMAGES)
    return stages


def publish_tags(event: TriggerEvent, build_number: int) -> list[str]:
    """Registry tags to push for *event*.

    Branch pushes publish the build number, the branch name, the short
    commit sha and ``latest``; version tags publish the semantic version
    (build metadata ``+`` becomes ``-``), the short sha, the build number
    and ``latest``.  ``latest`` is always
    last so it is pushed after its numbered counterpart.
    """
    tags: list[str] = []
    if event.kind is TriggerKind.TAG:
        tags.append(sanitize_tag(event.version))
        if event.short_sha:
            tags.append(event.short_sha)
        tags.append(str(build_number))
    else:
        tags.append(str(build_number))
        branch = sanitize_tag(event.ref)
        if branch:
            tags.append(branch)
        if event.short_sha:
            tags.append(event.short_sha)
    tags.append(LATEST_TAG)

    unique: list[str] = []
    for tag in tags:
        if tag and tag not in unique:
            unique.append(tag)
    return unique
