"""Post-run notification hooks.

Exactly one hook fires per run, chosen by the aggregated status.  A
notifier that fails is logged and ignored; it can never change the
run's status.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Sequence

import httpx

from src.pipeline_controller.state import PipelineRun
from src.pipeline_shared.models import RunStatus

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Something that wants to hear about finished runs."""

    async def notify(self, run: PipelineRun) -> None: ...


def summarize(run: PipelineRun) -> dict[str, Any]:
    """Compact, JSON-serialisable description of a finished run."""
    return {
        "build_number": run.build_number,
        "status": run.status.value if run.status else "unknown",
        "trigger": run.trigger,
        "ref": run.ref,
        "revision": run.revision,
        "stages": {r.name: r.status.value for r in run.stage_results},
        "failures": [
            f"{r.name}: {r.reason}" for r in run.stage_results if r.failed
        ],
        "images": [i.reference for i in run.images],
        "archive": run.archive_path,
    }


class LogNotifier:
    """Writes the run outcome to the log at a level matching its status."""

    async def notify(self, run: PipelineRun) -> None:
        status = run.status or RunStatus.FAILURE
        message = "Build #%d finished: %s"
        if status is RunStatus.SUCCESS:
            logger.info(message, run.build_number, status.value)
        elif status is RunStatus.UNSTABLE:
            logger.warning(message, run.build_number, status.value)
        else:
            logger.error(message, run.build_number, status.value)


class WebhookNotifier:
    """POSTs the run summary as JSON to a webhook URL."""

    def __init__(self, url: str, timeout_seconds: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def notify(self, run: PipelineRun) -> None:
        payload = summarize(run)
        if self._client is not None:
            resp = await self._client.post(self.url, json=payload, timeout=self.timeout_seconds)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                resp = await client.post(self.url, json=payload)
        resp.raise_for_status()


class NotificationHooks:
    """Dispatches the success / unstable / failure hook for a run."""

    def __init__(
        self,
        notifiers: Sequence[Notifier] | None = None,
        notify_on: Sequence[str] = ("success", "unstable", "failure"),
    ) -> None:
        self.notifiers: list[Notifier] = list(notifiers or [LogNotifier()])
        self.notify_on = {RunStatus(s) for s in notify_on}

    async def on_success(self, run: PipelineRun) -> None:
        await self._dispatch(run)

    async def on_unstable(self, run: PipelineRun) -> None:
        await self._dispatch(run)

    async def on_failure(self, run: PipelineRun) -> None:
        await self._dispatch(run)

    async def fire(self, run: PipelineRun) -> str:
        """Call the hook matching ``run.status``; return its name."""
        status = run.status or RunStatus.FAILURE
        hook = {
            RunStatus.SUCCESS: self.on_success,
            RunStatus.UNSTABLE: self.on_unstable,
            RunStatus.FAILURE: self.on_failure,
        }[status]
        await hook(run)
        return hook.__name__

    async def _dispatch(self, run: PipelineRun) -> None:
        if run.status not in self.notify_on:
            return
        for notifier in self.notifiers:
            try:
                await notifier.notify(run)
            except Exception as exc:
                logger.warning(
                    "Notifier %s failed for build #%d: %s",
                    type(notifier).__name__, run.build_number, exc,
                )
