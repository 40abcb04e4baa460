"""Shared data models for the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class StageStatus(str, Enum):
    """Tagged outcome of a single stage."""
    OK = "ok"
    SOFT_FAIL = "soft_fail"
    FATAL_FAIL = "fatal_fail"
    SKIPPED = "skipped"


class FailurePolicy(str, Enum):
    """How a stage's raw failure is categorised at the stage boundary."""
    FATAL = "fatal"
    SOFT = "soft"
    NON_FATAL = "non_fatal"


class RunStatus(str, Enum):
    """Terminal status of a build run."""
    SUCCESS = "success"
    UNSTABLE = "unstable"
    FAILURE = "failure"


class TriggerKind(str, Enum):
    """Events that start a build run."""
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    TAG = "tag"
    SCHEDULE = "schedule"
    MANUAL = "manual"


@dataclass
class StageResult:
    """Result of one executed (or skipped) stage."""
    name: str
    status: StageStatus = StageStatus.OK
    policy: FailurePolicy = FailurePolicy.FATAL
    reason: str = ""
    duration_seconds: float = 0.0
    notes: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status in (StageStatus.SOFT_FAIL, StageStatus.FATAL_FAIL)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "policy": self.policy.value,
            "reason": self.reason,
            "duration_seconds": round(self.duration_seconds, 3),
            "notes": list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: dict) -> StageResult:
        return cls(
            name=data.get("name", ""),
            status=StageStatus(data.get("status", StageStatus.OK.value)),
            policy=FailurePolicy(data.get("policy", FailurePolicy.FATAL.value)),
            reason=data.get("reason", ""),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            notes=list(data.get("notes", [])),
        )


def aggregate_status(results: Iterable[StageResult]) -> RunStatus:
    """Fold per-stage results into the run's terminal status.

    Failure if any fatal stage failed; unstable if any soft stage failed
    but no fatal stage did; success otherwise. Skipped and non-fatal
    side-effect stages never contribute.
    """
    soft = False
    for result in results:
        if result.status is StageStatus.FATAL_FAIL:
            return RunStatus.FAILURE
        if result.status is StageStatus.SOFT_FAIL:
            soft = True
    return RunStatus.UNSTABLE if soft else RunStatus.SUCCESS


@dataclass(frozen=True)
class ContainerImage:
    """A locally built image identified by ``(name, tag)``."""
    name: str
    tag: str
    build_number: int

    @property
    def reference(self) -> str:
        return f"{self.name}:{self.tag}"


@dataclass
class CommandResult:
    """Outcome of one subprocess invocation through the runtime."""
    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, lines: int = 20) -> str:
        """Last *lines* of combined output, for error messages."""
        combined = "\n".join(p for p in (self.stdout, self.stderr) if p)
        return "\n".join(combined.strip().splitlines()[-lines:])


@dataclass
class ProbeResult:
    """Single health-endpoint probe outcome."""
    url: str
    healthy: bool = False
    status_code: int | None = None
    error: str = ""
    elapsed_seconds: float = 0.0


@dataclass
class HarnessReport:
    """What happened during one integration validation window."""
    started: bool = False
    probe: ProbeResult | None = None
    teardown_ok: bool = False
    error: str = ""
    transitions: list[str] = field(default_factory=list)
