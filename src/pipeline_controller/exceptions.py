"""Custom exceptions for the pipeline controller and its stages."""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    pass


class ConfigurationError(PipelineError):
    """Raised for configuration issues (missing files, bad config, etc.)."""

    pass


class StageError(PipelineError):
    """Base for errors raised from inside a stage action."""

    def __init__(self, message: str = "", stage: str = "") -> None:
        self.stage = stage
        super().__init__(message)


class FatalStageError(StageError):
    """A stage failure that aborts every remaining stage."""

    pass


class SoftStageError(StageError):
    """A stage failure that is logged and marks the run unstable."""

    pass


class DependencyInstallError(FatalStageError):
    """Raised when a package manager install fails."""

    def __init__(self, component: str, detail: str = "") -> None:
        self.component = component
        super().__init__(
            f"Dependency install failed for '{component}'"
            + (f": {detail}" if detail else "")
        )


class BundleBuildError(FatalStageError):
    """Raised when the frontend production bundle fails to compile."""

    pass


class ImageBuildError(FatalStageError):
    """Raised when a container image build or local tag fails."""

    def __init__(self, service: str, detail: str = "") -> None:
        self.service = service
        super().__init__(
            f"Image build failed for '{service}'" + (f": {detail}" if detail else "")
        )


class ImageTagError(FatalStageError):
    """Raised when ``latest`` is requested without a matching numbered tag."""

    pass


class ComposeValidationError(FatalStageError):
    """Raised when the service-graph descriptor is invalid."""

    def __init__(self, compose_file: str, problems: list[str]) -> None:
        self.compose_file = compose_file
        self.problems = problems
        super().__init__(
            f"Invalid compose file '{compose_file}': " + "; ".join(problems)
        )


class RunTimeoutError(PipelineError):
    """Raised when the run's wall-clock budget is exhausted."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Run exceeded its {timeout_seconds:.0f}s time limit")
