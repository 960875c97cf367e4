"""Exception hierarchy for the capture pipeline.

Every error the pipeline raises derives from `CellCaptureError`. Handlers turn
them into `Failure` values; the executor is the single boundary that turns a
failure into a reply.
"""

from __future__ import annotations


class CellCaptureError(Exception):
    """Base exception for cell capture errors."""


class RunCancelledError(CellCaptureError):
    """Raised when a run notices it has been superseded by a newer run.

    This is never reported to the caller; the executor ends the run silently.
    """

    def __init__(self, generation: int) -> None:
        """Record the generation of the cancelled run."""
        self.generation = generation
        super().__init__(f"Run {generation} was superseded")


class ConfigurationError(CellCaptureError):
    """Raised when configuration values are missing or invalid."""


class FatalPreconditionError(CellCaptureError):
    """Local state required for a submission is missing."""


class CellNotFoundError(FatalPreconditionError):
    """The target cell could not be located."""


class TerminalNotFoundError(FatalPreconditionError):
    """The cell has no associated terminal."""


class NotebookSnapshotNotFoundError(FatalPreconditionError):
    """No cached notebook snapshot exists for the cache id."""


class CacheIdError(FatalPreconditionError):
    """The document metadata does not yield a cache id."""


class SubmissionError(CellCaptureError):
    """Raised when the remote submission call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialize with an optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)


class PipelineError(CellCaptureError):
    """Raised when a pipeline stage fails.

    Carries the name of the failing stage and the underlying error so the
    executor can log the true origin of a failure.
    """

    def __init__(
        self, message: str, handler_name: str, underlying_error: Exception
    ) -> None:
        """Initialize with the stage name and the underlying error."""
        self.handler_name = handler_name
        self.underlying_error = underlying_error
        super().__init__(message)


class InvariantViolationError(CellCaptureError):
    """Raised when a handler breaks the pipeline contract."""

    def __init__(self, message: str, *, stage_name: str | None = None) -> None:
        """Initialize with the stage that broke the contract."""
        self.stage_name = stage_name
        super().__init__(message)
