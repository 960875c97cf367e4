"""Capture notebook cell executions and submit them to a remote service."""

import importlib.metadata
import logging

from cell_capture.config import FrozenConfig, ResolvedConfig, resolve_config
from cell_capture.core.exceptions import (
    CacheIdError,
    CellCaptureError,
    CellNotFoundError,
    ConfigurationError,
    FatalPreconditionError,
    InvariantViolationError,
    NotebookSnapshotNotFoundError,
    PipelineError,
    RunCancelledError,
    SubmissionError,
    TerminalNotFoundError,
)
from cell_capture.core.types import (
    CellTiming,
    ExitKind,
    ExitStatus,
    Failure,
    GitContext,
    HostEnvironment,
    NotebookCell,
    Reply,
    Result,
    Session,
    SubmissionRequest,
    Success,
)
from cell_capture.executor import CaptureExecutor, create_executor
from cell_capture.pipeline.single_flight import CancellationToken, SingleFlight
from cell_capture.pipeline.submission import GraphQLTransport
from cell_capture.telemetry import InMemoryReporter, TelemetryContext, TelemetryReporter

try:
    __version__ = importlib.metadata.version("cell-capture")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Library logging stays silent unless the host configures handlers.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Executor
    "CaptureExecutor",
    "create_executor",
    "SingleFlight",
    "CancellationToken",
    "GraphQLTransport",
    # Configuration
    "resolve_config",
    "ResolvedConfig",
    "FrozenConfig",
    # Telemetry (extension points)
    "TelemetryContext",
    "TelemetryReporter",
    "InMemoryReporter",
    # Core types
    "SubmissionRequest",
    "Reply",
    "Session",
    "NotebookCell",
    "CellTiming",
    "ExitKind",
    "ExitStatus",
    "GitContext",
    "HostEnvironment",
    "Result",
    "Success",
    "Failure",
    # Exceptions
    "CellCaptureError",
    "ConfigurationError",
    "FatalPreconditionError",
    "CellNotFoundError",
    "TerminalNotFoundError",
    "NotebookSnapshotNotFoundError",
    "CacheIdError",
    "SubmissionError",
    "PipelineError",
    "InvariantViolationError",
    "RunCancelledError",
]
