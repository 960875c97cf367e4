"""Core data types that flow through the capture pipeline.

This module defines the immutable data structures that represent the state of
a submission as it moves through the stages. Each stage wraps the previous
state in a new one, so a later stage can always reach back to the request,
the token and the configuration it started with.
"""

from __future__ import annotations

import dataclasses
from enum import StrEnum
from types import MappingProxyType
import typing

from cell_capture.core.constants import CELL_ID_ANNOTATION, RESPONSE_MESSAGE_TYPE

if typing.TYPE_CHECKING:
    from cell_capture.config import FrozenConfig
    from cell_capture.core.ports import NotebookDocument, ResponseChannel
    from cell_capture.pipeline.single_flight import CancellationToken

T = typing.TypeVar("T")


def _freeze_mapping(
    m: dict[str, T] | typing.Mapping[str, T] | None,
) -> typing.Mapping[str, T]:
    """Return an immutable mapping view (empty when None)."""
    if isinstance(m, MappingProxyType):
        return m
    return MappingProxyType(dict(m or {}))


# --- Result type ---
# Handlers return Success | Failure instead of raising, so the executor can
# treat failures as data and keep a single error boundary.

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful result in the pipeline."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failure in the pipeline, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


# --- Enumerations ---


class ExitKind(StrEnum):
    """How the process behind a cell finished."""

    EXIT = "exit"
    ERROR = "error"
    NONE = "none"


class PayloadVariant(StrEnum):
    """Wire shape of the submission mutation."""

    REPORTER = "reporter"
    LEGACY = "legacy"


# --- Collaborator-provided values ---


@dataclasses.dataclass(frozen=True, slots=True)
class Session:
    """Authentication credential borrowed for the duration of one run."""

    access_token: str
    id: str | None = None
    account: str | None = None

    def __repr__(self) -> str:
        """Repr with the token redacted for safe logging."""
        return f"Session(id={self.id!r}, account={self.account!r}, access_token='[REDACTED]')"


@dataclasses.dataclass(frozen=True, slots=True)
class ExitStatus:
    """Exit status reported by a terminal's runner session."""

    kind: ExitKind
    code: int | None = None

    @property
    def exit_code(self) -> int:
        """Numeric exit code: the reported code, 1 for errors, 0 otherwise."""
        if self.kind is ExitKind.EXIT:
            return self.code or 0
        if self.kind is ExitKind.ERROR:
            return 1
        return 0


@dataclasses.dataclass(frozen=True, slots=True)
class CellTiming:
    """Execution timestamps in epoch milliseconds."""

    start_time: float | None = None
    end_time: float | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class NotebookCell:
    """A live cell as exposed by the host document."""

    id: str
    source: str
    language_id: str
    annotations: typing.Mapping[str, typing.Any] = dataclasses.field(
        default_factory=dict
    )
    metadata: typing.Mapping[str, typing.Any] = dataclasses.field(
        default_factory=dict
    )
    timing: CellTiming | None = None

    def __post_init__(self) -> None:
        """Freeze mappings so the cell cannot change under a running stage."""
        object.__setattr__(self, "annotations", _freeze_mapping(self.annotations))
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))

    @property
    def runme_id(self) -> str:
        """Identifier used by the kernel to track the cell's terminal."""
        return str(
            self.metadata.get(CELL_ID_ANNOTATION)
            or self.annotations.get(CELL_ID_ANNOTATION)
            or self.annotations.get("id")
            or self.id
        )


@dataclasses.dataclass(frozen=True, slots=True)
class HostEnvironment:
    """Fields describing the editor host the cell ran in."""

    app_host: str = ""
    app_name: str = ""
    app_root: str = ""
    is_new_app_install: bool = False
    language: str = ""
    machine_id: str = ""
    remote_name: str = ""
    session_id: str = ""
    shell: str = ""
    ui_kind: int = 1
    uri_scheme: str = ""

    def to_dict(self) -> dict[str, typing.Any]:
        """Wire form of the host environment snapshot."""
        return {
            "appHost": self.app_host,
            "appName": self.app_name,
            "appRoot": self.app_root,
            "isNewAppInstall": self.is_new_app_install,
            "language": self.language,
            "machineId": self.machine_id,
            "remoteName": self.remote_name or "",
            "sessionId": self.session_id,
            "shell": self.shell,
            "uiKind": self.ui_kind,
            "uriScheme": self.uri_scheme,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class DeviceInfo:
    """Machine the execution happened on."""

    hostname: str
    platform: str
    arch: str
    release: str
    mac_address: str
    shell: str
    user_name: str
    cpu_model: str
    host: HostEnvironment = dataclasses.field(default_factory=HostEnvironment)


@dataclasses.dataclass(frozen=True, slots=True)
class GitContext:
    """Source-control context of the document."""

    branch: str | None = None
    commit: str | None = None
    repository: str | None = None
    relative_path: str | None = None


# --- Execution record ---


@dataclasses.dataclass(frozen=True, slots=True)
class NotebookCapture:
    """Reporter capture: the cached notebook snapshot and the located cell."""

    notebook: typing.Mapping[str, typing.Any]
    cell: typing.Mapping[str, typing.Any]


@dataclasses.dataclass(frozen=True, slots=True)
class TerminalCapture:
    """Legacy capture: what the cell's terminal produced."""

    source: str
    language_id: str
    stdout: bytes
    exit_status: ExitStatus | None
    pid: int
    timing: CellTiming | None
    annotations: typing.Mapping[str, typing.Any]
    frontmatter: typing.Mapping[str, typing.Any]

    def __post_init__(self) -> None:
        """Freeze mappings."""
        object.__setattr__(self, "annotations", _freeze_mapping(self.annotations))
        object.__setattr__(self, "frontmatter", _freeze_mapping(self.frontmatter))


@dataclasses.dataclass(frozen=True, slots=True)
class ExecutionRecord:
    """Everything known about one cell execution, ready to be serialised."""

    cell_id: str
    auto_save: bool
    device: DeviceInfo
    git: GitContext
    document_path: str | None
    file_path: str | None
    file_content: bytes | None
    cache_id: str
    plain_output: bytes | None
    masked_output: bytes | None
    runner_session_id: str | None
    capture: NotebookCapture | TerminalCapture

    @property
    def variant(self) -> PayloadVariant:
        """Payload variant implied by the capture kind."""
        if isinstance(self.capture, NotebookCapture):
            return PayloadVariant.REPORTER
        return PayloadVariant.LEGACY


@dataclasses.dataclass(frozen=True, slots=True)
class MutationPayload:
    """A GraphQL mutation ready to be sent."""

    variant: PayloadVariant
    operation_name: str
    document: str
    variables: typing.Mapping[str, typing.Any]


# --- Requests and replies ---


@dataclasses.dataclass(frozen=True, slots=True)
class SubmissionRequest:
    """The event that triggers a submission. Immutable once created."""

    cell_id: str
    is_user_action: bool
    document: NotebookDocument
    channel: ResponseChannel
    stdout: str = ""

    def __post_init__(self) -> None:
        """Validate the cell id."""
        if not isinstance(self.cell_id, str) or not self.cell_id.strip():
            raise ValueError("cell_id: must be a non-empty str")


@dataclasses.dataclass(frozen=True, slots=True)
class Reply:
    """Outcome delivered back to the request origin."""

    cell_id: str
    data: typing.Any
    has_errors: bool = False

    def to_message(self) -> dict[str, typing.Any]:
        """Wire message posted on the response channel."""
        output: dict[str, typing.Any] = {"data": self.data, "id": self.cell_id}
        if self.has_errors:
            output["hasErrors"] = True
        return {"type": RESPONSE_MESSAGE_TYPE, "output": output}


# --- Command states ---


@dataclasses.dataclass(frozen=True, slots=True)
class InitialCommand:
    """A request bound to its run token and configuration."""

    request: SubmissionRequest
    token: CancellationToken
    config: FrozenConfig


@dataclasses.dataclass(frozen=True, slots=True)
class AuthenticatedCommand:
    """A command that holds a usable session."""

    initial: InitialCommand
    session: Session


@dataclasses.dataclass(frozen=True, slots=True)
class CollectedCommand:
    """A command with its execution record assembled."""

    authenticated: AuthenticatedCommand
    record: ExecutionRecord


@dataclasses.dataclass(frozen=True, slots=True)
class BuiltCommand:
    """A command with its mutation payload built."""

    collected: CollectedCommand
    payload: MutationPayload


@dataclasses.dataclass(frozen=True, slots=True)
class SubmittedCommand:
    """A command whose payload has been accepted by the remote service."""

    built: BuiltCommand
    result: typing.Any


@dataclasses.dataclass(frozen=True, slots=True)
class ShortCircuit:
    """Ends the pipeline early with a non-error reply and no network call."""

    data: typing.Mapping[str, typing.Any]
    warning: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class Cancelled:
    """Ends the pipeline silently; the run was superseded."""

    generation: int
