"""In-memory collaborators and builders shared by the test suite."""

import asyncio
from collections.abc import Callable, Mapping
import dataclasses
from typing import Any

from cell_capture.config import FrozenConfig
from cell_capture.core.types import (
    AuthenticatedCommand,
    BuiltCommand,
    CellTiming,
    CollectedCommand,
    DeviceInfo,
    ExecutionRecord,
    ExitKind,
    ExitStatus,
    GitContext,
    HostEnvironment,
    InitialCommand,
    NotebookCapture,
    NotebookCell,
    Session,
    SubmissionRequest,
    TerminalCapture,
)
from cell_capture.pipeline.auth_gate import AuthenticationGate
from cell_capture.pipeline.collector import ContextCollector
from cell_capture.pipeline.payloads import PayloadBuilder, build_payload
from cell_capture.pipeline.single_flight import CancellationToken, SingleFlight
from cell_capture.pipeline.submission import SubmissionClient

CACHE_ID = "cache-1"
NOTEBOOK_ID = "nb-1"

DOCUMENT_METADATA = {
    "runme.dev/cacheId": CACHE_ID,
    "runme.dev/frontmatterParsed": {"runme": {"id": NOTEBOOK_ID, "version": "v3"}},
}


class FakeAuthProvider:
    """Auth provider whose cached session tests can swap at will."""

    def __init__(
        self, session: Session | None = None, *, new_session: Session | None = None
    ) -> None:
        self.session = session
        self.fresh_session = new_session
        self.current_calls = 0
        self.new_calls = 0
        self.error: Exception | None = None

    async def current_session(self) -> Session | None:
        self.current_calls += 1
        if self.error is not None:
            raise self.error
        return self.session

    async def new_session(self) -> Session | None:
        self.new_calls += 1
        return self.fresh_session


class FakeSessionRegistry:
    """Listener registry that counts registrations."""

    def __init__(self) -> None:
        self.listeners: list[Callable[[Any], None]] = []
        self.added = 0
        self.removed = 0

    def add_listener(self, listener: Callable[[Any], None]) -> None:
        self.added += 1
        self.listeners.append(listener)

    def remove_listener(self, listener: Callable[[Any], None]) -> None:
        self.removed += 1
        self.listeners.remove(listener)

    def fire(self, event: Any = None) -> None:
        for listener in list(self.listeners):
            listener(event)


class FakeHostUI:
    """Records commands and warnings."""

    def __init__(
        self,
        *,
        auto_save: bool = False,
        environment: HostEnvironment | None = None,
        on_command: Callable[[str], None] | None = None,
    ) -> None:
        self.commands: list[str] = []
        self.warnings: list[str] = []
        self.auto_save = auto_save
        self.environment = environment or HostEnvironment(
            app_host="desktop", app_name="Code", machine_id="machine-1", shell="/bin/zsh"
        )
        self.on_command = on_command

    async def execute_command(self, command: str) -> None:
        self.commands.append(command)
        if self.on_command is not None:
            self.on_command(command)

    def show_warning(self, message: str) -> None:
        self.warnings.append(message)

    def auto_save_enabled(self) -> bool:
        return self.auto_save

    def host_environment(self) -> HostEnvironment:
        return self.environment


class FakeDocument:
    """Notebook document with a fixed set of cells."""

    def __init__(
        self,
        *,
        path: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        cells: list[NotebookCell] | None = None,
        events: list[str] | None = None,
        on_save: Callable[[], None] | None = None,
    ) -> None:
        self._path = path
        self._metadata = dict(DOCUMENT_METADATA if metadata is None else metadata)
        self.cells = {cell.id: cell for cell in cells or ()}
        self.events = events if events is not None else []
        self.on_save = on_save
        self.saves = 0

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def metadata(self) -> Mapping[str, Any]:
        return self._metadata

    async def save(self) -> None:
        self.saves += 1
        self.events.append("save")
        if self.on_save is not None:
            self.on_save()

    async def get_cell(self, cell_id: str) -> NotebookCell | None:
        return self.cells.get(cell_id)


class FakeTerminal:
    def __init__(self, pid: int | None = 4242, status: ExitStatus | None = None) -> None:
        self.pid = pid
        self.status = status

    async def process_id(self) -> int | None:
        return self.pid

    def exit_status(self) -> ExitStatus | None:
        return self.status


class FakeKernel:
    """Kernel caches keyed by cache id and terminals keyed by runme id."""

    def __init__(
        self,
        *,
        plain: bytes | None = b"plain",
        masked: bytes | None = b"masked",
        snapshot: Mapping[str, Any] | None = None,
        terminals: Mapping[str, FakeTerminal] | None = None,
        session_id: str | None = "runner-session",
        events: list[str] | None = None,
    ) -> None:
        self.plain = plain
        self.masked = masked
        self.snapshot = snapshot
        self.terminals = dict(terminals or {})
        self.session_id = session_id
        self.events = events if events is not None else []
        self.cache_ids: list[str] = []

    async def get_plain_cache(self, cache_id: str) -> bytes | None:
        self.events.append("plain_cache")
        self.cache_ids.append(cache_id)
        return self.plain

    async def get_masked_cache(self, cache_id: str) -> bytes | None:
        self.events.append("masked_cache")
        return self.masked

    async def get_notebook_snapshot(self, cache_id: str) -> Mapping[str, Any] | None:
        self.events.append("snapshot")
        return self.snapshot

    def get_terminal(self, runme_id: str) -> FakeTerminal | None:
        return self.terminals.get(runme_id)

    def runner_session_id(self) -> str | None:
        return self.session_id


class FakeGit:
    def __init__(self, context: GitContext | None = None) -> None:
        self.context = context or GitContext()
        self.paths: list[str | None] = []

    async def resolve(self, path: str | None) -> GitContext:
        self.paths.append(path)
        return self.context


class RecordingChannel:
    """Response channel that keeps every posted message."""

    def __init__(self) -> None:
        self.messages: list[Mapping[str, Any]] = []

    async def post(self, message: Mapping[str, Any]) -> None:
        self.messages.append(message)


class FakeTransport:
    """Submission transport that records calls and can block until released."""

    def __init__(
        self,
        result: Any = None,
        *,
        error: Exception | None = None,
        release: asyncio.Event | None = None,
    ) -> None:
        self.result = {"data": {"id": "exec-1"}} if result is None else result
        self.error = error
        self.release = release
        self.calls: list[tuple[Any, Session]] = []

    async def mutate(self, payload: Any, session: Session) -> Any:
        self.calls.append((payload, session))
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result


# --- Builders ---

SESSION = Session(access_token="token-123", id="session-1", account="dev@example.com")


def make_device(host: HostEnvironment | None = None) -> DeviceInfo:
    return DeviceInfo(
        hostname="devbox",
        platform="linux",
        arch="x64",
        release="6.1.0",
        mac_address="01:23:45:67:89:ab",
        shell="/bin/bash",
        user_name="dev",
        cpu_model="Example CPU",
        host=host or HostEnvironment(),
    )


def make_cell(
    cell_id: str = "cell-1", runme_id: str = "runme-1", **overrides: Any
) -> NotebookCell:
    values: dict[str, Any] = {
        "id": cell_id,
        "source": "echo 'hi' && ls",
        "language_id": "sh",
        "annotations": {
            "name": "greet",
            "category": "demo",
            "mimeType": "text/plain",
            "id": cell_id,
            "runme.dev/id": runme_id,
        },
        "metadata": {"runme.dev/id": runme_id},
        "timing": CellTiming(start_time=1000.0, end_time=1250.0),
    }
    values.update(overrides)
    return NotebookCell(**values)


def make_request(
    document: FakeDocument | None = None,
    channel: RecordingChannel | None = None,
    *,
    cell_id: str = "cell-1",
    is_user_action: bool = True,
    stdout: str = "hello\n",
) -> SubmissionRequest:
    return SubmissionRequest(
        cell_id=cell_id,
        is_user_action=is_user_action,
        document=document or FakeDocument(cells=[make_cell(cell_id)]),
        channel=channel or RecordingChannel(),
        stdout=stdout,
    )


def make_initial(
    request: SubmissionRequest | None = None,
    *,
    token: CancellationToken | None = None,
    config: FrozenConfig | None = None,
) -> InitialCommand:
    return InitialCommand(
        request=request or make_request(),
        token=token or CancellationToken(1),
        config=config or FrozenConfig(),
    )


def make_terminal_capture(**overrides: Any) -> TerminalCapture:
    values: dict[str, Any] = {
        "source": "echo 'hi' && ls",
        "language_id": "sh",
        "stdout": b"hello\n",
        "exit_status": ExitStatus(ExitKind.EXIT, 0),
        "pid": 4242,
        "timing": CellTiming(start_time=1000.0, end_time=1250.0),
        "annotations": {"name": "greet", "category": "demo", "id": "cell-1"},
        "frontmatter": {"runme": {"id": NOTEBOOK_ID, "version": "v3"}},
    }
    values.update(overrides)
    return TerminalCapture(**values)


def make_record(
    capture: NotebookCapture | TerminalCapture | None = None, **overrides: Any
) -> ExecutionRecord:
    values: dict[str, Any] = {
        "cell_id": "cell-1",
        "auto_save": True,
        "device": make_device(),
        "git": GitContext(
            branch="main",
            commit="abc123",
            repository="git@example.com:org/repo.git",
            relative_path="docs/",
        ),
        "document_path": "/work/repo/docs/README.md",
        "file_path": "docs/README.md",
        "file_content": b"# Title",
        "cache_id": CACHE_ID,
        "plain_output": b"plain",
        "masked_output": b"masked",
        "runner_session_id": "runner-session",
        "capture": capture or make_terminal_capture(),
    }
    values.update(overrides)
    return ExecutionRecord(**values)


def make_built(
    initial: InitialCommand | None = None,
    *,
    session: Session = SESSION,
    record: ExecutionRecord | None = None,
) -> BuiltCommand:
    authenticated = AuthenticatedCommand(initial=initial or make_initial(), session=session)
    rec = record or make_record()
    collected = CollectedCommand(authenticated=authenticated, record=rec)
    return BuiltCommand(collected=collected, payload=build_payload(rec))


@dataclasses.dataclass
class Harness:
    """Every collaborator of a pipeline run, wired to in-memory fakes."""

    provider: FakeAuthProvider
    registry: FakeSessionRegistry
    ui: FakeHostUI
    kernel: FakeKernel
    git: FakeGit
    transport: FakeTransport
    guard: SingleFlight = dataclasses.field(default_factory=SingleFlight)

    @classmethod
    def create(cls, **overrides: Any) -> "Harness":
        values: dict[str, Any] = {
            "provider": FakeAuthProvider(SESSION),
            "registry": FakeSessionRegistry(),
            "ui": FakeHostUI(),
            "kernel": FakeKernel(terminals={"runme-1": FakeTerminal()}),
            "git": FakeGit(),
            "transport": FakeTransport(),
        }
        values.update(overrides)
        return cls(**values)

    def handlers(self, *, auth_timeout: float | None = None) -> list[Any]:
        return [
            AuthenticationGate(
                self.provider, self.registry, self.ui, timeout=auth_timeout
            ),
            ContextCollector(
                self.kernel, self.git, self.ui, device_resolver=make_device
            ),
            PayloadBuilder(),
            SubmissionClient(self.transport),
        ]


async def wait_until(predicate: Callable[[], bool], *, attempts: int = 100) -> None:
    """Yield to the event loop until `predicate` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was not reached")
