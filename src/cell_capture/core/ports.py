"""Collaborator protocols consumed by the pipeline.

The pipeline never talks to the editor, the kernel or the network directly.
Each collaborator is a small structural protocol so hosts (and tests) can plug
in their own implementations without inheriting from anything.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from cell_capture.core.types import (
        ExitStatus,
        GitContext,
        HostEnvironment,
        MutationPayload,
        NotebookCell,
        Session,
    )

type SessionChangeListener = Callable[[Any], None]


@runtime_checkable
class AuthProvider(Protocol):
    """Source of authentication sessions."""

    async def current_session(self) -> Session | None:
        """Return the cached session, if any."""
        ...

    async def new_session(self) -> Session | None:
        """Ask the provider to create a session."""
        ...


class SessionChangeRegistry(Protocol):
    """Shared registry of auth-state-change listeners."""

    def add_listener(self, listener: SessionChangeListener) -> None: ...  # noqa: D102
    def remove_listener(self, listener: SessionChangeListener) -> None: ...  # noqa: D102


class HostUI(Protocol):
    """Editor surface used for prompts and warnings."""

    async def execute_command(self, command: str) -> None:
        """Run a host command (e.g. open the sign-in panel)."""
        ...

    def show_warning(self, message: str) -> None:
        """Show a user-visible warning."""
        ...

    def auto_save_enabled(self) -> bool:
        """Whether the host auto-saves notebooks."""
        ...

    def host_environment(self) -> HostEnvironment:
        """Snapshot of the editor host environment."""
        ...


class NotebookDocument(Protocol):
    """The interactive document a cell belongs to."""

    @property
    def path(self) -> str | None:
        """File system path of the document, if it has one."""
        ...

    @property
    def metadata(self) -> Mapping[str, Any]:
        """Document-level metadata."""
        ...

    async def save(self) -> None:
        """Persist the document so caches keyed by its state are current."""
        ...

    async def get_cell(self, cell_id: str) -> NotebookCell | None:
        """Look up a live cell by id."""
        ...


class Terminal(Protocol):
    """Terminal that ran a cell."""

    async def process_id(self) -> int | None:
        """Process id of the terminal's shell."""
        ...

    def exit_status(self) -> ExitStatus | None:
        """Exit status of the runner session, if it has exited."""
        ...


class Kernel(Protocol):
    """Notebook kernel caches and terminals."""

    async def get_plain_cache(self, cache_id: str) -> bytes | None: ...  # noqa: D102
    async def get_masked_cache(self, cache_id: str) -> bytes | None: ...  # noqa: D102

    async def get_notebook_snapshot(self, cache_id: str) -> Mapping[str, Any] | None:
        """Serialised notebook cached for `cache_id`.

        The snapshot is a mapping with ``cells``, ``frontmatter`` and
        ``metadata`` keys; each cell carries ``metadata.id`` and ``outputs``
        whose ``items`` have a ``mime`` field.
        """
        ...

    def get_terminal(self, runme_id: str) -> Terminal | None: ...  # noqa: D102
    def runner_session_id(self) -> str | None: ...  # noqa: D102


class GitResolver(Protocol):
    """Computes git metadata for a file."""

    async def resolve(self, path: str | None) -> GitContext: ...  # noqa: D102


class ResponseChannel(Protocol):
    """Reply channel back to the request origin."""

    async def post(self, message: Mapping[str, Any]) -> None: ...  # noqa: D102


class SubmissionTransport(Protocol):
    """Sends a mutation to the remote service."""

    async def mutate(self, payload: MutationPayload, session: Session) -> Any:
        """Send `payload` authenticated with `session` and return the result."""
        ...
