"""Context and cache collection stage of the pipeline.

Assembles the `ExecutionRecord` for one run. The document is saved first so
every cache keyed by document state reflects the latest content; the
collector never reads a stale cache. The run's token is re-checked after
every suspension point.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from cell_capture.core.constants import CELL_ID_ANNOTATION
from cell_capture.core.exceptions import (
    CellCaptureError,
    CellNotFoundError,
    NotebookSnapshotNotFoundError,
    RunCancelledError,
    TerminalNotFoundError,
)
from cell_capture.core.types import (
    AuthenticatedCommand,
    Cancelled,
    CollectedCommand,
    DeviceInfo,
    ExecutionRecord,
    Failure,
    GitContext,
    HostEnvironment,
    NotebookCapture,
    Result,
    Success,
    TerminalCapture,
)
from cell_capture.pipeline.base import BaseAsyncHandler
from cell_capture.pipeline.device import collect_device_info
from cell_capture.pipeline.frontmatter import (
    document_cache_id,
    merge_frontmatter,
    parse_frontmatter,
    runme_section,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

    from cell_capture.core.ports import GitResolver, HostUI, Kernel, NotebookDocument
    from cell_capture.core.types import SubmissionRequest

logger = logging.getLogger(__name__)


def submission_file_path(path: str | None, git: GitContext) -> str | None:
    """Repository-relative path inside a repository, else the absolute path."""
    if path is None:
        return None
    if git.repository:
        return f"{git.relative_path or ''}{Path(path).name}"
    return path


class ContextCollector(
    BaseAsyncHandler[AuthenticatedCommand, CollectedCommand, CellCaptureError]
):
    """Gathers environment, device, git and cached output data."""

    def __init__(
        self,
        kernel: Kernel,
        git: GitResolver,
        ui: HostUI,
        *,
        device_resolver: Callable[[HostEnvironment], DeviceInfo] = collect_device_info,
    ) -> None:
        """Initialize with the kernel, git resolver and host surface."""
        self._kernel = kernel
        self._git = git
        self._ui = ui
        self._device_resolver = device_resolver

    async def handle(
        self, command: AuthenticatedCommand
    ) -> Result[CollectedCommand | Cancelled, CellCaptureError]:
        """Collect the execution record for the command's cell."""
        try:
            record = await self.collect(command)
        except RunCancelledError as e:
            return Success(Cancelled(e.generation))
        except CellCaptureError as e:
            return Failure(e)
        except Exception as e:
            logger.warning("Collection raised %s", type(e).__name__, exc_info=True)
            return Failure(CellCaptureError(str(e)))
        return Success(CollectedCommand(authenticated=command, record=record))

    async def collect(self, command: AuthenticatedCommand) -> ExecutionRecord:
        """Build the record; raises `FatalPreconditionError` subclasses."""
        initial = command.initial
        token = initial.token
        request = initial.request
        document = request.document

        await document.save()
        token.raise_if_cancelled()

        logger.info("Saving cell execution")

        frontmatter = parse_frontmatter(document.metadata)
        cache_id = document_cache_id(merge_frontmatter(document.metadata, frontmatter))

        plain_output = await self._kernel.get_plain_cache(cache_id)
        masked_output = await self._kernel.get_masked_cache(cache_id)
        token.raise_if_cancelled()

        device = self._device_resolver(self._ui.host_environment())

        path = document.path
        git = await self._git.resolve(path)
        token.raise_if_cancelled()

        file_content = await self._read_file(path)
        token.raise_if_cancelled()

        capture: NotebookCapture | TerminalCapture
        if initial.config.reporter_api:
            capture = await self._notebook_capture(cache_id, request.cell_id)
        else:
            capture = await self._terminal_capture(document, request, frontmatter)
        token.raise_if_cancelled()

        return ExecutionRecord(
            cell_id=request.cell_id,
            auto_save=self._ui.auto_save_enabled(),
            device=device,
            git=git,
            document_path=path,
            file_path=submission_file_path(path, git),
            file_content=file_content,
            cache_id=cache_id,
            plain_output=plain_output,
            masked_output=masked_output,
            runner_session_id=self._kernel.runner_session_id(),
            capture=capture,
        )

    async def _read_file(self, path: str | None) -> bytes | None:
        if not path:
            return None
        file = Path(path)
        if not file.is_file():
            return None
        return await asyncio.to_thread(file.read_bytes)

    async def _notebook_capture(self, cache_id: str, cell_id: str) -> NotebookCapture:
        snapshot = await self._kernel.get_notebook_snapshot(cache_id)
        if snapshot is None:
            raise NotebookSnapshotNotFoundError(
                f"Notebook data cache not found for cache ID: {cache_id}"
            )

        for cell in snapshot.get("cells") or ():
            if (cell.get("metadata") or {}).get("id") == cell_id:
                return NotebookCapture(notebook=snapshot, cell=cell)

        notebook_id = runme_section(snapshot.get("frontmatter") or {}).get("id")
        raise CellNotFoundError(f"Cell not found in notebook {notebook_id}")

    async def _terminal_capture(
        self,
        document: NotebookDocument,
        request: SubmissionRequest,
        frontmatter: Mapping[str, Any],
    ) -> TerminalCapture:
        cell = await document.get_cell(request.cell_id)
        if cell is None:
            raise CellNotFoundError("Cell not found")

        terminal = self._kernel.get_terminal(cell.runme_id)
        if terminal is None:
            raise TerminalNotFoundError("Could not find an associated terminal")

        pid = await terminal.process_id() or 0
        annotations = {
            k: v for k, v in cell.annotations.items() if k != CELL_ID_ANNOTATION
        }
        return TerminalCapture(
            source=cell.source,
            language_id=cell.language_id,
            stdout=request.stdout.encode("utf-8"),
            exit_status=terminal.exit_status(),
            pid=pid,
            timing=cell.timing,
            annotations=annotations,
            frontmatter=frontmatter,
        )
