"""Payload building stage of the pipeline.

Two mutually exclusive mutation shapes exist:

- ``reporter``: rich shape embedding the notebook cell itself. Output items
  are redacted to the stdout mime type before anything leaves the process.
- ``legacy``: flat shape with raw stdout/stderr byte arrays and the device
  and session fields at the top level.

Each variant has one builder function; `PayloadBuilder` picks the builder
from the record's capture kind. Byte fields are sent as arrays of integers.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any
from urllib.parse import quote

from cell_capture.core.constants import STDOUT_MIME
from cell_capture.core.exceptions import CellCaptureError, InvariantViolationError
from cell_capture.core.types import (
    BuiltCommand,
    CollectedCommand,
    ExecutionRecord,
    Failure,
    MutationPayload,
    NotebookCapture,
    PayloadVariant,
    Result,
    Success,
    TerminalCapture,
)
from cell_capture.pipeline.base import BaseAsyncHandler
from cell_capture.pipeline.frontmatter import runme_section

logger = logging.getLogger(__name__)

CREATE_EXTENSION_CELL_OUTPUT = """\
mutation CreateExtensionCellOutput($input: ReporterInput!) {
  createExtensionCellOutput(input: $input) {
    id
  }
}
"""

CREATE_CELL_EXECUTION = """\
mutation CreateCellExecution($input: CreateCellExecutionInput!) {
  createCellExecution(input: $input) {
    id
    htmlUrl
    exitCode
  }
}
"""

# Characters encodeURIComponent leaves untouched besides alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(text: str) -> str:
    """Percent-encode `text` the way browsers encode a URI component."""
    return quote(text, safe=_URI_COMPONENT_SAFE)


def byte_array(data: bytes | None) -> list[int] | None:
    """Wire form of a byte sequence."""
    return None if data is None else list(data)


def _wire_item(item: Mapping[str, Any]) -> dict[str, Any]:
    data = item.get("data")
    if isinstance(data, bytes | bytearray):
        return {**item, "data": byte_array(bytes(data))}
    return dict(item)


def redact_outputs(cell: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of `cell` whose output items are restricted to stdout.

    Byte item data is converted to its wire form on the way.
    """
    outputs = [
        {
            **output,
            "items": [
                _wire_item(item)
                for item in output.get("items") or ()
                if item.get("mime") == STDOUT_MIME
            ],
        }
        for output in cell.get("outputs") or ()
    ]
    return {**cell, "outputs": outputs}


def build_reporter_payload(record: ExecutionRecord) -> MutationPayload:
    """Build the ``CreateExtensionCellOutput`` mutation."""
    capture = record.capture
    if not isinstance(capture, NotebookCapture):
        raise InvariantViolationError(
            "Reporter payload requires a notebook capture", stage_name="PayloadBuilder"
        )
    device = record.device
    host = device.host
    notebook = capture.notebook
    variables = {
        "input": {
            "extension": {
                "autoSave": record.auto_save,
                "device": {
                    "arch": device.arch,
                    "hostname": device.hostname,
                    "platform": device.platform,
                    "macAddress": device.mac_address,
                    "release": device.release,
                    "shell": device.shell,
                    "vendor": device.user_name,
                    "vsAppHost": host.app_host,
                    "vsAppName": host.app_name,
                    "vsAppSessionId": host.session_id,
                    "vsMachineId": host.machine_id,
                    "vsMetadata": host.to_dict(),
                },
                "file": {
                    "content": byte_array(record.file_content),
                    "path": record.file_path,
                },
                "git": {
                    "branch": record.git.branch,
                    "commit": record.git.commit,
                    "repository": record.git.repository,
                },
                "session": {
                    "maskedOutput": byte_array(record.masked_output),
                    "plainOutput": byte_array(record.plain_output),
                },
            },
            "notebook": {
                "cells": [redact_outputs(capture.cell)],
                "frontmatter": notebook.get("frontmatter"),
                "metadata": notebook.get("metadata"),
            },
        }
    }
    return MutationPayload(
        variant=PayloadVariant.REPORTER,
        operation_name="CreateExtensionCellOutput",
        document=CREATE_EXTENSION_CELL_OUTPUT,
        variables=variables,
    )


def _notebook_reference(
    path: str | None, frontmatter: Mapping[str, Any]
) -> dict[str, Any] | None:
    runme = runme_section(frontmatter)
    if not (runme.get("id") or runme.get("version")):
        return None
    return {
        "fileName": path,
        "id": runme.get("id"),
        "runmeVersion": runme.get("version"),
    }


def build_legacy_payload(record: ExecutionRecord) -> MutationPayload:
    """Build the ``CreateCellExecution`` mutation."""
    capture = record.capture
    if not isinstance(capture, TerminalCapture):
        raise InvariantViolationError(
            "Legacy payload requires a terminal capture", stage_name="PayloadBuilder"
        )
    device = record.device
    host = device.host
    status = capture.exit_status
    timing = capture.timing
    annotations = capture.annotations
    variables = {
        "input": {
            "stdout": list(capture.stdout),
            # Terminal output arrives merged; stderr is only separable for
            # non-terminal runners.
            "stderr": [],
            "exitCode": status.exit_code if status else 0,
            "pid": capture.pid,
            "input": encode_uri_component(capture.source),
            "languageId": capture.language_id,
            "autoSave": record.auto_save,
            "metadata": {
                "mimeType": annotations.get("mimeType"),
                "name": annotations.get("name"),
                "category": annotations.get("category") or "",
                "exitType": status.kind.value if status else None,
                "startTime": timing.start_time if timing else None,
                "endTime": timing.end_time if timing else None,
            },
            "id": annotations.get("id"),
            "notebook": _notebook_reference(record.document_path, capture.frontmatter),
            "branch": record.git.branch,
            "repository": record.git.repository,
            "commit": record.git.commit,
            "fileContent": byte_array(record.file_content),
            "filePath": record.file_path,
            "sessionId": record.runner_session_id,
            "plainSessionOutput": byte_array(record.plain_output),
            "maskedSessionOutput": byte_array(record.masked_output),
            "device": {
                "macAddress": device.mac_address,
                "hostname": device.hostname,
                "platform": device.platform,
                "release": device.release,
                "arch": device.arch,
                "vendor": device.cpu_model,
                "shell": host.shell,
                "vsAppHost": host.app_host,
                "vsAppName": host.app_name,
                "vsAppSessionId": host.session_id,
                "vsMachineId": host.machine_id,
                "metadata": {"vsEnv": host.to_dict()},
            },
        }
    }
    return MutationPayload(
        variant=PayloadVariant.LEGACY,
        operation_name="CreateCellExecution",
        document=CREATE_CELL_EXECUTION,
        variables=variables,
    )


PAYLOAD_BUILDERS: Mapping[PayloadVariant, Callable[[ExecutionRecord], MutationPayload]] = {
    PayloadVariant.REPORTER: build_reporter_payload,
    PayloadVariant.LEGACY: build_legacy_payload,
}


def build_payload(record: ExecutionRecord) -> MutationPayload:
    """Build the mutation for the record's variant."""
    return PAYLOAD_BUILDERS[record.variant](record)


class PayloadBuilder(BaseAsyncHandler[CollectedCommand, BuiltCommand, CellCaptureError]):
    """Turns an execution record into a mutation payload."""

    async def handle(
        self, command: CollectedCommand
    ) -> Result[BuiltCommand, CellCaptureError]:
        """Build the payload; pure and synchronous relative to the loop."""
        try:
            payload = build_payload(command.record)
        except CellCaptureError as e:
            return Failure(e)
        except Exception as e:
            logger.warning("Payload building raised %s", type(e).__name__, exc_info=True)
            return Failure(CellCaptureError(str(e)))
        return Success(BuiltCommand(collected=command, payload=payload))
