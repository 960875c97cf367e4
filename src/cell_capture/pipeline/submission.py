"""Submission stage of the pipeline.

One network call per run. There is no retry: a failed call is reported once
through the executor's error boundary and the run ends.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from cell_capture.core.exceptions import (
    CellCaptureError,
    ConfigurationError,
    RunCancelledError,
    SubmissionError,
)
from cell_capture.core.types import (
    BuiltCommand,
    Cancelled,
    Failure,
    MutationPayload,
    Result,
    Session,
    SubmittedCommand,
    Success,
)
from cell_capture.pipeline.base import BaseAsyncHandler
from cell_capture.telemetry import TelemetryContext

if TYPE_CHECKING:
    from cell_capture.config import FrozenConfig
    from cell_capture.core.ports import SubmissionTransport
    from cell_capture.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)


class GraphQLTransport:
    """Posts GraphQL mutations over HTTP."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            url: GraphQL endpoint.
            timeout: Request timeout in seconds.
            client: Optional preconfigured client (e.g. with a mock transport).
        """
        self.url = url
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(
        cls, config: FrozenConfig, *, client: httpx.AsyncClient | None = None
    ) -> GraphQLTransport:
        """Create a transport for the configured endpoint."""
        if not config.api_url:
            raise ConfigurationError(
                "api_url is required to submit executions. "
                "Set CELL_CAPTURE_API_URL or [tool.cell_capture] api_url."
            )
        return cls(config.api_url, timeout=config.request_timeout_seconds, client=client)

    async def mutate(self, payload: MutationPayload, session: Session) -> Any:
        """Send the mutation and return the response body."""
        body = {
            "operationName": payload.operation_name,
            "query": payload.document,
            "variables": payload.variables,
        }
        headers = {"Authorization": f"Bearer {session.access_token}"}
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=body, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise SubmissionError(f"Request timed out: {self.url}") from e
        except httpx.HTTPStatusError as e:
            raise SubmissionError(
                f"HTTP error {e.response.status_code}: {self.url}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SubmissionError(f"Failed to reach {self.url}: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise SubmissionError("Remote service returned invalid JSON") from e

        errors = result.get("errors") if isinstance(result, dict) else None
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise SubmissionError(messages)
        return result


class SubmissionClient(BaseAsyncHandler[BuiltCommand, SubmittedCommand, CellCaptureError]):
    """Sends the built payload with the run's session."""

    def __init__(
        self,
        transport: SubmissionTransport,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Initialize with the transport that performs the call."""
        self._transport = transport
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()

    async def handle(
        self, command: BuiltCommand
    ) -> Result[SubmittedCommand | Cancelled, CellCaptureError]:
        """Submit the payload once."""
        token = command.collected.authenticated.initial.token
        session = command.collected.authenticated.session
        payload = command.payload
        try:
            token.raise_if_cancelled()
            with self._telemetry("submission.mutate", variant=payload.variant.value):
                result = await self._transport.mutate(payload, session)
            token.raise_if_cancelled()
        except RunCancelledError as e:
            return Success(Cancelled(e.generation))
        except CellCaptureError as e:
            return Failure(e)
        except Exception as e:
            logger.warning("Submission raised %s", type(e).__name__, exc_info=True)
            return Failure(SubmissionError(str(e)))
        return Success(SubmittedCommand(built=command, result=result))
