"""The primary entry point for the capture pipeline.

The executor owns the single-flight guard and is the one error boundary of a
run. Handlers never reply themselves: the executor takes the pipeline's final
value (a submission result, a short circuit, a cancel marker or an error) and
decides whether and what to reply. A superseded run never replies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cell_capture.config import FrozenConfig, resolve_config
from cell_capture.core.constants import EVENT_CANCELLED, EVENT_ERROR, EVENT_SAVE
from cell_capture.core.exceptions import (
    CellCaptureError,
    InvariantViolationError,
    PipelineError,
    RunCancelledError,
)
from cell_capture.core.types import (
    Cancelled,
    Failure,
    InitialCommand,
    Reply,
    ShortCircuit,
    SubmittedCommand,
    Success,
)
from cell_capture.pipeline.auth_gate import AuthenticationGate
from cell_capture.pipeline.collector import ContextCollector
from cell_capture.pipeline.dispatcher import ResponseDispatcher
from cell_capture.pipeline.payloads import PayloadBuilder
from cell_capture.pipeline.single_flight import SingleFlight
from cell_capture.pipeline.submission import GraphQLTransport, SubmissionClient
from cell_capture.telemetry import TelemetryContext

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cell_capture.core.ports import (
        AuthProvider,
        GitResolver,
        HostUI,
        Kernel,
        SessionChangeRegistry,
        SubmissionTransport,
    )
    from cell_capture.core.types import SubmissionRequest
    from cell_capture.pipeline.base import BaseAsyncHandler
    from cell_capture.telemetry import TelemetryContextProtocol, TelemetryReporter

logger = logging.getLogger(__name__)


class CaptureExecutor:
    """Runs submission requests through the pipeline, one at a time.

    Stage order: AuthenticationGate -> ContextCollector -> PayloadBuilder ->
    SubmissionClient. Replies go through the `ResponseDispatcher`.
    """

    def __init__(
        self,
        config: FrozenConfig,
        *,
        auth_provider: AuthProvider | None = None,
        session_registry: SessionChangeRegistry | None = None,
        ui: HostUI | None = None,
        kernel: Kernel | None = None,
        git: GitResolver | None = None,
        transport: SubmissionTransport | None = None,
        pipeline_handlers: Iterable[BaseAsyncHandler[Any, Any, CellCaptureError]]
        | None = None,
        guard: SingleFlight | None = None,
        dispatcher: ResponseDispatcher | None = None,
        telemetry_reporters: Iterable[TelemetryReporter] = (),
    ) -> None:
        """Initialize the executor with configuration and collaborators.

        Args:
            config: Frozen configuration for every run.
            auth_provider: Source of sessions.
            session_registry: Auth-state-change listener registry.
            ui: Host surface for prompts, warnings and host state.
            kernel: Kernel caches and terminals.
            git: Git metadata resolver.
            transport: Submission transport; defaults to a GraphQL transport
                for ``config.api_url``.
            pipeline_handlers: Optional handlers replacing the default pipeline.
            guard: Single-flight guard; a private one is created if omitted.
            dispatcher: Reply dispatcher.
            telemetry_reporters: Reporters for stage timings and counters.
        """
        self.config = config
        self._ui = ui
        self._guard = guard or SingleFlight()
        self._dispatcher = dispatcher or ResponseDispatcher()
        self._reporters = tuple(telemetry_reporters)
        handlers = list(
            pipeline_handlers
            if pipeline_handlers is not None
            else self._build_default_pipeline(
                auth_provider=auth_provider,
                session_registry=session_registry,
                ui=ui,
                kernel=kernel,
                git=git,
                transport=transport,
            )
        )
        if not handlers:
            raise ValueError("Pipeline may not be empty; provide at least one handler.")
        self._pipeline = handlers

    def _build_default_pipeline(
        self,
        *,
        auth_provider: AuthProvider | None,
        session_registry: SessionChangeRegistry | None,
        ui: HostUI | None,
        kernel: Kernel | None,
        git: GitResolver | None,
        transport: SubmissionTransport | None,
    ) -> list[Any]:
        missing = [
            name
            for name, value in (
                ("auth_provider", auth_provider),
                ("session_registry", session_registry),
                ("ui", ui),
                ("kernel", kernel),
                ("git", git),
            )
            if value is None
        ]
        if missing:
            raise ValueError(
                f"The default pipeline requires: {', '.join(missing)}"
            )
        transport = transport or GraphQLTransport.from_config(self.config)
        telemetry = TelemetryContext(*self._reporters)
        return [
            AuthenticationGate(auth_provider, session_registry, ui, telemetry=telemetry),
            ContextCollector(kernel, git, ui),
            PayloadBuilder(),
            SubmissionClient(transport, telemetry=telemetry),
        ]

    async def execute(self, request: SubmissionRequest) -> Reply | None:
        """Run one submission and reply to its origin.

        Starting a run cancels the run in flight. Returns the reply that was
        sent, or None when the run was superseded and stayed silent.
        """
        token = self._guard.begin_run()
        ctx = TelemetryContext(*self._reporters)
        command = InitialCommand(request=request, token=token, config=self.config)
        try:
            final: Any
            try:
                final = await self._run_pipeline(command, ctx)
            except RunCancelledError as e:
                final = Cancelled(e.generation)
            except Exception as e:  # Top-level boundary: every failure replies once
                final = e

            if isinstance(final, Cancelled) or not self._guard.is_current(token):
                logger.info("Run %d was superseded; not replying", token.generation)
                ctx.count(EVENT_CANCELLED)
                return None

            if isinstance(final, Exception):
                return await self._reply_failure(request, final, ctx)

            if isinstance(final, ShortCircuit):
                reply = await self._dispatcher.reply(
                    request.channel, request.cell_id, dict(final.data)
                )
                if final.warning and self._ui is not None:
                    self._ui.show_warning(final.warning)
                return reply

            logger.info("Cell execution saved")
            ctx.count(EVENT_SAVE)
            return await self._dispatcher.reply(
                request.channel, request.cell_id, final.result
            )
        finally:
            self._guard.end_run(token)

    async def _run_pipeline(
        self, command: InitialCommand, ctx: TelemetryContextProtocol
    ) -> SubmittedCommand | ShortCircuit | Cancelled:
        current: Any = command
        stage_name = None
        for handler in self._pipeline:
            if not self._guard.is_current(command.token):
                return Cancelled(command.token.generation)

            stage_name = type(handler).__name__
            with ctx("pipeline.stage", stage=stage_name):
                result = await handler.handle(current)

            if not isinstance(result, Success | Failure):
                raise InvariantViolationError(
                    "Handler returned a non-Result value; expected Success|Failure.",
                    stage_name=stage_name,
                )
            if isinstance(result, Failure):
                raise PipelineError(str(result.error), stage_name, result.error)

            current = result.value
            if isinstance(current, ShortCircuit | Cancelled):
                return current

        if not isinstance(current, SubmittedCommand):
            raise InvariantViolationError(
                "Pipeline ended without a submission result.",
                stage_name=stage_name,
            )
        return current

    async def _reply_failure(
        self,
        request: SubmissionRequest,
        error: Exception,
        ctx: TelemetryContextProtocol,
    ) -> Reply:
        origin = error
        stage = None
        if isinstance(error, PipelineError):
            origin = error.underlying_error
            stage = error.handler_name
        elif isinstance(error, InvariantViolationError):
            stage = error.stage_name
        logger.error(
            "Error saving cell execution (%s in %s): %s",
            type(origin).__name__,
            stage or "executor",
            origin,
        )
        ctx.count(EVENT_ERROR, error=type(origin).__name__)
        return await self._dispatcher.reply(
            request.channel, request.cell_id, str(origin), has_errors=True
        )

    @property
    def stage_names(self) -> tuple[str, ...]:
        """Return the pipeline's stage names in execution order."""
        return tuple(type(h).__name__ for h in self._pipeline)

    @property
    def guard(self) -> SingleFlight:
        """The single-flight guard shared by this executor's runs."""
        return self._guard


def create_executor(
    config: FrozenConfig | None = None,
    **collaborators: Any,
) -> CaptureExecutor:
    """Create an executor, resolving configuration when none is given.

    This is the only place where ambient configuration is resolved.
    """
    final_config = config if config is not None else resolve_config().to_frozen()
    return CaptureExecutor(final_config, **collaborators)
