"""Authentication stage of the pipeline.

Resolves a usable session before anything else happens. When no session
exists and the user explicitly asked to save, the host is asked to show its
sign-in surface and the stage waits on three labelled futures:

- ``SESSION``: the session-change listener fired and the provider now
  reports a session (or reports none).
- ``TIMED_OUT``: the interactive login budget ran out.
- ``CANCELLED``: a newer run superseded this one.

Exactly one listener is registered per wait and it is removed on every exit
path.
"""

from __future__ import annotations

import asyncio
import dataclasses
from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Any

from cell_capture.core.constants import AUTH_TIMEOUT_WARNING, DISPLAY_SHARE_DISABLED
from cell_capture.core.exceptions import CellCaptureError, RunCancelledError
from cell_capture.core.types import (
    AuthenticatedCommand,
    Cancelled,
    Failure,
    InitialCommand,
    Result,
    Session,
    ShortCircuit,
    Success,
)
from cell_capture.pipeline.base import BaseAsyncHandler
from cell_capture.telemetry import TelemetryContext

if TYPE_CHECKING:
    from cell_capture.core.ports import AuthProvider, HostUI, SessionChangeRegistry
    from cell_capture.pipeline.single_flight import CancellationToken
    from cell_capture.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)


class RaceOutcome(StrEnum):
    """Which future settled the interactive login wait."""

    SESSION = "session"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclasses.dataclass(frozen=True, slots=True)
class RaceResult:
    """Tagged outcome of the interactive login wait."""

    outcome: RaceOutcome
    session: Session | None = None


type GateDecision = Session | ShortCircuit | Cancelled


class AuthenticationGate(
    BaseAsyncHandler[InitialCommand, AuthenticatedCommand, CellCaptureError]
):
    """Resolves the session a submission will be sent with."""

    def __init__(
        self,
        provider: AuthProvider,
        registry: SessionChangeRegistry,
        ui: HostUI,
        *,
        timeout: float | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            provider: Source of cached and new sessions.
            registry: Shared auth-state-change listener registry.
            ui: Host surface used to prompt for sign-in.
            timeout: Interactive login budget in seconds. Defaults to the
                run's configured ``auth_timeout_seconds``.
            telemetry: Optional telemetry context.
        """
        self._provider = provider
        self._registry = registry
        self._ui = ui
        self._timeout = timeout
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()

    async def handle(
        self, command: InitialCommand
    ) -> Result[AuthenticatedCommand | ShortCircuit | Cancelled, CellCaptureError]:
        """Attach a session to the command or stop the pipeline."""
        try:
            decision = await self.resolve_session(
                command.token,
                triggered_by_user=command.request.is_user_action,
                force_login=command.config.force_login,
                login_command=command.config.login_command,
                timeout=self._timeout or command.config.auth_timeout_seconds,
            )
        except RunCancelledError as e:
            return Success(Cancelled(e.generation))
        except CellCaptureError as e:
            return Failure(e)
        except Exception as e:
            logger.warning("Authentication raised %s", type(e).__name__, exc_info=True)
            return Failure(CellCaptureError(str(e)))

        if isinstance(decision, Session):
            return Success(AuthenticatedCommand(initial=command, session=decision))
        return Success(decision)

    async def resolve_session(
        self,
        token: CancellationToken,
        *,
        triggered_by_user: bool,
        force_login: bool = False,
        login_command: str = "runme.openCloudPanel",
        timeout: float = 60.0,
    ) -> GateDecision:
        """Return a session, a non-error short circuit, or the cancel marker."""
        session = await self._provider.current_session()
        token.raise_if_cancelled()

        if session is None and force_login:
            session = await self._provider.new_session()
            token.raise_if_cancelled()

        if session is not None:
            return session

        if not triggered_by_user:
            return ShortCircuit(dict(DISPLAY_SHARE_DISABLED))

        await self._ui.execute_command(login_command)
        token.raise_if_cancelled()

        with self._telemetry("auth.wait_for_session"):
            race = await self.wait_for_session(token, timeout)

        if race.outcome is RaceOutcome.CANCELLED:
            logger.info("Cancelling authentication event")
            return Cancelled(token.generation)
        if race.session is None:
            self._telemetry.count("auth.unresolved", outcome=race.outcome.value)
            return ShortCircuit(
                dict(DISPLAY_SHARE_DISABLED), warning=AUTH_TIMEOUT_WARNING
            )
        return race.session

    async def wait_for_session(
        self, token: CancellationToken, timeout: float
    ) -> RaceResult:
        """Wait for a session-change event, the timeout, or cancellation."""
        loop = asyncio.get_running_loop()
        changed: asyncio.Future[Any] = loop.create_future()

        def _on_change(event: Any) -> None:
            if not changed.done():
                changed.set_result(event)

        self._registry.add_listener(_on_change)
        waiters: dict[asyncio.Future[Any], RaceOutcome] = {}
        try:
            if token.is_cancelled:
                return RaceResult(RaceOutcome.CANCELLED)

            waiters = {
                asyncio.ensure_future(
                    self._session_after_change(changed)
                ): RaceOutcome.SESSION,
                asyncio.ensure_future(asyncio.sleep(timeout)): RaceOutcome.TIMED_OUT,
                asyncio.ensure_future(token.wait()): RaceOutcome.CANCELLED,
            }
            done, _pending = await asyncio.wait(
                waiters, return_when=asyncio.FIRST_COMPLETED
            )
            settled = {waiters[f]: f for f in done}

            # Cancellation wins ties; a superseded run never uses its session.
            if RaceOutcome.CANCELLED in settled or token.is_cancelled:
                return RaceResult(RaceOutcome.CANCELLED)
            if RaceOutcome.SESSION in settled:
                return RaceResult(
                    RaceOutcome.SESSION, settled[RaceOutcome.SESSION].result()
                )
            return RaceResult(RaceOutcome.TIMED_OUT)
        finally:
            self._registry.remove_listener(_on_change)
            if not changed.done():
                changed.cancel()
            pending = [f for f in waiters if not f.done()]
            for f in pending:
                f.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _session_after_change(self, changed: asyncio.Future[Any]) -> Session | None:
        await changed
        return await self._provider.current_session()
