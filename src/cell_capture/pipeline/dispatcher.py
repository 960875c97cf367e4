"""Delivers the outcome of a run back to its origin."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cell_capture.core.types import Reply

if TYPE_CHECKING:
    from cell_capture.core.ports import ResponseChannel

logger = logging.getLogger(__name__)


class ResponseDispatcher:
    """Posts exactly one reply per completed run.

    The dispatcher is not a pipeline stage: the executor calls it after the
    pipeline ends, on the success path and on the error path alike, and never
    for a cancelled run.
    """

    async def reply(
        self,
        channel: ResponseChannel,
        cell_id: str,
        data: Any,
        *,
        has_errors: bool = False,
    ) -> Reply:
        """Post the reply for `cell_id` and return it."""
        reply = Reply(cell_id=cell_id, data=data, has_errors=has_errors)
        await channel.post(reply.to_message())
        logger.debug("Replied to cell %s (has_errors=%s)", cell_id, has_errors)
        return reply
