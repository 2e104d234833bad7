"""Interactive credential request/response channel.

When a scrape hits a login wall, the driver calls :meth:`request`.  The
channel publishes a :class:`CredentialsRequestedEvent` on the progress
tracker and suspends until an operator calls :meth:`supply` for the same
``session_ref`` or the timeout elapses.  A timeout yields ``None`` and the
target fails as ``LOGIN_REQUIRED``.
"""

from __future__ import annotations

import asyncio

import structlog

from karaoke_scout.interfaces.session_provider import ICredentialChannel
from karaoke_scout.models.events import CredentialsRequestedEvent
from karaoke_scout.models.targets import Credentials
from karaoke_scout.pipeline.progress_tracker import ProgressTracker
from karaoke_scout.utils.logging import get_logger


class InteractiveCredentialChannel(ICredentialChannel):
    """Credential channel answered out-of-band via :meth:`supply`."""

    def __init__(self, tracker: ProgressTracker, enabled: bool = True) -> None:
        self._tracker = tracker
        self._enabled = enabled
        self._waiting: dict[str, asyncio.Future[Credentials]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def request(
        self,
        session_ref: str,
        source_url: str,
        timeout: float,
        run_id: str = "*",
    ) -> Credentials | None:
        if not self._enabled:
            return None
        future = self._waiting.get(session_ref)
        if future is None or future.done():
            future = asyncio.get_running_loop().create_future()
            self._waiting[session_ref] = future

        self._tracker.publish(
            CredentialsRequestedEvent(
                run_id=run_id,
                session_ref=session_ref,
                source_url=source_url,
                timeout_s=timeout,
            )
        )
        self._logger.info(
            "credentials_requested", run_id=run_id, session_ref=session_ref, timeout_s=timeout
        )
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            # Logins are serialized per session, so nobody else awaits this future.
            future.cancel()
            self._logger.warning("credentials_request_timeout", session_ref=session_ref)
            return None
        finally:
            if future.done() and self._waiting.get(session_ref) is future:
                self._waiting.pop(session_ref, None)

    def supply(self, session_ref: str, credentials: Credentials) -> bool:
        """Answer a pending request.  Returns ``False`` if nobody is waiting."""
        future = self._waiting.get(session_ref)
        if future is None or future.done():
            return False
        future.set_result(credentials)
        return True

    def pending(self) -> list[str]:
        return [ref for ref, fut in self._waiting.items() if not fut.done()]

    def is_available(self) -> bool:
        return self._enabled
