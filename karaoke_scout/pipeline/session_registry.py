"""Explicit registry of authenticated browser sessions.

One :class:`SessionRegistry` instance belongs to one pipeline.  It hands
out immutable :class:`SessionState` values and serializes authentication
per ``session_ref``: when two scraping tasks share a session and both hit
a login wall, the second waits for the first and reuses its result
instead of logging in again.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

from karaoke_scout.interfaces.session_provider import ISessionStore
from karaoke_scout.models.targets import SessionState
from karaoke_scout.utils.logging import get_logger

Authenticator = Callable[[], Awaitable[SessionState | None]]


class SessionRegistry:
    """Owns every :class:`SessionState` used during a run."""

    def __init__(self, store: ISessionStore | None = None) -> None:
        self._store = store
        self._states: dict[str, SessionState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._loaded: set[str] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def get(self, session_ref: str) -> SessionState | None:
        """Return the current state, loading it from the store on first use."""
        if session_ref not in self._loaded:
            async with self._lock_for(session_ref):
                if session_ref not in self._loaded:
                    if self._store is not None and session_ref not in self._states:
                        stored = await self._store.load(session_ref)
                        if stored is not None:
                            self._states[session_ref] = stored
                            self._logger.info(
                                "session_loaded",
                                session_ref=session_ref,
                                cookies=len(stored.cookies),
                            )
                    self._loaded.add(session_ref)
        return self._states.get(session_ref)

    async def authenticate(
        self,
        session_ref: str,
        authenticator: Authenticator,
        stale: SessionState | None = None,
    ) -> SessionState | None:
        """Run *authenticator* once for *session_ref* and record its result.

        Parameters
        ----------
        session_ref:
            The session being authenticated.
        authenticator:
            Coroutine function performing the login; returns the verified
            state or ``None`` when login was not possible.
        stale:
            The state the caller found insufficient.  If another task has
            already replaced it by the time the lock is acquired, that
            newer state is returned without logging in again.
        """
        async with self._lock_for(session_ref):
            current = self._states.get(session_ref)
            if current is not None and current.is_verified and current is not stale:
                return current

            state = await authenticator()
            if state is None:
                return None
            self._states[session_ref] = state
            self._loaded.add(session_ref)
            self._logger.info(
                "session_authenticated", session_ref=session_ref, cookies=len(state.cookies)
            )
            if self._store is not None:
                await self._store.save(state)
            return state

    def _lock_for(self, session_ref: str) -> asyncio.Lock:
        lock = self._locks.get(session_ref)
        if lock is None:
            lock = self._locks[session_ref] = asyncio.Lock()
        return lock
