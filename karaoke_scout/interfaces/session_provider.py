"""Abstract base classes for session persistence and credential supply.

Two collaborators provide access to gated groups:

* :class:`ISessionStore` -- persisted cookies, loaded before the first
  navigation and saved after a successful login.
* :class:`ICredentialChannel` -- an interactive request/response channel.
  The pipeline emits a "credentials needed" event and waits a short time
  for an operator to answer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from karaoke_scout.models.targets import Credentials, SessionState


class ISessionStore(ABC):
    """Contract for cookie persistence keyed by ``session_ref``."""

    @abstractmethod
    async def load(self, session_ref: str) -> SessionState | None:
        """Return the stored session, or ``None`` if there is none."""

    @abstractmethod
    async def save(self, state: SessionState) -> None:
        """Persist *state*, replacing any previous cookies for its ref."""


class ICredentialChannel(ABC):
    """Contract for interactively obtaining login credentials."""

    @abstractmethod
    async def request(
        self,
        session_ref: str,
        source_url: str,
        timeout: float,
        run_id: str = "*",
    ) -> Credentials | None:
        """Ask the operator for credentials and wait up to *timeout* seconds.

        The request is attributed to *run_id* so listeners registered for
        that run see it.

        Returns
        -------
        Credentials or None
            ``None`` when nobody answered in time.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if someone can answer requests on this channel."""
