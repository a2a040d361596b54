"""Session lifecycle observers.

Delegates are held through weak references: registering a delegate
never keeps it alive, and delegates that have been garbage collected
are skipped silently.
"""

from __future__ import annotations

import logging
import weakref

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from .log import log_delegate_error
from .types import SessionEvent


if TYPE_CHECKING:
    from .session import Session


logger = logging.getLogger("ssokit.delegates")


class SessionDelegate(ABC):
    """Observer of session lifecycle events.

    Only ``initialized`` is required; every other event has a no-op
    default.
    """

    @abstractmethod
    def initialized(self, session: Session | None) -> None:
        """The session manager resolved its startup state."""

    def did_resume_session(self, session: Session) -> None:
        """The session was refreshed on time after returning to the foreground."""

    def did_refresh_session(self, session: Session) -> None:
        """The session was refreshed (or re-announced after a network failure)."""

    def did_lose_network_connection_for_session(self, session: Session) -> None:
        """The session went offline."""

    def did_regain_network_connection_for_session(self, session: Session) -> None:
        """The session came back online."""

    def did_lose_session(self) -> None:
        """The session was lost and the user has to log in again."""

    def did_complete_login(self, session: Session) -> None:
        """A login established a new session."""

    def did_logout(self) -> None:
        """The session was logged out."""


class DelegateRegistry:
    """Ordered registry of weakly referenced delegates."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._refs: list[weakref.ref[Any]] = []

    def __len__(self) -> int:
        """Number of live delegates."""
        return len(self.delegates)

    def __contains__(self, delegate: object) -> bool:
        """Whether ``delegate`` is registered."""
        return any(ref() is delegate for ref in self._refs)

    @property
    def delegates(self) -> list[Any]:
        """Live delegates in registration order."""
        live = [ref() for ref in self._refs]
        return [d for d in live if d is not None]

    def add(self, delegate: object) -> bool:
        """Register ``delegate``.

        Returns
        -------
        bool
            False if it was already registered.
        """
        self._prune()
        if delegate in self:
            return False
        self._refs.append(weakref.ref(delegate))
        logger.debug("Registered delegate %s", type(delegate).__name__)
        return True

    def remove(self, delegate: object) -> bool:
        """Unregister ``delegate``. Returns False if it was not registered."""
        before = len(self._refs)
        self._refs = [ref for ref in self._refs if ref() is not None and ref() is not delegate]
        return len(self._refs) < before

    def clear(self) -> None:
        """Remove all delegates."""
        self._refs.clear()

    def broadcast(self, event: SessionEvent, *args: Any) -> None:
        """Deliver ``event`` to every live delegate in registration order.

        Errors raised by a delegate are logged and do not stop delivery
        to the remaining delegates.
        """
        self._prune()
        logger.debug("Broadcasting %s to %d delegate(s)", event.value, len(self._refs))
        for delegate in self.delegates:
            self.send(delegate, event, *args)

    def send(self, delegate: object, event: SessionEvent, *args: Any) -> None:
        """Deliver ``event`` to a single delegate."""
        handler = getattr(delegate, event.value, None)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as exc:  # noqa: BLE001
            log_delegate_error(event.value, delegate, exc)

    def _prune(self) -> None:
        self._refs = [ref for ref in self._refs if ref() is not None]
