"""Pluggable session persistence backends.

Provides the SessionStorage ABC and implementations for in-memory
and OS keyring persistence of the single active session record.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import json
import logging
import threading

from abc import ABC, abstractmethod
from typing import Any

from .session import Session


logger = logging.getLogger("ssokit.storage")

DEFAULT_SERVICE_NAME = "ssokit"
DEFAULT_SESSION_KEY = "ssokit.session"


class SessionStorage(ABC):
    """Abstract base class for persisting the active session.

    All methods are async to support both local and blocking OS-backed
    stores. Implementations report failure through their return value
    rather than raising.
    """

    @abstractmethod
    async def save(self, session: Session | None) -> bool:
        """Persist the session, or delete the record when ``None`` is given.

        Parameters
        ----------
        session : Session or None
            The session to persist.

        Returns
        -------
        bool
            True if the operation succeeded.
        """

    @abstractmethod
    async def load(self) -> Session | None:
        """Load the persisted session.

        Returns
        -------
        Session or None
            The session if one was persisted and could be decoded.
        """

    @abstractmethod
    async def delete(self) -> bool:
        """Delete the persisted session.

        Returns
        -------
        bool
            True if no record remains afterwards.
        """


def _serialize_session(session: Session) -> str:
    """Serialize a Session to JSON."""
    return json.dumps(session.to_dict())


def _deserialize_session(data: str) -> Session | None:
    """Deserialize a Session from JSON, or None if the record is corrupt."""
    try:
        obj = json.loads(data)
        return Session.from_dict(obj)
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        logger.warning("Discarding undecodable session record: %s", exc)
        return None


class MemorySessionStorage(SessionStorage):
    """In-memory session storage for development and tests."""

    def __init__(self) -> None:
        """Initialize the memory storage."""
        self._data: str | None = None
        self._lock = asyncio.Lock()

    async def save(self, session: Session | None) -> bool:
        """Save the session in memory."""
        if session is None:
            return await self.delete()
        async with self._lock:
            self._data = _serialize_session(session)
        return True

    async def load(self) -> Session | None:
        """Load the session from memory."""
        async with self._lock:
            data = self._data
        if data is None:
            return None
        return _deserialize_session(data)

    async def delete(self) -> bool:
        """Delete the session from memory."""
        async with self._lock:
            self._data = None
        return True

    @property
    def has_record(self) -> bool:
        """Whether a record is currently stored."""
        return self._data is not None


class KeyringSessionStorage(SessionStorage):
    """OS keyring-backed session storage.

    The platform keyring keeps the record encrypted at rest and only
    releases it for the logged-in, unlocked user session.

    Parameters
    ----------
    service_name : str
        Keyring service name (the shared-storage namespace, default "ssokit").
    key : str
        Entry name under the service (default "ssokit.session").
    """

    def __init__(
        self,
        service_name: str = DEFAULT_SERVICE_NAME,
        key: str = DEFAULT_SESSION_KEY,
    ) -> None:
        """Initialize the keyring storage."""
        import keyring
        import keyring.errors

        self._service_name = service_name
        self._key = key
        self._keyring = keyring
        self._errors = keyring.errors

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def save(self, session: Session | None) -> bool:
        """Save the session to the OS keyring."""
        if session is None:
            return await self.delete()
        try:
            await self._run(
                self._keyring.set_password,
                self._service_name,
                self._key,
                _serialize_session(session),
            )
        except self._errors.KeyringError as exc:
            logger.error("Could not persist session to keyring: %s", exc)
            await self.delete()
            return False
        return True

    async def load(self) -> Session | None:
        """Load the session from the OS keyring."""
        try:
            data = await self._run(self._keyring.get_password, self._service_name, self._key)
        except self._errors.KeyringError as exc:
            logger.error("Could not read session from keyring: %s", exc)
            return None
        if data is None:
            return None
        return _deserialize_session(data)

    async def delete(self) -> bool:
        """Delete the session from the OS keyring."""
        try:
            await self._run(self._keyring.delete_password, self._service_name, self._key)
        except self._errors.PasswordDeleteError:
            # Nothing stored
            return True
        except self._errors.KeyringError as exc:
            logger.error("Could not delete session from keyring: %s", exc)
            return False
        return True


_storage_instance: SessionStorage | None = None
_storage_lock = threading.Lock()


def get_session_storage(backend: str = "keyring", **kwargs: Any) -> SessionStorage:
    """Factory function for session storage.

    Returns a singleton instance. Call ``reset_session_storage()`` to
    clear the cached instance (e.g. in tests).

    Parameters
    ----------
    backend : str
        Storage backend: "memory" or "keyring".
    **kwargs : Any
        ``service_name`` and ``key`` for the keyring backend.

    Returns
    -------
    SessionStorage
        A configured storage instance.
    """
    global _storage_instance  # noqa: PLW0603

    with _storage_lock:
        if _storage_instance is not None:
            return _storage_instance

        if backend == "memory":
            _storage_instance = MemorySessionStorage()
        elif backend == "keyring":
            _storage_instance = KeyringSessionStorage(
                service_name=kwargs.get("service_name", DEFAULT_SERVICE_NAME),
                key=kwargs.get("key", DEFAULT_SESSION_KEY),
            )
        else:
            msg = f"Unknown session storage backend: {backend}"
            raise ValueError(msg)

        return _storage_instance


def reset_session_storage() -> None:
    """Reset the singleton storage instance."""
    global _storage_instance  # noqa: PLW0603

    with _storage_lock:
        _storage_instance = None
