"""Browser presentation collaborator.

Redirect flows hand a URL to a BrowserPresenter and listen for what
happens next through the PresentationListener callbacks. The default
SystemBrowserPresenter opens the system browser and receives loopback
redirects on a local HTTP server.
"""

# pylint: disable=logging-too-many-args,protected-access

from __future__ import annotations

import asyncio
import logging
import webbrowser

from abc import ABC, abstractmethod
from urllib.parse import urlparse

from .callback_server import LoopbackRedirectServer
from .log import redact_url


logger = logging.getLogger("ssokit.browser")


class PresentationListener(ABC):
    """Receives the outcome of a browser presentation.

    All methods are invoked on the event loop thread.
    """

    @abstractmethod
    def presentation_did_receive_url(self, url: str) -> None:
        """The browser delivered a callback URL."""

    @abstractmethod
    def presentation_did_dismiss(self) -> None:
        """The presentation was closed by the user."""

    @abstractmethod
    def presentation_did_fail_load(self) -> None:
        """The presented page could not be loaded."""

    @abstractmethod
    def presentation_did_fail(self, error: BaseException) -> None:
        """The presentation failed for another reason."""


class BrowserSession(ABC):
    """Handle of one presented browser surface."""

    @abstractmethod
    def dismiss(self, animated: bool = True) -> None:
        """Close the surface without notifying the listener of a user dismissal."""


class BrowserPresenter(ABC):
    """Presents URLs to the user in a browser surface."""

    @abstractmethod
    def present(
        self,
        url: str,
        listener: PresentationListener,
        callback_scheme: str | None = None,
    ) -> BrowserSession:
        """Present ``url``.

        Parameters
        ----------
        url : str
            The page to open.
        listener : PresentationListener
            Receives callback URLs, dismissal and failures.
        callback_scheme : str, optional
            URL scheme the surface should treat as a callback.

        Returns
        -------
        BrowserSession
            Handle used to dismiss the surface.
        """


class _SystemBrowserSession(BrowserSession):
    """A page opened in the system browser."""

    def __init__(
        self,
        presenter: SystemBrowserPresenter,
        listener: PresentationListener,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.presenter = presenter
        self.listener = listener
        self.loop = loop
        self.closed = False
        self.timeout_handle: asyncio.TimerHandle | None = None

    def dismiss(self, animated: bool = True) -> None:
        """Stop listening for redirects. The browser tab itself stays open."""
        self.presenter._close(self)

    def expire(self) -> None:
        """Treat an unanswered presentation as abandoned by the user."""
        if self.closed:
            return
        logger.info("No redirect received in time, treating the browser as dismissed")
        self.presenter._close(self)
        self.listener.presentation_did_dismiss()


class SystemBrowserPresenter(BrowserPresenter):
    """Opens pages in the system browser and captures loopback redirects.

    Redirect URIs must point at ``http://127.0.0.1:<port>``. Redirects
    are delivered to the most recently presented session.

    Parameters
    ----------
    port : int
        Loopback port the redirect URIs use.
    host : str
        Loopback bind address (default ``"127.0.0.1"``).
    timeout : float
        Seconds without a redirect after which a presentation counts as
        dismissed by the user (default ``300``; ``0`` waits forever).
    """

    def __init__(self, port: int, host: str = "127.0.0.1", timeout: float = 300.0) -> None:
        """Initialize the presenter."""
        self.port = port
        self.host = host
        self.timeout = timeout
        self._server: LoopbackRedirectServer | None = None
        self._sessions: list[_SystemBrowserSession] = []

    @classmethod
    def for_redirect_uri(cls, redirect_uri: str, timeout: float = 300.0) -> SystemBrowserPresenter:
        """Build a presenter listening on the host and port of ``redirect_uri``."""
        parsed = urlparse(redirect_uri)
        if parsed.scheme != "http" or parsed.hostname not in {"127.0.0.1", "localhost"}:
            msg = f"System browser redirects need a loopback http URI, got {redirect_uri!r}"
            raise ValueError(msg)
        return cls(port=parsed.port or 80, host=parsed.hostname, timeout=timeout)

    def present(
        self,
        url: str,
        listener: PresentationListener,
        callback_scheme: str | None = None,
    ) -> BrowserSession:
        """Open ``url`` in the system browser."""
        loop = asyncio.get_running_loop()
        session = _SystemBrowserSession(self, listener, loop)

        if self._server is None:
            self._server = LoopbackRedirectServer(self._on_redirect, host=self.host, port=self.port)
            try:
                self._server.start()
            except OSError as exc:
                self._server = None
                loop.call_soon(listener.presentation_did_fail, exc)
                session.closed = True
                return session

        self._sessions.append(session)
        if self.timeout > 0:
            session.timeout_handle = loop.call_later(self.timeout, session.expire)

        logger.info("Opening system browser: %s", redact_url(url))
        if not webbrowser.open(url):
            logger.warning("No browser could be opened")
            self._close(session)
            loop.call_soon(listener.presentation_did_fail_load)
        return session

    def _on_redirect(self, url: str) -> None:
        """Deliver a captured URL from the server thread to the newest session."""
        if not self._sessions:
            logger.debug("Redirect received with no active presentation")
            return
        session = self._sessions[-1]
        session.loop.call_soon_threadsafe(self._deliver, session, url)

    def _deliver(self, session: _SystemBrowserSession, url: str) -> None:
        if session.closed:
            return
        session.listener.presentation_did_receive_url(url)

    def _close(self, session: _SystemBrowserSession) -> None:
        session.closed = True
        if session.timeout_handle is not None:
            session.timeout_handle.cancel()
            session.timeout_handle = None
        if session in self._sessions:
            self._sessions.remove(session)
        if not self._sessions and self._server is not None:
            server, self._server = self._server, None
            server.stop()
