"""Silent session check.

Runs a ``prompt=none`` login to find out whether the browser still holds
a session at the issuer. A UI coordinator decides how the check is
presented and gates its start and the delivery of its result.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from .exceptions import SSOKitError
from .types import LoginState


if TYPE_CHECKING:
    from .browser import BrowserPresenter
    from .manager import SessionManager
    from .session import Session


logger = logging.getLogger("ssokit.session_check")


class SessionCheckUICoordinator:
    """Hooks around a session check.

    Every hook is optional; the defaults do nothing.
    """

    #: Presenter for the check's browser; None uses the manager's presenter.
    presenter: BrowserPresenter | None = None

    async def will_begin_session_check(self) -> None:
        """Called before anything else. The check waits until this returns."""

    def will_download_discovery_document(self) -> None:
        """Called before the discovery document is fetched."""

    def will_present_browser(self) -> None:
        """Called after discovery, right before the browser is presented."""

    async def did_finish_with_result(self, success: bool) -> None:
        """Called with the outcome. The check returns or raises once this returns."""


class DefaultSessionCheckUICoordinator(SessionCheckUICoordinator):
    """Reports the session check through the log."""

    def __init__(self, presenter: BrowserPresenter | None = None) -> None:
        """Initialize the coordinator."""
        self.presenter = presenter

    async def will_begin_session_check(self) -> None:
        """Log the start of the check."""
        logger.info("Login expired, checking for an existing browser session")

    async def did_finish_with_result(self, success: bool) -> None:
        """Log the result."""
        if success:
            logger.info("Session check found an existing session")
        else:
            logger.info("Session check found no session")


class SessionCheckCoordinator:
    """Drives one session check through a ``SessionManager``.

    Parameters
    ----------
    manager : SessionManager
        Performs the ``prompt=none`` login.
    ui_coordinator : SessionCheckUICoordinator
        Receives the hooks.
    """

    def __init__(self, manager: SessionManager, ui_coordinator: SessionCheckUICoordinator) -> None:
        """Initialize the coordinator."""
        self.manager = manager
        self.ui = ui_coordinator

    def _on_login_state(self, state: LoginState) -> None:
        if state is LoginState.BROWSER_WILL_APPEAR:
            self.ui.will_present_browser()

    async def begin(self) -> Session:
        """Run the check.

        Returns
        -------
        Session
            The session established by the silent login.

        Raises
        ------
        SSOKitError
            Any login failure, after ``did_finish_with_result(False)``.
        """
        await self.ui.will_begin_session_check()
        self.ui.will_download_discovery_document()
        try:
            session = await self.manager.present_login(
                presenter=self.ui.presenter,
                prompt="none",
                state_callback=self._on_login_state,
            )
        except SSOKitError:
            await self.ui.did_finish_with_result(False)
            raise
        await self.ui.did_finish_with_result(True)
        return session
