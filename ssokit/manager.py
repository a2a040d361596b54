"""Session lifecycle manager.

Owns the single current session: restores it at startup (racing the
refresh against an offline fallback timer), keeps it fresh, runs the
browser login and logout flows, reacts to reachability changes and
tells delegates about every transition. All state changes happen on one
asyncio event loop.
"""

# pylint: disable=logging-too-many-args,too-many-instance-attributes,too-many-arguments

from __future__ import annotations

import asyncio
import logging

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .browser import SystemBrowserPresenter
from .config import get_settings
from .delegates import DelegateRegistry
from .exceptions import (
    ConfigLoadError,
    InvalidHostIntegrationError,
    LoginFlowError,
    LogoutNetworkError,
    LogoutNoEndSessionURLError,
    LogoutServerError,
    NoSessionToRefreshError,
    RefreshNetworkError,
    RefreshOAuthError,
    RefreshServerError,
    SessionError,
    SSOKitError,
    TokenExchangeError,
    TokenRequestError,
    UnknownSessionError,
)
from .flow import EndSessionAuthorizationFlow, LoginAuthorizationFlow, RedirectHost
from .pkce import PKCEChallenge, generate_state
from .providers import HttpxOIDCClient
from .session import Session
from .session_check import DefaultSessionCheckUICoordinator, SessionCheckCoordinator
from .storage import get_session_storage
from .types import (
    AuthorizationRequest,
    EndSessionResolution,
    LoginState,
    OAuthScope,
    SessionEvent,
    SessionStatus,
)
from .validation import DEFAULT_CLOCK_SKEW_TOLERANCE, TokenValidator


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .browser import BrowserPresenter
    from .config import SSOKitSettings
    from .providers import OIDCClient
    from .reachability import Reachability
    from .session_check import SessionCheckUICoordinator
    from .storage import SessionStorage


logger = logging.getLogger("ssokit.manager")


@dataclass
class _RefreshOutcome:
    """Result of one refresh request, before delegates are told about it."""

    session: Session | None = None
    error: SessionError | None = None
    lost_network: bool = False
    regained_network: bool = False
    announce: bool = True

    @property
    def usable_session(self) -> Session | None:
        """The session to continue with: refreshed, or retained offline."""
        if self.error is None or isinstance(self.error, RefreshNetworkError):
            return self.session
        return None

    def result(self) -> Session:
        """Return the refreshed session or raise the refresh error."""
        if self.error is not None:
            raise self.error
        if self.session is None:
            msg = "Refresh finished without a session or an error"
            raise UnknownSessionError(msg)
        return self.session


class SessionManager:
    """Manages the OAuth2/OIDC session of the application.

    Construct one instance per application and share it.

    Parameters
    ----------
    client : OIDCClient
        Performs discovery, code exchange and refresh.
    storage : SessionStorage
        Persists the current session.
    client_id : str
        The OAuth2 client id.
    issuer_url : str
        The OIDC issuer URL.
    login_redirect_uri : str
        Redirect URI completing the login flow.
    logout_redirect_uri : str
        Redirect URI the issuer returns to after logout.
    resume_redirect_uri : str, optional
        Secondary resume URI of external identification apps.
    presenter : BrowserPresenter, optional
        Default browser presenter for login and logout.
    redirect_host : RedirectHost, optional
        Routes redirect URLs received by the application into flows.
        Login and logout fail with ``InvalidHostIntegrationError``
        without one.
    reachability : Reachability, optional
        Network reachability source.
    scopes : iterable of str
        Scopes requested on every login (``openid`` and ``profile``
        are always included).
    clock_skew_tolerance : float
        Seconds of clock skew accepted by ID token validation.
    offline_fallback_timeout : float
        Seconds ``initialize`` waits for the refresh before falling back
        to the stored session (negative waits indefinitely).
    use_pkce : bool
        Send a PKCE challenge with authorization requests.
    """

    def __init__(
        self,
        client: OIDCClient,
        storage: SessionStorage,
        client_id: str,
        issuer_url: str,
        login_redirect_uri: str,
        logout_redirect_uri: str,
        resume_redirect_uri: str | None = None,
        presenter: BrowserPresenter | None = None,
        redirect_host: RedirectHost | None = None,
        reachability: Reachability | None = None,
        scopes: Iterable[str] = (OAuthScope.OPENID.value, OAuthScope.PROFILE.value),
        clock_skew_tolerance: float = DEFAULT_CLOCK_SKEW_TOLERANCE,
        offline_fallback_timeout: float = 5.0,
        use_pkce: bool = True,
    ) -> None:
        """Initialize the session manager."""
        self.client = client
        self.storage = storage
        self.client_id = client_id
        self.issuer_url = issuer_url
        self.login_redirect_uri = login_redirect_uri
        self.logout_redirect_uri = logout_redirect_uri
        self.resume_redirect_uri = resume_redirect_uri or None
        self.presenter = presenter
        self.redirect_host = redirect_host
        self.reachability = reachability
        self.scopes = list(scopes)
        self.offline_fallback_timeout = offline_fallback_timeout
        self.use_pkce = use_pkce
        self.validator = TokenValidator(issuer_url, client_id, clock_skew_tolerance)
        self.delegates = DelegateRegistry()

        self._initialized = False
        self._current_session: Session | None = None
        self._refresh_task: asyncio.Task[_RefreshOutcome] | None = None
        self._late_refresh: asyncio.Task[_RefreshOutcome] | None = None
        self._reachability_started = False
        self._session_check: SessionCheckCoordinator | None = None

    @classmethod
    def from_settings(
        cls,
        settings: SSOKitSettings | None = None,
        *,
        client: OIDCClient | None = None,
        storage: SessionStorage | None = None,
        presenter: BrowserPresenter | None = None,
        redirect_host: RedirectHost | None = None,
        reachability: Reachability | None = None,
    ) -> SessionManager:
        """Build a manager from ``SSOKitSettings``.

        Without an explicit presenter, loopback login redirect URIs get
        a ``SystemBrowserPresenter``.

        Raises
        ------
        ConfigurationError
            If a required OIDC setting is missing.
        """
        settings = settings or get_settings()
        oidc = settings.oidc
        oidc.require_complete()

        if presenter is None:
            try:
                presenter = SystemBrowserPresenter.for_redirect_uri(oidc.login_redirect_uri)
            except ValueError:
                logger.debug("No default presenter for %s", oidc.login_redirect_uri)

        return cls(
            client=client
            or HttpxOIDCClient(
                client_id=oidc.client_id,
                client_secret=oidc.client_secret,
                timeout=oidc.http_timeout,
            ),
            storage=storage
            or get_session_storage(
                settings.storage.backend,
                service_name=settings.storage.service_name,
                key=settings.storage.key,
            ),
            client_id=oidc.client_id,
            issuer_url=oidc.issuer_url,
            login_redirect_uri=oidc.login_redirect_uri,
            logout_redirect_uri=oidc.logout_redirect_uri,
            resume_redirect_uri=oidc.resume_redirect_uri,
            presenter=presenter,
            redirect_host=redirect_host or RedirectHost(),
            reachability=reachability,
            scopes=oidc.scope_list,
            clock_skew_tolerance=oidc.clock_skew_tolerance,
            offline_fallback_timeout=oidc.offline_fallback_timeout,
            use_pkce=oidc.use_pkce,
        )

    # ── State ───────────────────────────────────────────────────────

    @property
    def initialized(self) -> bool:
        """Whether the startup state has been resolved."""
        return self._initialized

    @property
    def current_session(self) -> Session | None:
        """The current session, if any."""
        return self._current_session

    # ── Delegates ───────────────────────────────────────────────────

    def add_delegate(self, delegate: object) -> None:
        """Register a delegate (held weakly).

        A delegate added after initialization immediately receives
        ``initialized`` with the current session.
        """
        if self.delegates.add(delegate) and self._initialized:
            self.delegates.send(delegate, SessionEvent.INITIALIZED, self._current_session)

    def remove_delegate(self, delegate: object) -> None:
        """Unregister a delegate before it goes away."""
        self.delegates.remove(delegate)

    def _broadcast(self, event: SessionEvent, *args: object) -> None:
        self.delegates.broadcast(event, *args)

    # ── Initialization ──────────────────────────────────────────────

    async def initialize(self, offline_fallback_timeout: float | None = None) -> Session | None:
        """Restore the persisted session.

        A stored session is always refreshed. If the refresh has not
        finished within ``offline_fallback_timeout`` seconds, the stored
        session is announced offline right away and the refresh result
        is reconciled with delegates when it arrives.

        Parameters
        ----------
        offline_fallback_timeout : float, optional
            Overrides the configured timeout; negative disables the fallback.

        Returns
        -------
        Session or None
            The restored session, or None if there is none.

        Raises
        ------
        SessionError
            The refresh error, when the refresh finished first and failed.
            ``RefreshNetworkError.session`` carries the offline session.
        """
        timeout = self.offline_fallback_timeout
        if offline_fallback_timeout is not None:
            timeout = offline_fallback_timeout

        await self._start_reachability()

        pending = self._refresh_task
        if self._current_session is not None and pending is not None and not pending.done():
            logger.info("A refresh is already in flight, waiting for it")
            return await self._join_refresh(pending, timeout)

        logger.info("Restoring session from storage")
        stored = await self.storage.load()
        if stored is None:
            logger.info("No stored session, continuing without one")
            self._current_session = None
            self._deliver_initialize_result(None)
            return None

        if stored.status is SessionStatus.NO_SESSION:
            logger.info("Stored session has no valid expiry, continuing without one")
            self._current_session = None
            self._deliver_initialize_result(None)
            return None

        logger.info("Loaded stored session (%s), refreshing tokens", stored.status.value)
        self._current_session = stored
        return await self._join_refresh(self._start_refresh(), timeout)

    async def _join_refresh(
        self, task: asyncio.Task[_RefreshOutcome], timeout: float
    ) -> Session | None:
        late = task is self._late_refresh
        if timeout >= 0:
            await asyncio.wait({task}, timeout=timeout)
        else:
            await asyncio.wait({task})

        if task.done():
            outcome = task.result()
            if not late:
                self._deliver_initialize_result(outcome.usable_session)
            return outcome.result()

        session = self._current_session
        if session is None:
            if not self._initialized:
                self._deliver_initialize_result(None)
            return None
        logger.info("Refresh not finished in %.1fs, continuing with the offline session", timeout)
        self._deliver_initialize_result(session)
        if not late:
            session.set_online(False)
            self._broadcast(SessionEvent.DID_LOSE_NETWORK_CONNECTION, session)
            self._late_refresh = task
        return session

    async def will_enter_foreground(self) -> Session | None:
        """Re-check the session after the application returns to the foreground.

        Delegates receive ``did_resume_session``, ``did_refresh_session``
        (late refresh) or ``did_lose_session``.
        """
        return await self.initialize()

    def _deliver_initialize_result(self, session: Session | None, late: bool = False) -> None:
        if not self._initialized:
            self._initialized = True
            self._broadcast(SessionEvent.INITIALIZED, session)
        elif session is not None and not late:
            self._broadcast(SessionEvent.DID_RESUME_SESSION, session)
        elif session is not None:
            self._broadcast(SessionEvent.DID_REFRESH_SESSION, session)
        else:
            self._broadcast(SessionEvent.DID_LOSE_SESSION)

    def _refresh_finished(self, task: asyncio.Task[_RefreshOutcome]) -> None:
        late = self._late_refresh is task
        if late:
            self._late_refresh = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Refresh failed unexpectedly: %s", exc, exc_info=exc)
            return
        if late:
            self._reconcile_late_refresh(task.result())
        else:
            self._announce_refresh(task.result())

    def _reconcile_late_refresh(self, outcome: _RefreshOutcome) -> None:
        if not outcome.announce:
            logger.info("Session changed during the late refresh, nothing to reconcile")
            return

        session = outcome.usable_session
        if session is not None and not session.online:
            logger.info("Late refresh also failed with a network error, staying offline")
            return

        self._deliver_initialize_result(session, late=True)
        if session is not None:
            logger.info("Late refresh succeeded, session is online again")
            self._broadcast(SessionEvent.DID_REGAIN_NETWORK_CONNECTION, session)

    # ── Refresh ─────────────────────────────────────────────────────

    async def refresh_session(self) -> Session:
        """Refresh the current session with its refresh token.

        Concurrent calls share one request. Delegates are told about the
        result once, even if the caller that started it was cancelled.

        Returns
        -------
        Session
            The refreshed session.

        Raises
        ------
        NoSessionToRefreshError
            If there is no session or no refresh token.
        RefreshNetworkError
            If the server could not be reached; the session is kept
            offline and available as ``exc.session``.
        RefreshOAuthError
            If the refresh token was rejected; the session is discarded.
        RefreshServerError
            If the server failed; the session is discarded.
        """
        outcome = await asyncio.shield(self._start_refresh())
        return outcome.result()

    def _start_refresh(self) -> asyncio.Task[_RefreshOutcome]:
        """Return the in-flight refresh task, starting one if there is none."""
        if self._refresh_task is not None and not self._refresh_task.done():
            logger.debug("Joining the refresh already in flight")
            return self._refresh_task
        task = asyncio.get_running_loop().create_task(self._refresh_tokens())
        task.add_done_callback(self._refresh_finished)
        self._refresh_task = task
        return task

    async def _refresh_tokens(self) -> _RefreshOutcome:
        session = self._current_session
        if session is None or not session.refresh_token:
            return _RefreshOutcome(error=NoSessionToRefreshError("There is no session to refresh"))

        try:
            configuration = session.configuration
            if not configuration.token_endpoint:
                configuration = await self.client.discover(self.issuer_url)
            tokens = await self.client.refresh(configuration, session.refresh_token)
        except TokenExchangeError as exc:
            return await self._refresh_failed(session, exc)

        if self._current_session is not session:
            return self._replaced_during_refresh()

        refreshed = session.refreshed(tokens, configuration)
        self._current_session = refreshed
        await self._persist(refreshed)
        logger.info("Session refreshed")
        return _RefreshOutcome(session=refreshed, regained_network=not session.online)

    async def _refresh_failed(self, session: Session, exc: TokenExchangeError) -> _RefreshOutcome:
        if self._current_session is not session:
            return self._replaced_during_refresh()

        if exc.is_network_error:
            logger.warning("Refresh failed with a network error, continuing offline: %s", exc)
            was_online = session.online
            session.set_online(False)
            await self._persist(session)
            error = RefreshNetworkError("Network error while refreshing", session=session)
            return _RefreshOutcome(session=session, error=error, lost_network=was_online)

        logger.warning("Refresh failed, discarding the session: %s", exc)
        self._current_session = None
        await self._persist(None)
        if exc.is_server_error:
            return _RefreshOutcome(error=RefreshServerError("Undefined server error"))
        return _RefreshOutcome(
            error=RefreshOAuthError("Could not refresh session. Refresh token might have expired")
        )

    def _replaced_during_refresh(self) -> _RefreshOutcome:
        logger.info("Session changed while refreshing, ignoring the refresh result")
        current = self._current_session
        if current is None:
            return _RefreshOutcome(
                error=NoSessionToRefreshError("The session was removed"), announce=False
            )
        return _RefreshOutcome(session=current, announce=False)

    def _announce_refresh(self, outcome: _RefreshOutcome) -> None:
        session = outcome.session
        if session is None or not outcome.announce:
            return
        if outcome.lost_network:
            self._broadcast(SessionEvent.DID_LOSE_NETWORK_CONNECTION, session)
        if outcome.regained_network:
            self._broadcast(SessionEvent.DID_REGAIN_NETWORK_CONNECTION, session)
        self._broadcast(SessionEvent.DID_REFRESH_SESSION, session)

    async def get_fresh_session(self) -> Session:
        """Return a usable session, refreshing it if it has expired.

        Raises
        ------
        NoSessionToRefreshError
            If there is no session.
        UnknownSessionError
            If the session's status cannot be resolved; the session is
            cleared.
        SessionError
            Any refresh error; delegates receive ``did_lose_session``.
        """
        session = self._current_session
        if session is None:
            raise NoSessionToRefreshError("No session")

        status = session.status
        if status is SessionStatus.VALID:
            return session

        if status is SessionStatus.EXPIRED:
            try:
                return await self.refresh_session()
            except SessionError:
                self._broadcast(SessionEvent.DID_LOSE_SESSION)
                raise

        logger.error("Session present but its status could not be resolved, clearing it")
        self._current_session = None
        await self._persist(None)
        self._broadcast(SessionEvent.DID_LOSE_SESSION)
        raise UnknownSessionError("Session was present but its state was invalid")

    # ── Login ───────────────────────────────────────────────────────

    def _require_host_integration(
        self, presenter: BrowserPresenter | None
    ) -> tuple[BrowserPresenter, RedirectHost]:
        presenter = presenter or self.presenter
        if self.redirect_host is None:
            msg = "No RedirectHost configured; redirect URLs cannot reach the flow"
            raise InvalidHostIntegrationError(msg)
        if presenter is None:
            msg = "No BrowserPresenter configured for the browser flow"
            raise InvalidHostIntegrationError(msg)
        return presenter, self.redirect_host

    def _login_scopes(self, extra_scopes: Iterable[str]) -> list[str]:
        scopes: list[str] = []
        for scope in [OAuthScope.OPENID.value, OAuthScope.PROFILE.value, *self.scopes, *extra_scopes]:
            if scope and scope not in scopes:
                scopes.append(scope)
        return scopes

    def _login_parameters(self, acr_values: list[str], prompt: str | None) -> dict[str, str]:
        params: dict[str, str] = {}
        if acr_values:
            # Space-separated per OpenID Connect Core
            params["acr_values"] = " ".join(acr_values)
        if prompt is not None:
            params["prompt"] = prompt

        # A different login method than the current session's needs a new prompt.
        claims = self._current_session.claims if self._current_session else None
        if claims is not None and claims.acr and claims.acr not in acr_values and prompt != "none":
            logger.info("Requested acr differs from session acr %r, forcing prompt=login", claims.acr)
            params["prompt"] = "login"
        return params

    async def present_login(
        self,
        presenter: BrowserPresenter | None = None,
        extra_scopes: Iterable[str] = (),
        acr_values: Iterable[str] = (),
        prompt: str | None = None,
        state_callback: Callable[[LoginState], None] | None = None,
    ) -> Session:
        """Log in through the browser and establish a new session.

        Presenting login again with different ``acr_values`` performs a
        step-up login and replaces the current session.

        Parameters
        ----------
        presenter : BrowserPresenter, optional
            Overrides the default presenter.
        extra_scopes : iterable of str
            Scopes beyond ``openid`` and ``profile``.
        acr_values : iterable of str
            Requested authentication context classes (see ``AcrValue``).
        prompt : str, optional
            The OpenID Connect ``prompt`` parameter.
        state_callback : callable, optional
            Receives each ``LoginState`` milestone.

        Returns
        -------
        Session
            The established session.

        Raises
        ------
        InvalidHostIntegrationError
            If no presenter or redirect host is configured.
        ConfigLoadError
            If the discovery document cannot be loaded.
        TokenRequestError
            If the browser flow or the code exchange fails.
        IdTokenValidateError
            If the ID token is rejected.
        """
        if not self._initialized:
            logger.warning(
                "present_login called before the session manager initialized; "
                "a valid session might already be stored"
            )

        presenter, host = self._require_host_integration(presenter)
        acr_list = [acr.value if isinstance(acr, Enum) else str(acr) for acr in acr_values]

        try:
            configuration = await self.client.discover(self.issuer_url)
        except TokenExchangeError as exc:
            msg = f"Could not load service configuration from {self.issuer_url}"
            raise ConfigLoadError(msg, provider=self.issuer_url) from exc
        finally:
            _report(state_callback, LoginState.CONFIGURATION_LOADED)

        pkce = PKCEChallenge.generate() if self.use_pkce else None
        request = AuthorizationRequest(
            configuration=configuration,
            client_id=self.client_id,
            redirect_uri=self.login_redirect_uri,
            scopes=self._login_scopes(extra_scopes),
            state=generate_state(),
            code_verifier=pkce.verifier if pkce else None,
            code_challenge=pkce.challenge if pkce else None,
            additional_parameters=self._login_parameters(acr_list, prompt),
        )

        flow = LoginAuthorizationFlow(request, presenter, self.resume_redirect_uri)
        host.begin(flow)
        _report(state_callback, LoginState.BROWSER_WILL_APPEAR)
        try:
            response = await flow.present()
        except LoginFlowError as exc:
            msg = "Could not log in using the browser"
            raise TokenRequestError(msg, flow_id=flow.flow_id, reason=exc.kind.value) from exc
        finally:
            host.end(flow)
            _report(state_callback, LoginState.BROWSER_DID_DISAPPEAR)

        try:
            tokens = await self.client.exchange_code(response)
        except TokenExchangeError as exc:
            msg = f"Token exchange failed: {exc.message}"
            raise TokenRequestError(msg, flow_id=flow.flow_id) from exc
        _report(state_callback, LoginState.TOKEN_EXCHANGE_COMPLETED)

        _report(state_callback, LoginState.ID_TOKEN_WILL_VALIDATE)
        self.validator.validate(tokens)

        session = Session(tokens=tokens, configuration=configuration)
        self._current_session = session
        await self._persist(session)
        logger.info("Login completed")
        self._broadcast(SessionEvent.DID_COMPLETE_LOGIN, session)
        return session

    async def present_session_check(
        self,
        ui_coordinator: SessionCheckUICoordinator | None = None,
    ) -> Session:
        """Silently check for an existing browser session (``prompt=none``).

        On failure the current session is cleared and delegates receive
        ``did_lose_session`` before the error propagates.
        """
        coordinator = SessionCheckCoordinator(self, ui_coordinator or DefaultSessionCheckUICoordinator())
        self._session_check = coordinator
        try:
            return await coordinator.begin()
        except SSOKitError:
            self._current_session = None
            await self._persist(None)
            self._broadcast(SessionEvent.DID_LOSE_SESSION)
            raise
        finally:
            self._session_check = None

    # ── Logout ──────────────────────────────────────────────────────

    async def logout(
        self,
        presenter: BrowserPresenter | None = None,
        loading_callback: Callable[[], None] | None = None,
    ) -> None:
        """End the session at the issuer and locally.

        The session is refreshed first to obtain a current ID token.

        Parameters
        ----------
        presenter : BrowserPresenter, optional
            Overrides the default presenter.
        loading_callback : callable, optional
            Called once the refresh finished, before the browser appears.

        Raises
        ------
        RefreshOAuthError
            If the refresh token was rejected (nothing to log out).
        LogoutNoEndSessionURLError
            If the discovery document has no end session endpoint.
        LogoutNetworkError
            If the issuer or the logout page could not be reached.
        LogoutServerError
            If the logout could not be confirmed.
        UnknownSessionError
            For any other refresh failure.
        """
        logger.info("Ending session")

        try:
            session = await self.refresh_session()
        except SessionError as exc:
            _notify(loading_callback)
            await self._logout_after_failed_refresh(exc)
            return
        _notify(loading_callback)

        endpoint = session.configuration.end_session_endpoint
        if not endpoint:
            logger.error("The discovery document has no end session endpoint")
            msg = "Could not resolve the end session URL from the discovery document"
            raise LogoutNoEndSessionURLError(msg)

        presenter, host = self._require_host_integration(presenter)
        flow = EndSessionAuthorizationFlow(
            endpoint, session.id_token or "", self.logout_redirect_uri, presenter
        )
        host.begin(flow)
        try:
            resolution = await flow.present()
        finally:
            host.end(flow)

        if resolution is EndSessionResolution.SUCCESS:
            logger.info("Logout successful")
            await self._end_session()
            return

        if resolution is EndSessionResolution.LOGOUT_URL_LOAD_ERROR:
            raise LogoutNetworkError("Could not load the logout URL")

        # Ambiguous: the session may or may not still exist on the server.
        logger.info("Logout ended with %s, verifying the session", resolution.value)
        try:
            await self.refresh_session()
        except RefreshNetworkError as exc:
            msg = "Logout could not be confirmed because of a server error"
            raise LogoutServerError(msg) from exc
        except SessionError:
            await self._end_session()
            return
        raise LogoutServerError("Logout could not be completed because of a server error")

    async def _logout_after_failed_refresh(self, error: SessionError) -> None:
        if isinstance(error, NoSessionToRefreshError):
            # Nothing to end: already logged out.
            await self._end_session()
            return
        if isinstance(error, RefreshOAuthError):
            raise error
        if isinstance(error, RefreshNetworkError):
            msg = "Network error while logging out; the session might still exist"
            raise LogoutNetworkError(msg) from error
        if isinstance(error, RefreshServerError):
            msg = "Server error while logging out; the session might still exist"
            raise LogoutServerError(msg) from error
        raise UnknownSessionError("Unknown error while logging out") from error

    async def _end_session(self) -> None:
        self._current_session = None
        await self._delete_storage()
        self._broadcast(SessionEvent.DID_LOGOUT)

    # ── Data ────────────────────────────────────────────────────────

    async def delete_all_data(self) -> None:
        """Forget the session and reset initialization. Safe to call repeatedly."""
        self._current_session = None
        self._initialized = False
        if await self._delete_storage():
            logger.info("Session data deleted")

    async def _persist(self, session: Session | None) -> None:
        if not await self.storage.save(session):
            logger.error("Could not persist the session")

    async def _delete_storage(self) -> bool:
        ok = await self.storage.delete()
        if not ok:
            logger.error("Could not delete the stored session")
        return ok

    # ── Reachability ────────────────────────────────────────────────

    async def _start_reachability(self) -> None:
        if self.reachability is None or self._reachability_started:
            return
        self.reachability.set_handlers(self.network_became_reachable, self.network_became_unreachable)
        try:
            await self.reachability.start()
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not start reachability monitoring: %s", exc)
            return
        self._reachability_started = True

    def network_became_reachable(self) -> None:
        """Mark the session online and tell delegates."""
        session = self._current_session
        if session is not None:
            session.set_online(True)
            self._broadcast(SessionEvent.DID_REGAIN_NETWORK_CONNECTION, session)

    def network_became_unreachable(self) -> None:
        """Mark the session offline and tell delegates."""
        session = self._current_session
        if session is not None:
            session.set_online(False)
            self._broadcast(SessionEvent.DID_LOSE_NETWORK_CONNECTION, session)

    # ── Shutdown ────────────────────────────────────────────────────

    async def close(self) -> None:
        """Stop reachability, cancel pending work and release the HTTP client."""
        for task in (self._late_refresh, self._refresh_task):
            if task is not None and not task.done():
                task.cancel()
        if self.reachability is not None and self._reachability_started:
            await self.reachability.stop()
            self._reachability_started = False
        await self.client.close()


def _report(callback: Callable[[LoginState], None] | None, state: LoginState) -> None:
    if callback is None:
        return
    try:
        callback(state)
    except Exception:  # noqa: BLE001
        logger.exception("Login state callback failed for %s", state.value)


def _notify(callback: Callable[[], None] | None) -> None:
    if callback is None:
        return
    try:
        callback()
    except Exception:  # noqa: BLE001
        logger.exception("Logout loading callback failed")
