"""Browser redirect flows for login and logout.

A flow presents one URL through a BrowserPresenter and waits until a
redirect URL resolves it. Redirects arrive either from the presenter
(``presentation_did_receive_url``) or from the host application through
``RedirectHost.handle_url``; both end up in ``resume_flow``.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging
import secrets

from abc import abstractmethod
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, parse_qsl, unquote, urlencode, urlsplit, urlunsplit

from .browser import PresentationListener
from .exceptions import LoginFlowError, LoginFlowErrorKind
from .log import redact_url
from .types import AuthFlowState, AuthorizationResponse, EndSessionResolution


if TYPE_CHECKING:
    from .browser import BrowserPresenter, BrowserSession
    from .types import AuthorizationRequest


logger = logging.getLogger("ssokit.flow")


def urls_match(url1: str | None, url2: str | None) -> bool:
    """Whether two URLs address the same redirect target.

    Scheme, user, password, host, port and path are compared; query
    and fragment are ignored.
    """
    if not url1 or not url2:
        return False
    try:
        a, b = urlsplit(url1), urlsplit(url2)
        return (
            a.scheme.lower() == b.scheme.lower()
            and a.username == b.username
            and a.password == b.password
            and a.hostname == b.hostname
            and a.port == b.port
            and a.path == b.path
        )
    except ValueError:
        # Malformed port
        return False


def _scheme_of(url: str | None) -> str | None:
    return urlsplit(url).scheme or None if url else None


class AuthorizationFlow(PresentationListener):
    """Base class of a pending redirect flow.

    The flow resolves exactly once; later resolutions are ignored.

    Parameters
    ----------
    presenter : BrowserPresenter
        Presents the flow's URL.
    """

    def __init__(self, presenter: BrowserPresenter) -> None:
        """Initialize the flow."""
        self.presenter = presenter
        self.flow_id = secrets.token_urlsafe(16)
        self._flow_state = AuthFlowState.PENDING
        self._future: asyncio.Future[Any] | None = None
        self._browser: BrowserSession | None = None
        # Set only when a matched redirect closes the browser.
        self._auto_dismissed = False

    @property
    def flow_state(self) -> AuthFlowState:
        """Current state of the flow."""
        return self._flow_state

    @property
    def done(self) -> bool:
        """Whether the flow has resolved."""
        return self._future is not None and self._future.done()

    @abstractmethod
    def resume_flow(self, url: str) -> bool:
        """Offer a redirect URL to the flow.

        Returns
        -------
        bool
            True if the URL belonged to this flow.
        """

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the flow and close its browser surface."""

    def presentation_did_receive_url(self, url: str) -> None:
        """Route a URL captured by the presenter."""
        if not self.resume_flow(url):
            logger.debug("Flow %s ignored unrelated URL %s", self.flow_id, redact_url(url))

    async def _run(self, url: str, callback_scheme: str | None) -> Any:
        loop = asyncio.get_running_loop()
        self._future = loop.create_future()
        self._flow_state = AuthFlowState.IN_PROGRESS
        logger.info("Flow %s presenting %s", self.flow_id, redact_url(url))

        try:
            self._browser = self.presenter.present(url, self, callback_scheme)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Flow %s could not present the browser", self.flow_id)
            self.presentation_did_fail(exc)

        try:
            return await self._future
        except asyncio.CancelledError:
            if not self._future.done() or self._future.cancelled():
                self._dismiss()
                self._flow_state = AuthFlowState.CANCELLED
            raise

    def _dismiss(self) -> None:
        if self._browser is not None:
            self._browser.dismiss(animated=True)
            self._browser = None

    def _resolve(self, result: Any) -> bool:
        if self._future is None or self._future.done():
            return False
        self._flow_state = AuthFlowState.COMPLETED
        self._future.set_result(result)
        return True

    def _reject(self, exc: BaseException, state: AuthFlowState = AuthFlowState.FAILED) -> bool:
        if self._future is None or self._future.done():
            return False
        self._flow_state = state
        self._future.set_exception(exc)
        return True


class LoginAuthorizationFlow(AuthorizationFlow):
    """Authorization code login through the browser.

    Supports a two-phase handoff: when an external identification app
    returns to ``resume_redirect_uri`` with a ``return_url`` parameter,
    the flow continues in a new presentation of that URL and waits for
    the final login redirect there.

    Parameters
    ----------
    request : AuthorizationRequest
        The request to present; its ``redirect_uri`` and ``state``
        are checked against the redirect.
    presenter : BrowserPresenter
        Presents the authorization and resume URLs.
    resume_redirect_uri : str, optional
        The secondary resume URI.
    """

    def __init__(
        self,
        request: AuthorizationRequest,
        presenter: BrowserPresenter,
        resume_redirect_uri: str | None = None,
    ) -> None:
        """Initialize the login flow."""
        super().__init__(presenter)
        self.request = request
        self.resume_redirect_uri = resume_redirect_uri or None

    async def present(self) -> AuthorizationResponse:
        """Present the authorization URL and wait for the redirect.

        Returns
        -------
        AuthorizationResponse
            The accepted redirect parameters.

        Raises
        ------
        LoginFlowError
            If the flow fails or is cancelled.
        """
        return await self._run(self.request.url, _scheme_of(self.request.redirect_uri))

    def resume_flow(self, url: str) -> bool:
        """Match ``url`` against the resume and login redirect URIs."""
        if self.done:
            return False

        if urls_match(url, self.resume_redirect_uri):
            return self._continue_secondary(url)

        if not urls_match(url, self.request.redirect_uri):
            return False

        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))

        # OAuth error response (RFC 6749 section 4.1.2.1)
        if "error" in params:
            self._dismiss()
            description = params.get("error_description") or params["error"]
            self._fail(LoginFlowErrorKind.OAUTH_ERROR, f"Authorization failed: {description}")
            return True

        received_state = params.get("state")
        if received_state != self.request.state:
            logger.error("Flow %s state mismatch, rejecting the redirect", self.flow_id)
            self._dismiss()
            self._fail(LoginFlowErrorKind.STATE_MISMATCH, "State parameter mismatch")
            return True

        self._auto_dismissed = True
        self._dismiss()
        logger.info("Flow %s login redirect accepted, browser dismissed", self.flow_id)
        self._resolve(AuthorizationResponse(request=self.request, parameters=params))
        return True

    def _continue_secondary(self, url: str) -> bool:
        values = parse_qs(urlsplit(url).query).get("return_url")
        return_url = unquote(values[0]) if values else ""
        parts = urlsplit(return_url)
        if not parts.scheme or not parts.netloc:
            self._dismiss()
            self._fail(LoginFlowErrorKind.INVALID_RESUME_URL, "Malformed return_url in resume URL")
            return True

        logger.info("Flow %s continuing at the resume return URL", self.flow_id)
        # The chained presentation replaces the first one.
        primary, self._browser = self._browser, None
        try:
            self._browser = self.presenter.present(
                return_url,
                self,
                _scheme_of(self.resume_redirect_uri),
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Flow %s could not present the resume URL", self.flow_id)
            self.presentation_did_fail(exc)
        finally:
            if primary is not None:
                primary.dismiss(animated=False)
        return True

    def cancel(self) -> None:
        """Cancel the login. Resolves the flow as cancelled."""
        self._dismiss()
        self._fail(LoginFlowErrorKind.CANCELLED, "Login cancelled", AuthFlowState.CANCELLED)

    def presentation_did_dismiss(self) -> None:
        """A browser closed without a matched redirect counts as cancelled."""
        if self._auto_dismissed:
            return
        logger.info("Flow %s browser was closed by the user", self.flow_id)
        self._browser = None
        self._fail(LoginFlowErrorKind.CANCELLED, "Login cancelled", AuthFlowState.CANCELLED)

    def presentation_did_fail_load(self) -> None:
        """The login page could not be loaded."""
        self._browser = None
        self._fail(LoginFlowErrorKind.LOGIN_URL_LOAD_ERROR, "Login page could not be loaded")

    def presentation_did_fail(self, error: BaseException) -> None:
        """Any other presentation failure."""
        logger.error("Flow %s failed: %s", self.flow_id, error)
        self._dismiss()
        self._fail(LoginFlowErrorKind.AUTH_FLOW_ERROR, f"Authorization flow failed: {error}")

    def _fail(
        self,
        kind: LoginFlowErrorKind,
        message: str,
        state: AuthFlowState = AuthFlowState.FAILED,
    ) -> None:
        self._reject(LoginFlowError(message, kind=kind, flow_id=self.flow_id), state)


class EndSessionAuthorizationFlow(AuthorizationFlow):
    """Logout through the issuer's end session endpoint.

    Parameters
    ----------
    end_session_endpoint : str
        The end session URL from the discovery document.
    id_token : str
        The ID token of the session being ended.
    redirect_uri : str
        The post-logout redirect URI that marks success.
    presenter : BrowserPresenter
        Presents the logout page.
    """

    def __init__(
        self,
        end_session_endpoint: str,
        id_token: str,
        redirect_uri: str,
        presenter: BrowserPresenter,
    ) -> None:
        """Initialize the logout flow."""
        super().__init__(presenter)
        self.end_session_endpoint = end_session_endpoint
        self.id_token = id_token
        self.redirect_uri = redirect_uri

    @property
    def url(self) -> str:
        """The logout URL with ``id_token_hint`` and ``post_logout_redirect_uri``."""
        parts = urlsplit(self.end_session_endpoint)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query += [
            ("id_token_hint", self.id_token),
            ("post_logout_redirect_uri", self.redirect_uri),
        ]
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def present(self) -> EndSessionResolution:
        """Present the logout page and wait for its resolution.

        Returns
        -------
        EndSessionResolution
            How the logout flow ended.
        """
        return await self._run(self.url, _scheme_of(self.redirect_uri))

    def resume_flow(self, url: str) -> bool:
        """Match ``url`` against the post-logout redirect URI."""
        if self.done or not urls_match(url, self.redirect_uri):
            return False
        self._auto_dismissed = True
        self._dismiss()
        self._resolve(EndSessionResolution.SUCCESS)
        return True

    def cancel(self) -> None:
        """Cancel the logout. Not used by the session manager."""
        self._dismiss()
        if self._resolve(EndSessionResolution.CANCELLED):
            self._flow_state = AuthFlowState.CANCELLED

    def presentation_did_dismiss(self) -> None:
        """The user closed the logout page before the redirect."""
        if self._auto_dismissed:
            return
        logger.info("Flow %s logout page was closed by the user", self.flow_id)
        self._browser = None
        self._resolve(EndSessionResolution.MANUALLY_DISMISSED)

    def presentation_did_fail_load(self) -> None:
        """The logout page could not be loaded."""
        self._browser = None
        self._resolve(EndSessionResolution.LOGOUT_URL_LOAD_ERROR)

    def presentation_did_fail(self, error: BaseException) -> None:
        """Any other presentation failure."""
        logger.error("Flow %s logout failed: %s", self.flow_id, error)
        self._dismiss()
        self._resolve(EndSessionResolution.AUTHORIZATION_FLOW_ERROR)


class RedirectHost:
    """Routes URL events delivered to the host application into pending flows.

    Applications that receive redirects outside the presenter (custom
    URL schemes, deep links) call ``handle_url`` with every incoming URL.
    At most one flow of each kind is pending at a time.
    """

    def __init__(self) -> None:
        """Initialize the host with no pending flows."""
        self._flows: dict[type[AuthorizationFlow], AuthorizationFlow] = {}

    @property
    def pending_flows(self) -> list[AuthorizationFlow]:
        """Flows that have not resolved yet."""
        return [flow for flow in self._flows.values() if not flow.done]

    def begin(self, flow: AuthorizationFlow) -> None:
        """Register ``flow``, cancelling an older pending flow of the same kind."""
        previous = self._flows.get(type(flow))
        if previous is not None and previous is not flow and not previous.done:
            logger.warning("Replacing pending %s %s", type(previous).__name__, previous.flow_id)
            previous.cancel()
        self._flows[type(flow)] = flow

    def end(self, flow: AuthorizationFlow) -> None:
        """Forget ``flow`` if it is still registered."""
        if self._flows.get(type(flow)) is flow:
            del self._flows[type(flow)]

    def handle_url(self, url: str) -> bool:
        """Offer ``url`` to the pending flows.

        Returns
        -------
        bool
            True if a flow consumed the URL; False lets the application
            route the URL elsewhere.
        """
        for flow in list(self._flows.values()):
            if flow.resume_flow(url):
                if flow.done:
                    self.end(flow)
                return True
        return False
