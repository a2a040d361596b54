"""ssokit exception hierarchy.

All ssokit-specific exceptions inherit from SSOKitError, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from .session import Session


class SSOKitError(Exception):
    """Base exception for all ssokit errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize ssokit exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, flow_id, code, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class ConfigurationError(SSOKitError):
    """Required configuration is missing or malformed.

    Raised when a manager or client is built from settings that lack
    the client id, issuer URL, or one of the redirect URIs.
    """

    def __init__(self, message: str, setting: str | None = None, **context: Any) -> None:
        """Initialize configuration error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        setting : str, optional
            Name of the offending setting.
        **context : Any
            Additional context.
        """
        super().__init__(message, setting=setting, **context)
        self.setting = setting


class AuthenticationError(SSOKitError):
    """Base exception for all authentication failures.

    Raised when an authentication operation fails, including
    OAuth2 flows, token validation, or session management.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The OIDC issuer or client name.
        flow_id : str, optional
            The unique identifier of the auth flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


# ── Session manager errors ──────────────────────────────────────────


class ErrorCode(IntEnum):
    """All possible errors reported by the session manager."""

    INVALID_HOST_INTEGRATION = 0
    CONFIG_LOAD_ERROR = 1
    TOKEN_REQUEST_ERROR = 2
    ID_TOKEN_VALIDATE_ERROR = 3
    NO_SESSION_TO_REFRESH = 4
    REFRESH_OAUTH_ERROR = 5
    REFRESH_NETWORK_ERROR = 6
    REFRESH_SERVER_ERROR = 7
    LOGOUT_NO_END_SESSION_URL = 8
    LOGOUT_NETWORK_ERROR = 9
    LOGOUT_SERVER_ERROR = 10
    UNKNOWN_ERROR = 11


class SessionError(AuthenticationError):
    """Base exception for session manager operations.

    Every subclass pins ``code`` to one ``ErrorCode`` member so callers
    can either catch by class or switch on the code.
    """

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize session error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context.
        """
        super().__init__(message, **context)


class InvalidHostIntegrationError(SessionError):
    """The host application did not wire redirect URLs back into ssokit."""

    code = ErrorCode.INVALID_HOST_INTEGRATION


class ConfigLoadError(SessionError):
    """The OIDC discovery document could not be loaded."""

    code = ErrorCode.CONFIG_LOAD_ERROR


class TokenRequestError(SessionError):
    """The authorization or token exchange step failed."""

    code = ErrorCode.TOKEN_REQUEST_ERROR


class IdTokenValidateError(SessionError):
    """The ID token was rejected by claim validation."""

    code = ErrorCode.ID_TOKEN_VALIDATE_ERROR


class NoSessionToRefreshError(SessionError):
    """No session (or no refresh token) exists."""

    code = ErrorCode.NO_SESSION_TO_REFRESH


class RefreshOAuthError(SessionError):
    """The server rejected the refresh token. It has most probably expired."""

    code = ErrorCode.REFRESH_OAUTH_ERROR


class RefreshNetworkError(SessionError):
    """A network error occurred while refreshing.

    The last known session is retained in an offline state and is
    available as ``session``.
    """

    code = ErrorCode.REFRESH_NETWORK_ERROR

    def __init__(self, message: str, session: Session | None = None, **context: Any) -> None:
        """Initialize refresh network error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        session : Session, optional
            The retained offline session.
        **context : Any
            Additional context.
        """
        super().__init__(message, **context)
        self.session = session


class RefreshServerError(SessionError):
    """The server failed while refreshing the session."""

    code = ErrorCode.REFRESH_SERVER_ERROR


class LogoutNoEndSessionURLError(SessionError):
    """The discovery document has no end session endpoint."""

    code = ErrorCode.LOGOUT_NO_END_SESSION_URL


class LogoutNetworkError(SessionError):
    """A network error occurred while logging out. The session might still exist."""

    code = ErrorCode.LOGOUT_NETWORK_ERROR


class LogoutServerError(SessionError):
    """Logout could not be completed because of a server error."""

    code = ErrorCode.LOGOUT_SERVER_ERROR


class UnknownSessionError(SessionError):
    """Unclassified failure or an internally inconsistent session state."""

    code = ErrorCode.UNKNOWN_ERROR


# ── Redirect flow errors ────────────────────────────────────────────


class LoginFlowErrorKind(str, Enum):
    """Reasons a browser login flow can fail."""

    OAUTH_ERROR = "oauth_error"
    STATE_MISMATCH = "state_mismatch"
    CANCELLED = "cancelled"
    LOGIN_URL_LOAD_ERROR = "login_url_load_error"
    AUTH_FLOW_ERROR = "auth_flow_error"
    INVALID_RESUME_URL = "invalid_resume_url"
    PRESENTATION_UNAVAILABLE = "presentation_unavailable"


class LoginFlowError(AuthenticationError):
    """The browser login flow ended without an authorization response."""

    def __init__(
        self,
        message: str,
        kind: LoginFlowErrorKind,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize login flow error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        kind : LoginFlowErrorKind
            The failure classification.
        flow_id : str, optional
            The flow that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, flow_id=flow_id, kind=kind.value, **context)
        self.kind = kind


# ── Token exchange collaborator errors ──────────────────────────────


class TokenExchangeErrorKind(str, Enum):
    """Classification of token endpoint failures."""

    NETWORK = "network"
    SERVER = "server"
    OAUTH = "oauth"
    INVALID_RESPONSE = "invalid_response"


class TokenExchangeError(AuthenticationError):
    """A discovery, code exchange, or refresh request failed.

    Network-class and server-class failures are distinguishable
    through ``kind`` so the session manager can keep a session
    offline instead of discarding it.
    """

    def __init__(
        self,
        message: str,
        kind: TokenExchangeErrorKind,
        provider: str | None = None,
        oauth_error: str | None = None,
        status_code: int | None = None,
        **context: Any,
    ) -> None:
        """Initialize token exchange error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        kind : TokenExchangeErrorKind
            The failure classification.
        provider : str, optional
            The issuer that was contacted.
        oauth_error : str, optional
            The ``error`` field of an OAuth error response.
        status_code : int, optional
            The HTTP status code, if a response was received.
        **context : Any
            Additional context.
        """
        super().__init__(
            message,
            provider=provider,
            kind=kind.value,
            oauth_error=oauth_error,
            status_code=status_code,
            **context,
        )
        self.kind = kind
        self.oauth_error = oauth_error
        self.status_code = status_code

    @property
    def is_network_error(self) -> bool:
        """Whether the request never reached the server."""
        return self.kind is TokenExchangeErrorKind.NETWORK

    @property
    def is_server_error(self) -> bool:
        """Whether the server failed to process the request."""
        return self.kind is TokenExchangeErrorKind.SERVER
