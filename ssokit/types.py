"""Type definitions shared across ssokit.

Token sets, decoded ID token claims, discovery configuration and the
authorization request/response pair exchanged with redirect flows.
"""

from __future__ import annotations

import time

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlencode


class SessionStatus(str, Enum):
    """Derived status of a session."""

    NO_SESSION = "no_session"
    EXPIRED = "expired"
    VALID = "valid"


class LoginState(str, Enum):
    """Intermediate login states for UI flow management."""

    CONFIGURATION_LOADED = "configuration_loaded"
    BROWSER_WILL_APPEAR = "browser_will_appear"
    BROWSER_DID_DISAPPEAR = "browser_did_disappear"
    TOKEN_EXCHANGE_COMPLETED = "token_exchange_completed"
    ID_TOKEN_WILL_VALIDATE = "id_token_will_validate"


class EndSessionResolution(str, Enum):
    """All outcomes recognized by the logout redirect flow.

    ``MANUALLY_DISMISSED`` is ambiguous: the user may not have waited
    for the logout page, or the server failed without redirecting.
    The session has to be re-verified before drawing a conclusion.
    """

    SUCCESS = "success"
    MANUALLY_DISMISSED = "manually_dismissed"
    CANCELLED = "cancelled"
    LOGOUT_URL_LOAD_ERROR = "logout_url_load_error"
    AUTHORIZATION_FLOW_ERROR = "authorization_flow_error"


class AuthFlowState(str, Enum):
    """State of a browser redirect flow."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SessionEvent(str, Enum):
    """Observable session lifecycle events.

    The value is the delegate method name that receives the event.
    """

    INITIALIZED = "initialized"
    DID_RESUME_SESSION = "did_resume_session"
    DID_REFRESH_SESSION = "did_refresh_session"
    DID_LOSE_NETWORK_CONNECTION = "did_lose_network_connection_for_session"
    DID_REGAIN_NETWORK_CONNECTION = "did_regain_network_connection_for_session"
    DID_LOSE_SESSION = "did_lose_session"
    DID_COMPLETE_LOGIN = "did_complete_login"
    DID_LOGOUT = "did_logout"


class AcrValue(str, Enum):
    """Authentication context class references understood by the default backend."""

    INTERNAL = "internal"
    BANKID = "bankid"
    TUPAS = "tupas"


class OAuthScope(str, Enum):
    """Scopes that are always requested."""

    OPENID = "openid"
    PROFILE = "profile"


@dataclass
class TokenSet:
    """OAuth2 token set returned by the token endpoint.

    Attributes
    ----------
    access_token : str
        The access token for API requests.
    refresh_token : str or None
        Refresh token for obtaining new access tokens.
    id_token : str or None
        The OIDC ID token (JWT).
    token_type : str
        Token type, typically "Bearer".
    expires_in : int or None
        Access token lifetime in seconds from issuance.
    scope : str
        Space-separated list of granted scopes.
    raw : dict[str, Any]
        The raw token response.
    issued_at : float
        Unix timestamp when the token response was received.
    """

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "Bearer"  # noqa: S105
    expires_in: int | None = None
    scope: str = ""
    raw: dict[str, Any] = field(default_factory=dict)
    issued_at: float = field(default_factory=time.time)

    def merged_with(self, newer: TokenSet) -> TokenSet:
        """Return ``newer`` with values it omitted carried over from this set.

        Refresh responses are allowed to leave out the refresh token,
        ID token and scope; the previous values remain in force.
        """
        return TokenSet(
            access_token=newer.access_token,
            refresh_token=newer.refresh_token or self.refresh_token,
            id_token=newer.id_token or self.id_token,
            token_type=newer.token_type or self.token_type,
            expires_in=newer.expires_in,
            scope=newer.scope or self.scope,
            raw=newer.raw,
            issued_at=newer.issued_at,
        )


@dataclass(frozen=True)
class IDTokenClaims:
    """Profile and validation claims parsed from an ID token payload."""

    sub: str | None = None
    iss: str | None = None
    aud: str | list[str] | None = None
    acr: str | None = None
    iat: int | None = None
    exp: int | None = None
    auth_time: int | None = None
    at_hash: str | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> IDTokenClaims:
        """Build claims from a decoded JWT payload."""
        return cls(
            sub=_as_str(payload.get("sub")),
            iss=_as_str(payload.get("iss")),
            aud=payload.get("aud"),
            acr=_as_str(payload.get("acr")),
            iat=_as_int(payload.get("iat")),
            exp=_as_int(payload.get("exp")),
            auth_time=_as_int(payload.get("auth_time")),
            at_hash=_as_str(payload.get("at_hash")),
            name=_as_str(payload.get("name")),
            given_name=_as_str(payload.get("given_name")),
            family_name=_as_str(payload.get("family_name")),
            raw=dict(payload),
        )

    @property
    def person_resource_id(self) -> str | None:
        """Alias of the subject claim."""
        return self.sub


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class ServiceConfiguration:
    """OIDC discovery document of the issuer.

    Attributes
    ----------
    discovery : dict[str, Any]
        The raw ``.well-known/openid-configuration`` document.
    """

    discovery: dict[str, Any] = field(default_factory=dict)

    @property
    def issuer(self) -> str:
        """The issuer identifier."""
        return str(self.discovery.get("issuer", ""))

    @property
    def authorization_endpoint(self) -> str:
        """The authorization endpoint URL."""
        return str(self.discovery.get("authorization_endpoint", ""))

    @property
    def token_endpoint(self) -> str:
        """The token endpoint URL."""
        return str(self.discovery.get("token_endpoint", ""))

    @property
    def end_session_endpoint(self) -> str | None:
        """The end session (logout) endpoint URL, if advertised."""
        value = self.discovery.get("end_session_endpoint")
        if not isinstance(value, str) or not value:
            return None
        return value


@dataclass
class AuthorizationRequest:
    """An authorization code request sent through the browser.

    Attributes
    ----------
    configuration : ServiceConfiguration
        Discovery configuration of the issuer.
    client_id : str
        The OAuth2 client id.
    redirect_uri : str
        Where the issuer redirects back to.
    scopes : list[str]
        Requested scopes.
    state : str
        Anti-forgery token echoed back in the redirect.
    code_verifier : str or None
        PKCE verifier kept locally for the code exchange.
    code_challenge : str or None
        PKCE challenge sent with the request.
    additional_parameters : dict[str, str]
        Extra query parameters (``acr_values``, ``prompt``, ...).
    """

    configuration: ServiceConfiguration
    client_id: str
    redirect_uri: str
    scopes: list[str]
    state: str
    code_verifier: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str = "S256"
    additional_parameters: dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        """The full authorization URL to present in the browser."""
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": self.state,
        }
        if self.code_challenge:
            params["code_challenge"] = self.code_challenge
            params["code_challenge_method"] = self.code_challenge_method
        params.update(self.additional_parameters)
        endpoint = self.configuration.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"


@dataclass
class AuthorizationResponse:
    """The redirect parameters accepted for an authorization request."""

    request: AuthorizationRequest
    parameters: dict[str, str] = field(default_factory=dict)

    @property
    def code(self) -> str | None:
        """The authorization code."""
        return self.parameters.get("code")

    @property
    def state(self) -> str | None:
        """The echoed anti-forgery state."""
        return self.parameters.get("state")
