"""The authenticated session model.

A Session wraps one token set together with the discovery configuration
it was obtained from. Its status is always derived from the ID token
expiry; only the ``online`` flag is mutable, and only the session
manager changes it.
"""

from __future__ import annotations

import time

from typing import Any

from .types import IDTokenClaims, ServiceConfiguration, SessionStatus, TokenSet
from .validation import decode_id_token_claims


class Session:
    """Information about the signed-in principal and its tokens.

    Parameters
    ----------
    tokens : TokenSet
        The current token set.
    configuration : ServiceConfiguration, optional
        The discovery configuration used to obtain the tokens.
    online : bool
        Whether the last refresh attempt reached the server (default ``True``).
    """

    def __init__(
        self,
        tokens: TokenSet,
        configuration: ServiceConfiguration | None = None,
        online: bool = True,
    ) -> None:
        """Initialize the session."""
        self._tokens = tokens
        self._configuration = configuration or ServiceConfiguration()
        self._online = online
        self._claims: IDTokenClaims | None = None
        self._claims_decoded = False

    def __repr__(self) -> str:
        """Describe the session without exposing tokens."""
        sub = self.claims.sub if self.claims else None
        return f"Session(sub={sub!r}, status={self.status.value}, online={self._online})"

    # ── Tokens ──────────────────────────────────────────────────────

    @property
    def tokens(self) -> TokenSet:
        """The underlying token set."""
        return self._tokens

    @property
    def configuration(self) -> ServiceConfiguration:
        """The discovery configuration of the issuer."""
        return self._configuration

    @property
    def access_token(self) -> str:
        """The current access token."""
        return self._tokens.access_token

    @property
    def refresh_token(self) -> str | None:
        """The refresh token. Use the session manager to refresh."""
        return self._tokens.refresh_token

    @property
    def id_token(self) -> str | None:
        """The raw ID token (JWT)."""
        return self._tokens.id_token

    @property
    def scope(self) -> str:
        """Space-separated granted scopes."""
        return self._tokens.scope

    @property
    def claims(self) -> IDTokenClaims | None:
        """Claims decoded from the ID token payload, or None if undecodable."""
        if not self._claims_decoded:
            self._claims = decode_id_token_claims(self._tokens.id_token)
            self._claims_decoded = True
        return self._claims

    # ── State ───────────────────────────────────────────────────────

    @property
    def online(self) -> bool:
        """Whether the last refresh attempt succeeded over the network."""
        return self._online

    def set_online(self, online: bool) -> None:
        """Set the online flag. Reserved for the session manager."""
        self._online = online

    @property
    def status(self) -> SessionStatus:
        """Derived session status."""
        return self.status_at(time.time())

    def status_at(self, now: float) -> SessionStatus:
        """Session status at the given unix time."""
        claims = self.claims
        if claims is None or claims.exp is None:
            return SessionStatus.NO_SESSION
        if now >= claims.exp:
            return SessionStatus.EXPIRED
        return SessionStatus.VALID

    @property
    def expires_at(self) -> float | None:
        """ID token expiry as unix time."""
        claims = self.claims
        return float(claims.exp) if claims and claims.exp is not None else None

    # ── Derivation ──────────────────────────────────────────────────

    def refreshed(
        self, tokens: TokenSet, configuration: ServiceConfiguration | None = None
    ) -> Session:
        """Build the replacement session for a successful refresh.

        Values the refresh response omitted are carried over.
        """
        return Session(
            tokens=self._tokens.merged_with(tokens),
            configuration=configuration or self._configuration,
            online=True,
        )

    # ── Serialization ───────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Serialize the session for persistence."""
        return {
            "access_token": self._tokens.access_token,
            "refresh_token": self._tokens.refresh_token,
            "id_token": self._tokens.id_token,
            "token_type": self._tokens.token_type,
            "expires_in": self._tokens.expires_in,
            "scope": self._tokens.scope,
            "issued_at": self._tokens.issued_at,
            "discovery": self._configuration.discovery,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Restore a session serialized with ``to_dict``.

        Raises
        ------
        KeyError
            If the access token is missing.
        """
        tokens = TokenSet(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            id_token=data.get("id_token"),
            token_type=data.get("token_type", "Bearer"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope", ""),
            issued_at=data.get("issued_at", time.time()),
        )
        return cls(
            tokens=tokens,
            configuration=ServiceConfiguration(discovery=data.get("discovery") or {}),
        )
