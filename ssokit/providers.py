"""Token exchange collaborator.

Defines the OIDCClient ABC used by the session manager for discovery,
authorization code exchange and refresh, and an httpx implementation
that classifies failures into network, server and OAuth errors.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import time

from abc import ABC, abstractmethod
from typing import Any

import httpx

from .exceptions import TokenExchangeError, TokenExchangeErrorKind
from .types import AuthorizationResponse, ServiceConfiguration, TokenSet


logger = logging.getLogger("ssokit.providers")

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


class OIDCClient(ABC):
    """Abstract token exchange collaborator.

    Implementations raise ``TokenExchangeError`` with a kind that tells
    network-class failures apart from server-class and OAuth failures.
    """

    @abstractmethod
    async def discover(self, issuer_url: str) -> ServiceConfiguration:
        """Load the discovery document of ``issuer_url``.

        Raises
        ------
        TokenExchangeError
            If the document cannot be fetched or parsed.
        """

    @abstractmethod
    async def exchange_code(
        self,
        response: AuthorizationResponse,
        extra_parameters: dict[str, str] | None = None,
    ) -> TokenSet:
        """Exchange the authorization code of ``response`` for tokens.

        Raises
        ------
        TokenExchangeError
            If the token endpoint rejects the code or cannot be reached.
        """

    @abstractmethod
    async def refresh(
        self,
        configuration: ServiceConfiguration,
        refresh_token: str,
        extra_parameters: dict[str, str] | None = None,
    ) -> TokenSet:
        """Obtain a new token set with ``refresh_token``.

        Raises
        ------
        TokenExchangeError
            If the refresh fails.
        """

    async def close(self) -> None:  # noqa: B027
        """Release network resources."""


def _token_set_from_response(raw: dict[str, Any]) -> TokenSet:
    return TokenSet(
        access_token=raw["access_token"],
        refresh_token=raw.get("refresh_token"),
        id_token=raw.get("id_token"),
        token_type=raw.get("token_type", "Bearer"),
        expires_in=raw.get("expires_in"),
        scope=raw.get("scope", ""),
        raw=raw,
        issued_at=time.time(),
    )


class HttpxOIDCClient(OIDCClient):
    """OpenID Connect client using httpx.

    Parameters
    ----------
    client_id : str
        The OAuth2 client id.
    client_secret : str
        The client secret, sent with every token request (empty for
        public clients).
    timeout : float
        Request timeout in seconds (default ``30``).
    transport : httpx.AsyncBaseTransport, optional
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def discover(self, issuer_url: str) -> ServiceConfiguration:
        """Fetch ``/.well-known/openid-configuration`` of the issuer."""
        url = f"{issuer_url.rstrip('/')}{WELL_KNOWN_PATH}"
        try:
            client = await self._get_client()
            resp = await client.get(url)
            resp.raise_for_status()
            document = resp.json()
        except httpx.TransportError as exc:
            msg = f"OIDC discovery request failed: {exc}"
            raise TokenExchangeError(
                msg, kind=TokenExchangeErrorKind.NETWORK, provider=issuer_url
            ) from exc
        except httpx.HTTPStatusError as exc:
            msg = f"OIDC discovery failed: {exc.response.status_code}"
            raise TokenExchangeError(
                msg,
                kind=TokenExchangeErrorKind.SERVER,
                provider=issuer_url,
                status_code=exc.response.status_code,
            ) from exc
        except ValueError as exc:
            msg = "OIDC discovery document is not valid JSON"
            raise TokenExchangeError(
                msg, kind=TokenExchangeErrorKind.INVALID_RESPONSE, provider=issuer_url
            ) from exc

        if not isinstance(document, dict) or not document.get("authorization_endpoint"):
            msg = "OIDC discovery document has no authorization endpoint"
            raise TokenExchangeError(
                msg, kind=TokenExchangeErrorKind.INVALID_RESPONSE, provider=issuer_url
            )

        logger.debug("Loaded discovery document for %s", issuer_url)
        return ServiceConfiguration(discovery=document)

    async def exchange_code(
        self,
        response: AuthorizationResponse,
        extra_parameters: dict[str, str] | None = None,
    ) -> TokenSet:
        """Exchange an authorization code at the token endpoint."""
        code = response.code
        if not code:
            msg = "No authorization code in redirect"
            raise TokenExchangeError(msg, kind=TokenExchangeErrorKind.INVALID_RESPONSE)

        request = response.request
        data: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": request.redirect_uri,
            "client_id": self.client_id,
        }
        if request.code_verifier:
            data["code_verifier"] = request.code_verifier
        return await self._token_request(request.configuration, data, extra_parameters)

    async def refresh(
        self,
        configuration: ServiceConfiguration,
        refresh_token: str,
        extra_parameters: dict[str, str] | None = None,
    ) -> TokenSet:
        """Refresh tokens at the token endpoint."""
        data: dict[str, str] = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        return await self._token_request(configuration, data, extra_parameters)

    async def _token_request(
        self,
        configuration: ServiceConfiguration,
        data: dict[str, str],
        extra_parameters: dict[str, str] | None,
    ) -> TokenSet:
        token_url = configuration.token_endpoint
        if not token_url:
            msg = "Token endpoint missing from discovery configuration"
            raise TokenExchangeError(
                msg, kind=TokenExchangeErrorKind.INVALID_RESPONSE, provider=configuration.issuer
            )

        if self.client_secret:
            data["client_secret"] = self.client_secret
        if extra_parameters:
            data.update(extra_parameters)

        grant = data["grant_type"]
        try:
            client = await self._get_client()
            resp = await client.post(
                token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as exc:
            msg = f"Token request ({grant}) failed: {exc}"
            raise TokenExchangeError(
                msg, kind=TokenExchangeErrorKind.NETWORK, provider=configuration.issuer
            ) from exc

        try:
            raw = resp.json()
        except ValueError:
            raw = {}

        if resp.status_code >= 500:
            msg = f"Token endpoint ({grant}) returned {resp.status_code}"
            raise TokenExchangeError(
                msg,
                kind=TokenExchangeErrorKind.SERVER,
                provider=configuration.issuer,
                status_code=resp.status_code,
            )

        if resp.is_error or (isinstance(raw, dict) and "error" in raw):
            oauth_error = raw.get("error") if isinstance(raw, dict) else None
            description = raw.get("error_description") if isinstance(raw, dict) else None
            msg = f"Token endpoint ({grant}) rejected the request: {description or oauth_error}"
            raise TokenExchangeError(
                msg,
                kind=TokenExchangeErrorKind.OAUTH,
                provider=configuration.issuer,
                oauth_error=oauth_error,
                status_code=resp.status_code,
            )

        if not isinstance(raw, dict) or "access_token" not in raw:
            msg = f"Token endpoint ({grant}) returned no access token"
            raise TokenExchangeError(
                msg,
                kind=TokenExchangeErrorKind.INVALID_RESPONSE,
                provider=configuration.issuer,
                status_code=resp.status_code,
            )

        return _token_set_from_response(raw)
