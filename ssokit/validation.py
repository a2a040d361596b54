"""ID token decoding and claim validation.

Decodes the payload segment of a JWT and checks issuer, audience,
expiry and issue time against the configured client. The token
signature is NOT verified: JWKS key validation is a known gap and
callers must treat the claims as unverified.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time

from typing import TYPE_CHECKING, Any

from .exceptions import IdTokenValidateError
from .types import IDTokenClaims


if TYPE_CHECKING:
    from .types import TokenSet


logger = logging.getLogger("ssokit.validation")

DEFAULT_CLOCK_SKEW_TOLERANCE = 120.0


def decode_jwt_payload(token: str) -> dict[str, Any] | None:
    """Decode the payload (second segment) of a JWT.

    Parameters
    ----------
    token : str
        The compact serialized JWT.

    Returns
    -------
    dict or None
        The payload object, or None if the token has no payload segment,
        the segment is not base64 or does not hold a JSON object.
    """
    parts = token.split(".")
    if len(parts) < 2:
        return None

    segment = parts[1]
    if len(segment) % 4:
        segment += "=" * (4 - len(segment) % 4)

    try:
        data = base64.urlsafe_b64decode(segment.encode("ascii"))
        payload = json.loads(data.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def decode_id_token_claims(token: str | None) -> IDTokenClaims | None:
    """Decode ID token claims, or None if the token is absent or undecodable."""
    if not token:
        return None
    payload = decode_jwt_payload(token)
    if payload is None:
        return None
    return IDTokenClaims.from_payload(payload)


def claims_are_valid(
    claims: IDTokenClaims,
    issuer_url: str,
    client_id: str,
    clock_skew_tolerance: float = DEFAULT_CLOCK_SKEW_TOLERANCE,
    now: float | None = None,
) -> bool:
    """Check decoded claims against the configured issuer and client.

    Parameters
    ----------
    claims : IDTokenClaims
        The decoded claims.
    issuer_url : str
        The configured issuer URL. It must start with the ``iss`` claim.
    client_id : str
        The configured client id. It must equal the ``aud`` claim.
    clock_skew_tolerance : float
        Allowed clock difference in seconds.
    now : float, optional
        Current unix time (defaults to ``time.time()``).

    Returns
    -------
    bool
        True if all checks pass.
    """
    current = time.time() if now is None else now

    if not claims.iss or not issuer_url.startswith(claims.iss):
        logger.debug("ID token issuer %r does not match %r", claims.iss, issuer_url)
        return False
    if claims.aud != client_id:
        logger.debug("ID token audience %r does not match client id", claims.aud)
        return False
    if claims.exp is None or claims.exp - current < -clock_skew_tolerance:
        logger.debug("ID token expired at %s", claims.exp)
        return False
    if claims.iat is None or claims.iat - current > clock_skew_tolerance:
        logger.debug("ID token issued in the future at %s", claims.iat)
        return False
    return True


class TokenValidator:
    """Validates the ID token of a freshly exchanged token set.

    Parameters
    ----------
    issuer_url : str
        The configured issuer URL.
    client_id : str
        The configured client id.
    clock_skew_tolerance : float
        Allowed clock difference in seconds (default ``120``).
    """

    def __init__(
        self,
        issuer_url: str,
        client_id: str,
        clock_skew_tolerance: float = DEFAULT_CLOCK_SKEW_TOLERANCE,
    ) -> None:
        """Initialize the validator."""
        self.issuer_url = issuer_url
        self.client_id = client_id
        self.clock_skew_tolerance = clock_skew_tolerance

    def validate(self, tokens: TokenSet, now: float | None = None) -> IDTokenClaims:
        """Validate the ID token contained in ``tokens``.

        Parameters
        ----------
        tokens : TokenSet
            The token set returned by the code exchange.
        now : float, optional
            Current unix time, for testing.

        Returns
        -------
        IDTokenClaims
            The accepted claims.

        Raises
        ------
        IdTokenValidateError
            If the token is missing, undecodable, or any claim check fails.
        """
        claims = decode_id_token_claims(tokens.id_token)
        if claims is None:
            msg = "The ID token is missing or could not be decoded"
            raise IdTokenValidateError(msg, provider=self.issuer_url)

        if not claims_are_valid(
            claims,
            issuer_url=self.issuer_url,
            client_id=self.client_id,
            clock_skew_tolerance=self.clock_skew_tolerance,
            now=now,
        ):
            msg = "The ID token was rejected"
            raise IdTokenValidateError(msg, provider=self.issuer_url)

        # TODO: verify the signature against the issuer's JWKS keys.
        return claims
