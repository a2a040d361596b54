"""Request secrets for the authorization code flow.

PKCE (RFC 7636, S256 method) verifier/challenge pairs and the
anti-forgery ``state`` token.
"""

from __future__ import annotations

import hashlib
import secrets

from base64 import urlsafe_b64encode
from dataclasses import dataclass


@dataclass(frozen=True)
class PKCEChallenge:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    verifier : str
        High-entropy random string kept by the client.
    challenge : str
        Base64url SHA-256 of the verifier, sent with the authorization request.
    method : str
        Always "S256".
    """

    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> PKCEChallenge:
        """Generate a new pair from ``length`` random bytes (at least 32)."""
        verifier = secrets.token_urlsafe(max(length, 32))
        return cls(verifier=verifier, challenge=s256_challenge(verifier))


def s256_challenge(verifier: str) -> str:
    """Compute the S256 code challenge of ``verifier``."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    """Generate an anti-forgery ``state`` value."""
    return secrets.token_urlsafe(32)
