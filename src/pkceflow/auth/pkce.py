"""PKCE (Proof Key for Code Exchange) utilities for OAuth 2.0."""

import base64
import hashlib
import secrets

from pkceflow.auth.models import PKCEPair


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def compute_challenge(verifier: str) -> str:
    """Return base64url(SHA256(verifier)) per RFC 7636."""
    return _base64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce() -> PKCEPair:
    """Generate a PKCE code verifier and S256 challenge.

    Returns:
        PKCEPair whose challenge is the SHA256 of the verifier's ASCII form.
    """
    # Generate 32 bytes of randomness -> 43 chars in base64url
    verifier = _base64url(secrets.token_bytes(32))
    return PKCEPair(verifier=verifier, challenge=compute_challenge(verifier))


def generate_state() -> str:
    """Generate a random state parameter identifying one login attempt.

    Returns:
        URL-safe random string.
    """
    return secrets.token_urlsafe(24)
