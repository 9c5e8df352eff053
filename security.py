"""
security.py — PKCE, OAuth state, and field encryption utilities.

All secret-handling primitives live here so the OAuth flow and token store
never build verifiers or ciphertexts by hand.
"""

import base64
import hashlib
import logging
import secrets

from cryptography.fernet import Fernet, InvalidToken

from config import settings

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# Field Encryption (Fernet)
# ─────────────────────────────────────────────

def _get_fernet(key: str) -> Fernet:
    """Instantiate a Fernet cipher from a base64-encoded key string."""
    if not key:
        raise ValueError("Encryption key is not configured in .env")
    return Fernet(key.encode())


def encryption_enabled() -> bool:
    return bool(settings.field_encryption_key)


def encrypt_field(value: str) -> str:
    """Encrypt a single string field (e.g. an OAuth access token)."""
    f = _get_fernet(settings.field_encryption_key)
    return f.encrypt(value.encode()).decode()


def decrypt_field(encrypted_value: str) -> str:
    """Decrypt a single encrypted field.

    Raises:
        InvalidToken: if the ciphertext has been tampered with or the key changed.
    """
    f = _get_fernet(settings.field_encryption_key)
    try:
        return f.decrypt(encrypted_value.encode()).decode()
    except InvalidToken as exc:
        logger.error("Failed to decrypt stored field — key rotated or data tampered")
        raise exc


# ─────────────────────────────────────────────
# PKCE (RFC 7636)
# ─────────────────────────────────────────────

def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_code_verifier(num_bytes: int = 32) -> str:
    """Return a high-entropy PKCE code verifier (base64url, no padding)."""
    return _b64url(secrets.token_bytes(num_bytes))


def code_challenge_for(verifier: str) -> str:
    """Derive the S256 code challenge: base64url(sha256(verifier))."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_oauth_state(num_bytes: int = 16) -> str:
    """Anti-forgery state token for the authorization redirect."""
    return secrets.token_hex(num_bytes)


def states_match(received: str | None, stored: str | None) -> bool:
    """Constant-time comparison; a missing value on either side never matches."""
    if not received or not stored:
        return False
    return secrets.compare_digest(received.encode(), stored.encode())
