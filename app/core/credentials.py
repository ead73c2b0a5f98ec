"""API key generation and salted hashing.

Keys look like ``sk_live_<64 hex>``. Only a short prefix (for lookup and
display) and a PBKDF2 hash are ever stored.
"""

import hashlib
import hmac
import secrets

from app.core.config import get_settings

_SCHEME = "pbkdf2_sha256"
_KEY_PATTERN_PREFIX = "sk_"


def generate_api_key(environment: str | None = None) -> str:
    """Generate a new plaintext API key."""
    env = environment or get_settings().API_KEY_ENVIRONMENT
    return f"{_KEY_PATTERN_PREFIX}{env}_{secrets.token_hex(32)}"


def key_prefix_of(api_key: str) -> str:
    """Non-secret lookup prefix of a key."""
    return api_key[: get_settings().API_KEY_PREFIX_LENGTH]


def looks_like_api_key(api_key: str) -> bool:
    """Cheap shape check before any store lookup."""
    settings = get_settings()
    return (
        api_key.startswith(_KEY_PATTERN_PREFIX)
        and len(api_key) > settings.API_KEY_PREFIX_LENGTH
        and len(api_key) <= 256
    )


def hash_secret(secret: str, iterations: int | None = None, salt: bytes | None = None) -> str:
    """
    Hash a secret for storage.

    Returns:
        ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``
    """
    rounds = iterations or get_settings().API_KEY_HASH_ITERATIONS
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, rounds)
    return f"{_SCHEME}${rounds}${salt.hex()}${digest.hex()}"


def verify_secret(secret: str, stored_hash: str) -> bool:
    """Constant-time comparison of a secret against a stored hash."""
    try:
        scheme, rounds, salt_hex, digest_hex = stored_hash.split("$")
        if scheme != _SCHEME:
            return False
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        iterations = int(rounds)
    except ValueError:
        return False

    candidate = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(candidate, expected)
