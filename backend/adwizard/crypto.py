"""
Encryption at rest for the session keys that grant access to the ad account:
the app secret and the long-lived access token.

Fernet (cryptography) with the key from ENCRYPTION_KEY. Without a key the
cipher is a passthrough so a local wizard runs with no setup; production
refuses to start that way (see config).
"""

import logging
from typing import Any, Iterable
from cryptography.fernet import Fernet, InvalidToken
from adwizard.config import get_settings

logger = logging.getLogger(__name__)

_fernet: Fernet | None = None
_warned_plaintext = False


def _cipher() -> Fernet | None:
    global _fernet, _warned_plaintext
    if _fernet is not None:
        return _fernet

    settings = get_settings()
    if not settings.encryption_key:
        if settings.is_production:
            raise RuntimeError("ENCRYPTION_KEY must be set in production.")
        if not _warned_plaintext:
            logger.warning("ENCRYPTION_KEY not set: wizard secrets and tokens are stored unencrypted.")
            _warned_plaintext = True
        return None

    try:
        _fernet = Fernet(settings.encryption_key.encode())
    except ValueError as exc:
        raise RuntimeError(f"Invalid ENCRYPTION_KEY: {exc}") from exc
    return _fernet


def reset_fernet() -> None:
    """Drop the cached cipher so the next call re-reads ENCRYPTION_KEY."""
    global _fernet
    _fernet = None


def encrypt_value(plaintext: str | None) -> str | None:
    if plaintext is None:
        return None
    cipher = _cipher()
    return cipher.encrypt(plaintext.encode()).decode() if cipher else plaintext


def decrypt_value(ciphertext: str | None) -> str | None:
    """
    Reverse encrypt_value. A value that is not a Fernet token (written before
    a key was configured) comes back unchanged.
    """
    if ciphertext is None:
        return None
    cipher = _cipher()
    if cipher is None:
        return ciphertext
    try:
        return cipher.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.warning("Stored wizard secret is not encrypted with the current key; using it as-is.")
        return ciphertext


def seal_fields(values: dict[str, Any], names: Iterable[str]) -> dict[str, Any]:
    """Copy of `values` with the named string fields encrypted."""
    names = set(names)
    return {k: encrypt_value(v) if k in names else v for k, v in values.items()}


def open_fields(values: dict[str, Any], names: Iterable[str]) -> dict[str, Any]:
    """Copy of `values` with the named fields decrypted."""
    names = set(names)
    return {k: decrypt_value(v) if k in names else v for k, v in values.items()}
