"""Encryption of signing keys stored in the database"""

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import SecretStr

from src.errors import ConfigurationError

ENC_PREFIX = "enc:v1:"


def derive_fernet_key(raw_key: str) -> bytes:
    """Derive a Fernet-compatible key from arbitrary input"""
    # Fernet expects 32-byte URL-safe base64 data
    digest = hashlib.sha256(raw_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def _get_fernet(key: Optional[SecretStr]) -> Fernet:
    if key is None or not key.get_secret_value():
        raise ConfigurationError("FEE_PAYER_ENCRYPTION_KEY is required to use fee payer keys")
    return Fernet(derive_fernet_key(key.get_secret_value()))


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value and value.startswith(ENC_PREFIX))


def encrypt_secret(value: str, key: Optional[SecretStr]) -> str:
    """Encrypt a plaintext secret for storage"""
    token = _get_fernet(key).encrypt(value.encode("utf-8")).decode("utf-8")
    return ENC_PREFIX + token


def decrypt_secret(token: str, key: Optional[SecretStr]) -> str:
    """
    Decrypt a stored secret.

    Signing keys never fall back to plaintext: a missing key, an unprefixed
    value or a bad token is a configuration error. The ciphertext is not
    echoed in the message.
    """
    fernet = _get_fernet(key)
    if not is_encrypted(token):
        raise ConfigurationError("Stored signing key is not encrypted")
    try:
        return fernet.decrypt(token[len(ENC_PREFIX):].encode("utf-8")).decode("utf-8")
    except InvalidToken:
        raise ConfigurationError(
            "Stored signing key cannot be decrypted with FEE_PAYER_ENCRYPTION_KEY"
        ) from None
