"""Passphrase based encryption for on-disk secret documents.

The payload format is ``{"salt", "ciphertext", "version"}`` with a Fernet key
derived from the passphrase through PBKDF2-SHA256.
"""
from __future__ import annotations

import base64
import json
import os
import secrets
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

DEFAULT_PASSPHRASE_ENV = "SECRETPLAN_FILE_PASSPHRASE"
DEFAULT_SALT_LENGTH = 16
PAYLOAD_VERSION = 1
_ITERATIONS = 390000


class SecretDocumentCryptoError(RuntimeError):
    """Raised when encryption or decryption fails."""


def _derive_key(passphrase: str, *, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


def encrypt_document(raw: bytes, passphrase: str) -> dict[str, Any]:
    salt = secrets.token_bytes(DEFAULT_SALT_LENGTH)
    cipher = Fernet(_derive_key(passphrase, salt=salt))
    return {
        "salt": base64.b64encode(salt).decode("ascii"),
        "ciphertext": base64.b64encode(cipher.encrypt(raw)).decode("ascii"),
        "version": PAYLOAD_VERSION,
    }


def decrypt_document(payload: dict[str, Any], passphrase: str) -> bytes:
    if not isinstance(payload, dict):
        raise SecretDocumentCryptoError("Encrypted payload must be a JSON object")
    if payload.get("version") != PAYLOAD_VERSION:
        raise SecretDocumentCryptoError(
            f"Unsupported encrypted payload version: {payload.get('version')!r}"
        )
    try:
        salt = base64.b64decode(payload["salt"])
        ciphertext = base64.b64decode(payload["ciphertext"])
    except (KeyError, TypeError, ValueError) as exc:
        raise SecretDocumentCryptoError("Encrypted payload is corrupted") from exc
    cipher = Fernet(_derive_key(passphrase, salt=salt))
    try:
        return cipher.decrypt(ciphertext)
    except InvalidToken as exc:
        raise SecretDocumentCryptoError("Wrong passphrase or tampered payload") from exc


def encrypt_secrets(values: dict[str, Any], passphrase: str) -> str:
    """Return the JSON text of an encrypted secrets document."""

    raw = json.dumps(values, sort_keys=True).encode("utf-8")
    return json.dumps(encrypt_document(raw, passphrase), indent=2)


def resolve_passphrase(value: str | None, *, env_var: str = DEFAULT_PASSPHRASE_ENV) -> str:
    if value:
        return value
    env_value = os.getenv(env_var)
    if env_value:
        return env_value
    raise SecretDocumentCryptoError(
        f"Passphrase is required. Configure one or set the {env_var} environment variable."
    )


__all__ = [
    "DEFAULT_PASSPHRASE_ENV",
    "SecretDocumentCryptoError",
    "decrypt_document",
    "encrypt_document",
    "encrypt_secrets",
    "resolve_passphrase",
]
