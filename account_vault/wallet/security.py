"""
Master-key provisioning and AEAD helpers for the encrypted preferences file.

Two master-key schemes are supported per named store:

- ``password``: PBKDF2-HMAC-SHA256 over a master password taken from the
  environment, with a random per-store salt. Preferred when available.
- ``keyfile``: a random 256-bit secret kept in a 0600 key file beside the store.

The scheme is recorded in the key file on first use and never changes for that
store afterwards.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, AESSIV
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from account_vault.config import VaultSettings
from account_vault.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

SCHEME_PASSWORD = "password"
SCHEME_KEYFILE = "keyfile"

_SALT_BYTES = 16
_SECRET_BYTES = 32
_IV_BYTES = 12
_NAME_KEY_BYTES = 64
_VALUE_KEY_BYTES = 32


@dataclass(frozen=True)
class MasterKey:
    scheme: str
    material: bytes

    def __repr__(self) -> str:
        return f"MasterKey(scheme={self.scheme!r})"


def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    """Derive a symmetric key from the password using PBKDF2-HMAC-SHA256."""
    if not password:
        raise ValueError("Password is required to derive encryption key.")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def _read_key_file(settings: VaultSettings) -> Dict[str, str]:
    try:
        with open(settings.key_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise StoreUnavailableError(f"Failed to read master key file {settings.key_path}") from exc
    if not isinstance(data, dict) or data.get("scheme") not in (SCHEME_PASSWORD, SCHEME_KEYFILE):
        raise StoreUnavailableError(f"Master key file {settings.key_path} is malformed")
    return data


def _write_key_file(settings: VaultSettings, data: Dict[str, str]) -> None:
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(settings.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
    except OSError as exc:
        raise StoreUnavailableError(f"Failed to create master key file {settings.key_path}") from exc


def _create_master_key(settings: VaultSettings) -> MasterKey:
    password = settings.master_password()
    if settings.request_strong_key and password:
        salt = os.urandom(_SALT_BYTES)
        _write_key_file(
            settings,
            {
                "scheme": SCHEME_PASSWORD,
                "salt": base64.b64encode(salt).decode("ascii"),
                "iterations": settings.kdf_iterations,
            },
        )
        logger.info(f"Created password-derived master key for store {settings.store_name}")
        return MasterKey(SCHEME_PASSWORD, _derive_key(password, salt, settings.kdf_iterations))

    if settings.request_strong_key:
        logger.warning(
            f"{settings.master_password_env} is not set; falling back to a key file for store {settings.store_name}"
        )
    secret = os.urandom(_SECRET_BYTES)
    _write_key_file(
        settings,
        {"scheme": SCHEME_KEYFILE, "secret": base64.b64encode(secret).decode("ascii")},
    )
    return MasterKey(SCHEME_KEYFILE, secret)


def provision_master_key(settings: VaultSettings) -> MasterKey:
    """Load the master key for the configured store, creating it on first use."""
    if not settings.key_path.exists():
        return _create_master_key(settings)

    data = _read_key_file(settings)
    try:
        if data["scheme"] == SCHEME_KEYFILE:
            return MasterKey(SCHEME_KEYFILE, base64.b64decode(data["secret"], validate=True))

        password = settings.master_password()
        if not password:
            raise StoreUnavailableError(
                f"Store {settings.store_name} requires the master password in {settings.master_password_env}"
            )
        salt = base64.b64decode(data["salt"], validate=True)
        iterations = int(data.get("iterations", settings.kdf_iterations))
        return MasterKey(SCHEME_PASSWORD, _derive_key(password, salt, iterations))
    except (KeyError, ValueError) as exc:
        raise StoreUnavailableError(f"Master key file {settings.key_path} is malformed") from exc


def derive_subkeys(master_key: MasterKey) -> Tuple[bytes, bytes]:
    """Return ``(name_key, value_key)`` for AES-SIV and AES-GCM respectively."""

    def _expand(length: int, info: bytes) -> bytes:
        return HKDF(algorithm=hashes.SHA256(), length=length, salt=None, info=info).derive(master_key.material)

    return (
        _expand(_NAME_KEY_BYTES, b"account-vault/name-key"),
        _expand(_VALUE_KEY_BYTES, b"account-vault/value-key"),
    )


def encrypt_name(name_key: bytes, name: str, store_name: str) -> str:
    """Deterministically encrypt a preference key name."""
    ciphertext = AESSIV(name_key).encrypt(name.encode("utf-8"), [store_name.encode("utf-8")])
    return base64.urlsafe_b64encode(ciphertext).decode("ascii")


def decrypt_name(name_key: bytes, token: str, store_name: str) -> str:
    try:
        ciphertext = base64.urlsafe_b64decode(token.encode("ascii"))
        return AESSIV(name_key).decrypt(ciphertext, [store_name.encode("utf-8")]).decode("utf-8")
    except (InvalidTag, ValueError) as exc:
        raise StoreUnavailableError("Failed to decrypt preference name; wrong master key or corrupted store") from exc


def encrypt_value(value_key: bytes, plaintext: bytes, associated_data: str) -> str:
    """Encrypt a value with AES-GCM, bound to its key name.

    Returns:
        str: ``base64(iv||ciphertext)``
    """
    iv = os.urandom(_IV_BYTES)
    ciphertext = AESGCM(value_key).encrypt(iv, plaintext, associated_data.encode("utf-8"))
    return base64.b64encode(iv + ciphertext).decode("ascii")


def decrypt_value(value_key: bytes, token: str, associated_data: str) -> bytes:
    try:
        payload = base64.b64decode(token.encode("ascii"), validate=True)
        if len(payload) < _IV_BYTES + 16:
            raise ValueError("Encrypted payload is malformed or truncated.")
        iv, ciphertext = payload[:_IV_BYTES], payload[_IV_BYTES:]
        return AESGCM(value_key).decrypt(iv, ciphertext, associated_data.encode("utf-8"))
    except (InvalidTag, ValueError) as exc:
        raise StoreUnavailableError("Failed to decrypt preference value; wrong master key or corrupted store") from exc
