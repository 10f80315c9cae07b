from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from account_vault.errors import VaultConfigurationError

_DATA_DIR_ENV = "ACCOUNT_VAULT_DATA_DIR"
_STORE_NAME_ENV = "ACCOUNT_VAULT_STORE_NAME"
_STRONG_KEY_ENV = "ACCOUNT_VAULT_STRONG_KEY"
_KDF_ITERATIONS_ENV = "ACCOUNT_VAULT_KDF_ITERATIONS"


def _truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


class VaultSettings(BaseModel):
    """Resolved configuration for one named account vault."""

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".account_vault")
    store_name: str = Field(default="credits_wallet_prefs")
    master_password_env: str = Field(default="ACCOUNT_VAULT_MASTER_PWD")
    request_strong_key: bool = Field(default=True, description="Prefer a password-derived master key")
    kdf_iterations: int = Field(default=200_000, ge=1)

    @field_validator("store_name")
    @classmethod
    def _ensure_plain_name(cls, value: str) -> str:
        value = value.strip()
        if not value or "/" in value or "\\" in value or value in {".", ".."}:
            raise ValueError("store_name must be a plain, non-empty file name")
        return value

    @property
    def store_path(self) -> Path:
        return self.data_dir / f"{self.store_name}.json"

    @property
    def key_path(self) -> Path:
        return self.data_dir / f"{self.store_name}.key"

    def master_password(self) -> Optional[str]:
        """Return the master password from the environment, if one is set."""
        return os.getenv(self.master_password_env) or None

    @classmethod
    def load(cls) -> "VaultSettings":
        """Load settings from the environment with .env fallbacks."""
        load_dotenv()

        raw = {}
        data_dir = os.getenv(_DATA_DIR_ENV)
        if data_dir:
            raw["data_dir"] = Path(data_dir).expanduser()
        store_name = os.getenv(_STORE_NAME_ENV)
        if store_name:
            raw["store_name"] = store_name
        strong = os.getenv(_STRONG_KEY_ENV)
        if strong is not None:
            raw["request_strong_key"] = _truthy(strong)
        iterations = os.getenv(_KDF_ITERATIONS_ENV)
        if iterations:
            raw["kdf_iterations"] = iterations

        try:
            return cls(**raw)
        except ValidationError as e:
            raise VaultConfigurationError(f"Vault configuration validation failed: {e}") from e
