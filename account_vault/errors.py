"""Exception hierarchy for the account vault."""


class VaultError(Exception):
    """Base exception for account vault errors"""
    pass


class StoreNotInitializedError(VaultError, RuntimeError):
    """Raised when the account store is used before ``initialize()``.

    This signals a programming error, not a recoverable condition.
    """
    pass


class StoreUnavailableError(VaultError):
    """Raised when the encrypted backing store cannot be read, decrypted or written"""
    pass


class DuplicateAccountError(VaultError, ValueError):
    """Raised when an account with the same public key is already stored"""

    def __init__(self, public_key: str):
        super().__init__(f"Account already exists for public key: {public_key}")
        self.public_key = public_key


class VaultConfigurationError(VaultError):
    """Raised when vault settings are missing or invalid."""
