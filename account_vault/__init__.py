from importlib.metadata import PackageNotFoundError, version as _dist_version

try:
    __version__: str = _dist_version("account-vault")
except PackageNotFoundError:
    __version__ = "0.0.0"

from account_vault.errors import (  # noqa: E402
    DuplicateAccountError,
    StoreNotInitializedError,
    StoreUnavailableError,
    VaultConfigurationError,
    VaultError,
)
from account_vault.wallet import Account, AccountStore  # noqa: E402

__all__ = [
    "__version__",
    "Account",
    "AccountStore",
    "DuplicateAccountError",
    "StoreNotInitializedError",
    "StoreUnavailableError",
    "VaultConfigurationError",
    "VaultError",
]
