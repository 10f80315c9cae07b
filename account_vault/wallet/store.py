"""
Account store: the persisted account list, the active-account pointer and the
lazy Base58 to Base64 private-key migration.

Every operation reads the full account list, works on a copy and writes the
full list back; there are no partial updates. All public methods hold one
re-entrant lock shared by every ``AccountStore`` opened on the same store path,
so stores can be used from several threads of one process. Multiple
processes must not open the same store concurrently.

Usage:
    store = AccountStore()
    store.initialize()
    account = store.add_account(Account(private_key=key, public_key=pub, name="Main"))
    store.get_active_account()  # -> account
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from account_vault.config import VaultSettings
from account_vault.errors import DuplicateAccountError, StoreNotInitializedError
from . import codec
from .models import Account
from .preferences import EncryptedPreferences, Preferences

logger = logging.getLogger(__name__)

KEY_ACCOUNTS = "accounts"
KEY_ACTIVE_ACCOUNT = "active_account_public_key"
KEY_BIOMETRIC_AUTH_ENABLED = "biometric_auth_enabled"
KEY_APP_PIN = "app_pin"
KEY_DATA_MIGRATED = "data_migrated_flag"

PreferencesFactory = Callable[[VaultSettings], Preferences]

_STORE_LOCKS: Dict[Path, threading.RLock] = {}
_STORE_LOCKS_GUARD = threading.Lock()


def _lock_for(store_path: Path) -> threading.RLock:
    """Return the lock shared by every AccountStore opened on ``store_path``."""
    key = store_path.expanduser().resolve()
    with _STORE_LOCKS_GUARD:
        return _STORE_LOCKS.setdefault(key, threading.RLock())


class AccountStore:
    """Process-wide account vault. Call :meth:`initialize` once before use.

    Instances opened on the same store path share one lock, so their
    read-modify-write cycles never interleave.
    """

    def __init__(
        self,
        settings: Optional[VaultSettings] = None,
        preferences_factory: Optional[PreferencesFactory] = None,
    ) -> None:
        self._settings = settings or VaultSettings.load()
        self._preferences_factory = preferences_factory or EncryptedPreferences.open
        self._prefs: Optional[Preferences] = None
        self._lock = _lock_for(self._settings.store_path)

    @property
    def is_initialized(self) -> bool:
        return self._prefs is not None

    def initialize(self) -> None:
        """Open the encrypted backing store.

        Raises:
            StoreUnavailableError: If the master key or the store cannot be opened.
        """
        with self._lock:
            if self._prefs is not None:
                logger.debug("Account store already initialized")
                return
            self._prefs = self._preferences_factory(self._settings)
            logger.debug(f"Account store {self._settings.store_name} initialized")

    # --- Pass-through settings ---

    def set_biometric_auth_enabled(self, enabled: bool) -> None:
        with self._lock:
            with self._require_prefs().edit() as editor:
                editor.put_bool(KEY_BIOMETRIC_AUTH_ENABLED, enabled)

    def is_biometric_auth_enabled(self) -> bool:
        with self._lock:
            return self._require_prefs().get_bool(KEY_BIOMETRIC_AUTH_ENABLED, False)

    def save_app_pin(self, pin: str) -> None:
        with self._lock:
            with self._require_prefs().edit() as editor:
                editor.put_string(KEY_APP_PIN, pin)

    def get_app_pin(self) -> Optional[str]:
        with self._lock:
            return self._require_prefs().get_string(KEY_APP_PIN)

    def has_app_pin(self) -> bool:
        with self._lock:
            return self._require_prefs().contains(KEY_APP_PIN)

    # --- Accounts ---

    def list_accounts(self, migrate: bool = True) -> List[Account]:
        """Return all accounts sorted by ``order``.

        The first read of a non-empty list still in legacy (Base58) form
        rewrites it in the current form, unless ``migrate`` is False.
        """
        with self._lock:
            prefs = self._require_prefs()
            payload = prefs.get_string(KEY_ACCOUNTS)
            if payload is None:
                return []

            batch = codec.read_batch(payload, prefs.get_bool(KEY_DATA_MIGRATED, False))
            accounts = codec.decode_batch(batch)

            if migrate and isinstance(batch, codec.LegacyBatch) and accounts:
                logger.info(f"Migrating {len(accounts)} account(s) from {batch.encoding.value} private keys")
                self._write_accounts(accounts)

            return sorted(accounts, key=lambda account: account.order)

    def add_account(self, candidate: Account) -> Account:
        """Append ``candidate`` after the last account and make it active.

        Returns:
            The stored account with its assigned ``order``.

        Raises:
            DuplicateAccountError: If an account with the same public key exists.
        """
        with self._lock:
            accounts = self.list_accounts()
            if any(account.public_key == candidate.public_key for account in accounts):
                raise DuplicateAccountError(candidate.public_key)

            next_order = max((account.order for account in accounts), default=-1) + 1
            account = candidate.model_copy(update={"order": next_order})
            accounts.append(account)
            self._write_accounts(accounts)
            self.set_active_account(account)
            logger.info(f"Added account {account.public_key} at position {next_order}")
            return account

    def save_accounts(self, accounts: Sequence[Account]) -> List[Account]:
        """Replace the whole list, numbering ``order`` by position in ``accounts``.

        An empty list also drops the active reference. If the active account is
        not in ``accounts`` the first saved account becomes active.
        """
        with self._lock:
            prefs = self._require_prefs()
            seen = set()
            for account in accounts:
                if account.public_key in seen:
                    raise DuplicateAccountError(account.public_key)
                seen.add(account.public_key)

            renumbered = _renumber(accounts)
            if not renumbered:
                self._write_accounts(renumbered, clear_active=True)
            elif prefs.get_string(KEY_ACTIVE_ACCOUNT) not in seen:
                self._write_accounts(renumbered, active=renumbered[0])
            else:
                self._write_accounts(renumbered)
            return renumbered

    def update_account(self, candidate: Account) -> None:
        """Replace the account with the same public key, keeping its ``order``.

        Does nothing if no such account is stored.
        """
        with self._lock:
            accounts = self.list_accounts()
            index = _index_of(accounts, candidate.public_key)
            if index is None:
                logger.debug(f"Update skipped; no account {candidate.public_key}")
                return

            accounts[index] = candidate.model_copy(update={"order": accounts[index].order})
            self._write_accounts(accounts)

    def remove_account(self, target: Account) -> None:
        """Remove ``target``, renumber the survivors and repair the active pointer.

        Removing the only account clears the whole store. Does nothing if
        ``target`` is not stored.
        """
        with self._lock:
            prefs = self._require_prefs()
            accounts = self.list_accounts()
            removed_index = _index_of(accounts, target.public_key)
            if removed_index is None:
                logger.debug(f"Remove skipped; no account {target.public_key}")
                return

            if len(accounts) == 1:
                self.clear()
                return

            was_active = prefs.get_string(KEY_ACTIVE_ACCOUNT) == target.public_key
            del accounts[removed_index]
            survivors = _renumber(accounts)
            self._write_accounts(survivors)
            logger.info(f"Removed account {target.public_key}")

            if was_active:
                self.set_active_account(survivors[min(removed_index, len(survivors) - 1)])

    def set_active_account(self, target: Account) -> None:
        """Point the active reference at ``target`` without checking it is stored."""
        with self._lock:
            with self._require_prefs().edit() as editor:
                editor.put_string(KEY_ACTIVE_ACCOUNT, target.public_key)

    def get_active_account(self, migrate: bool = True) -> Optional[Account]:
        """Resolve the active reference, or None if unset or dangling."""
        with self._lock:
            public_key = self._require_prefs().get_string(KEY_ACTIVE_ACCOUNT)
            if public_key is None:
                return None
            return next((account for account in self.list_accounts(migrate) if account.public_key == public_key), None)

    def is_migrated(self) -> bool:
        """Whether the stored private keys use the current encoding."""
        with self._lock:
            return self._require_prefs().get_bool(KEY_DATA_MIGRATED, False)

    def clear(self) -> None:
        """Wipe accounts, the active reference, the migration flag and all settings."""
        with self._lock:
            self._require_prefs().clear()
            logger.info("Account store cleared")

    def _write_accounts(
        self,
        accounts: Sequence[Account],
        active: Optional[Account] = None,
        clear_active: bool = False,
    ) -> None:
        payload = codec.encode_accounts(accounts)
        with self._require_prefs().edit() as editor:
            editor.put_string(KEY_ACCOUNTS, payload)
            editor.put_bool(KEY_DATA_MIGRATED, True)
            if active is not None:
                editor.put_string(KEY_ACTIVE_ACCOUNT, active.public_key)
            elif clear_active:
                editor.remove(KEY_ACTIVE_ACCOUNT)
        logger.debug(f"Saved {len(accounts)} account(s)")

    def _require_prefs(self) -> Preferences:
        if self._prefs is None:
            raise StoreNotInitializedError("Account store is not initialized; call initialize() first.")
        return self._prefs

    def __repr__(self) -> str:
        state = "initialized" if self.is_initialized else "uninitialized"
        return f"<AccountStore {state}>"


def _index_of(accounts: Sequence[Account], public_key: str) -> Optional[int]:
    for index, account in enumerate(accounts):
        if account.public_key == public_key:
            return index
    return None


def _renumber(accounts: Sequence[Account]) -> List[Account]:
    return [account.model_copy(update={"order": index}) for index, account in enumerate(accounts)]
