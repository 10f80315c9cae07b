#!/usr/bin/env python
"""
Print non-secret status of the configured account vault.

Private keys and the app PIN are never printed, and a legacy store is read
without being migrated.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from account_vault.config import VaultSettings
from account_vault.errors import StoreUnavailableError, VaultConfigurationError
from account_vault.wallet.store import AccountStore


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show account vault status.")
    parser.add_argument("--data-dir", type=Path, help="Override ACCOUNT_VAULT_DATA_DIR")
    parser.add_argument("--store-name", help="Override ACCOUNT_VAULT_STORE_NAME")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    try:
        settings = VaultSettings.load()
        overrides = {}
        if args.data_dir:
            overrides["data_dir"] = args.data_dir.expanduser()
        if args.store_name:
            overrides["store_name"] = args.store_name
        if overrides:
            settings = VaultSettings(**{**settings.model_dump(), **overrides})

        store = AccountStore(settings)
        store.initialize()
        migrated = store.is_migrated()
        accounts = store.list_accounts(migrate=False)
        active = store.get_active_account(migrate=False)
    except (StoreUnavailableError, VaultConfigurationError, ValueError) as exc:
        print(f"Account vault unavailable: {exc}", file=sys.stderr)
        return 1

    print(f"Store: {settings.store_path}")
    print(f"Migration state: {'current' if migrated else 'legacy'}")
    print(f"Accounts: {len(accounts)}")
    for account in accounts:
        marker = "*" if active is not None and active.public_key == account.public_key else " "
        print(f" {marker} [{account.order}] {account.name or '-'}  {account.public_key}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
