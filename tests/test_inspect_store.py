import json

import base58
import pytest

from account_vault import config
from account_vault.config import VaultSettings
from account_vault.wallet import Account, AccountStore, EncryptedPreferences
from account_vault.wallet import inspect_store
from account_vault.wallet.store import KEY_ACCOUNTS, KEY_ACTIVE_ACCOUNT, KEY_DATA_MIGRATED


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (
        "ACCOUNT_VAULT_DATA_DIR",
        "ACCOUNT_VAULT_STORE_NAME",
        "ACCOUNT_VAULT_STRONG_KEY",
        "ACCOUNT_VAULT_KDF_ITERATIONS",
        "ACCOUNT_VAULT_MASTER_PWD",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: None)


def test_lists_accounts_and_marks_active(tmp_path, capsys):
    store = AccountStore(VaultSettings(data_dir=tmp_path))
    store.initialize()
    store.add_account(Account(private_key=b"PRIVATE-ONE", public_key="pub-one", name="One"))
    store.add_account(Account(private_key=b"PRIVATE-TWO", public_key="pub-two"))

    exit_code = inspect_store.main(["--data-dir", str(tmp_path)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Migration state: current" in out
    assert "Accounts: 2" in out
    assert "   [0] One  pub-one" in out
    assert " * [1] -  pub-two" in out
    assert "PRIVATE" not in out
    assert "UFJJVkFURS1PTkU=" not in out


def test_empty_store(tmp_path, capsys):
    exit_code = inspect_store.main(["--data-dir", str(tmp_path), "--store-name", "fresh"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "fresh.json" in out
    assert "Accounts: 0" in out


def test_unavailable_store_exits_with_error(tmp_path, capsys):
    settings = VaultSettings(data_dir=tmp_path)
    AccountStore(settings).initialize()
    settings.store_path.write_text("{garbage", encoding="utf-8")

    exit_code = inspect_store.main(["--data-dir", str(tmp_path)])

    assert exit_code == 1
    assert "Account vault unavailable" in capsys.readouterr().err


def test_legacy_store_is_reported_without_migrating(tmp_path, capsys):
    settings = VaultSettings(data_dir=tmp_path)
    prefs = EncryptedPreferences.open(settings)
    legacy = json.dumps(
        [{"privateKey": base58.b58encode(b"PRIVATE-OLD").decode("ascii"), "publicKey": "pub-old", "name": "Old", "order": 0}]
    )
    with prefs.edit() as editor:
        editor.put_string(KEY_ACCOUNTS, legacy)
        editor.put_string(KEY_ACTIVE_ACCOUNT, "pub-old")
    stored_before = settings.store_path.read_bytes()

    exit_code = inspect_store.main(["--data-dir", str(tmp_path)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Migration state: legacy" in out
    assert " * [0] Old  pub-old" in out
    assert settings.store_path.read_bytes() == stored_before
    reopened = EncryptedPreferences.open(settings)
    assert reopened.get_bool(KEY_DATA_MIGRATED) is False
    assert reopened.get_string(KEY_ACCOUNTS) == legacy
