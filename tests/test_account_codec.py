import json

import base58
import pytest

from account_vault.errors import StoreUnavailableError
from account_vault.wallet import codec
from account_vault.wallet.models import Account


@pytest.mark.parametrize(
    "account",
    [
        Account(private_key=bytes(range(64)), public_key="pub-1", name="Main", order=0),
        Account(private_key=b"", public_key="pub-2", name=None, order=3),
        Account(private_key=b"\x00\xff" * 16, public_key="pub-3", name="Ünïcode ✓", order=12),
    ],
)
def test_current_encoding_round_trips(account):
    payload = codec.encode_accounts([account])
    batch = codec.read_batch(payload, migrated=True)

    assert isinstance(batch, codec.CurrentBatch)
    assert codec.decode_batch(batch) == [account]


def test_encode_uses_wire_field_names_and_base64():
    account = Account(private_key=b"\x01\x02\x03", public_key="pub", name=None, order=4)

    records = json.loads(codec.encode_accounts([account]))

    assert records == [{"privateKey": "AQID", "publicKey": "pub", "name": None, "order": 4}]


def test_encode_preserves_sequence():
    accounts = [
        Account(private_key=b"b", public_key="second", order=1),
        Account(private_key=b"a", public_key="first", order=0),
    ]

    records = json.loads(codec.encode_accounts(accounts))

    assert [r["publicKey"] for r in records] == ["second", "first"]


def test_unmigrated_flag_selects_legacy_batch():
    key = bytes(range(1, 33))
    payload = json.dumps([{"privateKey": base58.b58encode(key).decode(), "publicKey": "pub", "name": "L", "order": 0}])

    batch = codec.read_batch(payload, migrated=False)

    assert isinstance(batch, codec.LegacyBatch)
    assert batch.encoding is codec.KeyEncoding.LEGACY
    assert codec.decode_batch(batch)[0].private_key == key


def test_legacy_decode_failure_only_affects_that_record(caplog):
    good_key = b"\x10" * 32
    payload = json.dumps(
        [
            {"privateKey": "not/base58+", "publicKey": "bad", "name": None, "order": 0},
            {"privateKey": base58.b58encode(good_key).decode(), "publicKey": "good", "name": None, "order": 1},
        ]
    )

    with caplog.at_level("WARNING"):
        accounts = codec.decode_batch(codec.read_batch(payload, migrated=False))

    assert accounts[0].private_key == b""
    assert accounts[1].private_key == good_key
    assert "bad" in caplog.text
    assert "not/base58+" not in caplog.text


def test_legacy_decoder_returns_empty_bytes_for_garbage():
    assert codec.decode_legacy_private_key("0OIl") == b""
    assert codec.decode_legacy_private_key("") == b""


def test_current_decoder_rejects_corrupted_text():
    with pytest.raises(StoreUnavailableError):
        codec.decode_private_key("%%%not-base64%%%")


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        json.dumps({"privateKey": "AQID"}),
        json.dumps([{"publicKey": "missing-private-key", "order": 0}]),
    ],
)
def test_malformed_payload_is_a_store_fault(payload):
    with pytest.raises(StoreUnavailableError):
        codec.read_batch(payload, migrated=True)


def test_record_with_empty_public_key_is_a_store_fault():
    payload = json.dumps([{"privateKey": "AQID", "publicKey": "", "name": None, "order": 0}])

    with pytest.raises(StoreUnavailableError):
        codec.decode_batch(codec.read_batch(payload, migrated=True))


def test_account_repr_hides_private_key():
    account = Account(private_key=b"super-secret", public_key="pub")

    assert "super-secret" not in repr(account)
