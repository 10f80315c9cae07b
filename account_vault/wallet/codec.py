"""
Conversion between in-memory accounts and their persisted record list.

Private keys are stored as text. The collection-wide migration flag decides
how that text is read:

- ``CurrentBatch``: standard Base64 (written by every save).
- ``LegacyBatch``: Base58, as written before the migration. A record whose
  legacy text cannot be decoded gets an empty key instead of failing the batch.

The flag is resolved once per batch in :func:`read_batch`, so a single read can
never mix encodings.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple, Union

import base58
from pydantic import TypeAdapter, ValidationError

from account_vault.errors import StoreUnavailableError
from .models import Account, AccountRecord

logger = logging.getLogger(__name__)

_RECORD_LIST = TypeAdapter(List[AccountRecord])


class KeyEncoding(str, Enum):
    LEGACY = "base58"
    CURRENT = "base64"


@dataclass(frozen=True)
class LegacyBatch:
    records: Tuple[AccountRecord, ...]
    encoding: KeyEncoding = KeyEncoding.LEGACY


@dataclass(frozen=True)
class CurrentBatch:
    records: Tuple[AccountRecord, ...]
    encoding: KeyEncoding = KeyEncoding.CURRENT


RecordBatch = Union[LegacyBatch, CurrentBatch]


def encode_private_key(private_key: bytes) -> str:
    return base64.b64encode(private_key).decode("ascii")


def decode_private_key(text: str) -> bytes:
    """Decode current-format (Base64) private key text."""
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise StoreUnavailableError("Stored private key is not valid Base64; the account store is corrupted") from exc


def decode_legacy_private_key(text: str) -> bytes:
    """Decode legacy (Base58) private key text, returning ``b""`` when malformed."""
    try:
        return base58.b58decode(text)
    except ValueError:
        return b""


def read_batch(payload: str, migrated: bool) -> RecordBatch:
    """Parse a serialized record list and tag it with the collection's encoding."""
    try:
        records = tuple(_RECORD_LIST.validate_json(payload))
    except ValidationError as exc:
        raise StoreUnavailableError(f"Stored account list is malformed: {exc.error_count()} error(s)") from exc

    if migrated:
        return CurrentBatch(records=records)
    return LegacyBatch(records=records)


def decode_batch(batch: RecordBatch) -> List[Account]:
    if isinstance(batch, CurrentBatch):
        return [_to_account(record, decode_private_key(record.private_key)) for record in batch.records]

    accounts = []
    for record in batch.records:
        private_key = decode_legacy_private_key(record.private_key)
        if not private_key and record.private_key:
            logger.warning(f"Legacy private key for account {record.public_key} could not be decoded; using an empty key")
        accounts.append(_to_account(record, private_key))
    return accounts


def encode_accounts(accounts: Sequence[Account]) -> str:
    """Serialize accounts, in the given sequence, using the current encoding."""
    records = [
        AccountRecord(
            private_key=encode_private_key(account.private_key),
            public_key=account.public_key,
            name=account.name,
            order=account.order,
        )
        for account in accounts
    ]
    return _RECORD_LIST.dump_json(records, by_alias=True).decode("utf-8")


def _to_account(record: AccountRecord, private_key: bytes) -> Account:
    try:
        return Account(
            private_key=private_key,
            public_key=record.public_key,
            name=record.name,
            order=record.order,
        )
    except ValidationError as exc:
        raise StoreUnavailableError(f"Stored account record is invalid: {exc.error_count()} error(s)") from exc
