"""
Key-value preference stores backing the account store.

Values are strings or booleans. Mutations are made through ``edit()``, which
yields an editor whose changes are committed atomically when the ``with`` block
exits cleanly and discarded if it raises::

    with prefs.edit() as editor:
        editor.put_string("accounts", payload)
        editor.put_bool("data_migrated_flag", True)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import ContextManager, Dict, Iterator, Optional, Protocol, Tuple, Union

from account_vault.config import VaultSettings
from account_vault.errors import StoreUnavailableError
from .security import (
    MasterKey,
    decrypt_name,
    decrypt_value,
    derive_subkeys,
    encrypt_name,
    encrypt_value,
    provision_master_key,
)

logger = logging.getLogger(__name__)

Value = Union[str, bool]

_REMOVED = object()


class Editor:
    """Buffered set of changes applied by :meth:`BasePreferences.edit`."""

    def __init__(self) -> None:
        self._changes: Dict[str, object] = {}

    def put_string(self, key: str, value: str) -> "Editor":
        if not isinstance(value, str):
            raise TypeError(f"Value for {key} must be str; got {type(value).__name__}")
        self._changes[key] = value
        return self

    def put_bool(self, key: str, value: bool) -> "Editor":
        if not isinstance(value, bool):
            raise TypeError(f"Value for {key} must be bool; got {type(value).__name__}")
        self._changes[key] = value
        return self

    def remove(self, key: str) -> "Editor":
        self._changes[key] = _REMOVED
        return self


class Preferences(Protocol):
    def get_string(self, key: str, default: Optional[str] = None) -> Optional[str]:
        ...

    def get_bool(self, key: str, default: bool = False) -> bool:
        ...

    def contains(self, key: str) -> bool:
        ...

    def edit(self) -> ContextManager[Editor]:
        ...

    def clear(self) -> None:
        ...


class BasePreferences:
    """Shared read/edit logic over a snapshot dictionary.

    Subclasses provide ``_persist`` to make a new snapshot durable and may
    override ``_refresh`` to pick up changes written by another instance.
    """

    def __init__(self, values: Optional[Dict[str, Value]] = None) -> None:
        self._values: Dict[str, Value] = dict(values or {})
        self._lock = threading.RLock()

    def get_string(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            self._refresh()
            value = self._values.get(key)
        return value if isinstance(value, str) else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        with self._lock:
            self._refresh()
            value = self._values.get(key)
        return value if isinstance(value, bool) else default

    def contains(self, key: str) -> bool:
        with self._lock:
            self._refresh()
            return key in self._values

    @contextmanager
    def edit(self) -> Iterator[Editor]:
        editor = Editor()
        yield editor
        with self._lock:
            self._refresh()
            updated = dict(self._values)
            for key, value in editor._changes.items():
                if value is _REMOVED:
                    updated.pop(key, None)
                else:
                    updated[key] = value
            self._persist(updated)
            self._values = updated

    def clear(self) -> None:
        with self._lock:
            self._persist({})
            self._values = {}

    def _persist(self, values: Dict[str, Value]) -> None:
        raise NotImplementedError

    def _refresh(self) -> None:
        pass


class MemoryPreferences(BasePreferences):
    """In-process preferences with no persistence."""

    def _persist(self, values: Dict[str, Value]) -> None:
        pass

    def __repr__(self) -> str:
        return f"<MemoryPreferences keys={sorted(self._values)}>"


class EncryptedPreferences(BasePreferences):
    """
    Preferences persisted to a single JSON file with encrypted names and values.

    Names are sealed with AES-SIV so equal names map to equal tokens; values are
    sealed with AES-GCM and bound to their plain name as associated data, so a
    value cannot be swapped onto a different key without detection.
    """

    def __init__(self, settings: VaultSettings, master_key: MasterKey) -> None:
        self._settings = settings
        self._name_key, self._value_key = derive_subkeys(master_key)
        self._signature: Optional[Tuple[int, int, int]] = None
        super().__init__(self._load())

    @classmethod
    def open(cls, settings: VaultSettings) -> "EncryptedPreferences":
        """Provision the master key and open the store named in ``settings``."""
        master_key = provision_master_key(settings)
        prefs = cls(settings, master_key)
        logger.debug(f"Opened encrypted preferences {settings.store_path} ({master_key.scheme} key)")
        return prefs

    def _refresh(self) -> None:
        if self._file_signature() != self._signature:
            logger.debug(f"Reloading encrypted preferences {self._settings.store_path}")
            self._values = self._load()

    def _file_signature(self) -> Optional[Tuple[int, int, int]]:
        try:
            stat = self._settings.store_path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to stat encrypted preferences {self._settings.store_path}") from exc
        return stat.st_ino, stat.st_mtime_ns, stat.st_size

    def _load(self) -> Dict[str, Value]:
        path = self._settings.store_path
        if not path.exists():
            self._signature = None
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                sealed = json.load(f)
                self._signature = self._file_signature()
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailableError(f"Failed to read encrypted preferences {path}") from exc
        if not isinstance(sealed, dict):
            raise StoreUnavailableError(f"Encrypted preferences {path} are malformed")

        store_name = self._settings.store_name
        values: Dict[str, Value] = {}
        for token, sealed_value in sealed.items():
            name = decrypt_name(self._name_key, token, store_name)
            plaintext = decrypt_value(self._value_key, sealed_value, name)
            try:
                value = json.loads(plaintext)
            except ValueError as exc:
                raise StoreUnavailableError(f"Preference {name} holds a malformed value") from exc
            if not isinstance(value, (str, bool)):
                raise StoreUnavailableError(f"Preference {name} holds an unsupported value type")
            values[name] = value
        return values

    def _persist(self, values: Dict[str, Value]) -> None:
        store_name = self._settings.store_name
        sealed = {
            encrypt_name(self._name_key, name, store_name): encrypt_value(
                self._value_key, json.dumps(value).encode("utf-8"), name
            )
            for name, value in values.items()
        }

        path = self._settings.store_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(sealed, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
                self._signature = self._file_signature()
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to write encrypted preferences {path}") from exc
        logger.debug(f"Persisted {len(values)} preference(s) to {path}")

    def __repr__(self) -> str:
        return f"<EncryptedPreferences path={self._settings.store_path}>"
