"""
Wallet account vault.

This module provides:
- Account / AccountRecord: in-memory and serialized account models
- AccountStore: persisted account list with active-account tracking and the
  one-way Base58 to Base64 private-key migration
- EncryptedPreferences / MemoryPreferences: key-value stores backing AccountStore
- provision_master_key: master-key provisioning for encrypted stores
"""

from .models import Account, AccountRecord
from .preferences import BasePreferences, EncryptedPreferences, MemoryPreferences, Preferences
from .security import MasterKey, provision_master_key
from .store import AccountStore

__all__ = [
    # Models
    "Account",
    "AccountRecord",
    # Store
    "AccountStore",
    # Backing preferences
    "Preferences",
    "BasePreferences",
    "EncryptedPreferences",
    "MemoryPreferences",
    # Master key
    "MasterKey",
    "provision_master_key",
]
