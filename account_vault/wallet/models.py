"""Account models held in memory and persisted by the account store."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Account(BaseModel):
    """One wallet identity: a key pair plus display metadata.

    ``order`` is assigned by the store; callers creating a new account can
    leave it at the default.
    """

    model_config = ConfigDict(frozen=True)

    private_key: bytes = Field(repr=False)
    public_key: str = Field(min_length=1)
    name: Optional[str] = None
    order: int = Field(default=0, ge=0)


class AccountRecord(BaseModel):
    """Serialized form of an :class:`Account` with a text-encoded private key."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    private_key: str = Field(alias="privateKey", repr=False)
    public_key: str = Field(alias="publicKey")
    name: Optional[str] = None
    order: int = 0
