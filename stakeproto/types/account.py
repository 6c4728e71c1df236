# MIT License
# Copyright (c) 2025 Hashborn

from typing import Any, Optional, Tuple
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from ..config.params import SUBACCOUNT_SIZE

DEFAULT_SUBACCOUNT = bytes(SUBACCOUNT_SIZE)


def coerce_subaccount(value: Any) -> bytes:
    """Accepts raw bytes, a byte list or a hex string; returns exactly 32 bytes."""
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value)
        except ValueError:
            raise ValueError("subaccount must be a hex string")
    elif isinstance(value, (bytearray, list, tuple)):
        value = bytes(value)

    if not isinstance(value, bytes):
        raise ValueError(f"subaccount must be bytes, got {type(value).__name__}")
    if len(value) != SUBACCOUNT_SIZE:
        raise ValueError(f"subaccount must be {SUBACCOUNT_SIZE} bytes, got {len(value)}")
    return value


def subaccount_from_index(index: int) -> bytes:
    """Big-endian encoding of a small integer, handy for numbered positions."""
    if index < 0:
        raise ValueError("subaccount index must be non-negative")
    return index.to_bytes(SUBACCOUNT_SIZE, "big")


class LedgerAccount(BaseModel):
    """An address on the external token ledger (owner + optional subaccount)."""
    model_config = ConfigDict(frozen=True)

    owner: str
    subaccount: Optional[bytes] = None   # None = owner's default account

    @field_validator("subaccount", mode="before")
    @classmethod
    def _check_subaccount(cls, value):
        if value is None:
            return None
        return coerce_subaccount(value)

    @field_serializer("subaccount")
    def _dump_subaccount(self, value: Optional[bytes]) -> Optional[str]:
        return value.hex() if value is not None else None


class AccountKey(BaseModel):
    """
    Identifies one stake position: an owner principal plus a 32-byte subaccount.

    Ordered by (owner, subaccount) so that it iterates the same way the storage
    layer does.
    """
    model_config = ConfigDict(frozen=True)

    owner: str
    subaccount: bytes

    @field_validator("subaccount", mode="before")
    @classmethod
    def _check_subaccount(cls, value):
        return coerce_subaccount(value)

    @field_serializer("subaccount")
    def _dump_subaccount(self, value: bytes) -> str:
        return value.hex()

    def sort_key(self) -> Tuple[str, bytes]:
        return (self.owner, self.subaccount)

    def __lt__(self, other):
        if not isinstance(other, AccountKey):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __le__(self, other):
        if not isinstance(other, AccountKey):
            return NotImplemented
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other):
        if not isinstance(other, AccountKey):
            return NotImplemented
        return self.sort_key() > other.sort_key()

    def __ge__(self, other):
        if not isinstance(other, AccountKey):
            return NotImplemented
        return self.sort_key() >= other.sort_key()

    def __str__(self) -> str:
        return f"{self.owner}/{self.subaccount.hex()}"

    @property
    def ledger_account(self) -> LedgerAccount:
        """External address that funds come from and go back to."""
        return LedgerAccount(owner=self.owner, subaccount=self.subaccount)
