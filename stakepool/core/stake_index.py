# MIT License
# Copyright (c) 2025 Hashborn

from typing import List, Tuple
from stakeproto.types.account import AccountKey
from ..storage.db import StorageDB


class StakeIndex:
    """Read view over the aggregated stake per account. Writes go through PoolState."""

    def __init__(self, db: StorageDB):
        self.db = db

    def get(self, key: AccountKey) -> int:
        raw = self.db.get_stake(key.owner, key.subaccount)
        return int(raw) if raw else 0

    def items(self) -> List[Tuple[AccountKey, int]]:
        """(account, stake) pairs in AccountKey order."""
        return [
            (AccountKey(owner=owner, subaccount=subaccount), int(amount))
            for owner, subaccount, amount in self.db.iter_stakes()
        ]

    def total(self) -> int:
        # Exact: ints are unbounded
        return sum(stake for _, stake in self.items())
