# MIT License
# Copyright (c) 2025 Hashborn

from typing import List, Optional, Tuple
from stakeproto.types.account import AccountKey
from stakeproto.types.deposit import DepositList
from ..storage.db import StorageDB


class DepositLedger:
    """Read view over the per-account deposit lists. Writes go through PoolState."""

    def __init__(self, db: StorageDB):
        self.db = db

    def get(self, key: AccountKey) -> DepositList:
        raw_json = self.db.get_deposits(key.owner, key.subaccount)
        if raw_json:
            return DepositList.model_validate_json(raw_json)
        # Absent and empty are the same thing
        return DepositList()

    def items(self, owner: Optional[str] = None) -> List[Tuple[AccountKey, DepositList]]:
        """Every non-empty list in AccountKey order, optionally for a single owner."""
        result = []
        for row_owner, subaccount, raw_json in self.db.iter_deposits(owner):
            deposits = DepositList.model_validate_json(raw_json)
            if deposits.is_empty():
                continue
            result.append((AccountKey(owner=row_owner, subaccount=subaccount), deposits))
        return result

    def count(self) -> int:
        return sum(len(deposits.deposits) for _, deposits in self.items())
