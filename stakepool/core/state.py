# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, List
import logging
from stakeproto.types.account import AccountKey
from stakeproto.types.deposit import Deposit, DepositList
from stakeproto.crypto.hash import sha256, merkle_root
from ..storage.db import StorageDB
from .ledger import DepositLedger
from .stake_index import StakeIndex

logger = logging.getLogger(__name__)

DEPOSIT_ID_KEY = "deposit_id_counter"
DISTRIBUTION_ID_KEY = "distribution_id_counter"
UNALLOCATED_KEY = "unallocated_rewards"


def state_leaf(key: AccountKey, stake: int, deposits: DepositList) -> bytes:
    """Hash input for one account in the state root."""
    return "|".join([
        str(key),
        str(stake),
        ",".join(f"{d.id}:{d.amount}:{d.created_at}:{d.lock_period_days}" for d in deposits.deposits),
    ]).encode("utf-8")


class PoolState:
    """
    Owns the deposit ledger, the stake index and the id counters over one DB handle.

    Every write commits the deposit list and the stake of a single account in one
    storage transaction, so StakeBalance == sum(DepositList) holds between calls.
    """

    def __init__(self, db: StorageDB):
        self.db = db
        self.ledger = DepositLedger(db)
        self.index = StakeIndex(db)

    # --- Counters ---
    def next_deposit_id(self) -> int:
        """Allocates a deposit id. Committed immediately, never handed out twice."""
        return self.db.increment_meta(DEPOSIT_ID_KEY)

    def last_deposit_id(self) -> int:
        val = self.db.get_meta(DEPOSIT_ID_KEY)
        return int(val) if val else 0

    def next_distribution_id(self) -> int:
        return self.db.increment_meta(DISTRIBUTION_ID_KEY)

    def unallocated_rewards(self) -> int:
        val = self.db.get_meta(UNALLOCATED_KEY)
        return int(val) if val else 0

    def add_unallocated_rewards(self, amount: int) -> int:
        if amount <= 0:
            return self.unallocated_rewards()
        return self.db.increment_meta(UNALLOCATED_KEY, amount)

    # --- Writes ---
    def commit_account(self, key: AccountKey, deposits: DepositList, stake: int):
        """Persists both maps for one account atomically. Empty entries are removed."""
        self.db.write_account(
            key.owner,
            key.subaccount,
            None if deposits.is_empty() else deposits.model_dump_json(),
            None if stake == 0 else str(stake),
        )

    def add_deposit(self, key: AccountKey, deposit: Deposit):
        deposits = self.ledger.get(key)
        stake = self.index.get(key)
        deposits.deposits.append(deposit)
        self.commit_account(key, deposits, stake + deposit.amount)

    def remove_deposit(self, key: AccountKey, deposit_id: int) -> Deposit:
        """Removes one deposit and decrements the stake (saturating at zero)."""
        deposits = self.ledger.get(key)
        deposit = deposits.find(deposit_id)
        if deposit is None:
            raise KeyError(deposit_id)
        deposits.deposits = [d for d in deposits.deposits if d.id != deposit_id]
        stake = max(0, self.index.get(key) - deposit.amount)
        self.commit_account(key, deposits, stake)
        return deposit

    # --- Consistency ---
    def find_inconsistencies(self) -> Dict[AccountKey, tuple]:
        """Accounts whose stake differs from the sum of their deposits: key -> (stake, deposits_sum)."""
        sums = {key: deposits.total() for key, deposits in self.ledger.items()}
        stakes = dict(self.index.items())
        broken = {}
        for key in set(sums) | set(stakes):
            stake = stakes.get(key, 0)
            total = sums.get(key, 0)
            if stake != total:
                broken[key] = (stake, total)
        if broken:
            logger.error(f"Stake index out of sync for {len(broken)} account(s)")
        return broken

    def compute_state_root(self) -> str:
        """Merkle root over (account, stake, deposit ids) in AccountKey order."""
        stakes = dict(self.index.items())
        items: List[bytes] = []
        for key, deposits in self.ledger.items():
            items.append(sha256(state_leaf(key, stakes.get(key, 0), deposits)))

        if not items:
            return sha256(b"").hex()

        return merkle_root(items).hex()
