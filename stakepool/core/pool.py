# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import nullcontext
from typing import Any, Dict, List, Optional, Tuple
import logging
from stakeproto.types.account import AccountKey, LedgerAccount
from stakeproto.types.deposit import Deposit
from stakeproto.config.params import CURRENT_NETWORK, PoolConfig
from ..storage.db import StorageDB
from ..ledger.base import TransferService
from .clock import SystemClock
from .events import EventBus
from .guard import AccountGuard
from .receipts import DistributionReceiptStore
from .state import PoolState
from .deposits import DepositManager
from .withdrawals import WithdrawalManager
from .rewards import RewardDistributor

logger = logging.getLogger(__name__)


class StakePool:
    """
    Caller-scoped entry point wiring storage, ledger, clock and the three managers.

    ``caller`` is always the authenticated principal; every per-account operation
    acts on ``AccountKey(caller, subaccount)``.
    """

    def __init__(self, db_path: str, transfers: TransferService,
                 config: Optional[PoolConfig] = None, clock=None):
        self.config = config or CURRENT_NETWORK
        self.db = StorageDB(db_path)
        self.state = PoolState(self.db)
        self.transfers = transfers
        self.clock = clock or SystemClock()

        self.events = EventBus()
        self.receipts = DistributionReceiptStore(max_receipts=self.config.max_receipts)
        self.guard = AccountGuard()

        self.deposits = DepositManager(self.state, transfers, self.config, self.events)
        self.withdrawals = WithdrawalManager(self.state, transfers, self.events)
        self.rewards = RewardDistributor(self.state, transfers, self.receipts, self.events)

        logger.info(
            f"Pool {self.config.pool_id} opened at {db_path}: "
            f"{self.state.ledger.count()} active deposit(s), last id {self.state.last_deposit_id()}"
        )

    @property
    def custody(self) -> LedgerAccount:
        return self.transfers.custody

    def _serialized(self, key: AccountKey):
        if self.config.serialize_accounts:
            return self.guard.hold(key)
        return nullcontext()

    # --- Updates ---
    async def deposit_funds(self, caller: str, subaccount: bytes, lock_period_days: int, amount: int) -> Deposit:
        key = AccountKey(owner=caller, subaccount=subaccount)
        async with self._serialized(key):
            return await self.deposits.deposit(key, lock_period_days, amount, self.clock.now())

    async def withdraw_funds(self, caller: str, subaccount: bytes, deposit_id: int) -> int:
        key = AccountKey(owner=caller, subaccount=subaccount)
        async with self._serialized(key):
            return await self.withdrawals.withdraw(key, deposit_id, self.clock.now())

    async def distribute_reward(self, caller: str, amount: int) -> bool:
        return await self.rewards.distribute(LedgerAccount(owner=caller), amount)

    # --- Queries ---
    def list_my_deposits(self, caller: str) -> List[Tuple[bytes, Deposit]]:
        return [
            (key.subaccount, deposit)
            for key, deposits in self.state.ledger.items(owner=caller)
            for deposit in deposits.deposits
        ]

    def get_stake_balance(self, caller: str, subaccount: bytes) -> int:
        return self.state.index.get(AccountKey(owner=caller, subaccount=subaccount))

    def status(self) -> Dict[str, Any]:
        stakes = self.state.index.items()
        return {
            "pool_id": self.config.pool_id,
            "network": self.config.network_id,
            "custody": self.custody.owner,
            "stakers": sum(1 for _, stake in stakes if stake > 0),
            "total_stake": sum(stake for _, stake in stakes),
            "active_deposits": self.state.ledger.count(),
            "last_deposit_id": self.state.last_deposit_id(),
            "unallocated_rewards": self.state.unallocated_rewards(),
            "state_root": self.state.compute_state_root(),
        }

    async def close(self):
        await self.transfers.close()
        self.db.close()
        logger.info(f"Pool {self.config.pool_id} closed")
