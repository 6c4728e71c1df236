# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Optional
from stakeproto.types.account import AccountKey
from stakeproto.types.common import OpType, ValidationError, InvalidLockPeriod, LedgerTransferFailed
from stakeproto.types.deposit import Deposit
from stakeproto.config.params import CURRENT_NETWORK, MAX_AMOUNT, PoolConfig
from ..ledger.base import TransferError, TransferService
from .events import EventBus, DEPOSIT_RECORDED, TRANSFER_FAILED
from .state import PoolState

logger = logging.getLogger(__name__)


class DepositManager:
    """Validates and records new locked deposits."""

    def __init__(self, state: PoolState, transfers: TransferService,
                 config: Optional[PoolConfig] = None, events: Optional[EventBus] = None):
        self.state = state
        self.transfers = transfers
        self.config = config or CURRENT_NETWORK
        self.events = events or EventBus()

    def validate(self, lock_period_days: int, amount: int) -> None:
        """Raises before anything is touched. Zero amounts are allowed."""
        if not self.config.is_valid_lock_period(lock_period_days):
            raise InvalidLockPeriod(lock_period_days)
        if amount < 0 or amount > MAX_AMOUNT:
            raise ValidationError(f"Amount {amount} out of range [0, {MAX_AMOUNT}]")

    def record(self, account: AccountKey, lock_period_days: int, amount: int, now: int) -> Deposit:
        """
        Records a deposit whose funds are already in custody.

        Allocates the next id, then commits the deposit list and the stake of
        ``account`` together. The id is consumed even if the commit fails.
        """
        self.validate(lock_period_days, amount)

        deposit = Deposit(
            id=self.state.next_deposit_id(),
            amount=amount,
            created_at=now,
            lock_period_days=lock_period_days,
        )
        self.state.add_deposit(account, deposit)

        logger.info(
            f"Deposit #{deposit.id} recorded for {account}: {amount} locked {lock_period_days}d "
            f"(unlocks at {deposit.unlock_time})"
        )
        self.events.emit(DEPOSIT_RECORDED, account=account, deposit=deposit)
        return deposit

    async def deposit(self, account: AccountKey, lock_period_days: int, amount: int, now: int) -> Deposit:
        """
        Pulls ``amount`` from the account's ledger address into custody, then records it.

        Raises:
            InvalidLockPeriod: lock period outside the allowed set (nothing pulled)
            LedgerTransferFailed: the pull failed (nothing recorded)
        """
        self.validate(lock_period_days, amount)

        try:
            await self.transfers.transfer_from(account.ledger_account, self.transfers.custody, amount)
        except TransferError as e:
            logger.warning(f"Deposit pull of {amount} from {account} failed: {e}")
            self.events.emit(TRANSFER_FAILED, operation=OpType.DEPOSIT, account=account, amount=amount, error=str(e))
            raise LedgerTransferFailed(str(e)) from e

        return self.record(account, lock_period_days, amount, now)
