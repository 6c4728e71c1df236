# MIT License
# Copyright (c) 2025 Hashborn

import logging
from typing import Optional
from stakeproto.types.account import AccountKey
from stakeproto.types.common import OpType, NoDepositFound, LockPeriodNotExpired, LedgerTransferFailed
from stakeproto.types.deposit import Deposit
from ..ledger.base import TransferError, TransferService
from .events import EventBus, DEPOSIT_WITHDRAWN, TRANSFER_FAILED
from .state import PoolState

logger = logging.getLogger(__name__)


class WithdrawalManager:
    """Releases unlocked deposits and sends the funds back."""

    def __init__(self, state: PoolState, transfers: TransferService, events: Optional[EventBus] = None):
        self.state = state
        self.transfers = transfers
        self.events = events or EventBus()

    def release(self, account: AccountKey, deposit_id: int, now: int) -> Deposit:
        """
        Removes an unlocked deposit from the ledger and the stake index.

        Raises:
            NoDepositFound: no such deposit for this account
            LockPeriodNotExpired: now < created_at + lock_period_days * 86400
        """
        deposit = self.state.ledger.get(account).find(deposit_id)
        if deposit is None:
            raise NoDepositFound(deposit_id)

        if not deposit.is_unlocked(now):
            raise LockPeriodNotExpired(deposit_id, deposit.unlock_time)

        self.state.remove_deposit(account, deposit_id)

        logger.info(f"Deposit #{deposit_id} released for {account}: {deposit.amount}")
        self.events.emit(DEPOSIT_WITHDRAWN, account=account, deposit=deposit)
        return deposit

    async def withdraw(self, account: AccountKey, deposit_id: int, now: int) -> int:
        """
        Releases the deposit, then transfers its amount back to the account.

        A failed return transfer does not restore the deposit: the ledger keeps
        the post-withdrawal state and the failure is reported for reconciliation.
        """
        deposit = self.release(account, deposit_id, now)

        try:
            await self.transfers.transfer_to(account.ledger_account, deposit.amount)
        except TransferError as e:
            logger.error(
                f"Deposit #{deposit_id} already removed for {account} but return transfer "
                f"of {deposit.amount} failed: {e}. Needs reconciliation."
            )
            self.events.emit(TRANSFER_FAILED, operation=OpType.WITHDRAW, account=account,
                             amount=deposit.amount, error=str(e))
            raise LedgerTransferFailed(str(e)) from e

        return deposit.amount
