# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Distribution

Splits an operator-supplied reward across all current stakers in proportion to
their stake.

Flow:
1. Pull the full amount from the operator into custody
2. Snapshot the stake index and sum it
3. reward_i = stake_i * amount // total_stake (floor, exact integers)
4. Pay every non-zero share sequentially in snapshot order
5. Remainder from floor division (dust) stays in custody as unallocated

Payouts are not atomic across stakers. If one fails the distribution stops
there; earlier payouts stand and are not retried.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from stakeproto.types.account import AccountKey, LedgerAccount
from stakeproto.types.common import OpType, ValidationError, NoStakerFound, LedgerTransferFailed
from stakeproto.config.params import MAX_AMOUNT
from ..ledger.base import TransferError, TransferService
from .events import (
    EventBus, TRANSFER_FAILED, REWARD_PAID, DISTRIBUTION_COMPLETED, DISTRIBUTION_FAILED,
)
from .receipts import DistributionReceiptStore, Payout
from .state import PoolState

logger = logging.getLogger(__name__)


@dataclass
class Share:
    account: AccountKey
    stake: int
    amount: int


def proportional_shares(snapshot: Sequence[Tuple[AccountKey, int]], amount: int) -> Tuple[List[Share], int]:
    """
    Computes floor-proportional shares of ``amount``.

    Returns:
        (non-zero shares in snapshot order, dust)
    """
    total_stake = sum(stake for _, stake in snapshot)
    if total_stake == 0:
        return [], amount

    shares = []
    for account, stake in snapshot:
        reward = stake * amount // total_stake
        if reward == 0:
            continue
        shares.append(Share(account=account, stake=stake, amount=reward))

    dust = amount - sum(s.amount for s in shares)
    return shares, dust


class RewardDistributor:
    """Sweeps the stake index and pays out one reward."""

    def __init__(self, state: PoolState, transfers: TransferService,
                 receipts: Optional[DistributionReceiptStore] = None, events: Optional[EventBus] = None):
        self.state = state
        self.transfers = transfers
        self.receipts = receipts or DistributionReceiptStore()
        self.events = events or EventBus()

    async def distribute(self, source: LedgerAccount, amount: int) -> bool:
        """
        Distribute ``amount`` pulled from ``source``.

        Returns:
            True once every non-zero share has been paid

        Raises:
            LedgerTransferFailed: the pull or one of the payouts failed
            NoStakerFound: total stake is zero (pulled amount stays in custody)
        """
        if amount < 0 or amount > MAX_AMOUNT:
            raise ValidationError(f"Amount {amount} out of range [0, {MAX_AMOUNT}]")

        distribution_id = self.state.next_distribution_id()
        receipt = self.receipts.open(distribution_id, source.owner, amount)

        # 1. Pull reward into custody
        try:
            await self.transfers.transfer_from(source, self.transfers.custody, amount)
        except TransferError as e:
            logger.warning(f"Distribution #{distribution_id}: pull of {amount} from {source.owner} failed: {e}")
            self.receipts.mark_failed(distribution_id, f"pull failed: {e}")
            self.events.emit(TRANSFER_FAILED, operation=OpType.REWARD_PULL, account=source,
                             amount=amount, error=str(e))
            self.events.emit(DISTRIBUTION_FAILED, receipt=receipt)
            raise LedgerTransferFailed(str(e)) from e

        # 2. Snapshot; deposits/withdrawals landing during payouts do not change the shares
        snapshot = self.state.index.items()
        total_stake = sum(stake for _, stake in snapshot)
        receipt.total_stake = total_stake

        if total_stake == 0:
            held = self.state.add_unallocated_rewards(amount)
            logger.warning(
                f"Distribution #{distribution_id}: no stakers, {amount} held in custody "
                f"(unallocated total {held})"
            )
            self.receipts.mark_no_stakers(distribution_id)
            self.events.emit(DISTRIBUTION_FAILED, receipt=receipt)
            raise NoStakerFound()

        # 3. Shares
        shares, dust = proportional_shares(snapshot, amount)
        receipt.payouts = [
            Payout(owner=s.account.owner, subaccount=s.account.subaccount.hex(), stake=s.stake, amount=s.amount)
            for s in shares
        ]
        receipt.dust = dust
        if dust > 0:
            self.state.add_unallocated_rewards(dust)
            logger.info(f"Distribution #{distribution_id}: dust {dust} left unallocated")

        logger.info(
            f"Distribution #{distribution_id}: {amount} over {len(snapshot)} account(s), "
            f"total stake {total_stake}, {len(shares)} payout(s)"
        )

        # 4. Sequential payouts
        for share, payout in zip(shares, receipt.payouts):
            try:
                block_index = await self.transfers.transfer_to(share.account.ledger_account, share.amount)
            except TransferError as e:
                payout.status = 'failed'
                payout.error = str(e)
                logger.error(
                    f"Distribution #{distribution_id}: payout of {share.amount} to {share.account} failed: {e}. "
                    f"{receipt.paid_amount} already paid, remaining payouts skipped."
                )
                self.receipts.mark_failed(distribution_id, f"payout to {share.account} failed: {e}")
                self.events.emit(TRANSFER_FAILED, operation=OpType.REWARD_PAYOUT, account=share.account,
                                 amount=share.amount, error=str(e))
                self.events.emit(DISTRIBUTION_FAILED, receipt=receipt)
                raise LedgerTransferFailed(str(e)) from e

            payout.status = 'paid'
            payout.block_index = block_index
            self.events.emit(REWARD_PAID, distribution_id=distribution_id, account=share.account, amount=share.amount)

        self.receipts.mark_completed(distribution_id)
        self.events.emit(DISTRIBUTION_COMPLETED, receipt=receipt)
        return True
