# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward distribution receipts.

Distributions are not atomic across stakers, so every run leaves a receipt
showing which payouts went out. Operators reconcile failed runs from these.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, List
import time
import logging
from threading import RLock

logger = logging.getLogger(__name__)


@dataclass
class Payout:
    """One staker's share within a distribution."""
    owner: str
    subaccount: str                 # hex
    stake: int
    amount: int
    status: str = 'pending'         # 'pending', 'paid', 'failed'
    block_index: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "subaccount": self.subaccount,
            "stake": str(self.stake),
            "amount": str(self.amount),
            "status": self.status,
            "block_index": self.block_index,
            "error": self.error,
        }


@dataclass
class DistributionReceipt:
    """
    Outcome of one reward distribution.

    Attributes:
        distribution_id: Sequential id allocated by the pool
        source: Principal the reward was pulled from
        amount: Reward amount supplied by the operator
        status: 'pending', 'completed', 'failed' or 'no_stakers'
        total_stake: Stake total of the snapshot the shares were computed on
        payouts: Computed shares in snapshot order (zero shares omitted)
        dust: Remainder left by floor division
        error: Failure reason, if any
        timestamp: Last status change (unix timestamp)
    """
    distribution_id: int
    source: str
    amount: int
    status: str = 'pending'
    total_stake: int = 0
    payouts: List[Payout] = field(default_factory=list)
    dust: int = 0
    error: Optional[str] = None
    timestamp: int = 0

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    @property
    def paid_amount(self) -> int:
        return sum(p.amount for p in self.payouts if p.status == 'paid')

    def to_dict(self) -> dict:
        """Convert receipt to dictionary for API response."""
        return {
            "distribution_id": self.distribution_id,
            "source": self.source,
            "amount": str(self.amount),
            "status": self.status,
            "total_stake": str(self.total_stake),
            "paid_amount": str(self.paid_amount),
            "dust": str(self.dust),
            "error": self.error,
            "timestamp": self.timestamp,
            "payouts": [p.to_dict() for p in self.payouts],
        }


class DistributionReceiptStore:
    """
    In-memory store for distribution receipts.

    Thread-safe storage with automatic cleanup of old receipts.
    """

    def __init__(self, max_receipts: int = 10000):
        self.receipts: Dict[int, DistributionReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def open(self, distribution_id: int, source: str, amount: int) -> DistributionReceipt:
        with self.lock:
            receipt = DistributionReceipt(
                distribution_id=distribution_id,
                source=source,
                amount=amount,
            )
            self.receipts[distribution_id] = receipt

            if len(self.receipts) > self.max_receipts:
                self._cleanup_old_receipts()

            logger.debug(f"Opened distribution receipt #{distribution_id}")
            return receipt

    def get(self, distribution_id: int) -> Optional[DistributionReceipt]:
        with self.lock:
            return self.receipts.get(distribution_id)

    def latest(self, limit: int = 20) -> List[DistributionReceipt]:
        """Most recent receipts first."""
        with self.lock:
            ids = sorted(self.receipts.keys(), reverse=True)[:limit]
            return [self.receipts[i] for i in ids]

    def _finish(self, distribution_id: int, status: str, error: Optional[str] = None) -> Optional[DistributionReceipt]:
        with self.lock:
            receipt = self.receipts.get(distribution_id)
            if not receipt:
                return None
            receipt.status = status
            receipt.error = error
            receipt.timestamp = int(time.time())
            logger.debug(f"Distribution #{distribution_id} -> {status}" + (f" ({error})" if error else ""))
            return receipt

    def mark_completed(self, distribution_id: int) -> Optional[DistributionReceipt]:
        return self._finish(distribution_id, 'completed')

    def mark_failed(self, distribution_id: int, error: str) -> Optional[DistributionReceipt]:
        return self._finish(distribution_id, 'failed', error)

    def mark_no_stakers(self, distribution_id: int) -> Optional[DistributionReceipt]:
        return self._finish(distribution_id, 'no_stakers', "Total stake is zero")

    def _cleanup_old_receipts(self) -> None:
        """Removes the oldest 10% once the limit is exceeded."""
        num_to_remove = len(self.receipts) // 10

        for distribution_id in sorted(self.receipts.keys())[:num_to_remove]:
            del self.receipts[distribution_id]

        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

    def clear(self) -> None:
        """Clear all receipts (for testing)."""
        with self.lock:
            self.receipts.clear()
