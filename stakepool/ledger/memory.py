# MIT License
# Copyright (c) 2025 Hashborn

"""In-process token ledger used by devnet nodes and tests."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from stakeproto.types.account import DEFAULT_SUBACCOUNT, LedgerAccount
from .base import TransferError, TransferService

logger = logging.getLogger(__name__)


@dataclass
class TransferRecord:
    """One completed movement of value."""
    block_index: int
    kind: str                          # 'mint', 'transfer_from', 'transfer'
    source: Optional[LedgerAccount]
    destination: LedgerAccount
    amount: int
    timestamp: int = field(default_factory=lambda: int(time.time()))


def _slot(account: LedgerAccount) -> Tuple[str, bytes]:
    # The default subaccount and "no subaccount" are the same ledger slot
    return (account.owner, account.subaccount or DEFAULT_SUBACCOUNT)


class InMemoryLedger(TransferService):
    """
    Dictionary-backed ledger.

    Each transfer yields to the event loop once before settling so pool code
    observes the same interleaving points it would against a remote ledger.
    """

    def __init__(self, custody: LedgerAccount):
        super().__init__(custody)
        self._balances: Dict[Tuple[str, bytes], int] = {}
        self.history: List[TransferRecord] = []

    def mint(self, account: LedgerAccount, amount: int) -> int:
        if amount < 0:
            raise ValueError("Cannot mint a negative amount")
        slot = _slot(account)
        self._balances[slot] = self._balances.get(slot, 0) + amount
        return self._record("mint", None, account, amount)

    def balance(self, account: LedgerAccount) -> int:
        return self._balances.get(_slot(account), 0)

    async def balance_of(self, account: LedgerAccount) -> Optional[int]:
        return self.balance(account)

    async def transfer_from(self, payer: LedgerAccount, payee: LedgerAccount, amount: int) -> int:
        await asyncio.sleep(0)
        self._move(payer, payee, amount)
        return self._record("transfer_from", payer, payee, amount)

    async def transfer_to(self, payee: LedgerAccount, amount: int) -> int:
        await asyncio.sleep(0)
        self._move(self.custody, payee, amount)
        return self._record("transfer", self.custody, payee, amount)

    def _move(self, source: LedgerAccount, destination: LedgerAccount, amount: int):
        if amount < 0:
            raise TransferError(f"negative amount {amount}", kind="BadAmount")
        src = _slot(source)
        available = self._balances.get(src, 0)
        if available < amount:
            raise TransferError(
                f"{source.owner} has {available}, needs {amount}", kind="InsufficientFunds"
            )
        dst = _slot(destination)
        self._balances[src] = available - amount
        self._balances[dst] = self._balances.get(dst, 0) + amount

    def _record(self, kind: str, source: Optional[LedgerAccount], destination: LedgerAccount, amount: int) -> int:
        record = TransferRecord(
            block_index=len(self.history),
            kind=kind,
            source=source,
            destination=destination,
            amount=amount,
        )
        self.history.append(record)
        logger.debug(f"Ledger {kind}: {amount} -> {destination.owner} (block {record.block_index})")
        return record.block_index
