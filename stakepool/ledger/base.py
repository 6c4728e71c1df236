# MIT License
# Copyright (c) 2025 Hashborn

"""Abstract token-ledger interface the pool moves value through."""

from abc import ABC, abstractmethod
from typing import Optional

from stakeproto.types.account import LedgerAccount


class TransferError(Exception):
    """
    A transfer was rejected or could not be confirmed.

    Covers application-level refusals (insufficient funds, bad fee) as well as
    transport failures and timeouts; callers treat all of them the same way.
    """

    def __init__(self, reason: str, kind: str = "Rejected"):
        super().__init__(reason)
        self.reason = reason
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"


class TransferService(ABC):
    """
    Moves value between external accounts and the pool's custody account.

    Every method is a suspension point: other pool operations may run while a
    transfer is in flight.
    """

    def __init__(self, custody: LedgerAccount):
        self.custody = custody

    @abstractmethod
    async def transfer_from(self, payer: LedgerAccount, payee: LedgerAccount, amount: int) -> int:
        """
        Pull ``amount`` from ``payer`` into ``payee`` (normally custody).

        Returns:
            Ledger block index / transfer id of the completed transfer

        Raises:
            TransferError: transfer refused or not confirmed
        """
        pass

    @abstractmethod
    async def transfer_to(self, payee: LedgerAccount, amount: int) -> int:
        """
        Send ``amount`` from custody to ``payee``.

        Returns:
            Ledger block index / transfer id of the completed transfer

        Raises:
            TransferError: transfer refused or not confirmed
        """
        pass

    async def balance_of(self, account: LedgerAccount) -> Optional[int]:
        """Balance lookup, if the binding supports it. None otherwise."""
        return None

    async def close(self) -> None:
        """
        Clean up resources (e.g., close HTTP sessions).

        Override this if the binding holds resources that need cleanup.
        """
        pass
