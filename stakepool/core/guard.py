# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import asynccontextmanager
from typing import Set
import logging
from stakeproto.types.account import AccountKey
from stakeproto.types.common import OperationInProgress

logger = logging.getLogger(__name__)


class AccountGuard:
    """
    Per-account reentrancy guard.

    While an operation on an AccountKey is suspended on a ledger call, a second
    operation on the same key is rejected instead of interleaving with it.
    """

    def __init__(self):
        self._in_flight: Set[AccountKey] = set()

    def is_held(self, key: AccountKey) -> bool:
        return key in self._in_flight

    @asynccontextmanager
    async def hold(self, key: AccountKey):
        if key in self._in_flight:
            logger.warning(f"Rejected overlapping operation on {key}")
            raise OperationInProgress(str(key))
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)
