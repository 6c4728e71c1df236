# MIT License
# Copyright (c) 2025 Hashborn

import copy
import os
from typing import Dict, Optional, Tuple

# Global Constants
DENOM = "stk"
DECIMALS = 8

SECONDS_PER_DAY = 86_400
VALID_LOCK_PERIODS: Tuple[int, ...] = (90, 180, 360)

# Ledger amounts are u64 on the wire
MAX_AMOUNT = 2**64 - 1
SUBACCOUNT_SIZE = 32


class PoolConfig:
    def __init__(self,
                 network_id: str,
                 pool_id: str,
                 address_prefix: str = "stk",
                 valid_lock_periods: Tuple[int, ...] = VALID_LOCK_PERIODS,
                 # Ledger binding
                 ledger_kind: str = "memory",          # "memory" or "http"
                 ledger_url: Optional[str] = None,
                 ledger_timeout_sec: float = 30.0,
                 # RPC auth
                 auth_max_skew_sec: int = 300,
                 # Reject overlapping deposit/withdraw on the same account
                 serialize_accounts: bool = True,
                 max_receipts: int = 10_000):
        self.network_id = network_id
        self.pool_id = pool_id
        self.address_prefix = address_prefix
        self.valid_lock_periods = tuple(valid_lock_periods)
        self.ledger_kind = ledger_kind
        self.ledger_url = ledger_url
        self.ledger_timeout_sec = ledger_timeout_sec
        self.auth_max_skew_sec = auth_max_skew_sec
        self.serialize_accounts = serialize_accounts
        self.max_receipts = max_receipts

    def is_valid_lock_period(self, days: int) -> bool:
        return days in self.valid_lock_periods


NETWORKS: Dict[str, PoolConfig] = {
    "devnet": PoolConfig(
        network_id="devnet",
        pool_id="stakepool-devnet-1",
        address_prefix="stk",
        ledger_kind="memory",
        auth_max_skew_sec=3600,
    ),
    "testnet": PoolConfig(
        network_id="testnet",
        pool_id="stakepool-testnet-1",
        address_prefix="stkt",
        ledger_kind="http",
        ledger_url="http://localhost:8080",
        ledger_timeout_sec=30.0,
    ),
    "mainnet": PoolConfig(
        network_id="mainnet",
        pool_id="stakepool-mainnet-1",
        address_prefix="stk",
        ledger_kind="http",
        ledger_url="http://localhost:8080",
        ledger_timeout_sec=60.0,
        auth_max_skew_sec=120,
    ),
}


def get_network(name: Optional[str] = None) -> PoolConfig:
    """
    Resolves a network config by name.

    Falls back to the STAKEPOOL_NETWORK environment variable, then devnet.
    STAKEPOOL_LEDGER_URL overrides the ledger endpoint of the chosen network.
    """
    name = name or os.environ.get("STAKEPOOL_NETWORK", "devnet")
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}' (known: {', '.join(NETWORKS)})")

    config = copy.copy(NETWORKS[name])
    ledger_url = os.environ.get("STAKEPOOL_LEDGER_URL")
    if ledger_url:
        config.ledger_url = ledger_url
    return config


# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
