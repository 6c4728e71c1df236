# MIT License
# Copyright (c) 2025 Hashborn

import asyncio
import pytest
from unittest.mock import Mock
from stakeproto.types.account import AccountKey, LedgerAccount, DEFAULT_SUBACCOUNT
from stakeproto.types.common import OpType, LedgerTransferFailed
from stakepool.core.events import EventBus, DEPOSIT_RECORDED, TRANSFER_FAILED
from stakepool.core.receipts import DistributionReceiptStore, Payout
from stakepool.core.clock import ManualClock
from stakepool.core.pool import StakePool
from stakepool.ledger.memory import InMemoryLedger
from stakepool.observability.metrics import (
    bind_event_metrics, update_metrics, metrics_registry,
)


# --- Receipts ---

def test_receipt_lifecycle():
    store = DistributionReceiptStore()
    receipt = store.open(1, "stk1operator", 400)
    assert receipt.status == "pending"

    receipt.payouts = [
        Payout(owner="stk1alice", subaccount="00" * 32, stake=100, amount=100, status="paid", block_index=3),
        Payout(owner="stk1bob", subaccount="00" * 32, stake=300, amount=300),
    ]
    store.mark_failed(1, "payout to stk1bob failed")

    data = store.get(1).to_dict()
    assert data["status"] == "failed"
    assert data["paid_amount"] == "100"
    assert data["amount"] == "400"
    assert data["payouts"][0]["block_index"] == 3
    assert data["payouts"][1]["status"] == "pending"
    assert data["error"] == "payout to stk1bob failed"


def test_receipt_store_missing_and_cleanup():
    store = DistributionReceiptStore(max_receipts=20)
    assert store.mark_completed(5) is None

    for i in range(1, 22):
        store.open(i, "stk1operator", i)

    # 21 > 20: the oldest 10% went away
    assert store.get(1) is None
    assert store.get(2) is None
    assert store.get(21) is not None
    assert [r.distribution_id for r in store.latest(3)] == [21, 20, 19]

    store.clear()
    assert store.latest() == []


# --- Events ---

def test_event_bus_delivery_and_unsubscribe():
    bus = EventBus()
    listener = Mock()
    bus.subscribe(DEPOSIT_RECORDED, listener)

    bus.emit(DEPOSIT_RECORDED, account="a", deposit="d")
    listener.assert_called_once_with(account="a", deposit="d")

    bus.unsubscribe(DEPOSIT_RECORDED, listener)
    bus.unsubscribe(DEPOSIT_RECORDED, listener)
    bus.emit(DEPOSIT_RECORDED, account="a", deposit="d")
    assert listener.call_count == 1


def test_listener_errors_do_not_break_operations():
    ledger = InMemoryLedger(LedgerAccount(owner="stk1custody"))
    pool = StakePool(":memory:", ledger, clock=ManualClock(start=1_000))
    pool.events.subscribe(DEPOSIT_RECORDED, Mock(side_effect=RuntimeError("listener bug")))
    key = AccountKey(owner="stk1alice", subaccount=DEFAULT_SUBACCOUNT)
    ledger.mint(key.ledger_account, 10)

    deposit = asyncio.run(pool.deposit_funds("stk1alice", DEFAULT_SUBACCOUNT, 90, 10))

    assert deposit.id == 1
    assert pool.get_stake_balance("stk1alice", DEFAULT_SUBACCOUNT) == 10
    asyncio.run(pool.close())


def test_clear():
    bus = EventBus()
    listener = Mock()
    bus.subscribe(DEPOSIT_RECORDED, listener)
    bus.subscribe(TRANSFER_FAILED, listener)
    bus.clear(DEPOSIT_RECORDED)
    assert DEPOSIT_RECORDED not in bus.listeners
    bus.clear()
    assert bus.listeners == {}


# --- Metrics ---

def sample(name, labels=None):
    value = metrics_registry.get_sample_value(name, labels or {})
    return value or 0.0


def test_metrics_follow_events():
    ledger = InMemoryLedger(LedgerAccount(owner="stk1custody"))
    pool = StakePool(":memory:", ledger, clock=ManualClock(start=1_000))
    bind_event_metrics(pool.events)
    key = AccountKey(owner="stk1alice", subaccount=DEFAULT_SUBACCOUNT)
    ledger.mint(key.ledger_account, 100)
    ledger.mint(LedgerAccount(owner="stk1operator"), 10)

    deposits_before = sample("stakepool_deposits_total", {"lock_period_days": "180"})
    amount_before = sample("stakepool_deposited_amount_total")
    failures_before = sample("stakepool_transfer_failures_total", {"operation": OpType.DEPOSIT.value})
    completed_before = sample("stakepool_distributions_total", {"status": "completed"})
    paid_before = sample("stakepool_rewards_paid_amount_total")

    asyncio.run(pool.deposit_funds("stk1alice", DEFAULT_SUBACCOUNT, 180, 60))
    with pytest.raises(LedgerTransferFailed):
        asyncio.run(pool.deposit_funds("stk1alice", DEFAULT_SUBACCOUNT, 180, 1_000))
    asyncio.run(pool.distribute_reward("stk1operator", 10))

    assert sample("stakepool_deposits_total", {"lock_period_days": "180"}) == deposits_before + 1
    assert sample("stakepool_deposited_amount_total") == amount_before + 60
    assert sample("stakepool_transfer_failures_total", {"operation": "DEPOSIT"}) == failures_before + 1
    assert sample("stakepool_distributions_total", {"status": "completed"}) == completed_before + 1
    assert sample("stakepool_rewards_paid_amount_total") == paid_before + 10

    update_metrics(pool)
    assert sample("stakepool_total_stake") == 60
    assert sample("stakepool_stakers") == 1
    assert sample("stakepool_active_deposits") == 1
    assert sample("stakepool_last_deposit_id") == 1
    asyncio.run(pool.close())
