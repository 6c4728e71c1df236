# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports pool metrics in Prometheus format.

Metrics:
- Deposits, withdrawals, active deposits
- Stake totals and staker count
- Reward distributions, payouts, dust / unallocated rewards
- Ledger transfer failures by operation
"""

from prometheus_client import Counter, Gauge, CollectorRegistry
import logging

from ..core import events as ev

logger = logging.getLogger(__name__)

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# DEPOSIT METRICS
# ═══════════════════════════════════════════════════════════════════

deposits_total = Counter(
    'stakepool_deposits_total',
    'Total number of deposits recorded',
    ['lock_period_days'],
    registry=metrics_registry
)

deposited_amount_total = Counter(
    'stakepool_deposited_amount_total',
    'Total amount deposited (minimal units)',
    registry=metrics_registry
)

withdrawals_total = Counter(
    'stakepool_withdrawals_total',
    'Total number of deposits withdrawn',
    registry=metrics_registry
)

withdrawn_amount_total = Counter(
    'stakepool_withdrawn_amount_total',
    'Total amount withdrawn (minimal units)',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# REWARD METRICS
# ═══════════════════════════════════════════════════════════════════

distributions_total = Counter(
    'stakepool_distributions_total',
    'Reward distributions by outcome',
    ['status'],
    registry=metrics_registry
)

reward_payouts_total = Counter(
    'stakepool_reward_payouts_total',
    'Individual reward payouts sent',
    registry=metrics_registry
)

rewards_paid_amount_total = Counter(
    'stakepool_rewards_paid_amount_total',
    'Total reward amount paid out (minimal units)',
    registry=metrics_registry
)

transfer_failures_total = Counter(
    'stakepool_transfer_failures_total',
    'Ledger transfer failures by operation',
    ['operation'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# STATE GAUGES
# ═══════════════════════════════════════════════════════════════════

total_stake = Gauge(
    'stakepool_total_stake',
    'Sum of all stake balances',
    registry=metrics_registry
)

stakers_count = Gauge(
    'stakepool_stakers',
    'Accounts with non-zero stake',
    registry=metrics_registry
)

active_deposits = Gauge(
    'stakepool_active_deposits',
    'Deposits currently locked or awaiting withdrawal',
    registry=metrics_registry
)

last_deposit_id = Gauge(
    'stakepool_last_deposit_id',
    'Last allocated deposit id',
    registry=metrics_registry
)

unallocated_rewards = Gauge(
    'stakepool_unallocated_rewards',
    'Reward value held in custody and not paid to anyone (dust, no-staker pulls)',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def _on_deposit_recorded(account, deposit):
    deposits_total.labels(lock_period_days=str(deposit.lock_period_days)).inc()
    deposited_amount_total.inc(deposit.amount)


def _on_deposit_withdrawn(account, deposit):
    withdrawals_total.inc()
    withdrawn_amount_total.inc(deposit.amount)


def _on_transfer_failed(operation, account, amount, error):
    transfer_failures_total.labels(operation=operation.value).inc()


def _on_reward_paid(distribution_id, account, amount):
    reward_payouts_total.inc()
    rewards_paid_amount_total.inc(amount)


def _on_distribution_finished(receipt):
    distributions_total.labels(status=receipt.status).inc()


def bind_event_metrics(bus: ev.EventBus) -> None:
    """Feeds the counters from a pool's event bus."""
    bus.subscribe(ev.DEPOSIT_RECORDED, _on_deposit_recorded)
    bus.subscribe(ev.DEPOSIT_WITHDRAWN, _on_deposit_withdrawn)
    bus.subscribe(ev.TRANSFER_FAILED, _on_transfer_failed)
    bus.subscribe(ev.REWARD_PAID, _on_reward_paid)
    bus.subscribe(ev.DISTRIBUTION_COMPLETED, _on_distribution_finished)
    bus.subscribe(ev.DISTRIBUTION_FAILED, _on_distribution_finished)
    logger.debug("Metrics bound to pool event bus")


def update_metrics(pool):
    """
    Refresh the gauges from pool state. Called when metrics are scraped.

    Args:
        pool: StakePool instance
    """
    stakes = pool.state.index.items()
    total_stake.set(sum(stake for _, stake in stakes))
    stakers_count.set(sum(1 for _, stake in stakes if stake > 0))
    active_deposits.set(pool.state.ledger.count())
    last_deposit_id.set(pool.state.last_deposit_id())
    unallocated_rewards.set(pool.state.unallocated_rewards())
