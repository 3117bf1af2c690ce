"""
Loyalty contract instrumentation.

Prometheus counters for lifecycle and vesting activity. Each
``LoyaltyMetrics`` owns a private CollectorRegistry unless one is passed
in, so several contracts can live in one process without colliding
metric names.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class LoyaltyMetrics:
    """Metrics for a single loyalty contract."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.tokens_minted = Counter(
            "loyalty_tokens_minted_total",
            "Total number of credentials minted",
            registry=self.registry,
        )
        self.tokens_burned = Counter(
            "loyalty_tokens_burned_total",
            "Total number of credentials burnt",
            registry=self.registry,
        )
        self.vesting_releases = Counter(
            "loyalty_vesting_releases_total",
            "Total number of successful vesting releases",
            registry=self.registry,
        )
        self.reward_released = Counter(
            "loyalty_reward_released_total",
            "Total reward amount paid out by vesting releases",
            registry=self.registry,
        )
        self.operations_rejected = Counter(
            "loyalty_operations_rejected_total",
            "Operations rejected before any state change",
            ["operation", "kind"],
            registry=self.registry,
        )
        self.pool_balance = Gauge(
            "loyalty_reward_pool_balance",
            "Reward balance currently held in custody",
            registry=self.registry,
        )

    def record_rejection(self, operation: str, kind: str) -> None:
        self.operations_rejected.labels(operation=operation, kind=kind).inc()

    def record_release(self, amount: int, pool_balance: int) -> None:
        self.vesting_releases.inc()
        if amount > 0:
            self.reward_released.inc(amount)
        self.pool_balance.set(pool_balance)

    def export(self) -> bytes:
        """Render metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
