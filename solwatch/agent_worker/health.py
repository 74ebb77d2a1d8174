"""
Health snapshot for the /health endpoint.

Responsibilities:
- Combine SubscriptionManager.stats() with the persisted address count.
- Never perform network I/O; a store failure reports 0 instead of raising.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from solwatch.solana_listener.manager import SubscriptionStats
from solwatch.solwatch_logging import get_logger

logger = get_logger(__name__)


class _CountingStore(Protocol):
    def count(self) -> int: ...


class _StatsSource(Protocol):
    def stats(self) -> SubscriptionStats: ...


@dataclass
class HealthReport:
    generated_at: str
    tracked_in_memory: int
    open_subscriptions: int
    dropped_subscriptions: list[str] = field(default_factory=list)
    tracked_in_store: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_health_report(manager: _StatsSource, store: _CountingStore | None) -> HealthReport:
    stats = manager.stats()
    persisted = 0
    if store is not None:
        try:
            persisted = store.count()
        except Exception as e:
            logger.warning("health_store_count_failed", error=str(e))
    return HealthReport(
        generated_at=datetime.now(timezone.utc).isoformat(),
        tracked_in_memory=stats.tracked,
        open_subscriptions=stats.open,
        dropped_subscriptions=list(stats.dropped),
        tracked_in_store=persisted,
    )
