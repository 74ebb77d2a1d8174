"""Service wiring: subscriptions -> analysis -> delivery, plus health."""

from solwatch.agent_worker.health import HealthReport, build_health_report
from solwatch.agent_worker.worker import WatchService

__all__ = ["HealthReport", "WatchService", "build_health_report"]
