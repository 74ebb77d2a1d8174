"""
Solana log-stream listener: one WebSocket subscriber per watched address,
managed by a SubscriptionManager.
"""

from solwatch.solana_listener.listener import StreamSubscriber, SubscriberConfig
from solwatch.solana_listener.manager import SubscriptionManager, SubscriptionStats
from solwatch.solana_listener.models import SubscriberState

__all__ = [
    "StreamSubscriber",
    "SubscriberConfig",
    "SubscriberState",
    "SubscriptionManager",
    "SubscriptionStats",
]
