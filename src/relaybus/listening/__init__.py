"""Inbound side: subscriptions, the dispatcher and the polling listener."""

from .dispatcher import MessageDispatcher
from .listener import ListenerState, MessageListener
from .subscription import Subscription, SubscriptionRegistry, build_handle_pipeline

__all__ = [
    "ListenerState",
    "MessageDispatcher",
    "MessageListener",
    "Subscription",
    "SubscriptionRegistry",
    "build_handle_pipeline",
]
