"""Realtime subscriptions over a shared WebSocket."""

from .multiplexer import SubscriptionEntry, SubscriptionMultiplexer, SubscriptionState
from .protocol import (
    EventMessage,
    FilterContent,
    Operation,
    SubscribeMessage,
    UnsubscribeMessage,
    parse_message,
)

__all__ = [
    "SubscriptionMultiplexer",
    "SubscriptionEntry",
    "SubscriptionState",
    "Operation",
    "FilterContent",
    "SubscribeMessage",
    "UnsubscribeMessage",
    "EventMessage",
    "parse_message",
]
