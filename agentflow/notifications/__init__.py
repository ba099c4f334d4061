"""Notification bus and background side-effect dispatch."""

from agentflow.notifications.bus import (
    BROADCAST_ROOM,
    InMemoryNotificationBus,
    NotificationBus,
    NullNotificationBus,
    engine_event,
    session_room,
    user_room,
)
from agentflow.notifications.dispatcher import SideEffectDispatcher

__all__ = [
    "BROADCAST_ROOM",
    "InMemoryNotificationBus",
    "NotificationBus",
    "NullNotificationBus",
    "SideEffectDispatcher",
    "engine_event",
    "session_room",
    "user_room",
]
