"""Room-scoped publish/subscribe fan-out for collaboration events."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

EVENT_PREFIX = "collaboration:"
BROADCAST_ROOM = "*"


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def engine_event(name: str) -> str:
    """Namespaced event name used on the bus, e.g. collaboration:task_assigned."""
    return f"{EVENT_PREFIX}{name}"


class NotificationBus(ABC):
    """Fan-out transport. Delivery is best effort; callers never await success."""

    @abstractmethod
    async def broadcast_to_room(self, room: str, event: str, payload: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        """Deliver to every connected listener regardless of room."""


class InMemoryNotificationBus(NotificationBus):
    """
    Process-local bus: each subscriber owns an asyncio.Queue.

    Subscribers of BROADCAST_ROOM see every event. A full subscriber queue drops
    the event for that subscriber only.
    """

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._rooms: dict[str, list[asyncio.Queue[dict[str, Any]]]] = {}

    def subscribe(self, room: str) -> asyncio.Queue[dict[str, Any]]:
        q: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_queue_size)
        self._rooms.setdefault(room, []).append(q)
        return q

    def unsubscribe(self, room: str, q: asyncio.Queue[dict[str, Any]]) -> None:
        queues = self._rooms.get(room)
        if not queues:
            return
        try:
            queues.remove(q)
        except ValueError:
            return
        if not queues:
            self._rooms.pop(room, None)

    def subscriber_count(self, room: str) -> int:
        return len(self._rooms.get(room, []))

    async def broadcast_to_room(self, room: str, event: str, payload: dict[str, Any]) -> None:
        envelope = {"room": room, "event": event, "payload": payload}
        targets = list(self._rooms.get(room, []))
        if room != BROADCAST_ROOM:
            targets.extend(self._rooms.get(BROADCAST_ROOM, []))
        self._deliver(targets, envelope)

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        envelope = {"room": None, "event": event, "payload": payload}
        seen: set[int] = set()
        targets: list[asyncio.Queue[dict[str, Any]]] = []
        for queues in self._rooms.values():
            for q in queues:
                if id(q) not in seen:
                    seen.add(id(q))
                    targets.append(q)
        self._deliver(targets, envelope)

    @staticmethod
    def _deliver(targets: list[asyncio.Queue[dict[str, Any]]], envelope: dict[str, Any]) -> None:
        for q in targets:
            try:
                q.put_nowait(envelope)
            except asyncio.QueueFull:
                logger.warning(f"Notification dropped (subscriber queue full): {envelope['event']}")


class NullNotificationBus(NotificationBus):
    """Used when notifications are disabled in config."""

    async def broadcast_to_room(self, room: str, event: str, payload: dict[str, Any]) -> None:
        return None

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        return None
