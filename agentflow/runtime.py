"""Wiring of store, bus, dispatcher, outbound delivery, engine and planner."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from agentflow.collaboration.engine import CollaborationEngine
from agentflow.config.schema import Config
from agentflow.notifications.bus import InMemoryNotificationBus, NotificationBus, NullNotificationBus
from agentflow.notifications.dispatcher import SideEffectDispatcher
from agentflow.orchestration.planner import OrchestrationPlanner
from agentflow.outbound.sink import OutboundEventSink, WebhookNotifier, build_outbound
from agentflow.storage.sqlite_store import SqliteAgentRegistry, SqliteSessionStore


@dataclass
class Runtime:
    config: Config
    store: SqliteSessionStore
    registry: SqliteAgentRegistry
    bus: NotificationBus
    dispatcher: SideEffectDispatcher
    outbound: OutboundEventSink
    webhooks: WebhookNotifier
    engine: CollaborationEngine
    planner: OrchestrationPlanner

    def start(self) -> None:
        """Start the background dispatcher. Needs a running event loop."""
        self.dispatcher.start()

    async def close(self) -> None:
        await self.dispatcher.stop()
        await self.outbound.close()
        await self.webhooks.close()
        logger.debug("Runtime closed")


def build_runtime(config: Config | None = None, *, db_path: Path | None = None) -> Runtime:
    cfg = config or Config()
    path = Path(db_path) if db_path else cfg.storage.resolved_path
    store = SqliteSessionStore(path)
    registry = SqliteAgentRegistry(path)
    bus: NotificationBus
    if cfg.notifications.enabled:
        bus = InMemoryNotificationBus(max_queue_size=cfg.notifications.max_queue_size)
    else:
        bus = NullNotificationBus()
    dispatcher = SideEffectDispatcher(max_queue_size=cfg.notifications.max_queue_size)
    outbound, webhooks = build_outbound(cfg.outbound)
    engine = CollaborationEngine(store, bus, dispatcher, outbound=outbound, webhooks=webhooks)
    planner = OrchestrationPlanner(engine, registry, cfg.orchestrator)
    logger.debug(f"Runtime built (db={path}, outbound={'on' if cfg.outbound.enabled else 'off'})")
    return Runtime(
        config=cfg,
        store=store,
        registry=registry,
        bus=bus,
        dispatcher=dispatcher,
        outbound=outbound,
        webhooks=webhooks,
        engine=engine,
        planner=planner,
    )
