"""Configuration schema using Pydantic.

Single data model and defaults for agentflow, persisted to ~/.agentflow/config.json.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class StorageConfig(BaseModel):
    """Session store location."""
    db_path: str = "~/.agentflow/state/agentflow.db"

    @property
    def resolved_path(self) -> Path:
        return Path(self.db_path).expanduser()


class NotificationsConfig(BaseModel):
    """Notification bus and background dispatcher settings."""
    enabled: bool = True
    max_queue_size: int = 1000  # side-effect jobs beyond this are dropped with a warning


class WebhookTargetConfig(BaseModel):
    """Single owner-level webhook target (approval.requested etc.)."""
    id: str = ""
    url: str = ""
    secret: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    events: list[str] = Field(default_factory=list)  # empty = all events
    enabled: bool = True


class OutboundConfig(BaseModel):
    """Outbound event delivery to third-party workflow triggers and webhooks."""
    enabled: bool = False
    timeout_seconds: float = 10.0
    # Collaboration event name (e.g. "session_created") -> workflow trigger URL
    event_urls: dict[str, str] = Field(default_factory=dict)
    webhooks: list[WebhookTargetConfig] = Field(default_factory=list)


class FallbackStrategiesConfig(BaseModel):
    """Declarative fallback policies carried on every orchestration plan."""
    timeout: str = "escalate_to_human"
    failure: str = "retry_with_backup_agent"
    security_threat: str = "immediate_isolation"


class OrchestratorConfig(BaseModel):
    """Orchestration planner defaults."""
    session_name: str = "AgentFlow Multi-Agent Orchestration"
    session_description: str = (
        "Orchestration system with HyperAgent, Activepieces, CAI, SmolAgents, and Agno"
    )
    environment: Literal["Development", "Production"] = "Production"
    task_priority: Literal["low", "medium", "high", "urgent"] = "high"
    ready_timeout_ms: int = 5000
    fallback_strategies: FallbackStrategiesConfig = Field(default_factory=FallbackStrategiesConfig)
    # framework name -> tool name -> integration config merged over the catalogue defaults
    integrations: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Loguru sink settings."""
    level: str = "INFO"
    file: str | None = None  # rotating file sink name under ~/.agentflow/logs


class Config(BaseSettings):
    """Root configuration for agentflow."""
    storage: StorageConfig = Field(default_factory=StorageConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    outbound: OutboundConfig = Field(default_factory=OutboundConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="AGENTFLOW_",
        env_nested_delimiter="__",
    )
