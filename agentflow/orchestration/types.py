"""Types for specialized agents and orchestration plans."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from agentflow.collaboration.types import AgentRecord


class OrchestrationRole(str, Enum):
    COORDINATOR = "coordinator"
    EXECUTOR = "executor"
    MONITOR = "monitor"
    VALIDATOR = "validator"


class IntegrationSpec(BaseModel):
    """Caller-supplied integration config for one tool."""
    tool: str
    config: dict[str, Any] = Field(default_factory=dict)


class SpecializedAgentConfig(BaseModel):
    """Request to stamp out an agent from a framework template.

    framework is kept as a plain string so unknown tags surface as
    UnsupportedFrameworkError from the registry rather than a model error.
    """
    name: str
    framework: str
    environment: Literal["Development", "Production"] = "Production"
    permissions: Literal["admin", "user", "readonly"] = "user"
    integrations: list[IntegrationSpec] = Field(default_factory=list)
    triggers: list[str] = Field(default_factory=list)
    timeout: str = "5s"
    capabilities: list[str] = Field(default_factory=list)
    orchestration_role: OrchestrationRole = OrchestrationRole.EXECUTOR

    @classmethod
    def from_template(cls, template: dict[str, Any]) -> "SpecializedAgentConfig":
        """
        Build from the JSON template form.

        Template keys: name, framework, env, permissions, triggers, timeout,
        capabilities, orchestrationRole, and integrations as
        [{"tool": ..., **config}] or [{"tool": ..., "config": {...}}].
        """
        integrations: list[IntegrationSpec] = []
        for item in template.get("integrations") or []:
            if not isinstance(item, dict) or not item.get("tool"):
                continue
            if isinstance(item.get("config"), dict):
                cfg = dict(item["config"])
            else:
                cfg = {k: v for k, v in item.items() if k != "tool"}
            integrations.append(IntegrationSpec(tool=str(item["tool"]), config=cfg))
        return cls(
            name=template.get("name") or "",
            framework=template.get("framework") or "",
            environment=template.get("env") or template.get("environment") or "Production",
            permissions=template.get("permissions") or "user",
            integrations=integrations,
            triggers=list(template.get("triggers") or []),
            timeout=template.get("timeout") or "5s",
            capabilities=list(template.get("capabilities") or []),
            orchestration_role=template.get("orchestrationRole") or OrchestrationRole.EXECUTOR,
        )


class Phase(BaseModel):
    """One step of an orchestration plan."""
    name: str
    coordinator: str
    participants: list[str] = Field(default_factory=list)
    tasks: list[str] = Field(default_factory=list)


class OrchestrationPlan(BaseModel):
    phases: list[Phase] = Field(default_factory=list)
    fallback_strategies: dict[str, str] = Field(default_factory=dict)

    @property
    def execution_order(self) -> list[str]:
        return [p.name for p in self.phases]

    def to_wire(self) -> dict[str, Any]:
        return {
            "phases": [p.model_dump() for p in self.phases],
            "executionOrder": self.execution_order,
            "fallbackStrategies": dict(self.fallback_strategies),
        }


class OrchestrationResult(BaseModel):
    session_id: str
    agents: list[AgentRecord] = Field(default_factory=list)
    plan: OrchestrationPlan


class BulkCreateError(BaseModel):
    agent_name: str | None = None
    error: str


class BulkCreateResult(BaseModel):
    """Best-effort batch outcome; agents created before a failure are kept."""
    created_agents: list[AgentRecord] = Field(default_factory=list)
    errors: list[BulkCreateError] = Field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        created = len(self.created_agents)
        failed = len(self.errors)
        return {"total": created + failed, "created": created, "failed": failed}


class AgentStatusView(BaseModel):
    id: str
    name: str | None = None
    framework: str | None = None
    status: str | None = None
    role: str | None = None


class OrchestrationStatus(BaseModel):
    """Read-only projection of an orchestration session."""
    session_id: str
    status: str
    agents: list[AgentStatusView] = Field(default_factory=list)
    active_phase: str | None = None
    completed_tasks: int = 0
    total_tasks: int = 0
