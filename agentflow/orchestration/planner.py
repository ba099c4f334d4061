"""Orchestration planner.

Stamps out one specialized agent per framework, opens a collaboration session
for them and drives a fixed multi-phase plan through the collaboration engine:
1. Create agents (template defaults + caller overrides)
2. Open the session
3. Build the phase plan
4. Issue each phase's tasks and coordination messages, strictly in order
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from agentflow import __version__
from agentflow.collaboration.engine import CollaborationEngine
from agentflow.collaboration.types import AgentRecord, MessageType
from agentflow.config.schema import OrchestratorConfig
from agentflow.orchestration.catalogue import (
    DEFAULT_AGENTS,
    ORCHESTRATION_PATTERN,
    PHASE_BLUEPRINT,
    config_template,
)
from agentflow.orchestration.frameworks import (
    Framework,
    FrameworkRegistry,
    capability_category,
    merge_integrations,
)
from agentflow.orchestration.types import (
    AgentStatusView,
    BulkCreateError,
    BulkCreateResult,
    IntegrationSpec,
    OrchestrationPlan,
    OrchestrationResult,
    OrchestrationStatus,
    Phase,
    SpecializedAgentConfig,
)
from agentflow.utils.exceptions import AgentflowError, ValidationError
from agentflow.utils.helpers import utc_now

if TYPE_CHECKING:
    from agentflow.storage.base import AgentRegistry

PlanStep = Callable[[], Awaitable[Any]]

SERVICE_NAME = "Multi-Agent Orchestrator"

_FRAMEWORK_SETUP: dict[Framework, str] = {
    Framework.HYPER_AGENT: "task coordination and repository integration",
    Framework.ACTIVEPIECES: "workflow automation and MCP servers",
    Framework.CAI: "security scanning and alerting",
    Framework.SMOL_AGENTS: "model hub and index integration",
    Framework.AGNO: "workflow builder and issue triage",
}

_FEATURES = [
    "Specialized agent creation",
    "Multi-agent orchestration",
    "Workflow automation",
    "Security monitoring",
    "Real-time data processing",
]


def _union(*groups: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for group in groups:
        for item in group:
            seen.setdefault(item, None)
    return list(seen)


class OrchestrationPlanner:
    """Sequences delegation across specialized agents; no agent intelligence lives here."""

    def __init__(
        self,
        engine: CollaborationEngine,
        registry: AgentRegistry,
        config: OrchestratorConfig | None = None,
        frameworks: FrameworkRegistry | None = None,
    ):
        self.engine = engine
        self.registry = registry
        self.config = config or OrchestratorConfig()
        self.frameworks = frameworks or FrameworkRegistry()

    def _broadcast(self, event: str, payload: dict[str, Any]) -> None:
        self.engine.dispatcher.submit(f"bus {event}", partial(self.engine.bus.broadcast, event, payload))

    # -- agents ---------------------------------------------------------------

    async def create_specialized_agent(
        self,
        owner_user_id: str,
        config: SpecializedAgentConfig | dict[str, Any],
    ) -> AgentRecord:
        if isinstance(config, dict):
            try:
                config = SpecializedAgentConfig.from_template(config)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid agent template: {e.errors()[0]['msg']}") from e
        template = self.frameworks.resolve(config.framework)
        if not config.name or not config.name.strip():
            raise ValidationError("Name and framework are required", field="name")

        capabilities = _union(template.required_capabilities, config.capabilities)
        agent_config = {
            **template.default_config,
            "framework": template.framework.value,
            "environment": config.environment,
            "permissions": config.permissions,
            "integrations": merge_integrations(
                template.integration_templates,
                [(i.tool, i.config) for i in config.integrations],
            ),
            "triggers": list(config.triggers),
            "timeout": config.timeout,
            "capabilities": capabilities,
            "orchestrationRole": config.orchestration_role.value,
            "workflowPatterns": list(template.workflow_patterns),
            "readyTimeout": self.config.ready_timeout_ms,
            "status": "initializing",
        }
        agent = self.registry.create(
            owner_user_id,
            AgentRecord(
                user_id=owner_user_id,
                name=config.name,
                description=f"{template.framework.value} specialized agent for {config.environment} environment",
                type="specialized",
                config=agent_config,
                is_public=False,
            ),
        )
        assigned = self.registry.assign_capabilities(
            agent.id, [(name, capability_category(name)) for name in capabilities]
        )
        if len(assigned) != len(capabilities):
            logger.warning(f"Agent {agent.name}: {len(capabilities) - len(assigned)} capabilities not assigned")
        logger.info(f"Initializing {template.framework.value} agent {agent.name}: {_FRAMEWORK_SETUP[template.framework]}")
        ready = self.registry.update_config(agent.id, {"status": "ready"})

        self._broadcast(
            "specialized_agent_created",
            {
                "agentId": ready.id,
                "framework": template.framework.value,
                "status": "ready",
                "capabilities": capabilities,
            },
        )
        return ready

    async def create_agents_from_templates(
        self,
        owner_user_id: str,
        templates: list[dict[str, Any]],
    ) -> BulkCreateResult:
        """Create each agent independently; failures are collected, earlier agents are kept."""
        result = BulkCreateResult()
        for template in templates:
            name = template.get("name") if isinstance(template, dict) else None
            try:
                if not isinstance(template, dict):
                    raise ValidationError("Agent template must be an object")
                agent = await self.create_specialized_agent(owner_user_id, template)
                result.created_agents.append(agent)
            except AgentflowError as e:
                result.errors.append(BulkCreateError(agent_name=name, error=e.message))
            except Exception as e:
                logger.warning(f"Agent template {name!r} failed: {e}")
                result.errors.append(BulkCreateError(agent_name=name, error=str(e) or "Unknown error"))
        logger.info(f"Bulk agent creation: {result.summary}")
        return result

    # -- orchestration --------------------------------------------------------

    def _default_agent_configs(self) -> list[SpecializedAgentConfig]:
        configs: list[SpecializedAgentConfig] = []
        for cfg in DEFAULT_AGENTS:
            overrides = self.config.integrations.get(cfg.framework, {})
            integrations = list(cfg.integrations) + [
                IntegrationSpec(tool=tool, config=dict(tool_cfg)) for tool, tool_cfg in overrides.items()
            ]
            configs.append(
                cfg.model_copy(update={"environment": self.config.environment, "integrations": integrations})
            )
        return configs

    def build_plan(self, agents: list[AgentRecord]) -> OrchestrationPlan:
        """Phase plan over the given agents, keyed by each agent's framework."""
        by_framework: dict[str, str] = {}
        for agent in agents:
            fw = agent.config.get("framework")
            if fw and fw not in by_framework:
                by_framework[fw] = agent.id
        everyone = [a.id for a in agents]

        phases: list[Phase] = []
        for name, coordinator_fw, participant_fws, tasks in PHASE_BLUEPRINT:
            coordinator = by_framework.get(coordinator_fw.value)
            if coordinator is None:
                raise ValidationError(f"No {coordinator_fw.value} agent available to coordinate phase {name}")
            if participant_fws is None:
                participants = list(everyone)
            else:
                participants = [by_framework[f.value] for f in participant_fws if f.value in by_framework]
            phases.append(Phase(name=name, coordinator=coordinator, participants=participants, tasks=list(tasks)))
        return OrchestrationPlan(
            phases=phases,
            fallback_strategies=self.config.fallback_strategies.model_dump(),
        )

    def _phase_steps(self, session_id: str, phase: Phase, plan: OrchestrationPlan) -> list[PlanStep]:
        steps: list[PlanStep] = []
        wire_plan = plan.to_wire()
        for task_name in phase.tasks:
            steps.append(
                partial(
                    self.engine.assign_task,
                    session_id,
                    phase.coordinator,
                    phase.coordinator,
                    f"Phase: {phase.name} - Task: {task_name}",
                    f"Execute {task_name} as part of {phase.name} phase",
                    self.config.task_priority,
                    requirements={"phase": phase.name, "orchestrationPlan": wire_plan},
                )
            )
        for participant_id in phase.participants:
            if participant_id == phase.coordinator:
                continue
            steps.append(
                partial(
                    self.engine.send_message,
                    session_id,
                    phase.coordinator,
                    f"Phase {phase.name} initiated. Please standby for task assignments.",
                    MessageType.TEXT,
                    to_agent_id=participant_id,
                    metadata={"phase": phase.name, "role": "participant"},
                )
            )
        return steps

    async def execute_plan(self, session_id: str, plan: OrchestrationPlan) -> None:
        """
        Issue every phase in declared order.

        Each step is awaited before the next is started, so no phase N+1 call
        is issued before all phase N calls have returned. Task completion is
        not awaited.
        """
        for phase in plan.phases:
            logger.info(f"Executing phase: {phase.name} (session {session_id})")
            await self.engine.update_session_config(session_id, {"currentPhase": phase.name})
            for step in self._phase_steps(session_id, phase, plan):
                await step()
        self._broadcast(
            "orchestration_started",
            {"sessionId": session_id, "plan": plan.to_wire(), "timestamp": utc_now().isoformat()},
        )

    async def create_orchestration(self, owner_user_id: str) -> OrchestrationResult:
        """
        Create the full agent line-up, open its session and execute the plan.

        Agents created before a failure are left in the registry.
        """
        agents: list[AgentRecord] = []
        for cfg in self._default_agent_configs():
            agents.append(await self.create_specialized_agent(owner_user_id, cfg))

        session = await self.engine.create_session(
            self.config.session_name,
            owner_user_id,
            [a.id for a in agents],
            description=self.config.session_description,
            config={
                "orchestrationPattern": ORCHESTRATION_PATTERN,
                "environment": self.config.environment,
            },
        )
        plan = self.build_plan(agents)
        await self.execute_plan(session.id, plan)
        logger.info(f"Orchestration {session.id} issued: {len(plan.phases)} phases, {len(agents)} agents")
        return OrchestrationResult(session_id=session.id, agents=agents, plan=plan)

    async def get_orchestration_status(self, session_id: str) -> OrchestrationStatus | None:
        session = await self.engine.get_session(session_id)
        if session is None:
            return None
        views: list[AgentStatusView] = []
        for participant in session.participants:
            agent = self.registry.get(participant.agent_id)
            if agent is None:
                views.append(AgentStatusView(id=participant.agent_id, role=participant.role.value))
                continue
            views.append(
                AgentStatusView(
                    id=agent.id,
                    name=agent.name,
                    framework=agent.config.get("framework"),
                    status=agent.config.get("status"),
                    role=agent.config.get("orchestrationRole"),
                )
            )
        return OrchestrationStatus(
            session_id=session.id,
            status=session.status.value,
            agents=views,
            active_phase=session.config.get("currentPhase"),
            completed_tasks=sum(1 for t in session.tasks if t.status.value == "completed"),
            total_tasks=len(session.tasks),
        )

    # -- catalogue ------------------------------------------------------------

    def list_framework_templates(self) -> dict[str, dict[str, Any]]:
        return {t.framework.value: t.summary() for t in self.frameworks.all()}

    def get_agent_config_template(self, framework: str) -> dict[str, Any]:
        template = self.frameworks.resolve(framework)
        return config_template(template.framework)

    def health(self) -> dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "status": "healthy",
            "version": __version__,
            "supportedFrameworks": self.frameworks.supported(),
            "features": list(_FEATURES),
            "readyTimeout": f"{self.config.ready_timeout_ms / 1000:g}s",
            "environment": self.config.environment,
        }
