"""Default agent line-up and phase blueprint for a full orchestration."""

from typing import Any

from agentflow.orchestration.frameworks import Framework
from agentflow.orchestration.types import IntegrationSpec, OrchestrationRole, SpecializedAgentConfig

ORCHESTRATION_PATTERN = "HyperAgent → Activepieces → CAI → SmolAgents"

DEFAULT_AGENTS: list[SpecializedAgentConfig] = [
    SpecializedAgentConfig(
        name="HyperAgent_Orchestrator",
        framework=Framework.HYPER_AGENT.value,
        permissions="admin",
        integrations=[
            IntegrationSpec(tool="GitHub", config={"repo": "example-org/example-repo", "branch": "main"}),
            IntegrationSpec(tool="GoogleDrive", config={"folderId": ""}),
        ],
        triggers=["code_commit", "workflow_failure"],
        capabilities=["master_orchestration", "task_delegation"],
        orchestration_role=OrchestrationRole.COORDINATOR,
    ),
    SpecializedAgentConfig(
        name="Activepieces_Automator",
        framework=Framework.ACTIVEPIECES.value,
        permissions="admin",
        integrations=[
            IntegrationSpec(tool="Vercel", config={"domains": ["app.example.com"]}),
            IntegrationSpec(tool="GitHub", config={"autoDeployment": True}),
            IntegrationSpec(tool="GoogleDrive", config={"folderId": ""}),
        ],
        triggers=["domain_events", "commit_triggers"],
        capabilities=["workflow_automation", "deployment_management"],
        orchestration_role=OrchestrationRole.EXECUTOR,
    ),
    SpecializedAgentConfig(
        name="CAI_SecurityAgent",
        framework=Framework.CAI.value,
        permissions="admin",
        integrations=[
            IntegrationSpec(tool="Nmap", config={"profiles": ["comprehensive"], "scheduling": True}),
            IntegrationSpec(tool="GitHub", config={"repo": "example-org/example-repo", "alerting": True}),
            IntegrationSpec(tool="Domains", config={"targets": ["*.example.com"]}),
        ],
        triggers=["security_scan", "vulnerability_detected"],
        capabilities=["penetration_testing", "vulnerability_assessment"],
        orchestration_role=OrchestrationRole.MONITOR,
    ),
    SpecializedAgentConfig(
        name="SmolAgents_Processor",
        framework=Framework.SMOL_AGENTS.value,
        permissions="user",
        integrations=[
            IntegrationSpec(tool="HuggingFace", config={"models": ["llamaIndex"], "apiIntegration": True}),
            IntegrationSpec(tool="DataStreams", config={"source": "ui_events", "realTime": True}),
        ],
        triggers=["data_received", "nlp_request"],
        capabilities=["data_processing", "timeline_conversion"],
        orchestration_role=OrchestrationRole.EXECUTOR,
    ),
    SpecializedAgentConfig(
        name="Agno_WorkflowBuilder",
        framework=Framework.AGNO.value,
        permissions="admin",
        integrations=[
            IntegrationSpec(tool="GitHub", config={"issueTriaging": True, "automatedWorkflows": True}),
            IntegrationSpec(tool="GoogleDrive", config={"templateStorage": True, "workflowBackup": True}),
            IntegrationSpec(tool="CamelAI", config={"roleSimulation": True, "testDataGeneration": True}),
        ],
        triggers=["issue_created", "workflow_request"],
        capabilities=["workflow_design", "synthetic_data_generation"],
        orchestration_role=OrchestrationRole.VALIDATOR,
    ),
]

# (phase name, coordinator framework, participant frameworks or None for everyone, task names)
PHASE_BLUEPRINT: list[tuple[str, Framework, list[Framework] | None, list[str]]] = [
    (
        "Initialization",
        Framework.HYPER_AGENT,
        None,
        ["agent_health_check", "integration_verification", "capability_assessment"],
    ),
    (
        "Workflow_Setup",
        Framework.ACTIVEPIECES,
        [Framework.HYPER_AGENT],
        ["domain_monitoring_setup", "deployment_automation", "github_integration"],
    ),
    (
        "Security_Assessment",
        Framework.CAI,
        [Framework.HYPER_AGENT],
        ["domain_scanning", "vulnerability_assessment", "threat_monitoring"],
    ),
    (
        "Data_Processing",
        Framework.SMOL_AGENTS,
        [Framework.HYPER_AGENT],
        ["real_time_processing", "nlp_analysis", "timeline_generation"],
    ),
    (
        "Workflow_Validation",
        Framework.AGNO,
        None,
        ["workflow_verification", "synthetic_testing", "performance_validation"],
    ),
]


def default_agent_config(framework: Framework) -> SpecializedAgentConfig:
    return next(cfg for cfg in DEFAULT_AGENTS if cfg.framework == framework.value)


def config_template(framework: Framework) -> dict[str, Any]:
    """Default agent in the JSON template form accepted by bulk creation."""
    cfg = default_agent_config(framework)
    return {
        "name": cfg.name,
        "framework": cfg.framework,
        "env": cfg.environment,
        "permissions": cfg.permissions,
        "integrations": [{"tool": i.tool, **i.config} for i in cfg.integrations],
        "triggers": list(cfg.triggers),
        "timeout": cfg.timeout,
        "capabilities": list(cfg.capabilities),
        "orchestrationRole": cfg.orchestration_role.value,
    }
