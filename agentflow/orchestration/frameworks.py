"""Closed catalogue of agent frameworks and their templates."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from agentflow.utils.exceptions import UnsupportedFrameworkError


class Framework(str, Enum):
    """Supported agent frameworks."""
    HYPER_AGENT = "HyperAgent"
    ACTIVEPIECES = "Activepieces"
    CAI = "CAI"
    SMOL_AGENTS = "SmolAgents"
    AGNO = "Agno"


class FrameworkTemplate(BaseModel):
    """Defaults stamped onto every agent created for a framework."""
    framework: Framework
    display_name: str
    description: str
    role_summary: str
    permissions: str = "admin"
    default_config: dict[str, Any] = Field(default_factory=dict)
    required_capabilities: list[str] = Field(default_factory=list)
    integration_templates: dict[str, dict[str, Any]] = Field(default_factory=dict)
    integrations: list[str] = Field(default_factory=list)  # display names
    workflow_patterns: list[str] = Field(default_factory=list)

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.display_name,
            "description": self.description,
            "role": self.role_summary,
            "permissions": self.permissions,
            "capabilities": list(self.required_capabilities),
            "integrations": list(self.integrations),
            "workflowPatterns": list(self.workflow_patterns),
        }


FRAMEWORK_TEMPLATES: dict[Framework, FrameworkTemplate] = {
    Framework.HYPER_AGENT: FrameworkTemplate(
        framework=Framework.HYPER_AGENT,
        display_name="HyperAgent",
        description="Full software lifecycle orchestration (plan, code, verify engineering tasks)",
        role_summary="Central orchestrator for collaborative agent workflows",
        default_config={
            "orchestrationLevel": "master",
            "taskCoordination": True,
            "codeGeneration": True,
            "verification": True,
            "githubIntegration": True,
            "maxConcurrentTasks": 10,
            "timeoutMs": 5000,
        },
        required_capabilities=["orchestration", "code_generation", "task_coordination", "verification"],
        integration_templates={
            "github": {"repo": "", "branch": "main", "webhooks": True},
            "googledrive": {"folderId": "", "syncEnabled": True},
        },
        integrations=["GitHub", "GoogleDrive"],
        workflow_patterns=["plan_code_verify", "collaborative_development", "task_delegation"],
    ),
    Framework.ACTIVEPIECES: FrameworkTemplate(
        framework=Framework.ACTIVEPIECES,
        display_name="Activepieces",
        description="Scalable workflow automation (MCP servers for distributed AI tasks)",
        role_summary="Workflow automation and deployment management",
        default_config={
            "workflowAutomation": True,
            "mcpServers": 280,
            "distributedTasks": True,
            "autoDeployment": True,
            "domainMonitoring": True,
            "timeoutMs": 5000,
        },
        required_capabilities=["workflow_automation", "deployment", "monitoring", "integration"],
        integration_templates={
            "vercel": {"domains": [], "autoDeployment": True},
            "github": {"commitTriggers": True, "branchProtection": True},
            "googledrive": {"dataSync": True, "backupEnabled": True},
        },
        integrations=["Vercel", "GitHub", "GoogleDrive"],
        workflow_patterns=["trigger_action", "data_pipeline", "deployment_automation"],
    ),
    Framework.CAI: FrameworkTemplate(
        framework=Framework.CAI,
        display_name="Cybersecurity AI (CAI)",
        description="AI-driven penetration testing and vulnerability discovery",
        role_summary="Security monitoring and threat detection",
        default_config={
            "securityScanning": True,
            "penetrationTesting": True,
            "vulnerabilityDiscovery": True,
            "humanInTheLoop": True,
            "alerting": True,
            "timeoutMs": 5000,
        },
        required_capabilities=["security_analysis", "vulnerability_scanning", "threat_detection", "reporting"],
        integration_templates={
            "nmap": {"scanProfiles": ["basic", "comprehensive"], "scheduling": True},
            "github": {"securityAlerts": True, "issueCreation": True},
            "domains": {"monitoring": True, "alertThresholds": {}},
        },
        integrations=["Nmap", "GitHub", "DomainMonitoring"],
        workflow_patterns=["scan_analyze_report", "continuous_monitoring", "threat_response"],
    ),
    Framework.SMOL_AGENTS: FrameworkTemplate(
        framework=Framework.SMOL_AGENTS,
        display_name="SmolAgents",
        description="Lightweight Python-based agent logic (Hugging Face integration)",
        role_summary="Real-time data processing and NLP analysis",
        permissions="user",
        default_config={
            "lightweight": True,
            "pythonBased": True,
            "huggingFaceIntegration": True,
            "realTimeProcessing": True,
            "llamaIndex": True,
            "timeoutMs": 5000,
        },
        required_capabilities=["data_processing", "nlp", "real_time_analysis", "timeline_conversion"],
        integration_templates={
            "huggingface": {"models": [], "apiKey": ""},
            "llamaindex": {"indexing": True, "queryEngine": True},
            "datastreams": {"realTime": True, "batchProcessing": True},
        },
        integrations=["HuggingFace", "LlamaIndex", "DataStreams"],
        workflow_patterns=["data_ingestion", "nlp_processing", "timeline_generation"],
    ),
    Framework.AGNO: FrameworkTemplate(
        framework=Framework.AGNO,
        display_name="Agno",
        description="Workflow automation and agent builder (developer-friendly)",
        role_summary="Workflow design and synthetic data generation",
        default_config={
            "workflowAutomation": True,
            "agentBuilder": True,
            "developerFriendly": True,
            "issueTriaging": True,
            "syntheticDataGeneration": True,
            "timeoutMs": 5000,
        },
        required_capabilities=["workflow_design", "agent_creation", "issue_management", "data_synthesis"],
        integration_templates={
            "github": {"issueTriaging": True, "automatedResponses": True},
            "googledrive": {"documentSync": True, "templateStorage": True},
            "camelai": {"roleSimulation": True, "scenarioGeneration": True},
        },
        integrations=["GitHub", "GoogleDrive", "CamelAI"],
        workflow_patterns=["issue_triage", "agent_generation", "workflow_design"],
    ),
}

_missing = set(Framework) - set(FRAMEWORK_TEMPLATES)
if _missing:
    raise RuntimeError(f"Framework templates missing for: {sorted(f.value for f in _missing)}")


CAPABILITY_CATEGORIES: dict[str, str] = {
    "orchestration": "coordination",
    "code_generation": "development",
    "task_coordination": "coordination",
    "verification": "validation",
    "workflow_automation": "automation",
    "deployment": "infrastructure",
    "monitoring": "observability",
    "integration": "connectivity",
    "security_analysis": "security",
    "vulnerability_scanning": "security",
    "threat_detection": "security",
    "reporting": "communication",
    "data_processing": "analysis",
    "nlp": "analysis",
    "real_time_analysis": "analysis",
    "timeline_conversion": "transformation",
    "workflow_design": "design",
    "agent_creation": "development",
    "issue_management": "coordination",
    "data_synthesis": "generation",
}


def capability_category(name: str) -> str:
    return CAPABILITY_CATEGORIES.get(name, "general")


def merge_integrations(
    template_integrations: dict[str, dict[str, Any]],
    overrides: list[tuple[str, dict[str, Any]]],
) -> dict[str, dict[str, Any]]:
    """Overlay (tool, config) pairs onto template defaults; tool names are lowercased, caller keys win."""
    merged = {tool: dict(cfg) for tool, cfg in template_integrations.items()}
    for tool, cfg in overrides:
        key = tool.lower()
        merged[key] = {**merged.get(key, {}), **cfg}
    return merged


class FrameworkRegistry:
    """Resolves framework tags to templates."""

    def __init__(self, templates: dict[Framework, FrameworkTemplate] | None = None):
        self._templates = dict(templates or FRAMEWORK_TEMPLATES)

    def supported(self) -> list[str]:
        return [f.value for f in self._templates]

    def resolve(self, framework: Framework | str) -> FrameworkTemplate:
        try:
            key = Framework(framework)
        except ValueError:
            raise UnsupportedFrameworkError(str(framework), self.supported()) from None
        template = self._templates.get(key)
        if template is None:
            raise UnsupportedFrameworkError(key.value, self.supported())
        return template

    def all(self) -> list[FrameworkTemplate]:
        return list(self._templates.values())
