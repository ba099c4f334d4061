"""Multi-phase orchestration across specialized agent frameworks."""

from agentflow.orchestration.frameworks import (
    CAPABILITY_CATEGORIES,
    FRAMEWORK_TEMPLATES,
    Framework,
    FrameworkRegistry,
    FrameworkTemplate,
    capability_category,
    merge_integrations,
)
from agentflow.orchestration.planner import OrchestrationPlanner
from agentflow.orchestration.types import (
    AgentStatusView,
    BulkCreateError,
    BulkCreateResult,
    IntegrationSpec,
    OrchestrationPlan,
    OrchestrationResult,
    OrchestrationRole,
    OrchestrationStatus,
    Phase,
    SpecializedAgentConfig,
)

__all__ = [
    "CAPABILITY_CATEGORIES",
    "FRAMEWORK_TEMPLATES",
    "AgentStatusView",
    "BulkCreateError",
    "BulkCreateResult",
    "Framework",
    "FrameworkRegistry",
    "FrameworkTemplate",
    "IntegrationSpec",
    "OrchestrationPlan",
    "OrchestrationPlanner",
    "OrchestrationResult",
    "OrchestrationRole",
    "OrchestrationStatus",
    "Phase",
    "SpecializedAgentConfig",
    "capability_category",
    "merge_integrations",
]
