"""Orchestrator domain services."""

from agentflow.services.orchestrator.orchestrator_service import (
    create_agents_from_templates_http,
    create_orchestration_http,
    create_specialized_agent_http,
    get_agent_config_template_http,
    get_orchestration_status_http,
    health_http,
    list_framework_templates_http,
)

__all__ = [
    "create_agents_from_templates_http",
    "create_orchestration_http",
    "create_specialized_agent_http",
    "get_agent_config_template_http",
    "get_orchestration_status_http",
    "health_http",
    "list_framework_templates_http",
]
