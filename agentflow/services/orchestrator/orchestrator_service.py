"""Shared orchestrator domain operations for HTTP adapters."""

from __future__ import annotations

from typing import Any

from agentflow.orchestration.planner import OrchestrationPlanner
from agentflow.services.errors import ServiceError


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise ServiceError(code="UNAUTHORIZED", message="Unauthorized")
    return user_id


def list_framework_templates_http(planner: OrchestrationPlanner) -> dict[str, Any]:
    """Build payload for GET /orchestrator/frameworks."""
    templates = planner.list_framework_templates()
    return {
        "ok": True,
        "data": {
            "templates": templates,
            "supportedFrameworks": list(templates),
            "totalFrameworks": len(templates),
        },
    }


def get_agent_config_template_http(planner: OrchestrationPlanner, *, framework: str | None) -> dict[str, Any]:
    """Build payload for GET /orchestrator/frameworks/{framework}/template."""
    if not framework:
        raise ServiceError(code="INVALID_REQUEST", message="Framework parameter is required")
    template = planner.get_agent_config_template(framework)
    return {
        "ok": True,
        "data": {
            "template": template,
            "framework": template["framework"],
            "description": f"Configuration template for {template['framework']} agent",
        },
    }


def health_http(planner: OrchestrationPlanner) -> dict[str, Any]:
    return {"ok": True, "data": planner.health()}


async def create_specialized_agent_http(
    planner: OrchestrationPlanner,
    *,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """Build payload for POST /orchestrator/agents."""
    owner = _require_user(user_id)
    if not body.get("name") or not body.get("framework"):
        raise ServiceError(code="INVALID_REQUEST", message="Name and framework are required")
    agent = await planner.create_specialized_agent(owner, body)
    return {
        "ok": True,
        "data": {
            "agent": agent.model_dump(mode="json"),
            "message": f"{body['framework']} agent created successfully",
        },
    }


async def create_agents_from_templates_http(
    planner: OrchestrationPlanner,
    *,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """Build payload for POST /orchestrator/agents/bulk. Per-item failures land in errors."""
    owner = _require_user(user_id)
    agents = body.get("agents")
    if not isinstance(agents, list):
        raise ServiceError(code="INVALID_REQUEST", message="Agents array is required")
    result = await planner.create_agents_from_templates(owner, agents)
    return {
        "ok": True,
        "data": {
            "createdAgents": [a.model_dump(mode="json") for a in result.created_agents],
            "errors": [{"agentName": e.agent_name, "error": e.error} for e in result.errors],
            "summary": result.summary,
        },
    }


async def create_orchestration_http(planner: OrchestrationPlanner, *, user_id: str | None) -> dict[str, Any]:
    """Build payload for POST /orchestrator/orchestrations."""
    owner = _require_user(user_id)
    result = await planner.create_orchestration(owner)
    return {
        "ok": True,
        "data": {
            "sessionId": result.session_id,
            "agents": [a.model_dump(mode="json") for a in result.agents],
            "orchestrationPlan": result.plan.to_wire(),
            "agentCount": len(result.agents),
            "environment": planner.config.environment,
        },
    }


async def get_orchestration_status_http(
    planner: OrchestrationPlanner,
    *,
    session_id: str | None,
    user_id: str | None,
) -> dict[str, Any]:
    """Build payload for GET /orchestrator/orchestrations/{session_id}/status."""
    owner = _require_user(user_id)
    if not session_id:
        raise ServiceError(code="INVALID_REQUEST", message="Session ID is required")
    session = planner.engine.store.get_session(session_id, include_history=False)
    if session is None or session.user_id != owner:
        raise ServiceError(code="NOT_FOUND", message="Orchestration session not found")
    status = await planner.get_orchestration_status(session_id)
    if status is None:
        raise ServiceError(code="NOT_FOUND", message="Orchestration session not found")
    return {"ok": True, "data": status.model_dump(mode="json")}
