"""Shared collaboration domain operations for HTTP adapters."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from agentflow.collaboration.engine import CollaborationEngine
from agentflow.collaboration.types import (
    ApprovalDraft,
    CollaborationSession,
    TaskDraft,
    TaskStatus,
)
from agentflow.services.errors import ServiceError

_VALID_TASK_STATUSES = [s.value for s in TaskStatus]


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise ServiceError(code="UNAUTHORIZED", message="Unauthorized")
    return user_id


def _owned_session(engine: CollaborationEngine, session_id: str, user_id: str) -> CollaborationSession:
    """Session header for list endpoints; a foreign session looks the same as a missing one."""
    session = engine.store.get_session(session_id, include_history=False)
    if session is None or session.user_id != user_id:
        raise ServiceError(code="NOT_FOUND", message="Session not found or access denied")
    return session


def _parse_draft(model: type, raw: Any, label: str) -> Any:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ServiceError(code="INVALID_REQUEST", message=f"{label} must be an object")
    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ServiceError(code="INVALID_REQUEST", message=f"Invalid {label}.{loc}: {first['msg']}") from e


def _build_page_payload(page: Any) -> dict[str, Any]:
    return {
        "messages": [m.model_dump(mode="json") for m in page.messages],
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": page.total,
            "totalPages": page.total_pages,
        },
    }


async def create_session_http(engine: CollaborationEngine, *, user_id: str | None, body: dict[str, Any]) -> dict[str, Any]:
    """Build response payload for POST /collaboration/sessions."""
    owner = _require_user(user_id)
    name = body.get("name")
    agent_ids = body.get("agentIds")
    if not name or not isinstance(agent_ids, list) or not agent_ids:
        raise ServiceError(code="INVALID_REQUEST", message="Name and at least one agent ID are required")
    session = await engine.create_session(
        name,
        owner,
        [str(a) for a in agent_ids],
        description=body.get("description"),
        config=body.get("config") or {},
    )
    return {"ok": True, "data": session.model_dump(mode="json")}


async def get_session_http(engine: CollaborationEngine, *, session_id: str, user_id: str | None) -> dict[str, Any]:
    """Build detail payload for GET /collaboration/sessions/{id}. FORBIDDEN for other owners."""
    owner = _require_user(user_id)
    session = await engine.get_session(session_id)
    if session is None:
        raise ServiceError(code="NOT_FOUND", message="Collaboration session not found")
    if session.user_id != owner:
        raise ServiceError(code="FORBIDDEN", message="Access denied")
    return {"ok": True, "data": session.model_dump(mode="json")}


async def list_session_messages_http(
    engine: CollaborationEngine,
    *,
    session_id: str,
    user_id: str | None,
    page: Any = 1,
    limit: Any = 50,
) -> dict[str, Any]:
    """Build paginated message list for GET /collaboration/sessions/{id}/messages."""
    owner = _require_user(user_id)
    try:
        page_num = int(page)
        limit_num = int(limit)
    except (TypeError, ValueError):
        raise ServiceError(code="INVALID_REQUEST", message="page and limit must be integers") from None
    _owned_session(engine, session_id, owner)
    result = await engine.list_messages(session_id, page=page_num, limit=limit_num)
    return {"ok": True, "data": _build_page_payload(result)}


async def list_session_tasks_http(
    engine: CollaborationEngine,
    *,
    session_id: str,
    user_id: str | None,
    status: str | None = None,
) -> dict[str, Any]:
    """Build task list for GET /collaboration/sessions/{id}/tasks, optionally filtered by status."""
    owner = _require_user(user_id)
    if status and status not in _VALID_TASK_STATUSES:
        raise ServiceError(
            code="INVALID_REQUEST",
            message=f"Invalid status. Must be one of: {', '.join(_VALID_TASK_STATUSES)}",
        )
    _owned_session(engine, session_id, owner)
    tasks = await engine.list_tasks(session_id, status=status or None)
    return {"ok": True, "data": [t.model_dump(mode="json") for t in tasks]}


async def send_message_http(
    engine: CollaborationEngine,
    *,
    session_id: str,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """
    Build response payload for POST /collaboration/sessions/{id}/messages.

    Wire metadata keys taskData / approvalData become explicit drafts; the
    remaining metadata is stored on the message unchanged.
    """
    owner = _require_user(user_id)
    from_agent_id = body.get("fromAgentId")
    content = body.get("content")
    message_type = body.get("messageType")
    if not from_agent_id or not content or not message_type:
        raise ServiceError(code="INVALID_REQUEST", message="fromAgentId, content, and messageType are required")
    _owned_session(engine, session_id, owner)

    metadata = dict(body.get("metadata") or {})
    task_draft = _parse_draft(TaskDraft, metadata.pop("taskData", None), "taskData")
    approval_draft = _parse_draft(ApprovalDraft, metadata.pop("approvalData", None), "approvalData")
    message = await engine.send_message(
        session_id,
        from_agent_id,
        content,
        message_type,
        to_agent_id=body.get("toAgentId"),
        metadata=metadata,
        task_draft=task_draft,
        approval_draft=approval_draft,
    )
    return {"ok": True, "data": message.model_dump(mode="json")}


async def assign_task_http(
    engine: CollaborationEngine,
    *,
    session_id: str,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """Build response payload for POST /collaboration/sessions/{id}/tasks."""
    owner = _require_user(user_id)
    required = ("fromAgentId", "toAgentId", "title", "description")
    if any(not body.get(k) for k in required):
        raise ServiceError(code="INVALID_REQUEST", message=f"{', '.join(required)} are required")
    _owned_session(engine, session_id, owner)
    task = await engine.assign_task(
        session_id,
        body["fromAgentId"],
        body["toAgentId"],
        body["title"],
        body["description"],
        body.get("priority") or "medium",
        due_date=body.get("dueDate"),
        requirements=body.get("requirements") or {},
    )
    return {"ok": True, "data": task.model_dump(mode="json")}


async def update_task_status_http(
    engine: CollaborationEngine,
    *,
    task_id: str,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """Build response payload for PATCH /collaboration/tasks/{id}."""
    _require_user(user_id)
    status = body.get("status")
    if not status:
        raise ServiceError(code="INVALID_REQUEST", message="Status is required")
    if status not in _VALID_TASK_STATUSES:
        raise ServiceError(
            code="INVALID_REQUEST",
            message=f"Invalid status. Must be one of: {', '.join(_VALID_TASK_STATUSES)}",
        )
    task = await engine.update_task_status(task_id, status, body.get("result"))
    return {"ok": True, "data": task.model_dump(mode="json")}


async def request_approval_http(
    engine: CollaborationEngine,
    *,
    session_id: str,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """Build response payload for POST /collaboration/sessions/{id}/approvals."""
    owner = _require_user(user_id)
    if not body.get("agentId") or not body.get("title") or not body.get("description"):
        raise ServiceError(code="INVALID_REQUEST", message="agentId, title, and description are required")
    _owned_session(engine, session_id, owner)
    approval = await engine.request_approval(
        session_id,
        body["agentId"],
        body["title"],
        body["description"],
        body.get("data") or {},
    )
    return {"ok": True, "data": approval.model_dump(mode="json")}


async def respond_approval_http(
    engine: CollaborationEngine,
    *,
    approval_id: str,
    user_id: str | None,
    body: dict[str, Any],
) -> dict[str, Any]:
    """Build response payload for POST /collaboration/approvals/{id}/respond."""
    responder = _require_user(user_id)
    approved = body.get("approved")
    if not isinstance(approved, bool):
        raise ServiceError(code="INVALID_REQUEST", message="Approved field must be a boolean")
    approval = await engine.handle_approval_response(approval_id, responder, approved, body.get("feedback"))
    return {"ok": True, "data": approval.model_dump(mode="json")}
