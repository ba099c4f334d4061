"""Collaboration domain services."""

from agentflow.services.collaboration.collaboration_service import (
    assign_task_http,
    create_session_http,
    get_session_http,
    list_session_messages_http,
    list_session_tasks_http,
    request_approval_http,
    respond_approval_http,
    send_message_http,
    update_task_status_http,
)

__all__ = [
    "assign_task_http",
    "create_session_http",
    "get_session_http",
    "list_session_messages_http",
    "list_session_tasks_http",
    "request_approval_http",
    "respond_approval_http",
    "send_message_http",
    "update_task_status_http",
]
