"""Collaboration engine.

Single authority for session, message, task and approval state:
1. Validate input and session membership
2. Persist the change under a per-session lock
3. Write the audit event
4. Hand bus notifications and outbound delivery to the background dispatcher
"""

from __future__ import annotations

import asyncio
import weakref
from functools import partial
from typing import TYPE_CHECKING, Any

from loguru import logger

from agentflow.collaboration.types import (
    SYSTEM_AGENT_ID,
    AgentMessage,
    ApprovalDraft,
    ApprovalGate,
    ApprovalStatus,
    CollaborationEvent,
    CollaborationSession,
    MessagePage,
    MessageType,
    Participant,
    ParticipantRole,
    SessionStatus,
    TaskAssignment,
    TaskDraft,
    TaskPriority,
    TaskStatus,
)
from agentflow.notifications.bus import NotificationBus, engine_event, session_room, user_room
from agentflow.notifications.dispatcher import SideEffectDispatcher
from agentflow.outbound.sink import NullEventSink, NullWebhookNotifier, OutboundEventSink, WebhookNotifier
from agentflow.utils.exceptions import ConflictError, NotFoundError, ValidationError
from agentflow.utils.helpers import utc_now

if TYPE_CHECKING:
    from agentflow.storage.base import SessionStore

MAX_PAGE_SIZE = 200


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value


def _coerce_enum(enum_cls: type, value: Any, field: str) -> Any:
    if value is None or value == "":
        raise ValidationError(f"{field} is required", field=field)
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field}: {value!r} (expected one of: {allowed})", field=field) from None


class CollaborationEngine:
    """
    Sessions, message routing, task lifecycle and approval gating.

    Store writes for one session are serialized by an asyncio.Lock so that
    get_session always observes operations in invocation order. Bus and
    outbound calls never run under the lock and never fail the caller.
    """

    def __init__(
        self,
        store: SessionStore,
        bus: NotificationBus,
        dispatcher: SideEffectDispatcher,
        *,
        outbound: OutboundEventSink | None = None,
        webhooks: WebhookNotifier | None = None,
    ):
        self.store = store
        self.bus = bus
        self.dispatcher = dispatcher
        self.outbound = outbound or NullEventSink()
        self.webhooks = webhooks or NullWebhookNotifier()
        # An entry lives only while some call holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    # -- helpers --------------------------------------------------------------

    def _require_session(self, session_id: str) -> CollaborationSession:
        session = self.store.get_session(session_id, include_history=False)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    def _require_active(self, session_id: str) -> CollaborationSession:
        session = self._require_session(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise ConflictError(
                f"Session {session_id} is {session.status.value}",
                resource_type="Session",
                resource_id=session_id,
            )
        return session

    def _log_event(
        self,
        session_id: str,
        event_type: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append an audit event. Failures are logged, never raised."""
        try:
            self.store.add_event(
                CollaborationEvent(
                    session_id=session_id,
                    event_type=event_type,
                    description=description,
                    metadata=metadata or {},
                )
            )
        except Exception as e:
            logger.warning(f"Failed to log collaboration event {event_type} for session {session_id}: {e}")

    def _emit(self, room: str | None, name: str, payload: dict[str, Any]) -> None:
        event = engine_event(name)
        if room is None:
            factory = partial(self.bus.broadcast, event, payload)
        else:
            factory = partial(self.bus.broadcast_to_room, room, event, payload)
        self.dispatcher.submit(f"bus {event} -> {room or 'all'}", factory)

    def _forward(self, name: str, session: CollaborationSession, payload: dict[str, Any]) -> None:
        factory = partial(self.outbound.notify, name, session.id, payload, session.user_id)
        self.dispatcher.submit(f"outbound collaboration.{name}", factory)

    def _append_message(self, message: AgentMessage) -> AgentMessage:
        """Persist a message and its audit event. Caller holds the session lock."""
        self.store.add_message(message)
        self._log_event(
            message.session_id,
            "message_sent",
            f"Agent {message.from_agent_id} sent {message.message_type.value} message",
            {"messageId": message.id, "messageType": message.message_type.value},
        )
        return message

    def _announce_message(self, session: CollaborationSession, message: AgentMessage) -> None:
        self._emit(
            session_room(session.id),
            "message",
            {"messageId": message.id, "message": message.model_dump(mode="json")},
        )
        self._forward(
            "message_sent",
            session,
            {
                "messageId": message.id,
                "fromAgent": message.from_agent_id,
                "toAgent": message.target,
                "messageType": message.message_type.value,
                "content": message.content,
                "metadata": message.metadata,
            },
        )

    # -- sessions -------------------------------------------------------------

    async def create_session(
        self,
        name: str,
        owner_user_id: str,
        agent_ids: list[str],
        *,
        description: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> CollaborationSession:
        _require_text(name, "name")
        _require_text(owner_user_id, "owner_user_id")
        if not agent_ids:
            raise ValidationError("At least one agent is required", field="agent_ids")
        if len(set(agent_ids)) != len(agent_ids):
            raise ValidationError("agent_ids must not contain duplicates", field="agent_ids")
        if SYSTEM_AGENT_ID in agent_ids:
            raise ValidationError(f"'{SYSTEM_AGENT_ID}' is reserved", field="agent_ids")

        session = CollaborationSession(
            name=name,
            description=description,
            user_id=owner_user_id,
            config=dict(config or {}),
        )
        session.participants = [
            Participant(
                session_id=session.id,
                agent_id=agent_id,
                role=ParticipantRole.SUPERVISOR if index == 0 else ParticipantRole.WORKER,
            )
            for index, agent_id in enumerate(agent_ids)
        ]
        async with self._session_lock(session.id):
            self.store.create_session(session)
            self._log_event(
                session.id,
                "session_created",
                f"Collaboration session '{name}' created with {len(agent_ids)} agents",
                {"agentIds": list(agent_ids)},
            )
        logger.info(f"Collaboration session created: {session.id} ({len(agent_ids)} agents)")

        self._emit(None, "session_created", {"sessionId": session.id, "session": session.model_dump(mode="json")})
        self._forward(
            "session_created",
            session,
            {
                "sessionName": session.name,
                "description": session.description,
                "agentCount": len(agent_ids),
                "agentIds": list(agent_ids),
                "config": session.config,
            },
        )
        return session

    async def get_session(self, session_id: str) -> CollaborationSession | None:
        """Full projection with history, or None when the id is unknown."""
        return self.store.get_session(session_id, include_history=True)

    async def close_session(self, session_id: str) -> CollaborationSession:
        async with self._session_lock(session_id):
            session = self._require_active(session_id)
            updated = self.store.update_session(session_id, status=SessionStatus.CLOSED)
            if updated is None:
                raise NotFoundError("Session", session_id)
            self._log_event(session_id, "session_closed", f"Collaboration session '{session.name}' closed")
        self._emit(session_room(session_id), "session_closed", {"sessionId": session_id})
        self._forward("session_closed", updated, {"sessionName": updated.name})
        return updated

    async def update_session_config(self, session_id: str, patch: dict[str, Any]) -> CollaborationSession:
        """Shallow-merge patch into the session config."""
        if not isinstance(patch, dict):
            raise ValidationError("config patch must be an object", field="config")
        async with self._session_lock(session_id):
            session = self._require_active(session_id)
            config = {**session.config, **patch}
            updated = self.store.update_session(session_id, config=config)
            if updated is None:
                raise NotFoundError("Session", session_id)
            self._log_event(session_id, "session_config_updated", "Session config updated", {"keys": sorted(patch)})
        return updated

    # -- messages -------------------------------------------------------------

    async def send_message(
        self,
        session_id: str,
        from_agent_id: str,
        content: str,
        message_type: MessageType | str,
        *,
        to_agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        task_draft: TaskDraft | None = None,
        approval_draft: ApprovalDraft | None = None,
    ) -> AgentMessage:
        """
        Append a message to the session ledger.

        A task-typed message with task_draft also creates a TaskAssignment from
        the sender to the recipient; an approval_request-typed message with
        approval_draft also opens an ApprovalGate for the sender. The message
        and whatever its draft creates are written under one lock hold, and
        every check runs before the first write.
        """
        _require_text(content, "content")
        kind = _coerce_enum(MessageType, message_type, "message_type")
        _require_text(from_agent_id, "from_agent_id")
        if task_draft is not None:
            if kind != MessageType.TASK:
                raise ValidationError("task_draft requires message_type 'task'", field="task_draft")
            if not to_agent_id:
                raise ValidationError("task messages carrying a task need a recipient", field="to_agent_id")
            _require_text(task_draft.title, "title")
            _require_text(task_draft.description, "description")
        if approval_draft is not None:
            if kind != MessageType.APPROVAL_REQUEST:
                raise ValidationError("approval_draft requires message_type 'approval_request'", field="approval_draft")
            _require_text(approval_draft.title, "title")
            _require_text(approval_draft.description, "description")
        carries_draft = task_draft is not None or approval_draft is not None

        task: TaskAssignment | None = None
        task_message: AgentMessage | None = None
        approval: ApprovalGate | None = None
        async with self._session_lock(session_id):
            session = self._require_active(session_id)
            if from_agent_id == SYSTEM_AGENT_ID:
                # system may post plain messages but cannot own a task or approval
                if carries_draft:
                    raise NotFoundError("Participant", from_agent_id)
            elif not session.has_participant(from_agent_id):
                raise NotFoundError("Participant", from_agent_id)
            if to_agent_id is not None and not session.has_participant(to_agent_id):
                raise NotFoundError("Participant", to_agent_id)

            message = AgentMessage(
                session_id=session_id,
                from_agent_id=from_agent_id,
                to_agent_id=to_agent_id,
                content=content,
                message_type=kind,
                metadata=dict(metadata or {}),
            )
            self.store.add_message(message)
            if task_draft is not None and to_agent_id is not None:
                task, task_message = self._record_task(
                    session,
                    from_agent_id,
                    to_agent_id,
                    task_draft.title,
                    task_draft.description,
                    task_draft.priority,
                    due_date=task_draft.due_date,
                    requirements=task_draft.requirements,
                )
            if approval_draft is not None:
                approval = self._record_approval(
                    session,
                    from_agent_id,
                    approval_draft.title,
                    approval_draft.description,
                    approval_draft.data,
                )
            self._log_event(
                session_id,
                "message_sent",
                f"Agent {from_agent_id} sent {kind.value} message",
                {"messageId": message.id, "messageType": kind.value},
            )

        self._emit(session_room(session_id), "message", {"messageId": message.id, "message": message.model_dump(mode="json")})
        if task is not None and task_message is not None:
            self._publish_task(session, task, task_message)
        if approval is not None:
            self._publish_approval(session, approval)
        self._forward(
            "message_sent",
            session,
            {
                "messageId": message.id,
                "fromAgent": from_agent_id,
                "toAgent": message.target,
                "messageType": kind.value,
                "content": content,
                "metadata": message.metadata,
            },
        )
        return message

    async def list_messages(self, session_id: str, *, page: int = 1, limit: int = 50) -> MessagePage:
        if page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        self._require_session(session_id)
        messages = self.store.list_messages(session_id, offset=(page - 1) * limit, limit=limit)
        total = self.store.count_messages(session_id)
        return MessagePage(messages=messages, page=page, limit=limit, total=total)

    # -- tasks ----------------------------------------------------------------

    async def assign_task(
        self,
        session_id: str,
        from_agent_id: str,
        to_agent_id: str,
        title: str,
        description: str,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        *,
        due_date: Any = None,
        requirements: dict[str, Any] | None = None,
    ) -> TaskAssignment:
        _require_text(to_agent_id, "to_agent_id")
        _require_text(title, "title")
        _require_text(description, "description")
        _require_text(from_agent_id, "from_agent_id")
        level = _coerce_enum(TaskPriority, priority, "priority")

        async with self._session_lock(session_id):
            session = self._require_active(session_id)
            task, message = self._record_task(
                session,
                from_agent_id,
                to_agent_id,
                title,
                description,
                level,
                due_date=due_date,
                requirements=requirements,
            )
        self._publish_task(session, task, message)
        return task

    def _record_task(
        self,
        session: CollaborationSession,
        from_agent_id: str,
        to_agent_id: str,
        title: str,
        description: str,
        level: TaskPriority,
        *,
        due_date: Any = None,
        requirements: dict[str, Any] | None = None,
    ) -> tuple[TaskAssignment, AgentMessage]:
        """Check membership, then persist the task and its notice. Caller holds the session lock."""
        if not session.has_participant(from_agent_id):
            raise NotFoundError("Participant", from_agent_id)
        if not session.has_participant(to_agent_id):
            raise ConflictError(
                f"Agent {to_agent_id} is not a participant of session {session.id}",
                resource_type="Participant",
                resource_id=to_agent_id,
            )
        task = TaskAssignment(
            session_id=session.id,
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            title=title,
            description=description,
            priority=level,
            due_date=due_date,
            requirements=dict(requirements or {}),
        )
        self.store.create_task(task)
        message = self._append_message(
            AgentMessage(
                session_id=session.id,
                from_agent_id=from_agent_id,
                to_agent_id=to_agent_id,
                content=f"Task assigned: {title}",
                message_type=MessageType.TASK,
                metadata={"taskId": task.id},
            )
        )
        self._log_event(
            session.id,
            "task_assigned",
            f"Task '{title}' assigned from {from_agent_id} to {to_agent_id}",
            {"taskId": task.id, "priority": level.value},
        )
        return task, message

    def _publish_task(self, session: CollaborationSession, task: TaskAssignment, message: AgentMessage) -> None:
        logger.debug(f"Task assigned: {task.id} {task.from_agent_id} -> {task.to_agent_id} ({task.title})")
        self._announce_message(session, message)
        self._emit(session_room(session.id), "task_assigned", {"taskId": task.id, "task": task.model_dump(mode="json")})
        self._forward(
            "task_assigned",
            session,
            {
                "taskId": task.id,
                "title": task.title,
                "description": task.description,
                "priority": task.priority.value,
                "fromAgent": task.from_agent_id,
                "toAgent": task.to_agent_id,
                "dueDate": task.due_date.isoformat() if task.due_date else None,
                "requirements": task.requirements,
            },
        )

    async def update_task_status(
        self,
        task_id: str,
        status: TaskStatus | str,
        result: Any = None,
    ) -> TaskAssignment:
        target = _coerce_enum(TaskStatus, status, "status")
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        message: AgentMessage | None = None
        async with self._session_lock(task.session_id):
            session = self._require_active(task.session_id)
            current = self.store.get_task(task_id)
            if current is None:
                raise NotFoundError("Task", task_id)
            if not current.status.can_transition_to(target):
                raise ConflictError(
                    f"Task {task_id} cannot move from {current.status.value} to {target.value}",
                    resource_type="Task",
                    resource_id=task_id,
                )
            completed = target == TaskStatus.COMPLETED
            updated = self.store.transition_task(
                task_id,
                expected=current.status,
                status=target,
                result=result if completed else None,
                completed_at=utc_now() if completed else None,
            )
            if updated is None:
                raise ConflictError(f"Task {task_id} changed concurrently", resource_type="Task", resource_id=task_id)
            self._log_event(
                task.session_id,
                "task_updated",
                f"Task '{updated.title}' moved from {current.status.value} to {target.value}",
                {"taskId": task_id, "from": current.status.value, "to": target.value},
            )
            if completed:
                message = self._append_message(
                    AgentMessage(
                        session_id=task.session_id,
                        from_agent_id=updated.to_agent_id,
                        to_agent_id=updated.from_agent_id,
                        content=f"Task completed: {updated.title}",
                        message_type=MessageType.RESULT,
                        metadata={"taskId": task_id, "result": result},
                    )
                )

        if message is not None:
            self._announce_message(session, message)
        self._emit(
            session_room(task.session_id),
            "task_updated",
            {"taskId": task_id, "task": updated.model_dump(mode="json"), "status": target.value},
        )
        return updated

    async def list_tasks(self, session_id: str, *, status: TaskStatus | str | None = None) -> list[TaskAssignment]:
        wanted = _coerce_enum(TaskStatus, status, "status") if status not in (None, "") else None
        self._require_session(session_id)
        return self.store.list_tasks(session_id, status=wanted)

    # -- approvals ------------------------------------------------------------

    async def request_approval(
        self,
        session_id: str,
        agent_id: str,
        title: str,
        description: str,
        data: dict[str, Any] | None = None,
    ) -> ApprovalGate:
        _require_text(title, "title")
        _require_text(description, "description")
        _require_text(agent_id, "agent_id")

        async with self._session_lock(session_id):
            session = self._require_active(session_id)
            approval = self._record_approval(session, agent_id, title, description, data)
        self._publish_approval(session, approval)
        return approval

    def _record_approval(
        self,
        session: CollaborationSession,
        agent_id: str,
        title: str,
        description: str,
        data: dict[str, Any] | None,
    ) -> ApprovalGate:
        if not session.has_participant(agent_id):
            raise NotFoundError("Participant", agent_id)
        approval = ApprovalGate(
            session_id=session.id,
            requesting_agent_id=agent_id,
            title=title,
            description=description,
            request_data=dict(data or {}),
        )
        self.store.create_approval(approval)
        self._log_event(
            session.id,
            "approval_requested",
            f"Agent {agent_id} requested approval: {title}",
            {"approvalId": approval.id},
        )
        return approval

    def _publish_approval(self, session: CollaborationSession, approval: ApprovalGate) -> None:
        logger.info(f"Approval requested: {approval.id} by {approval.requesting_agent_id} in session {session.id}")
        self._emit(
            user_room(session.user_id),
            "approval_requested",
            {"approvalId": approval.id, "approval": approval.model_dump(mode="json")},
        )
        webhook_payload = {
            "approvalId": approval.id,
            "sessionId": session.id,
            "agentId": approval.requesting_agent_id,
            "title": approval.title,
            "description": approval.description,
        }
        self.dispatcher.submit(
            "webhook approval.requested",
            partial(self.webhooks.trigger, session.user_id, "approval.requested", webhook_payload),
        )
        self._forward(
            "approval_requested",
            session,
            {
                "approvalId": approval.id,
                "title": approval.title,
                "description": approval.description,
                "requestingAgent": approval.requesting_agent_id,
                "requestData": approval.request_data,
                "userId": session.user_id,
            },
        )

    async def handle_approval_response(
        self,
        approval_id: str,
        responding_user_id: str,
        approved: bool,
        feedback: str | None = None,
    ) -> ApprovalGate:
        if not isinstance(approved, bool):
            raise ValidationError("approved must be a boolean", field="approved")
        _require_text(responding_user_id, "responding_user_id")
        approval = self.store.get_approval(approval_id)
        if approval is None:
            raise NotFoundError("Approval", approval_id)
        if approval.status != ApprovalStatus.PENDING:
            raise ConflictError(
                f"Approval {approval_id} already {approval.status.value}",
                resource_type="Approval",
                resource_id=approval_id,
            )

        async with self._session_lock(approval.session_id):
            session = self._require_active(approval.session_id)
            resolved = self.store.respond_approval(
                approval_id,
                status=ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED,
                user_id=responding_user_id,
                feedback=feedback,
                responded_at=utc_now(),
            )
            if resolved is None:
                raise ConflictError(
                    f"Approval {approval_id} is no longer pending",
                    resource_type="Approval",
                    resource_id=approval_id,
                )
            message = self._append_message(
                AgentMessage(
                    session_id=approval.session_id,
                    from_agent_id=SYSTEM_AGENT_ID,
                    to_agent_id=approval.requesting_agent_id,
                    content=f"Approval {'granted' if approved else 'denied'}: {approval.title}",
                    message_type=MessageType.APPROVAL_REQUEST,
                    metadata={"approvalId": approval_id, "approved": approved, "feedback": feedback},
                )
            )
            self._log_event(
                approval.session_id,
                "approval_responded",
                f"Approval '{approval.title}' {resolved.status.value} by {responding_user_id}",
                {"approvalId": approval_id, "approved": approved},
            )
        logger.info(f"Approval {approval_id} {resolved.status.value} by {responding_user_id}")

        self._announce_message(session, message)
        self._emit(
            session_room(approval.session_id),
            "approval_responded",
            {"approvalId": approval_id, "approved": approved, "feedback": feedback},
        )
        self._forward(
            "approval_responded",
            session,
            {"approvalId": approval_id, "approved": approved, "feedback": feedback, "userId": responding_user_id},
        )
        return resolved
