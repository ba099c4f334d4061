"""Core type definitions for the collaboration engine."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from agentflow.utils.helpers import new_id, utc_now

SYSTEM_AGENT_ID = "system"


class SessionStatus(str, Enum):
    """Collaboration session status."""
    ACTIVE = "active"
    CLOSED = "closed"


class ParticipantRole(str, Enum):
    """Role of an agent inside a session."""
    SUPERVISOR = "supervisor"
    WORKER = "worker"


class MessageType(str, Enum):
    """Kinds of agent messages."""
    TEXT = "text"
    TASK = "task"
    RESULT = "result"
    QUESTION = "question"
    APPROVAL_REQUEST = "approval_request"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    """Task assignment status."""
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_TASK_STATUSES

    def can_transition_to(self, target: "TaskStatus") -> bool:
        """Check whether a task in this status may move to target."""
        return target in _TASK_TRANSITIONS[self]


_TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})

_TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.ASSIGNED: frozenset({
        TaskStatus.IN_PROGRESS,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }),
    TaskStatus.IN_PROGRESS: frozenset({
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    }),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class ApprovalStatus(str, Enum):
    """Approval gate status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Participant(BaseModel):
    """An agent's membership in a session."""
    session_id: str
    agent_id: str
    role: ParticipantRole
    joined_at: datetime = Field(default_factory=utc_now)


class AgentMessage(BaseModel):
    """Append-only message between agents. No recipient means broadcast."""
    id: str = Field(default_factory=new_id)
    session_id: str
    from_agent_id: str
    to_agent_id: str | None = None
    content: str
    message_type: MessageType
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_broadcast(self) -> bool:
        return self.to_agent_id is None

    @property
    def target(self) -> str:
        """Recipient agent id, or "all" for broadcast messages."""
        return self.to_agent_id or "all"


class TaskAssignment(BaseModel):
    """Directed unit of delegated work between two agents."""
    id: str = Field(default_factory=new_id)
    session_id: str
    from_agent_id: str
    to_agent_id: str
    title: str
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    requirements: dict[str, Any] = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.ASSIGNED
    result: Any = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ApprovalGate(BaseModel):
    """Human-in-the-loop checkpoint raised by an agent."""
    id: str = Field(default_factory=new_id)
    session_id: str
    requesting_agent_id: str
    title: str
    description: str
    request_data: dict[str, Any] = Field(default_factory=dict)
    status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by_user_id: str | None = None
    rejected_by_user_id: str | None = None
    feedback: str | None = None
    responded_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)


class CollaborationEvent(BaseModel):
    """Audit log entry."""
    id: str = Field(default_factory=new_id)
    session_id: str
    event_type: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class CollaborationSession(BaseModel):
    """Bounded conversation context for a fixed set of agents.

    History lists are populated only by full reads (get_session).
    Messages are in creation order, events newest first.
    """
    id: str = Field(default_factory=new_id)
    name: str
    description: str | None = None
    user_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    participants: list[Participant] = Field(default_factory=list)
    messages: list[AgentMessage] = Field(default_factory=list)
    tasks: list[TaskAssignment] = Field(default_factory=list)
    approvals: list[ApprovalGate] = Field(default_factory=list)
    events: list[CollaborationEvent] = Field(default_factory=list)

    def has_participant(self, agent_id: str | None) -> bool:
        return any(p.agent_id == agent_id for p in self.participants)

    def get_participant(self, agent_id: str) -> Participant | None:
        return next((p for p in self.participants if p.agent_id == agent_id), None)

    @property
    def agent_ids(self) -> list[str]:
        return [p.agent_id for p in self.participants]


class TaskDraft(BaseModel):
    """Task fields carried alongside a task-typed message."""
    title: str
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    requirements: dict[str, Any] = Field(default_factory=dict)


class ApprovalDraft(BaseModel):
    """Approval fields carried alongside an approval_request-typed message."""
    title: str
    description: str
    data: dict[str, Any] = Field(default_factory=dict)


class MessagePage(BaseModel):
    """One page of session messages in creation order."""
    messages: list[AgentMessage] = Field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit


class AgentRecord(BaseModel):
    """Agent as stored by the agent registry."""
    id: str = Field(default_factory=new_id)
    user_id: str
    name: str
    description: str = ""
    type: str = "specialized"
    config: dict[str, Any] = Field(default_factory=dict)
    is_public: bool = False
    capabilities: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
