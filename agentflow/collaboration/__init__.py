"""Multi-agent collaboration sessions.

Sessions bind a fixed set of agents together with an ordered message ledger,
directed task assignments and human approval gates.
"""

from agentflow.collaboration.engine import CollaborationEngine
from agentflow.collaboration.types import (
    SYSTEM_AGENT_ID,
    AgentMessage,
    AgentRecord,
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

__all__ = [
    "SYSTEM_AGENT_ID",
    "AgentMessage",
    "AgentRecord",
    "ApprovalDraft",
    "ApprovalGate",
    "ApprovalStatus",
    "CollaborationEngine",
    "CollaborationEvent",
    "CollaborationSession",
    "MessagePage",
    "MessageType",
    "Participant",
    "ParticipantRole",
    "SessionStatus",
    "TaskAssignment",
    "TaskDraft",
    "TaskPriority",
    "TaskStatus",
]
