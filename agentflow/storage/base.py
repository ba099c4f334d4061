"""Repository interfaces for session state and agent records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from agentflow.collaboration.types import (
    AgentMessage,
    AgentRecord,
    ApprovalGate,
    ApprovalStatus,
    CollaborationEvent,
    CollaborationSession,
    SessionStatus,
    TaskAssignment,
    TaskStatus,
)


class SessionStore(ABC):
    """
    Persistence for sessions and everything they own.

    Each method is one atomic read or write. Implementations must return
    messages in creation order and must never reorder them across pages.
    """

    @abstractmethod
    def create_session(self, session: CollaborationSession) -> None:
        """Insert the session row together with its participants."""

    @abstractmethod
    def get_session(self, session_id: str, *, include_history: bool = True) -> CollaborationSession | None:
        pass

    @abstractmethod
    def update_session(
        self,
        session_id: str,
        *,
        status: SessionStatus | None = None,
        config: dict[str, Any] | None = None,
    ) -> CollaborationSession | None:
        pass

    @abstractmethod
    def list_sessions(self, user_id: str, limit: int = 50) -> list[CollaborationSession]:
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def add_message(self, message: AgentMessage) -> None:
        pass

    @abstractmethod
    def list_messages(self, session_id: str, *, offset: int = 0, limit: int | None = None) -> list[AgentMessage]:
        pass

    @abstractmethod
    def count_messages(self, session_id: str) -> int:
        pass

    @abstractmethod
    def create_task(self, task: TaskAssignment) -> None:
        pass

    @abstractmethod
    def get_task(self, task_id: str) -> TaskAssignment | None:
        pass

    @abstractmethod
    def transition_task(
        self,
        task_id: str,
        *,
        expected: TaskStatus,
        status: TaskStatus,
        result: Any = None,
        completed_at: datetime | None = None,
    ) -> TaskAssignment | None:
        """Move a task out of `expected`. Returns None if the task was not in `expected`."""

    @abstractmethod
    def list_tasks(self, session_id: str, *, status: TaskStatus | None = None) -> list[TaskAssignment]:
        pass

    @abstractmethod
    def create_approval(self, approval: ApprovalGate) -> None:
        pass

    @abstractmethod
    def get_approval(self, approval_id: str) -> ApprovalGate | None:
        pass

    @abstractmethod
    def respond_approval(
        self,
        approval_id: str,
        *,
        status: ApprovalStatus,
        user_id: str,
        feedback: str | None,
        responded_at: datetime,
    ) -> ApprovalGate | None:
        """Resolve a pending approval. Returns None if it was no longer pending."""

    @abstractmethod
    def list_approvals(self, session_id: str) -> list[ApprovalGate]:
        pass

    @abstractmethod
    def add_event(self, event: CollaborationEvent) -> None:
        pass

    @abstractmethod
    def list_events(self, session_id: str, *, limit: int = 200) -> list[CollaborationEvent]:
        """Newest first."""


class AgentRegistry(ABC):
    """Agent records with framework-specific capability sets."""

    @abstractmethod
    def create(self, owner_user_id: str, agent: AgentRecord) -> AgentRecord:
        pass

    @abstractmethod
    def get(self, agent_id: str) -> AgentRecord | None:
        pass

    @abstractmethod
    def update_config(self, agent_id: str, patch: dict[str, Any]) -> AgentRecord:
        """Shallow-merge patch into the agent config."""

    @abstractmethod
    def assign_capabilities(self, agent_id: str, capabilities: list[tuple[str, str]]) -> list[str]:
        """Assign (name, category) capabilities; returns names assigned."""
