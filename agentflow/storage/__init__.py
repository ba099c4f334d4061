"""Persistence for collaboration sessions and agent records."""

from agentflow.storage.base import AgentRegistry, SessionStore
from agentflow.storage.sqlite_store import SqliteAgentRegistry, SqliteSessionStore

__all__ = ["AgentRegistry", "SessionStore", "SqliteAgentRegistry", "SqliteSessionStore"]
