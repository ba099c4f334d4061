"""SQLite-backed session store and agent registry."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from agentflow.collaboration.types import (
    AgentMessage,
    AgentRecord,
    ApprovalGate,
    ApprovalStatus,
    CollaborationEvent,
    CollaborationSession,
    Participant,
    SessionStatus,
    TaskAssignment,
    TaskStatus,
)
from agentflow.storage.base import AgentRegistry, SessionStore
from agentflow.utils.exceptions import NotFoundError
from agentflow.utils.helpers import ensure_dir, new_id

_SCHEMA = """
CREATE TABLE IF NOT EXISTS collaboration_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL CHECK (status IN ('active', 'closed')),
    config_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_user ON collaboration_sessions(user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS collaboration_participants (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('supervisor', 'worker')),
    joined_at TEXT NOT NULL,
    UNIQUE(session_id, agent_id),
    FOREIGN KEY(session_id) REFERENCES collaboration_sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS agent_messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL,
    from_agent_id TEXT NOT NULL,
    to_agent_id TEXT,
    content TEXT NOT NULL,
    message_type TEXT NOT NULL
        CHECK (message_type IN ('text', 'task', 'result', 'question', 'approval_request')),
    metadata_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(session_id) REFERENCES collaboration_sessions(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_messages_session_seq ON agent_messages(session_id, seq);

CREATE TABLE IF NOT EXISTS task_assignments (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL,
    from_agent_id TEXT NOT NULL,
    to_agent_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    priority TEXT NOT NULL CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
    due_date TEXT,
    requirements_json TEXT NOT NULL,
    status TEXT NOT NULL
        CHECK (status IN ('assigned', 'in_progress', 'completed', 'failed', 'cancelled')),
    result_json TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY(session_id) REFERENCES collaboration_sessions(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_tasks_session_status ON task_assignments(session_id, status);

CREATE TABLE IF NOT EXISTS approval_gates (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL,
    requesting_agent_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    request_data_json TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('pending', 'approved', 'rejected')),
    approved_by_user_id TEXT,
    rejected_by_user_id TEXT,
    feedback TEXT,
    responded_at TEXT,
    created_at TEXT NOT NULL,
    CHECK (approved_by_user_id IS NULL OR rejected_by_user_id IS NULL),
    FOREIGN KEY(session_id) REFERENCES collaboration_sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS collaboration_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    description TEXT NOT NULL,
    metadata_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY(session_id) REFERENCES collaboration_sessions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    type TEXT NOT NULL,
    config_json TEXT NOT NULL,
    is_public INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agent_capabilities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agent_capability_assignments (
    agent_id TEXT NOT NULL,
    capability_id TEXT NOT NULL,
    proficiency_level INTEGER NOT NULL DEFAULT 10,
    verified INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY(agent_id, capability_id),
    FOREIGN KEY(agent_id) REFERENCES agents(id) ON DELETE CASCADE,
    FOREIGN KEY(capability_id) REFERENCES agent_capabilities(id)
);
"""


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _loads(raw: str | None, default: Any = None) -> Any:
    if raw is None:
        return default
    return json.loads(raw)


class _SqliteBase:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        ensure_dir(self.db_path.parent)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)


class SqliteSessionStore(_SqliteBase, SessionStore):
    """Local SQLite store for sessions, messages, tasks, approvals and audit events."""

    @classmethod
    def default(cls) -> "SqliteSessionStore":
        return cls(Path.home() / ".agentflow" / "state" / "agentflow.db")

    # -- sessions -----------------------------------------------------------

    def create_session(self, session: CollaborationSession) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO collaboration_sessions (
                    id, user_id, name, description, status, config_json, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.user_id,
                    session.name,
                    session.description,
                    session.status.value,
                    _dumps(session.config),
                    _iso(session.created_at),
                    _iso(session.updated_at),
                ),
            )
            conn.executemany(
                """
                INSERT INTO collaboration_participants (session_id, agent_id, role, joined_at)
                VALUES (?, ?, ?, ?)
                """,
                [(session.id, p.agent_id, p.role.value, _iso(p.joined_at)) for p in session.participants],
            )
        logger.debug(f"Session stored: {session.id} ({len(session.participants)} participants)")

    def get_session(self, session_id: str, *, include_history: bool = True) -> CollaborationSession | None:
        with self._connect() as conn:
            # deferred read transaction: the session and its history come from one snapshot
            conn.execute("BEGIN")
            row = conn.execute(
                "SELECT * FROM collaboration_sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
            if not row:
                return None
            participant_rows = conn.execute(
                """
                SELECT session_id, agent_id, role, joined_at
                FROM collaboration_participants WHERE session_id = ? ORDER BY seq ASC
                """,
                (session_id,),
            ).fetchall()
            session = self._row_to_session(row)
            session.participants = [
                Participant(
                    session_id=str(r["session_id"]),
                    agent_id=str(r["agent_id"]),
                    role=r["role"],
                    joined_at=r["joined_at"],
                )
                for r in participant_rows
            ]
            if include_history:
                session.messages = self._read_messages(conn, session_id)
                session.tasks = self._read_tasks(conn, session_id)
                session.approvals = self._read_approvals(conn, session_id)
                session.events = self._read_events(conn, session_id)
        return session

    def update_session(
        self,
        session_id: str,
        *,
        status: SessionStatus | None = None,
        config: dict[str, Any] | None = None,
    ) -> CollaborationSession | None:
        sets = ["updated_at = ?"]
        params: list[Any] = [_now()]
        if status is not None:
            sets.append("status = ?")
            params.append(status.value)
        if config is not None:
            sets.append("config_json = ?")
            params.append(_dumps(config))
        params.append(session_id)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE collaboration_sessions SET {', '.join(sets)} WHERE id = ?",
                params,
            )
            if cur.rowcount == 0:
                return None
        return self.get_session(session_id, include_history=False)

    def list_sessions(self, user_id: str, limit: int = 50) -> list[CollaborationSession]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM collaboration_sessions
                WHERE user_id = ? ORDER BY created_at DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [self._row_to_session(r) for r in rows]

    def delete_session(self, session_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM collaboration_sessions WHERE id = ?", (session_id,))
            return cur.rowcount > 0

    # -- messages -----------------------------------------------------------

    def add_message(self, message: AgentMessage) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO agent_messages (
                    id, session_id, from_agent_id, to_agent_id, content,
                    message_type, metadata_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.session_id,
                    message.from_agent_id,
                    message.to_agent_id,
                    message.content,
                    message.message_type.value,
                    _dumps(message.metadata),
                    _iso(message.created_at),
                ),
            )

    def list_messages(self, session_id: str, *, offset: int = 0, limit: int | None = None) -> list[AgentMessage]:
        with self._connect() as conn:
            return self._read_messages(conn, session_id, offset=offset, limit=limit)

    @staticmethod
    def _read_messages(
        conn: sqlite3.Connection,
        session_id: str,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[AgentMessage]:
        query = """
            SELECT id, session_id, from_agent_id, to_agent_id, content,
                   message_type, metadata_json, created_at
            FROM agent_messages WHERE session_id = ? ORDER BY seq ASC
        """
        params: list[Any] = [session_id]
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, max(0, offset)])
        elif offset:
            query += " LIMIT -1 OFFSET ?"
            params.append(offset)
        rows = conn.execute(query, params).fetchall()
        return [
            AgentMessage(
                id=str(r["id"]),
                session_id=str(r["session_id"]),
                from_agent_id=str(r["from_agent_id"]),
                to_agent_id=r["to_agent_id"],
                content=str(r["content"]),
                message_type=r["message_type"],
                metadata=_loads(r["metadata_json"], {}),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def count_messages(self, session_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM agent_messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        return int(row["n"])

    # -- tasks --------------------------------------------------------------

    def create_task(self, task: TaskAssignment) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO task_assignments (
                    id, session_id, from_agent_id, to_agent_id, title, description, priority,
                    due_date, requirements_json, status, result_json, completed_at, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.session_id,
                    task.from_agent_id,
                    task.to_agent_id,
                    task.title,
                    task.description,
                    task.priority.value,
                    _iso(task.due_date),
                    _dumps(task.requirements),
                    task.status.value,
                    _dumps(task.result) if task.result is not None else None,
                    _iso(task.completed_at),
                    _iso(task.created_at),
                    _iso(task.updated_at),
                ),
            )

    def get_task(self, task_id: str) -> TaskAssignment | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM task_assignments WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def transition_task(
        self,
        task_id: str,
        *,
        expected: TaskStatus,
        status: TaskStatus,
        result: Any = None,
        completed_at: datetime | None = None,
    ) -> TaskAssignment | None:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE task_assignments
                SET status = ?, result_json = ?, completed_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    status.value,
                    _dumps(result) if result is not None else None,
                    _iso(completed_at),
                    _now(),
                    task_id,
                    expected.value,
                ),
            )
            if cur.rowcount == 0:
                return None
        return self.get_task(task_id)

    def list_tasks(self, session_id: str, *, status: TaskStatus | None = None) -> list[TaskAssignment]:
        with self._connect() as conn:
            return self._read_tasks(conn, session_id, status=status)

    def _read_tasks(
        self,
        conn: sqlite3.Connection,
        session_id: str,
        *,
        status: TaskStatus | None = None,
    ) -> list[TaskAssignment]:
        query = "SELECT * FROM task_assignments WHERE session_id = ?"
        params: list[Any] = [session_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY seq ASC"
        rows = conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    # -- approvals ----------------------------------------------------------

    def create_approval(self, approval: ApprovalGate) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO approval_gates (
                    id, session_id, requesting_agent_id, title, description, request_data_json,
                    status, approved_by_user_id, rejected_by_user_id, feedback, responded_at, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    approval.id,
                    approval.session_id,
                    approval.requesting_agent_id,
                    approval.title,
                    approval.description,
                    _dumps(approval.request_data),
                    approval.status.value,
                    approval.approved_by_user_id,
                    approval.rejected_by_user_id,
                    approval.feedback,
                    _iso(approval.responded_at),
                    _iso(approval.created_at),
                ),
            )

    def get_approval(self, approval_id: str) -> ApprovalGate | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM approval_gates WHERE id = ?", (approval_id,)).fetchone()
        return self._row_to_approval(row) if row else None

    def respond_approval(
        self,
        approval_id: str,
        *,
        status: ApprovalStatus,
        user_id: str,
        feedback: str | None,
        responded_at: datetime,
    ) -> ApprovalGate | None:
        approved = status == ApprovalStatus.APPROVED
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE approval_gates
                SET status = ?, approved_by_user_id = ?, rejected_by_user_id = ?,
                    feedback = ?, responded_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (
                    status.value,
                    user_id if approved else None,
                    None if approved else user_id,
                    feedback,
                    _iso(responded_at),
                    approval_id,
                ),
            )
            if cur.rowcount == 0:
                return None
        return self.get_approval(approval_id)

    def list_approvals(self, session_id: str) -> list[ApprovalGate]:
        with self._connect() as conn:
            return self._read_approvals(conn, session_id)

    def _read_approvals(self, conn: sqlite3.Connection, session_id: str) -> list[ApprovalGate]:
        rows = conn.execute(
            "SELECT * FROM approval_gates WHERE session_id = ? ORDER BY seq ASC",
            (session_id,),
        ).fetchall()
        return [self._row_to_approval(r) for r in rows]

    # -- audit events -------------------------------------------------------

    def add_event(self, event: CollaborationEvent) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO collaboration_events (id, session_id, event_type, description, metadata_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.session_id,
                    event.event_type,
                    event.description,
                    _dumps(event.metadata),
                    _iso(event.created_at),
                ),
            )

    def list_events(self, session_id: str, *, limit: int = 200) -> list[CollaborationEvent]:
        with self._connect() as conn:
            return self._read_events(conn, session_id, limit=limit)

    @staticmethod
    def _read_events(conn: sqlite3.Connection, session_id: str, *, limit: int = 200) -> list[CollaborationEvent]:
        rows = conn.execute(
            """
            SELECT id, session_id, event_type, description, metadata_json, created_at
            FROM collaboration_events WHERE session_id = ? ORDER BY seq DESC LIMIT ?
            """,
            (session_id, limit),
        ).fetchall()
        return [
            CollaborationEvent(
                id=str(r["id"]),
                session_id=str(r["session_id"]),
                event_type=str(r["event_type"]),
                description=str(r["description"]),
                metadata=_loads(r["metadata_json"], {}),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    # -- row mapping --------------------------------------------------------

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> CollaborationSession:
        return CollaborationSession(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=str(row["name"]),
            description=row["description"],
            status=row["status"],
            config=_loads(row["config_json"], {}),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskAssignment:
        return TaskAssignment(
            id=str(row["id"]),
            session_id=str(row["session_id"]),
            from_agent_id=str(row["from_agent_id"]),
            to_agent_id=str(row["to_agent_id"]),
            title=str(row["title"]),
            description=str(row["description"]),
            priority=row["priority"],
            due_date=row["due_date"],
            requirements=_loads(row["requirements_json"], {}),
            status=row["status"],
            result=_loads(row["result_json"]),
            completed_at=row["completed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_approval(row: sqlite3.Row) -> ApprovalGate:
        return ApprovalGate(
            id=str(row["id"]),
            session_id=str(row["session_id"]),
            requesting_agent_id=str(row["requesting_agent_id"]),
            title=str(row["title"]),
            description=str(row["description"]),
            request_data=_loads(row["request_data_json"], {}),
            status=row["status"],
            approved_by_user_id=row["approved_by_user_id"],
            rejected_by_user_id=row["rejected_by_user_id"],
            feedback=row["feedback"],
            responded_at=row["responded_at"],
            created_at=row["created_at"],
        )


class SqliteAgentRegistry(_SqliteBase, AgentRegistry):
    """Agent records and capability assignments in the same SQLite file."""

    def create(self, owner_user_id: str, agent: AgentRecord) -> AgentRecord:
        agent = agent.model_copy(update={"user_id": owner_user_id})
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO agents (id, user_id, name, description, type, config_json, is_public, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    agent.id,
                    agent.user_id,
                    agent.name,
                    agent.description,
                    agent.type,
                    _dumps(agent.config),
                    1 if agent.is_public else 0,
                    _iso(agent.created_at),
                    _iso(agent.updated_at),
                ),
            )
        return agent

    def get(self, agent_id: str) -> AgentRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
            if not row:
                return None
            caps = conn.execute(
                """
                SELECT c.name FROM agent_capability_assignments a
                JOIN agent_capabilities c ON c.id = a.capability_id
                WHERE a.agent_id = ? ORDER BY c.name
                """,
                (agent_id,),
            ).fetchall()
        return AgentRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=str(row["name"]),
            description=str(row["description"]),
            type=str(row["type"]),
            config=_loads(row["config_json"], {}),
            is_public=bool(row["is_public"]),
            capabilities=[str(c["name"]) for c in caps],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def update_config(self, agent_id: str, patch: dict[str, Any]) -> AgentRecord:
        with self._connect() as conn:
            row = conn.execute("SELECT config_json FROM agents WHERE id = ?", (agent_id,)).fetchone()
            if not row:
                raise NotFoundError("Agent", agent_id)
            config = _loads(row["config_json"], {})
            config.update(patch)
            conn.execute(
                "UPDATE agents SET config_json = ?, updated_at = ? WHERE id = ?",
                (_dumps(config), _now(), agent_id),
            )
        agent = self.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        return agent

    def assign_capabilities(self, agent_id: str, capabilities: list[tuple[str, str]]) -> list[str]:
        assigned: list[str] = []
        for name, category in capabilities:
            try:
                with self._connect() as conn:
                    row = conn.execute("SELECT id FROM agent_capabilities WHERE name = ?", (name,)).fetchone()
                    if row:
                        capability_id = str(row["id"])
                    else:
                        capability_id = new_id()
                        conn.execute(
                            """
                            INSERT INTO agent_capabilities (id, name, description, category, created_at)
                            VALUES (?, ?, ?, ?, ?)
                            """,
                            (capability_id, name, f"Auto-generated capability: {name}", category, _now()),
                        )
                    conn.execute(
                        """
                        INSERT INTO agent_capability_assignments (agent_id, capability_id, proficiency_level, verified)
                        VALUES (?, ?, 10, 1)
                        ON CONFLICT(agent_id, capability_id) DO UPDATE SET proficiency_level = 10, verified = 1
                        """,
                        (agent_id, capability_id),
                    )
                assigned.append(name)
            except sqlite3.Error as e:
                logger.warning(f"Failed to assign capability {name} to agent {agent_id}: {e}")
        return assigned
