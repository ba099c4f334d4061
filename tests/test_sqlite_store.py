"""Tests for agentflow.storage.sqlite_store."""

import sqlite3

import pytest

from agentflow.collaboration.types import (
    AgentMessage,
    AgentRecord,
    ApprovalGate,
    ApprovalStatus,
    CollaborationEvent,
    CollaborationSession,
    MessageType,
    Participant,
    ParticipantRole,
    SessionStatus,
    TaskAssignment,
    TaskStatus,
)
from agentflow.utils.exceptions import NotFoundError
from agentflow.utils.helpers import utc_now


def _session(user_id="user1", agents=("a1", "a2")):
    session = CollaborationSession(name="demo", user_id=user_id, config={"k": "v"})
    session.participants = [
        Participant(
            session_id=session.id,
            agent_id=a,
            role=ParticipantRole.SUPERVISOR if i == 0 else ParticipantRole.WORKER,
        )
        for i, a in enumerate(agents)
    ]
    return session


def test_session_round_trip(store):
    session = _session()
    store.create_session(session)

    loaded = store.get_session(session.id)
    assert loaded.name == "demo"
    assert loaded.config == {"k": "v"}
    assert loaded.status == SessionStatus.ACTIVE
    assert loaded.agent_ids == ["a1", "a2"]
    assert loaded.get_participant("a1").role == ParticipantRole.SUPERVISOR
    assert store.get_session("missing") is None


def test_header_read_skips_history(store):
    session = _session()
    store.create_session(session)
    store.add_message(AgentMessage(session_id=session.id, from_agent_id="a1", content="hi", message_type=MessageType.TEXT))

    header = store.get_session(session.id, include_history=False)
    assert header.messages == []
    assert len(store.get_session(session.id).messages) == 1


def test_full_read_uses_one_connection(store, monkeypatch):
    session = _session()
    store.create_session(session)
    store.add_message(AgentMessage(session_id=session.id, from_agent_id="a1", content="hi", message_type=MessageType.TEXT))

    opened = []
    connect = store._connect

    def _counting_connect():
        conn = connect()
        opened.append(conn)
        return conn

    monkeypatch.setattr(store, "_connect", _counting_connect)
    loaded = store.get_session(session.id)

    assert len(opened) == 1
    assert [m.content for m in loaded.messages] == ["hi"]
    assert not opened[0].in_transaction


def test_update_session(store):
    session = _session()
    store.create_session(session)
    updated = store.update_session(session.id, status=SessionStatus.CLOSED, config={"a": 1})
    assert updated.status == SessionStatus.CLOSED
    assert updated.config == {"a": 1}
    assert store.update_session("missing", status=SessionStatus.CLOSED) is None


def test_list_and_delete_sessions(store):
    mine = _session()
    other = _session(user_id="user2")
    store.create_session(mine)
    store.create_session(other)
    assert [s.id for s in store.list_sessions("user1")] == [mine.id]

    store.add_message(AgentMessage(session_id=mine.id, from_agent_id="a1", content="hi", message_type=MessageType.TEXT))
    assert store.delete_session(mine.id) is True
    assert store.delete_session(mine.id) is False
    assert store.count_messages(mine.id) == 0


def test_duplicate_participant_rejected(store):
    session = _session(agents=("a1", "a1"))
    with pytest.raises(sqlite3.IntegrityError):
        store.create_session(session)


def test_messages_in_insertion_order_with_paging(store):
    session = _session()
    store.create_session(session)
    for i in range(5):
        store.add_message(
            AgentMessage(session_id=session.id, from_agent_id="a1", content=f"m{i}", message_type=MessageType.TEXT)
        )
    assert [m.content for m in store.list_messages(session.id)] == ["m0", "m1", "m2", "m3", "m4"]
    assert [m.content for m in store.list_messages(session.id, offset=3, limit=10)] == ["m3", "m4"]
    assert store.count_messages(session.id) == 5


def test_message_metadata_and_broadcast_preserved(store):
    session = _session()
    store.create_session(session)
    store.add_message(
        AgentMessage(
            session_id=session.id,
            from_agent_id="a1",
            content="hi",
            message_type=MessageType.QUESTION,
            metadata={"nested": {"x": [1, 2]}},
        )
    )
    (message,) = store.list_messages(session.id)
    assert message.to_agent_id is None
    assert message.metadata == {"nested": {"x": [1, 2]}}
    assert message.message_type == MessageType.QUESTION


def test_transition_task_compare_and_set(store):
    session = _session()
    store.create_session(session)
    task = TaskAssignment(session_id=session.id, from_agent_id="a1", to_agent_id="a2", title="t", description="d")
    store.create_task(task)

    moved = store.transition_task(task.id, expected=TaskStatus.ASSIGNED, status=TaskStatus.IN_PROGRESS)
    assert moved.status == TaskStatus.IN_PROGRESS

    stale = store.transition_task(task.id, expected=TaskStatus.ASSIGNED, status=TaskStatus.COMPLETED)
    assert stale is None

    done = store.transition_task(
        task.id,
        expected=TaskStatus.IN_PROGRESS,
        status=TaskStatus.COMPLETED,
        result={"ok": True},
        completed_at=utc_now(),
    )
    assert done.result == {"ok": True}
    assert done.completed_at is not None
    assert [t.id for t in store.list_tasks(session.id, status=TaskStatus.COMPLETED)] == [task.id]
    assert store.list_tasks(session.id, status=TaskStatus.ASSIGNED) == []


def test_respond_approval_only_once(store):
    session = _session()
    store.create_session(session)
    approval = ApprovalGate(session_id=session.id, requesting_agent_id="a1", title="t", description="d")
    store.create_approval(approval)

    first = store.respond_approval(
        approval.id, status=ApprovalStatus.REJECTED, user_id="user1", feedback="no", responded_at=utc_now()
    )
    assert first.status == ApprovalStatus.REJECTED
    assert first.rejected_by_user_id == "user1"
    assert first.approved_by_user_id is None

    second = store.respond_approval(
        approval.id, status=ApprovalStatus.APPROVED, user_id="user2", feedback=None, responded_at=utc_now()
    )
    assert second is None
    assert store.get_approval(approval.id).status == ApprovalStatus.REJECTED


def test_events_newest_first(store):
    session = _session()
    store.create_session(session)
    for name in ("first", "second", "third"):
        store.add_event(CollaborationEvent(session_id=session.id, event_type=name))
    assert [e.event_type for e in store.list_events(session.id)] == ["third", "second", "first"]
    assert len(store.list_events(session.id, limit=2)) == 2


class TestAgentRegistry:
    def test_create_and_get(self, registry):
        agent = registry.create("owner", AgentRecord(user_id="ignored", name="bot", config={"a": 1}))
        assert agent.user_id == "owner"

        loaded = registry.get(agent.id)
        assert loaded.name == "bot"
        assert loaded.config == {"a": 1}
        assert loaded.capabilities == []
        assert registry.get("missing") is None

    def test_update_config_merges(self, registry):
        agent = registry.create("owner", AgentRecord(user_id="owner", name="bot", config={"a": 1, "status": "initializing"}))
        updated = registry.update_config(agent.id, {"status": "ready"})
        assert updated.config == {"a": 1, "status": "ready"}
        with pytest.raises(NotFoundError):
            registry.update_config("missing", {"x": 1})

    def test_update_config_agent_deleted_before_reread(self, registry, monkeypatch):
        agent = registry.create("owner", AgentRecord(user_id="owner", name="bot"))
        monkeypatch.setattr(registry, "get", lambda agent_id: None)
        with pytest.raises(NotFoundError):
            registry.update_config(agent.id, {"status": "ready"})

    def test_assign_capabilities_reuses_rows(self, registry, db_path):
        a = registry.create("owner", AgentRecord(user_id="owner", name="a"))
        b = registry.create("owner", AgentRecord(user_id="owner", name="b"))

        assert registry.assign_capabilities(a.id, [("nlp", "analysis"), ("deployment", "infrastructure")]) == [
            "nlp",
            "deployment",
        ]
        registry.assign_capabilities(b.id, [("nlp", "analysis")])
        registry.assign_capabilities(b.id, [("nlp", "analysis")])

        assert registry.get(a.id).capabilities == ["deployment", "nlp"]
        assert registry.get(b.id).capabilities == ["nlp"]

        with sqlite3.connect(db_path) as conn:
            rows = conn.execute("SELECT name, description, category FROM agent_capabilities ORDER BY name").fetchall()
            levels = conn.execute(
                "SELECT DISTINCT proficiency_level, verified FROM agent_capability_assignments"
            ).fetchall()
        assert rows == [
            ("deployment", "Auto-generated capability: deployment", "infrastructure"),
            ("nlp", "Auto-generated capability: nlp", "analysis"),
        ]
        assert levels == [(10, 1)]

    def test_assign_capability_to_missing_agent_is_skipped(self, registry):
        assert registry.assign_capabilities("missing", [("nlp", "analysis")]) == []
