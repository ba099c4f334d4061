"""Tests for agentflow.collaboration.engine."""

import asyncio
import gc
from unittest.mock import AsyncMock

import pytest

from agentflow.collaboration.types import (
    SYSTEM_AGENT_ID,
    ApprovalDraft,
    ApprovalStatus,
    MessageType,
    ParticipantRole,
    SessionStatus,
    TaskDraft,
    TaskPriority,
    TaskStatus,
)
from agentflow.notifications.bus import BROADCAST_ROOM, session_room, user_room
from agentflow.utils.exceptions import ConflictError, NotFoundError, ValidationError


def _drain(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.fixture
async def session(engine):
    return await engine.create_session("demo", "user1", ["a1", "a2"])


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_session_roles(self, engine):
        session = await engine.create_session("demo", "user1", ["a1", "a2"])
        assert session.status == SessionStatus.ACTIVE
        assert session.user_id == "user1"
        assert [(p.agent_id, p.role) for p in session.participants] == [
            ("a1", ParticipantRole.SUPERVISOR),
            ("a2", ParticipantRole.WORKER),
        ]

    @pytest.mark.asyncio
    async def test_first_agent_is_always_supervisor(self, engine):
        sessions = await asyncio.gather(
            *(engine.create_session(f"s{i}", "user1", ["a", "b", "c"]) for i in range(5))
        )
        for s in sessions:
            stored = await engine.get_session(s.id)
            roles = {p.agent_id: p.role for p in stored.participants}
            assert roles == {
                "a": ParticipantRole.SUPERVISOR,
                "b": ParticipantRole.WORKER,
                "c": ParticipantRole.WORKER,
            }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("agent_ids", [[], ["a1", "a1"], ["a1", SYSTEM_AGENT_ID]])
    async def test_create_session_rejects_bad_agent_lists(self, engine, store, agent_ids):
        with pytest.raises(ValidationError):
            await engine.create_session("demo", "user1", agent_ids)
        assert store.list_sessions("user1") == []

    @pytest.mark.asyncio
    async def test_create_session_requires_name(self, engine):
        with pytest.raises(ValidationError) as exc:
            await engine.create_session("  ", "user1", ["a1"])
        assert exc.value.details == {"field": "name"}

    @pytest.mark.asyncio
    async def test_create_session_logs_event_and_notifies(self, engine, bus, dispatcher, sink):
        q = bus.subscribe(BROADCAST_ROOM)
        session = await engine.create_session("demo", "user1", ["a1", "a2"], description="d", config={"k": 1})
        await dispatcher.join()

        envelopes = _drain(q)
        assert [e["event"] for e in envelopes] == ["collaboration:session_created"]
        assert envelopes[0]["payload"]["sessionId"] == session.id

        assert sink.calls[0][0] == "session_created"
        assert sink.calls[0][1] == session.id
        assert sink.calls[0][2]["agentCount"] == 2
        assert sink.calls[0][3] == "user1"

        stored = await engine.get_session(session.id)
        assert stored.config == {"k": 1}
        assert [e.event_type for e in stored.events] == ["session_created"]

    @pytest.mark.asyncio
    async def test_get_unknown_session_returns_none(self, engine):
        assert await engine.get_session("missing") is None

    @pytest.mark.asyncio
    async def test_close_session_blocks_mutations(self, engine, session):
        closed = await engine.close_session(session.id)
        assert closed.status == SessionStatus.CLOSED

        with pytest.raises(ConflictError):
            await engine.send_message(session.id, "a1", "hi", "text")
        with pytest.raises(ConflictError):
            await engine.assign_task(session.id, "a1", "a2", "t", "d")
        with pytest.raises(ConflictError):
            await engine.request_approval(session.id, "a1", "t", "d")
        with pytest.raises(ConflictError):
            await engine.close_session(session.id)

    @pytest.mark.asyncio
    async def test_session_locks_are_released(self, engine, session):
        await engine.send_message(session.id, "a1", "hi", "text")
        await engine.close_session(session.id)
        with pytest.raises(NotFoundError):
            await engine.send_message("missing", "a1", "hi", "text")
        with pytest.raises(NotFoundError):
            await engine.close_session("missing")

        gc.collect()
        assert len(engine._locks) == 0

    @pytest.mark.asyncio
    async def test_update_session_config_merges(self, engine, session):
        await engine.update_session_config(session.id, {"currentPhase": "One"})
        updated = await engine.update_session_config(session.id, {"extra": True})
        assert updated.config == {"currentPhase": "One", "extra": True}


class TestMessages:
    @pytest.mark.asyncio
    async def test_broadcast_and_directed_targets(self, engine, session):
        await engine.send_message(session.id, "a1", "to everyone", MessageType.TEXT)
        await engine.send_message(session.id, "a1", "just you", "question", to_agent_id="a2")

        for _ in range(2):
            stored = await engine.get_session(session.id)
            broadcast, directed = stored.messages
            assert broadcast.is_broadcast and broadcast.target == "all"
            assert directed.to_agent_id == "a2"
            assert directed.message_type == MessageType.QUESTION

    @pytest.mark.asyncio
    async def test_invalid_message_type_persists_nothing(self, engine, store, session):
        with pytest.raises(ValidationError):
            await engine.send_message(session.id, "a1", "hello", "bogus")
        assert store.count_messages(session.id) == 0

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, engine, session):
        with pytest.raises(ValidationError):
            await engine.send_message(session.id, "a1", "", "text")

    @pytest.mark.asyncio
    async def test_non_participant_sender_and_recipient(self, engine, store, session):
        with pytest.raises(NotFoundError):
            await engine.send_message(session.id, "stranger", "hello", "text")
        with pytest.raises(NotFoundError):
            await engine.send_message(session.id, "a1", "hello", "text", to_agent_id="stranger")
        assert store.count_messages(session.id) == 0

    @pytest.mark.asyncio
    async def test_system_may_send(self, engine, session):
        message = await engine.send_message(session.id, SYSTEM_AGENT_ID, "notice", "text")
        assert message.from_agent_id == SYSTEM_AGENT_ID

    @pytest.mark.asyncio
    async def test_unknown_session(self, engine):
        with pytest.raises(NotFoundError):
            await engine.send_message("missing", "a1", "hello", "text")

    @pytest.mark.asyncio
    async def test_concurrent_sends_keep_creation_order(self, engine, session):
        await asyncio.gather(
            *(engine.send_message(session.id, "a1", f"m{i}", "text") for i in range(20))
        )
        first = await engine.get_session(session.id)
        await engine.send_message(session.id, "a2", "late", "text")
        second = await engine.get_session(session.id)

        assert len(first.messages) == 20
        stamps = [m.created_at for m in second.messages]
        assert stamps == sorted(stamps)
        assert [m.id for m in second.messages[:20]] == [m.id for m in first.messages]

    @pytest.mark.asyncio
    async def test_message_room_notification(self, engine, bus, dispatcher, sink, session):
        await dispatcher.join()
        q = bus.subscribe(session_room(session.id))
        message = await engine.send_message(session.id, "a1", "hello", "text", to_agent_id="a2")
        await dispatcher.join()

        envelopes = _drain(q)
        assert [e["event"] for e in envelopes] == ["collaboration:message"]
        assert envelopes[0]["payload"]["messageId"] == message.id
        assert sink.events()[-1] == "message_sent"
        assert sink.calls[-1][2]["toAgent"] == "a2"

    @pytest.mark.asyncio
    async def test_pagination(self, engine, session):
        for i in range(5):
            await engine.send_message(session.id, "a1", f"m{i}", "text")
        page = await engine.list_messages(session.id, page=2, limit=2)
        assert [m.content for m in page.messages] == ["m2", "m3"]
        assert page.total == 5
        assert page.total_pages == 3

        with pytest.raises(ValidationError):
            await engine.list_messages(session.id, page=0)
        with pytest.raises(ValidationError):
            await engine.list_messages(session.id, limit=1000)

    @pytest.mark.asyncio
    async def test_task_draft_creates_task(self, engine, session):
        draft = TaskDraft(title="Review", description="Review the PR", priority=TaskPriority.URGENT)
        await engine.send_message(session.id, "a1", "please review", "task", to_agent_id="a2", task_draft=draft)

        tasks = await engine.list_tasks(session.id)
        assert len(tasks) == 1
        assert tasks[0].title == "Review"
        assert tasks[0].priority == TaskPriority.URGENT
        assert (tasks[0].from_agent_id, tasks[0].to_agent_id) == ("a1", "a2")

        stored = await engine.get_session(session.id)
        assert [m.content for m in stored.messages] == ["please review", "Task assigned: Review"]

    @pytest.mark.asyncio
    async def test_task_draft_needs_task_type_and_recipient(self, engine, store, session):
        draft = TaskDraft(title="Review", description="d")
        with pytest.raises(ValidationError):
            await engine.send_message(session.id, "a1", "x", "text", to_agent_id="a2", task_draft=draft)
        with pytest.raises(ValidationError):
            await engine.send_message(session.id, "a1", "x", "task", task_draft=draft)
        assert store.count_messages(session.id) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "draft",
        [
            TaskDraft(title="", description="d"),
            TaskDraft(title="Review", description="   "),
        ],
    )
    async def test_blank_task_draft_persists_nothing(self, engine, store, session, draft):
        with pytest.raises(ValidationError):
            await engine.send_message(session.id, "a1", "do it", "task", to_agent_id="a2", task_draft=draft)

        assert store.count_messages(session.id) == 0
        assert store.list_tasks(session.id) == []
        assert [e.event_type for e in store.list_events(session.id)] == ["session_created"]

    @pytest.mark.asyncio
    async def test_system_cannot_carry_drafts(self, engine, store, session):
        approval = ApprovalDraft(title="Deploy?", description="Ship it")
        with pytest.raises(NotFoundError):
            await engine.send_message(session.id, SYSTEM_AGENT_ID, "ok?", "approval_request", approval_draft=approval)
        task = TaskDraft(title="Review", description="d")
        with pytest.raises(NotFoundError):
            await engine.send_message(session.id, SYSTEM_AGENT_ID, "do it", "task", to_agent_id="a2", task_draft=task)

        assert store.count_messages(session.id) == 0
        assert store.list_tasks(session.id) == []
        assert store.list_approvals(session.id) == []
        assert [e.event_type for e in store.list_events(session.id)] == ["session_created"]

    @pytest.mark.asyncio
    async def test_draft_message_and_task_share_one_write(self, engine, store, session):
        draft = TaskDraft(title="Review", description="d")
        message = await engine.send_message(session.id, "a1", "do it", "task", to_agent_id="a2", task_draft=draft)

        events = [e.event_type for e in reversed(store.list_events(session.id))]
        assert events == ["session_created", "message_sent", "task_assigned", "message_sent"]
        assert store.list_messages(session.id)[0].id == message.id

    @pytest.mark.asyncio
    async def test_task_message_without_draft_is_plain(self, engine, session):
        await engine.send_message(session.id, "a1", "do it", "task", to_agent_id="a2", metadata={"taskData": {}})
        assert await engine.list_tasks(session.id) == []

    @pytest.mark.asyncio
    async def test_approval_draft_opens_gate(self, engine, session):
        draft = ApprovalDraft(title="Deploy?", description="Ship to prod", data={"env": "prod"})
        await engine.send_message(session.id, "a2", "need approval", "approval_request", approval_draft=draft)

        stored = await engine.get_session(session.id)
        assert len(stored.approvals) == 1
        assert stored.approvals[0].requesting_agent_id == "a2"
        assert stored.approvals[0].request_data == {"env": "prod"}


class TestTasks:
    @pytest.mark.asyncio
    async def test_assign_task_appends_task_message(self, engine, session):
        task = await engine.assign_task(session.id, "a1", "a2", "Fix bug", "desc", "high")
        assert task.status == TaskStatus.ASSIGNED
        assert task.priority == TaskPriority.HIGH

        stored = await engine.get_session(session.id)
        message = stored.messages[-1]
        assert message.message_type == MessageType.TASK
        assert (message.from_agent_id, message.to_agent_id) == ("a1", "a2")
        assert message.metadata == {"taskId": task.id}
        assert stored.events[0].event_type == "task_assigned"

    @pytest.mark.asyncio
    async def test_assign_to_non_participant_conflicts(self, engine, store, session):
        with pytest.raises(ConflictError):
            await engine.assign_task(session.id, "a1", "stranger", "t", "d")
        with pytest.raises(NotFoundError):
            await engine.assign_task(session.id, "stranger", "a2", "t", "d")
        assert store.list_tasks(session.id) == []

    @pytest.mark.asyncio
    async def test_invalid_priority(self, engine, session):
        with pytest.raises(ValidationError):
            await engine.assign_task(session.id, "a1", "a2", "t", "d", "whenever")

    @pytest.mark.asyncio
    async def test_complete_task_posts_result(self, engine, session):
        task = await engine.assign_task(session.id, "a1", "a2", "Fix bug", "desc", "high")
        done = await engine.update_task_status(task.id, "completed", {"fixed": True})

        assert done.status == TaskStatus.COMPLETED
        assert done.completed_at is not None
        assert done.result == {"fixed": True}

        stored = await engine.get_session(session.id)
        result = stored.messages[-1]
        assert result.message_type == MessageType.RESULT
        assert (result.from_agent_id, result.to_agent_id) == ("a2", "a1")
        assert result.metadata == {"taskId": task.id, "result": {"fixed": True}}

    @pytest.mark.asyncio
    async def test_state_machine(self, engine, session):
        task = await engine.assign_task(session.id, "a1", "a2", "t", "d")
        moved = await engine.update_task_status(task.id, TaskStatus.IN_PROGRESS)
        assert moved.status == TaskStatus.IN_PROGRESS
        assert moved.completed_at is None

        failed = await engine.update_task_status(task.id, "failed")
        assert failed.status == TaskStatus.FAILED

        for target in ("assigned", "in_progress", "completed", "cancelled"):
            with pytest.raises(ConflictError):
                await engine.update_task_status(task.id, target)
        assert (await engine.list_tasks(session.id))[0].status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_cancel_from_assigned(self, engine, session):
        task = await engine.assign_task(session.id, "a1", "a2", "t", "d")
        cancelled = await engine.update_task_status(task.id, "cancelled")
        assert cancelled.status == TaskStatus.CANCELLED
        with pytest.raises(ConflictError):
            await engine.update_task_status(task.id, "completed")

    @pytest.mark.asyncio
    async def test_concurrent_completion_only_one_wins(self, engine, store, session):
        task = await engine.assign_task(session.id, "a1", "a2", "t", "d")
        results = await asyncio.gather(
            engine.update_task_status(task.id, "completed", {"n": 1}),
            engine.update_task_status(task.id, "failed"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert store.get_task(task.id).status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    @pytest.mark.asyncio
    async def test_unknown_task_and_bad_status(self, engine, session):
        with pytest.raises(NotFoundError):
            await engine.update_task_status("missing", "completed")
        task = await engine.assign_task(session.id, "a1", "a2", "t", "d")
        with pytest.raises(ValidationError):
            await engine.update_task_status(task.id, "done")

    @pytest.mark.asyncio
    async def test_list_tasks_filter(self, engine, session):
        t1 = await engine.assign_task(session.id, "a1", "a2", "t1", "d")
        await engine.assign_task(session.id, "a1", "a2", "t2", "d")
        await engine.update_task_status(t1.id, "in_progress")

        in_progress = await engine.list_tasks(session.id, status="in_progress")
        assert [t.title for t in in_progress] == ["t1"]
        assert len(await engine.list_tasks(session.id)) == 2

    @pytest.mark.asyncio
    async def test_task_notifications(self, engine, bus, dispatcher, sink, session):
        await dispatcher.join()
        q = bus.subscribe(session_room(session.id))
        task = await engine.assign_task(session.id, "a1", "a2", "t", "d")
        await engine.update_task_status(task.id, "completed")
        await dispatcher.join()

        events = [e["event"] for e in _drain(q)]
        assert events == [
            "collaboration:message",
            "collaboration:task_assigned",
            "collaboration:message",
            "collaboration:task_updated",
        ]
        assert "task_assigned" in sink.events()


class TestApprovals:
    @pytest.mark.asyncio
    async def test_request_and_approve(self, engine, session):
        approval = await engine.request_approval(session.id, "a1", "Deploy?", "Needs human OK", {})
        assert approval.status == ApprovalStatus.PENDING

        resolved = await engine.handle_approval_response(approval.id, "user1", True, "go ahead")
        assert resolved.status == ApprovalStatus.APPROVED
        assert resolved.approved_by_user_id == "user1"
        assert resolved.rejected_by_user_id is None
        assert resolved.responded_at is not None

        stored = await engine.get_session(session.id)
        notice = stored.messages[-1]
        assert notice.from_agent_id == SYSTEM_AGENT_ID
        assert notice.to_agent_id == "a1"
        assert notice.content == "Approval granted: Deploy?"
        assert notice.metadata["feedback"] == "go ahead"

        with pytest.raises(ConflictError):
            await engine.handle_approval_response(approval.id, "user1", False, "changed my mind")
        again = await engine.get_session(session.id)
        assert again.approvals[0].status == ApprovalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_reject_sets_rejecter_only(self, engine, session):
        approval = await engine.request_approval(session.id, "a2", "Spend?", "Budget")
        resolved = await engine.handle_approval_response(approval.id, "user1", False)
        assert resolved.status == ApprovalStatus.REJECTED
        assert resolved.rejected_by_user_id == "user1"
        assert resolved.approved_by_user_id is None

        stored = await engine.get_session(session.id)
        assert stored.messages[-1].content == "Approval denied: Spend?"

    @pytest.mark.asyncio
    async def test_concurrent_responses_single_winner(self, engine, store, session):
        approval = await engine.request_approval(session.id, "a1", "Deploy?", "d")
        results = await asyncio.gather(
            engine.handle_approval_response(approval.id, "user1", True),
            engine.handle_approval_response(approval.id, "user2", False),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert store.get_approval(approval.id).status != ApprovalStatus.PENDING

    @pytest.mark.asyncio
    async def test_approved_must_be_bool(self, engine, session):
        approval = await engine.request_approval(session.id, "a1", "Deploy?", "d")
        with pytest.raises(ValidationError):
            await engine.handle_approval_response(approval.id, "user1", "yes")

    @pytest.mark.asyncio
    async def test_unknown_approval_and_requester(self, engine, session):
        with pytest.raises(NotFoundError):
            await engine.handle_approval_response("missing", "user1", True)
        with pytest.raises(NotFoundError):
            await engine.request_approval(session.id, "stranger", "t", "d")

    @pytest.mark.asyncio
    async def test_approval_goes_to_owner_room_and_webhook(self, engine, bus, dispatcher, webhooks, session):
        await dispatcher.join()
        q = bus.subscribe(user_room("user1"))
        approval = await engine.request_approval(session.id, "a1", "Deploy?", "d")
        await dispatcher.join()

        envelopes = _drain(q)
        assert [e["event"] for e in envelopes] == ["collaboration:approval_requested"]
        assert webhooks.calls == [
            (
                "user1",
                "approval.requested",
                {
                    "approvalId": approval.id,
                    "sessionId": session.id,
                    "agentId": "a1",
                    "title": "Deploy?",
                    "description": "d",
                },
            )
        ]


class TestSideEffectIsolation:
    @pytest.mark.asyncio
    async def test_failing_bus_does_not_fail_caller(self, store, dispatcher):
        from agentflow.collaboration.engine import CollaborationEngine
        from agentflow.notifications.bus import NotificationBus

        class _BrokenBus(NotificationBus):
            async def broadcast_to_room(self, room, event, payload):
                raise RuntimeError("bus down")

            async def broadcast(self, event, payload):
                raise RuntimeError("bus down")

        engine = CollaborationEngine(store, _BrokenBus(), dispatcher)
        session = await engine.create_session("demo", "user1", ["a1", "a2"])
        await engine.send_message(session.id, "a1", "hello", "text")
        await dispatcher.join()

        assert dispatcher.failed >= 2
        assert store.count_messages(session.id) == 1

    @pytest.mark.asyncio
    async def test_failing_outbound_does_not_fail_caller(self, store, bus, dispatcher):
        from agentflow.collaboration.engine import CollaborationEngine

        outbound = AsyncMock()
        outbound.notify.side_effect = RuntimeError("hook down")
        webhooks = AsyncMock()
        webhooks.trigger.side_effect = RuntimeError("hook down")

        engine = CollaborationEngine(store, bus, dispatcher, outbound=outbound, webhooks=webhooks)
        session = await engine.create_session("demo", "user1", ["a1"])
        approval = await engine.request_approval(session.id, "a1", "Deploy?", "d")
        await dispatcher.join()

        assert outbound.notify.await_count == 2
        webhooks.trigger.assert_awaited_once()
        assert store.get_approval(approval.id) is not None

    @pytest.mark.asyncio
    async def test_audit_failure_is_swallowed(self, engine, store, session, monkeypatch):
        def _boom(_event):
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "add_event", _boom)
        message = await engine.send_message(session.id, "a1", "hello", "text")
        assert store.count_messages(session.id) == 1
        assert message.content == "hello"
