"""Tests for the decision request repository."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from waypoint.core.database.base import utcnow
from waypoint.core.models.decision import DecisionStatus
from waypoint.core.repositories.decision import DecisionRepository, TransitionKind
from waypoint.core.schemas.decision import DecisionOption, DecisionRequestCreate


async def _create(session, seeded, **fields):
    data = DecisionRequestCreate(**{"title": "Pick DB", **fields})
    return await DecisionRepository(session).create_for_plan(
        seeded.plan_id, seeded.editor.id, data
    )


def _decided(value: str) -> dict:
    return {
        "status": DecisionStatus.DECIDED.value,
        "decision": value,
        "decided_at": utcnow(),
    }


class TestCreateAndRead:
    @pytest.mark.asyncio
    async def test_create_defaults(self, session, seeded):
        decision = await _create(
            session,
            seeded,
            options=[DecisionOption(option="Postgres", pros=["mature"], recommendation=True)],
            metadata={"source": "agent"},
        )

        assert decision.id is not None
        assert decision.status == DecisionStatus.PENDING.value
        assert decision.urgency == "can_continue"
        assert decision.requested_by_user_id == seeded.editor.id
        assert decision.options == [
            {"option": "Postgres", "pros": ["mature"], "recommendation": True}
        ]
        assert decision.metadata_ == {"source": "agent"}
        assert decision.created_at is not None

    @pytest.mark.asyncio
    async def test_get_for_plan_is_plan_scoped(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)

        assert (await repo.get_for_plan(decision.id, seeded.plan_id)).id == decision.id
        assert await repo.get_for_plan(decision.id, seeded.other_plan_id) is None
        assert await repo.exists_in_plan(decision.id, seeded.plan_id)
        assert not await repo.exists_in_plan(decision.id, seeded.other_plan_id)

    @pytest.mark.asyncio
    async def test_list_filters_and_pagination(self, session, seeded):
        await _create(session, seeded, title="One", urgency="blocking")
        await _create(session, seeded, title="Two", node_id=seeded.node_id)
        third = await _create(session, seeded, title="Three")
        repo = DecisionRepository(session)
        await repo.try_transition(
            third.id, seeded.plan_id, DecisionStatus.PENDING, _decided("done")
        )

        records, total = await repo.list_for_plan(seeded.plan_id)
        assert total == 3
        assert len(records) == 3

        page, total = await repo.list_for_plan(seeded.plan_id, limit=2, offset=2)
        assert total == 3
        assert len(page) == 1

        pending, total = await repo.list_for_plan(seeded.plan_id, status="pending")
        assert total == 2
        assert {d.title for d in pending} == {"One", "Two"}

        blocking, _ = await repo.list_for_plan(seeded.plan_id, urgency="blocking")
        assert [d.title for d in blocking] == ["One"]

        on_node, _ = await repo.list_for_plan(
            seeded.plan_id, status="pending", node_id=seeded.node_id
        )
        assert [d.title for d in on_node] == ["Two"]

        _, other_total = await repo.list_for_plan(seeded.other_plan_id)
        assert other_total == 0

    @pytest.mark.asyncio
    async def test_count_pending(self, session, seeded):
        repo = DecisionRepository(session)
        assert await repo.count_pending(seeded.plan_id) == 0

        first = await _create(session, seeded)
        await _create(session, seeded)
        assert await repo.count_pending(seeded.plan_id) == 2

        await repo.try_transition(
            first.id,
            seeded.plan_id,
            DecisionStatus.PENDING,
            {"status": DecisionStatus.CANCELLED.value},
        )
        assert await repo.count_pending(seeded.plan_id) == 1


class TestUpdatePendingFields:
    @pytest.mark.asyncio
    async def test_updates_pending_row(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)

        updated = await repo.update_pending_fields(
            decision.id, seeded.plan_id, {"title": "Pick a database", "metadata_": {"k": 1}}
        )

        assert updated.title == "Pick a database"
        assert updated.metadata_ == {"k": 1}
        assert updated.status == DecisionStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_never_touches_terminal_row(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)
        await repo.try_transition(
            decision.id, seeded.plan_id, DecisionStatus.PENDING, _decided("Use Postgres")
        )

        assert await repo.update_pending_fields(
            decision.id, seeded.plan_id, {"title": "Too late"}
        ) is None
        stored = await repo.get_for_plan(decision.id, seeded.plan_id)
        assert stored.title == "Pick DB"


class TestTryTransition:
    @pytest.mark.asyncio
    async def test_applied(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)

        outcome = await repo.try_transition(
            decision.id, seeded.plan_id, DecisionStatus.PENDING, _decided("Use Postgres")
        )

        assert outcome.kind is TransitionKind.APPLIED
        assert outcome.applied
        assert outcome.record.status == DecisionStatus.DECIDED.value
        assert outcome.record.decision == "Use Postgres"

    @pytest.mark.asyncio
    async def test_precondition_failed_when_terminal(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)
        await repo.try_transition(
            decision.id, seeded.plan_id, DecisionStatus.PENDING, _decided("A")
        )

        outcome = await repo.try_transition(
            decision.id, seeded.plan_id, DecisionStatus.PENDING, _decided("B")
        )

        assert outcome.kind is TransitionKind.PRECONDITION_FAILED
        assert outcome.record is None
        stored = await repo.get_for_plan(decision.id, seeded.plan_id)
        assert stored.decision == "A"

    @pytest.mark.asyncio
    async def test_not_found(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)

        missing = await repo.try_transition(
            uuid4(), seeded.plan_id, DecisionStatus.PENDING, _decided("A")
        )
        wrong_plan = await repo.try_transition(
            decision.id, seeded.other_plan_id, DecisionStatus.PENDING, _decided("A")
        )

        assert missing.kind is TransitionKind.NOT_FOUND
        assert wrong_plan.kind is TransitionKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_expiry_is_part_of_the_condition(self, session, seeded):
        now = utcnow()
        decision = await _create(session, seeded, expires_at=now + timedelta(minutes=5))
        repo = DecisionRepository(session)

        late = await repo.try_transition(
            decision.id,
            seeded.plan_id,
            DecisionStatus.PENDING,
            _decided("A"),
            not_expired_at=now + timedelta(minutes=10),
        )
        assert late.kind is TransitionKind.PRECONDITION_FAILED

        in_time = await repo.try_transition(
            decision.id,
            seeded.plan_id,
            DecisionStatus.PENDING,
            _decided("A"),
            not_expired_at=now,
        )
        assert in_time.applied

    @pytest.mark.asyncio
    async def test_no_expiry_always_passes_expiry_condition(self, session, seeded):
        decision = await _create(session, seeded)
        outcome = await DecisionRepository(session).try_transition(
            decision.id,
            seeded.plan_id,
            DecisionStatus.PENDING,
            _decided("A"),
            not_expired_at=utcnow() + timedelta(days=365),
        )
        assert outcome.applied

    @pytest.mark.asyncio
    async def test_concurrent_transitions_apply_exactly_once(self, session_factory, seeded):
        async with session_factory() as session:
            decision = await _create(session, seeded)

        async def attempt(value: str):
            async with session_factory() as s:
                return await DecisionRepository(s).try_transition(
                    decision.id, seeded.plan_id, DecisionStatus.PENDING, _decided(value)
                )

        outcomes = await asyncio.gather(*(attempt(f"choice-{i}") for i in range(5)))

        applied = [o for o in outcomes if o.applied]
        assert len(applied) == 1
        assert all(
            o.kind is TransitionKind.PRECONDITION_FAILED for o in outcomes if not o.applied
        )

        async with session_factory() as session:
            stored = await DecisionRepository(session).get_for_plan(decision.id, seeded.plan_id)
        assert stored.decision == applied[0].record.decision


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_for_plan(self, session, seeded):
        decision = await _create(session, seeded)
        repo = DecisionRepository(session)

        assert not await repo.delete_for_plan(decision.id, seeded.other_plan_id)
        assert await repo.delete_for_plan(decision.id, seeded.plan_id)
        assert not await repo.delete_for_plan(decision.id, seeded.plan_id)
        assert await repo.get_for_plan(decision.id, seeded.plan_id) is None
