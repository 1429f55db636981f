"""Shared fixtures for the Waypoint test suite.

Every test gets its own SQLite file, a seeded plan with one user per
role, and an isolated event bus and side effect dispatcher.
"""

import os

# Settings are cached on first use, so the environment must be set first
os.environ["WAYPOINT_ENVIRONMENT"] = "test"
os.environ["WAYPOINT_LOGGING__JSON_OUTPUT"] = "false"

from dataclasses import dataclass  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402

from waypoint.core.database import (  # noqa: E402
    dispose_engine,
    get_session_factory,
    init_database,
    init_engine,
)
from waypoint.core.models import Plan, PlanCollaborator, PlanNode  # noqa: E402
from waypoint.core.repositories import DecisionRepository, PlanRepository  # noqa: E402
from waypoint.core.schemas.principal import Principal  # noqa: E402
from waypoint.core.services.access import AccessGuard  # noqa: E402
from waypoint.core.services.decision_broker import DecisionBroker  # noqa: E402
from waypoint.core.services.event_bus import EventBus  # noqa: E402
from waypoint.core.services.side_effects import SideEffectDispatcher  # noqa: E402


@dataclass
class SeededPlan:
    """IDs of the fixture plan and the users holding each role on it."""

    plan_id: UUID
    node_id: UUID
    other_plan_id: UUID
    other_node_id: UUID
    owner: Principal
    admin: Principal
    editor: Principal
    viewer: Principal
    outsider: Principal


# --- Database ---


@pytest.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database with all tables created."""
    init_engine(f"sqlite+aiosqlite:///{tmp_path / 'waypoint-test.db'}")
    await init_database()
    yield get_session_factory()
    await dispose_engine()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(session_factory) -> SeededPlan:
    """A plan with an owner, one collaborator per role and a node."""
    owner = Principal(id=uuid4(), name="Olivia Owner")
    admin = Principal(id=uuid4(), name="Adam Admin")
    editor = Principal(id=uuid4(), name="Erin Editor")
    viewer = Principal(id=uuid4(), email="viewer@example.com")
    outsider = Principal(id=uuid4())

    async with session_factory() as session:
        plan = Plan(title="Platform Migration", owner_id=owner.id)
        other_plan = Plan(title="Unrelated Plan", owner_id=outsider.id)
        session.add_all([plan, other_plan])
        await session.flush()

        node = PlanNode(plan_id=plan.id, title="Choose storage")
        other_node = PlanNode(plan_id=other_plan.id, title="Elsewhere")
        session.add_all(
            [
                node,
                other_node,
                PlanCollaborator(plan_id=plan.id, user_id=admin.id, role="admin"),
                PlanCollaborator(plan_id=plan.id, user_id=editor.id, role="editor"),
                PlanCollaborator(plan_id=plan.id, user_id=viewer.id, role="viewer"),
            ]
        )
        await session.commit()

        return SeededPlan(
            plan_id=plan.id,
            node_id=node.id,
            other_plan_id=other_plan.id,
            other_node_id=other_node.id,
            owner=owner,
            admin=admin,
            editor=editor,
            viewer=viewer,
            outsider=outsider,
        )


# --- Services ---


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
async def dispatcher(bus, session_factory):
    dispatcher = SideEffectDispatcher(bus, session_factory)
    yield dispatcher
    await dispatcher.drain()


def build_broker(session, dispatcher, **kwargs) -> DecisionBroker:
    plans = PlanRepository(session)
    return DecisionBroker(
        DecisionRepository(session),
        plans,
        AccessGuard(plans),
        dispatcher,
        **kwargs,
    )


@pytest.fixture
def broker(session, dispatcher) -> DecisionBroker:
    return build_broker(session, dispatcher)


@pytest.fixture
def broker_factory(dispatcher):
    """Build a broker on a caller-supplied session, for concurrent callers."""

    def factory(session, **kwargs) -> DecisionBroker:
        return build_broker(session, dispatcher, **kwargs)

    return factory
