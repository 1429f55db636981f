"""Best-effort side effects of decision transitions.

Two sinks hang off a successful transition: a broadcast to the plan's live
listeners, and (for resolutions) a knowledge-capture write. Each runs in
its own background task, catches and logs its own failure, and never
touches the transition that triggered it. There is no retry.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from waypoint.core.models.knowledge import KnowledgeEntry
from waypoint.core.schemas.decision import DecisionRequestResponse
from waypoint.core.schemas.principal import Principal
from waypoint.core.services.decision_knowledge import capture_decision_as_knowledge
from waypoint.core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

DECISION_REQUESTED = "decision.requested"
DECISION_RESOLVED = "decision.resolved"

KnowledgeCapture = Callable[
    [AsyncSession, DecisionRequestResponse, UUID], Awaitable[KnowledgeEntry | None]
]


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


def _event_metadata(user_id: UUID | None, plan_id: UUID, user_name: str | None) -> dict[str, Any]:
    return {
        "user_id": str(user_id) if user_id else None,
        "user_name": user_name,
        "plan_id": str(plan_id),
    }


def decision_requested_payload(decision: DecisionRequestResponse) -> dict[str, Any]:
    return {
        "id": str(decision.id),
        "planId": str(decision.plan_id),
        "nodeId": str(decision.node_id) if decision.node_id else None,
        "title": decision.title,
        "context": decision.context,
        "options": [o.model_dump(exclude_none=True) for o in decision.options],
        "urgency": decision.urgency.value,
        "requestedByAgentName": decision.requested_by_agent_name,
        "expiresAt": _iso(decision.expires_at),
        "status": decision.status.value,
        "createdAt": _iso(decision.created_at),
    }


def decision_resolved_payload(decision: DecisionRequestResponse) -> dict[str, Any]:
    return {
        "id": str(decision.id),
        "planId": str(decision.plan_id),
        "nodeId": str(decision.node_id) if decision.node_id else None,
        "title": decision.title,
        "decision": decision.decision,
        "rationale": decision.rationale,
        "status": decision.status.value,
        "decidedAt": _iso(decision.decided_at),
    }


class SideEffectDispatcher:
    """Runs broadcast and knowledge capture off the request path.

    Background work is bounded by a semaphore; ``drain()`` waits for all
    outstanding tasks and is called on shutdown.
    """

    def __init__(
        self,
        bus: EventBus,
        session_factory: async_sessionmaker[AsyncSession] | None,
        max_concurrency: int = 8,
        capture: KnowledgeCapture = capture_decision_as_knowledge,
    ) -> None:
        self._bus = bus
        self._session_factory = session_factory
        self._capture = capture
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def decision_requested(
        self, decision: DecisionRequestResponse, actor: Principal
    ) -> None:
        """Broadcast a new request. Awaited, but never raises."""
        await self._guarded(
            "broadcast decision request",
            decision,
            lambda: self._broadcast(DECISION_REQUESTED, decision_requested_payload(decision), decision, actor),
        )

    def decision_resolved(self, decision: DecisionRequestResponse, actor: Principal) -> None:
        """Schedule the resolution broadcast and knowledge capture independently."""
        self._spawn(
            "broadcast decision resolution",
            decision,
            lambda: self._broadcast(DECISION_RESOLVED, decision_resolved_payload(decision), decision, actor),
        )
        if self._session_factory is None:
            logger.warning(
                "No session factory configured, skipping knowledge capture",
                extra={"decision_id": decision.id},
            )
            return
        self._spawn(
            "capture decision as knowledge",
            decision,
            lambda: self._capture_knowledge(decision, actor.id),
        )

    async def drain(self) -> None:
        """Wait until every scheduled side effect has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _broadcast(
        self,
        event_type: str,
        payload: dict[str, Any],
        decision: DecisionRequestResponse,
        actor: Principal,
    ) -> None:
        await self._bus.publish(
            decision.plan_id,
            event_type,
            payload,
            _event_metadata(actor.id, decision.plan_id, actor.display_name),
        )

    async def _capture_knowledge(self, decision: DecisionRequestResponse, user_id: UUID) -> None:
        # The request's session is closed by now; use a fresh one
        async with self._session_factory() as session:
            await self._capture(session, decision, user_id)

    def _spawn(
        self,
        label: str,
        decision: DecisionRequestResponse,
        work: Callable[[], Awaitable[None]],
    ) -> None:
        async def run() -> None:
            async with self._semaphore:
                await self._guarded(label, decision, work)

        task = asyncio.create_task(run(), name=f"waypoint:{label}:{decision.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(
        self,
        label: str,
        decision: DecisionRequestResponse,
        work: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await work()
        except Exception:
            logger.exception(
                "Failed to %s",
                label,
                extra={"decision_id": decision.id, "plan_id": decision.plan_id},
            )
