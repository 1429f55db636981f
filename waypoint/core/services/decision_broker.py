"""Decision request broker.

State machine for decision requests::

    pending --resolve--> decided     (terminal)
    pending --cancel---> cancelled   (terminal)

Resolve and cancel are two-phase. A cheap read first turns the common
"already terminal" case into a specific error. The real check is the
store's conditional UPDATE, which is the only arbiter between concurrent
callers; the read may be stale by then and is never trusted to decide the
outcome. Expiry is data, not a timer: a pending request past ``expires_at``
simply fails the resolve condition. It can still be cancelled.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from waypoint.core.database.base import utcnow
from waypoint.core.models.decision import DecisionRequest, DecisionStatus
from waypoint.core.repositories.decision import DecisionRepository, TransitionKind
from waypoint.core.repositories.plan import PlanRepository
from waypoint.core.schemas.decision import (
    DecisionRequestCreate,
    DecisionRequestResponse,
    DecisionRequestUpdate,
)
from waypoint.core.schemas.principal import Principal
from waypoint.core.services.access import AccessGuard
from waypoint.core.services.side_effects import SideEffectDispatcher
from waypoint.utils.exceptions import (
    DecisionAlreadyResolvedError,
    DecisionExpiredError,
    DecisionNotFoundError,
    InvalidInputError,
    InvalidStateError,
    NodeNotFoundError,
    ResolutionConflictError,
    WaypointError,
)

logger = logging.getLogger(__name__)

UPDATE_RESOLVED_MESSAGE = "Cannot update a decision request that has already been resolved"
CANCEL_RESOLVED_MESSAGE = "Cannot cancel a decision request that has already been resolved"
RESOLVE_CONFLICT_MESSAGE = "Decision was already resolved by another user"
CANCEL_CONFLICT_MESSAGE = (
    "Decision status changed - it may have been resolved or cancelled by another user"
)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    # SQLite hands timestamps back naive; they are stored in UTC
    return value.replace(tzinfo=timezone.utc)


def is_expired(decision: DecisionRequest, now: datetime) -> bool:
    expires_at = _as_utc(decision.expires_at)
    return expires_at is not None and expires_at <= now


@contextmanager
def _store_errors(action: str, **context: Any) -> Iterator[None]:
    """Log raw storage failures and surface them as a generic error."""
    try:
        yield
    except SQLAlchemyError:
        logger.exception("Store failure while trying to %s", action, extra=context)
        raise WaypointError(f"Failed to {action} decision request") from None


class DecisionBroker:
    """Permission-checked operations on a plan's decision requests."""

    def __init__(
        self,
        decisions: DecisionRepository,
        plans: PlanRepository,
        access: AccessGuard,
        side_effects: SideEffectDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._decisions = decisions
        self._plans = plans
        self._access = access
        self._side_effects = side_effects
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_requests(
        self,
        plan_id: UUID,
        principal: Principal,
        *,
        status: DecisionStatus | None = None,
        urgency: str | None = None,
        node_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DecisionRequest], int]:
        await self._access.require_read(plan_id, principal.id)
        return await self._decisions.list_for_plan(
            plan_id,
            status=status.value if status else None,
            urgency=urgency,
            node_id=node_id,
            limit=limit,
            offset=offset,
        )

    async def get(self, decision_id: UUID, plan_id: UUID, principal: Principal) -> DecisionRequest:
        await self._access.require_read(plan_id, principal.id)
        decision = await self._decisions.get_for_plan(decision_id, plan_id)
        if decision is None:
            raise DecisionNotFoundError()
        return decision

    async def get_pending_count(self, plan_id: UUID, principal: Principal) -> int:
        await self._access.require_read(plan_id, principal.id)
        return await self._decisions.count_pending(plan_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self, plan_id: UUID, principal: Principal, data: DecisionRequestCreate
    ) -> DecisionRequest:
        """Raise a new pending decision request."""
        await self._access.require_write(plan_id, principal.id)

        if not data.title.strip():
            raise InvalidInputError("Title is required")

        if data.node_id is not None:
            node = await self._plans.get_node(data.node_id, plan_id)
            if node is None:
                raise NodeNotFoundError()

        with _store_errors("create", plan_id=plan_id, user_id=principal.id):
            decision = await self._decisions.create_for_plan(plan_id, principal.id, data)

        logger.info(
            "Decision request created (%s)", decision.urgency,
            extra={"plan_id": plan_id, "decision_id": decision.id, "user_id": principal.id},
        )
        await self._side_effects.decision_requested(
            DecisionRequestResponse.model_validate(decision), principal
        )
        return decision

    async def update(
        self,
        decision_id: UUID,
        plan_id: UUID,
        principal: Principal,
        patch: DecisionRequestUpdate,
    ) -> DecisionRequest:
        """Edit a pending request in place. Status is never touched."""
        await self._access.require_write(plan_id, principal.id)

        if patch.title is not None and not patch.title.strip():
            raise InvalidInputError("Title is required")

        existing = await self._decisions.get_for_plan(decision_id, plan_id)
        if existing is None:
            raise DecisionNotFoundError()
        if existing.status != DecisionStatus.PENDING.value:
            raise InvalidStateError(UPDATE_RESOLVED_MESSAGE)

        fields = self._patch_fields(patch)
        if not fields:
            return existing

        with _store_errors("update", plan_id=plan_id, decision_id=decision_id):
            updated = await self._decisions.update_pending_fields(decision_id, plan_id, fields)

        if updated is None:
            # Lost a race with resolve/cancel/delete between the read and the write
            if await self._decisions.exists_in_plan(decision_id, plan_id):
                raise InvalidStateError(UPDATE_RESOLVED_MESSAGE)
            raise DecisionNotFoundError()
        return updated

    async def resolve(
        self,
        decision_id: UUID,
        plan_id: UUID,
        principal: Principal,
        decision: str,
        rationale: str | None = None,
    ) -> DecisionRequest:
        """Record the human's decision. Exactly one concurrent caller wins."""
        await self._access.require_write(plan_id, principal.id)

        if not decision or not decision.strip():
            raise InvalidInputError("Decision is required")

        existing = await self._decisions.get_for_plan(decision_id, plan_id)
        if existing is None:
            raise DecisionNotFoundError()
        if existing.status != DecisionStatus.PENDING.value:
            raise DecisionAlreadyResolvedError()

        now = self._clock()
        if is_expired(existing, now):
            raise DecisionExpiredError()

        with _store_errors("resolve", plan_id=plan_id, decision_id=decision_id):
            outcome = await self._decisions.try_transition(
                decision_id,
                plan_id,
                DecisionStatus.PENDING,
                {
                    "status": DecisionStatus.DECIDED.value,
                    "decided_by_user_id": principal.id,
                    "decision": decision,
                    "rationale": rationale or None,
                    "decided_at": now,
                    "updated_at": now,
                },
                not_expired_at=now,
            )

        if outcome.kind is TransitionKind.NOT_FOUND:
            raise DecisionNotFoundError()

        if outcome.kind is TransitionKind.PRECONDITION_FAILED:
            # Advisory re-read, only to pick the message
            current = await self._decisions.get_for_plan(decision_id, plan_id)
            if current is not None and is_expired(current, self._clock()):
                raise DecisionExpiredError()
            logger.info(
                "Lost resolution race",
                extra={"plan_id": plan_id, "decision_id": decision_id, "user_id": principal.id},
            )
            raise ResolutionConflictError(RESOLVE_CONFLICT_MESSAGE)

        resolved = outcome.record
        logger.info(
            "Decision request resolved",
            extra={"plan_id": plan_id, "decision_id": decision_id, "user_id": principal.id},
        )
        self._side_effects.decision_resolved(
            DecisionRequestResponse.model_validate(resolved), principal
        )
        return resolved

    async def cancel(
        self,
        decision_id: UUID,
        plan_id: UUID,
        principal: Principal,
        reason: str | None = None,
    ) -> DecisionRequest:
        """Withdraw a pending request. Expiry does not block cancellation."""
        await self._access.require_write(plan_id, principal.id)

        existing = await self._decisions.get_for_plan(decision_id, plan_id)
        if existing is None:
            raise DecisionNotFoundError()
        if existing.status != DecisionStatus.PENDING.value:
            raise InvalidStateError(CANCEL_RESOLVED_MESSAGE)

        # Merge from the read just above; update() is closed once the row
        # leaves pending, so nothing else can be writing metadata after it.
        metadata = dict(existing.metadata_ or {})
        if reason:
            metadata["cancellation_reason"] = reason

        with _store_errors("cancel", plan_id=plan_id, decision_id=decision_id):
            outcome = await self._decisions.try_transition(
                decision_id,
                plan_id,
                DecisionStatus.PENDING,
                {
                    "status": DecisionStatus.CANCELLED.value,
                    "metadata_": metadata,
                },
            )

        if outcome.kind is TransitionKind.NOT_FOUND:
            raise DecisionNotFoundError()
        if outcome.kind is TransitionKind.PRECONDITION_FAILED:
            raise ResolutionConflictError(CANCEL_CONFLICT_MESSAGE)

        logger.info(
            "Decision request cancelled",
            extra={"plan_id": plan_id, "decision_id": decision_id, "user_id": principal.id},
        )
        return outcome.record

    async def delete(self, decision_id: UUID, plan_id: UUID, principal: Principal) -> None:
        """Remove a request in any status. Plan owners only."""
        await self._access.require_owner(plan_id, principal.id)

        with _store_errors("delete", plan_id=plan_id, decision_id=decision_id):
            deleted = await self._decisions.delete_for_plan(decision_id, plan_id)

        if deleted:
            logger.info(
                "Decision request deleted",
                extra={"plan_id": plan_id, "decision_id": decision_id, "user_id": principal.id},
            )

    @staticmethod
    def _patch_fields(patch: DecisionRequestUpdate) -> dict[str, Any]:
        fields = patch.model_dump(exclude_unset=True)
        if "options" in fields:
            fields["options"] = [o.model_dump(exclude_none=True) for o in patch.options]
        if "urgency" in fields:
            fields["urgency"] = patch.urgency.value
        if "metadata" in fields:
            fields["metadata_"] = fields.pop("metadata")
        return fields
