"""Decision request repository.

Besides plain CRUD this owns the one operation the broker's correctness
rests on: ``try_transition``, a single conditional UPDATE that changes a
row only while it still satisfies the expected status (and, for
resolution, is not expired). Whichever concurrent caller's UPDATE the
database applies first wins; every other caller sees
``PRECONDITION_FAILED``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from waypoint.core.database.base import utcnow
from waypoint.core.models.decision import DecisionRequest, DecisionStatus
from waypoint.core.repositories.base import BaseRepository
from waypoint.core.schemas.decision import DecisionRequestCreate


class TransitionKind(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    PRECONDITION_FAILED = "precondition_failed"


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of a conditional status transition."""

    kind: TransitionKind
    record: DecisionRequest | None = None

    @property
    def applied(self) -> bool:
        return self.kind is TransitionKind.APPLIED


class DecisionRepository(BaseRepository[DecisionRequest, DecisionRequestCreate]):
    """Repository for decision request data access."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, DecisionRequest)

    async def create_for_plan(
        self, plan_id: UUID, requested_by_user_id: UUID, obj_in: DecisionRequestCreate
    ) -> DecisionRequest:
        """Insert a new pending decision request."""
        data = obj_in.model_dump(exclude={"options", "metadata", "urgency"})
        now = utcnow()
        db_obj = DecisionRequest(
            **data,
            plan_id=plan_id,
            requested_by_user_id=requested_by_user_id,
            options=[o.model_dump(exclude_none=True) for o in obj_in.options],
            urgency=obj_in.urgency.value,
            metadata_=dict(obj_in.metadata),
            status=DecisionStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self._session.add(db_obj)
        await self._session.commit()
        await self._session.refresh(db_obj)
        return db_obj

    def _column_values(self, values: dict[str, Any]) -> dict[Any, Any]:
        # Key by mapped attribute so "metadata_" resolves to the "metadata" column
        return {getattr(self._model, key): value for key, value in values.items()}

    async def get_for_plan(self, id: UUID, plan_id: UUID) -> DecisionRequest | None:
        """Get a decision request by ID, only if it belongs to the plan.

        Always reloads from the database so status checks never see a
        stale identity-map copy.
        """
        stmt = (
            select(self._model)
            .where(self._model.id == id, self._model.plan_id == plan_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def exists_in_plan(self, id: UUID, plan_id: UUID) -> bool:
        stmt = select(self._model.id).where(self._model.id == id, self._model.plan_id == plan_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_for_plan(
        self,
        plan_id: UUID,
        *,
        status: str | None = None,
        urgency: str | None = None,
        node_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DecisionRequest], int]:
        """List a plan's decision requests, newest first, with the filtered total."""
        conditions = [self._model.plan_id == plan_id]
        if status:
            conditions.append(self._model.status == status)
        if urgency:
            conditions.append(self._model.urgency == urgency)
        if node_id:
            conditions.append(self._model.node_id == node_id)

        count_stmt = select(func.count()).select_from(self._model).where(*conditions)
        total = (await self._session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(self._model)
            .where(*conditions)
            .order_by(self._model.created_at.desc(), self._model.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all()), total

    async def count_pending(self, plan_id: UUID) -> int:
        """Get the number of pending decision requests in a plan."""
        stmt = (
            select(func.count())
            .select_from(self._model)
            .where(
                self._model.plan_id == plan_id,
                self._model.status == DecisionStatus.PENDING.value,
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar() or 0

    async def update_pending_fields(
        self, id: UUID, plan_id: UUID, fields: dict[str, Any]
    ) -> DecisionRequest | None:
        """Apply a partial edit, only while the request is still pending.

        Returns None when nothing matched; the caller decides whether the
        row is missing or already terminal.
        """
        stmt = (
            update(self._model)
            .where(
                self._model.id == id,
                self._model.plan_id == plan_id,
                self._model.status == DecisionStatus.PENDING.value,
            )
            .values(self._column_values({**fields, "updated_at": utcnow()}))
            .returning(self._model)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self._session.execute(stmt)
        record = result.scalar_one_or_none()
        await self._session.commit()
        return record

    async def try_transition(
        self,
        id: UUID,
        plan_id: UUID,
        expected_status: DecisionStatus,
        values: dict[str, Any],
        *,
        not_expired_at: datetime | None = None,
    ) -> TransitionOutcome:
        """Atomically move a request out of ``expected_status``.

        The status check, and the expiry check when ``not_expired_at`` is
        given, are part of the UPDATE's WHERE clause so they are evaluated
        under the row lock. A zero-row update is classified with an
        existence probe; the probe never retries the write.
        """
        conditions = [
            self._model.id == id,
            self._model.plan_id == plan_id,
            self._model.status == expected_status.value,
        ]
        if not_expired_at is not None:
            conditions.append(
                or_(self._model.expires_at.is_(None), self._model.expires_at > not_expired_at)
            )

        stmt = (
            update(self._model)
            .where(*conditions)
            .values(self._column_values({"updated_at": utcnow(), **values}))
            .returning(self._model)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self._session.execute(stmt)
        record = result.scalar_one_or_none()
        await self._session.commit()

        if record is not None:
            return TransitionOutcome(TransitionKind.APPLIED, record)
        if await self.exists_in_plan(id, plan_id):
            return TransitionOutcome(TransitionKind.PRECONDITION_FAILED)
        return TransitionOutcome(TransitionKind.NOT_FOUND)

    async def delete_for_plan(self, id: UUID, plan_id: UUID) -> bool:
        """Delete a decision request in a plan, whatever its status."""
        stmt = (
            delete(self._model)
            .where(self._model.id == id, self._model.plan_id == plan_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0
