"""Plan scope lookups."""

from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from waypoint.core.models.plan import Plan, PlanCollaborator, PlanNode
from waypoint.core.repositories.base import BaseRepository


class PlanRepository(BaseRepository[Plan, BaseModel]):
    """Read-only access to plans, collaborators and nodes."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Plan)

    async def get_owner_id(self, plan_id: UUID) -> UUID | None:
        stmt = select(Plan.owner_id).where(Plan.id == plan_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_collaborator_role(self, plan_id: UUID, user_id: UUID) -> str | None:
        """Get the collaborator role a user holds on a plan, if any."""
        stmt = select(PlanCollaborator.role).where(
            PlanCollaborator.plan_id == plan_id,
            PlanCollaborator.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_node(self, node_id: UUID, plan_id: UUID) -> PlanNode | None:
        """Get a node only if it belongs to the given plan."""
        stmt = select(PlanNode).where(PlanNode.id == node_id, PlanNode.plan_id == plan_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
