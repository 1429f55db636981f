"""Knowledge store repository."""

import logging
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waypoint.core.models.knowledge import KnowledgeEntry, KnowledgeStore
from waypoint.core.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

PLAN_SCOPE = "plan"


class KnowledgeRepository(BaseRepository[KnowledgeEntry, BaseModel]):
    """Repository for knowledge stores and entries."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, KnowledgeEntry)

    async def get_store(self, scope: str, scope_id: UUID) -> KnowledgeStore | None:
        stmt = select(KnowledgeStore).where(
            KnowledgeStore.scope == scope,
            KnowledgeStore.scope_id == scope_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_plan_store(self, plan_id: UUID, name: str) -> KnowledgeStore:
        """Get the plan's knowledge store, creating it on first use.

        Two captures for the same plan may race to create the store; the
        loser hits the (scope, scope_id) unique constraint and re-reads.
        """
        store = await self.get_store(PLAN_SCOPE, plan_id)
        if store is not None:
            return store

        store = KnowledgeStore(
            name=name,
            description="Auto-created knowledge store for plan decisions and learnings",
            scope=PLAN_SCOPE,
            scope_id=plan_id,
        )
        self._session.add(store)
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            existing = await self.get_store(PLAN_SCOPE, plan_id)
            if existing is None:
                raise
            return existing

        await self._session.refresh(store)
        logger.info("Created knowledge store %s for plan", store.id, extra={"plan_id": plan_id})
        return store

    async def create_entry(
        self,
        store_id: UUID,
        *,
        entry_type: str,
        title: str,
        content: str,
        tags: list[str],
        metadata: dict[str, Any],
        created_by: str | None = None,
    ) -> KnowledgeEntry:
        return await self.create(
            store_id=store_id,
            entry_type=entry_type,
            title=title,
            content=content,
            tags=tags,
            metadata_=metadata,
            created_by=created_by,
        )

    async def list_entries(self, store_id: UUID) -> list[KnowledgeEntry]:
        stmt = (
            select(KnowledgeEntry)
            .where(KnowledgeEntry.store_id == store_id)
            .order_by(KnowledgeEntry.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
