"""Knowledge store models used by decision capture."""

import uuid
from typing import Any, Optional

from sqlalchemy import JSON, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from waypoint.core.database.base import Base


class KnowledgeStore(Base):
    """A named collection of knowledge entries bound to a scope."""

    __tablename__ = "knowledge_stores"
    __table_args__ = (UniqueConstraint("scope", "scope_id", name="uq_knowledge_store_scope"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="plan")  # global | plan | task
    scope_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)


class KnowledgeEntry(Base):
    """A single captured piece of knowledge."""

    __tablename__ = "knowledge_entries"

    store_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("knowledge_stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_type: Mapped[str] = mapped_column(String(30), nullable=False, default="note", index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<KnowledgeEntry(id={self.id}, title='{self.title}')>"
