"""Decision request model.

A decision request is raised by an agent (or a collaborator) that needs a
human to make a binding choice before it continues. It moves from
``pending`` to exactly one of the terminal states ``decided`` or
``cancelled``.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from waypoint.core.database.base import Base


class DecisionStatus(str, Enum):
    PENDING = "pending"
    DECIDED = "decided"
    CANCELLED = "cancelled"


class DecisionUrgency(str, Enum):
    CAN_CONTINUE = "can_continue"
    BLOCKING = "blocking"
    INFORMATIONAL = "informational"


class DecisionRequest(Base):
    """Decision requested of a human, scoped to a plan."""

    __tablename__ = "decision_requests"

    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    node_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("plan_nodes.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Requester
    requested_by_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    requested_by_agent_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # What needs deciding
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    urgency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DecisionUrgency.CAN_CONTINUE.value, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DecisionStatus.PENDING.value, index=True
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Resolution, set only on pending -> decided
    decided_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    decision: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rationale: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<DecisionRequest(id={self.id}, title='{self.title}', status='{self.status}')>"
