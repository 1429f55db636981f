"""Plan scope models.

Plans, their collaborators and their task nodes are owned by the planning
service. Waypoint only reads them to gate access and validate node links.
"""

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from waypoint.core.database.base import Base

COLLABORATOR_ROLES = ("viewer", "editor", "admin")


class Plan(Base):
    """A plan owned by a single user."""

    __tablename__ = "plans"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, title='{self.title}')>"


class PlanCollaborator(Base):
    """Role held by a non-owner user on a plan."""

    __tablename__ = "plan_collaborators"
    __table_args__ = (UniqueConstraint("plan_id", "user_id", name="uq_plan_collaborator"),)

    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")  # viewer | editor | admin


class PlanNode(Base):
    """A task node inside a plan."""

    __tablename__ = "plan_nodes"

    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
