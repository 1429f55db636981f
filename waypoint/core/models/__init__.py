"""ORM models."""

from waypoint.core.models.decision import DecisionRequest, DecisionStatus, DecisionUrgency
from waypoint.core.models.knowledge import KnowledgeEntry, KnowledgeStore
from waypoint.core.models.plan import Plan, PlanCollaborator, PlanNode

__all__ = [
    "DecisionRequest",
    "DecisionStatus",
    "DecisionUrgency",
    "KnowledgeEntry",
    "KnowledgeStore",
    "Plan",
    "PlanCollaborator",
    "PlanNode",
]
