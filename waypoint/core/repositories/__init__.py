"""Data access layer."""

from waypoint.core.repositories.decision import (
    DecisionRepository,
    TransitionKind,
    TransitionOutcome,
)
from waypoint.core.repositories.knowledge import KnowledgeRepository
from waypoint.core.repositories.plan import PlanRepository

__all__ = [
    "DecisionRepository",
    "KnowledgeRepository",
    "PlanRepository",
    "TransitionKind",
    "TransitionOutcome",
]
