"""API request/response schemas."""

from waypoint.core.schemas.decision import (
    DecisionCancel,
    DecisionOption,
    DecisionRequestCreate,
    DecisionRequestList,
    DecisionRequestResponse,
    DecisionRequestUpdate,
    DecisionResolve,
    PaginationMeta,
    PendingCountResponse,
)
from waypoint.core.schemas.principal import Principal

__all__ = [
    "DecisionCancel",
    "DecisionOption",
    "DecisionRequestCreate",
    "DecisionRequestList",
    "DecisionRequestResponse",
    "DecisionRequestUpdate",
    "DecisionResolve",
    "PaginationMeta",
    "PendingCountResponse",
    "Principal",
]
