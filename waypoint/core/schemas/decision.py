"""Decision request schemas for API request/response models."""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from waypoint.core.models.decision import DecisionStatus, DecisionUrgency

MAX_METADATA_BYTES = 10240


def _as_utc(value: datetime | None) -> datetime | None:
    """Normalise to an aware UTC datetime. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_metadata_size(value: dict[str, Any] | None) -> dict[str, Any] | None:
    if value is not None and len(json.dumps(value, default=str)) > MAX_METADATA_BYTES:
        raise ValueError("Metadata must be less than 10KB")
    return value


class DecisionOption(BaseModel):
    """An option offered to the human decider."""

    model_config = ConfigDict(extra="forbid")

    option: str = Field(..., min_length=1, max_length=500, description="The option being proposed")
    pros: list[str] | None = Field(None, description="Advantages of this option")
    cons: list[str] | None = Field(None, description="Disadvantages of this option")
    recommendation: bool | None = Field(None, description="Whether this is the recommended option")


class DecisionRequestCreate(BaseModel):
    """Schema for raising a new decision request."""

    model_config = ConfigDict(extra="forbid")

    node_id: UUID | None = Field(None, description="Node this decision relates to")
    title: str = Field(..., min_length=1, max_length=200, description="Brief title for the decision")
    context: str | None = Field(None, max_length=5000, description="What needs to be decided and why")
    options: list[DecisionOption] = Field(default_factory=list, max_length=10)
    urgency: DecisionUrgency = DecisionUrgency.CAN_CONTINUE
    expires_at: datetime | None = Field(None, description="Resolution is refused after this instant")
    requested_by_agent_name: str | None = Field(None, max_length=100)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("expires_at")
    @classmethod
    def normalise_expiry(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("metadata")
    @classmethod
    def limit_metadata_size(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _check_metadata_size(value)


class DecisionRequestUpdate(BaseModel):
    """Partial edit of a pending decision request."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=200)
    context: str | None = Field(None, max_length=5000)
    options: list[DecisionOption] | None = Field(None, max_length=10)
    urgency: DecisionUrgency | None = None
    expires_at: datetime | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("expires_at")
    @classmethod
    def normalise_expiry(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @field_validator("title", "options", "urgency", "metadata")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        # Only expires_at and context may be cleared explicitly
        if value is None:
            raise ValueError("field cannot be null")
        return value

    @field_validator("metadata")
    @classmethod
    def limit_metadata_size(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        return _check_metadata_size(value)


class DecisionResolve(BaseModel):
    """Schema for resolving a decision request."""

    model_config = ConfigDict(extra="forbid")

    decision: str = Field(..., min_length=1, max_length=2000, description="The decision made")
    rationale: str | None = Field(None, max_length=5000, description="Explanation for the decision")


class DecisionCancel(BaseModel):
    """Schema for cancelling a decision request."""

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(None, max_length=500, description="Reason for cancellation")


class DecisionRequestResponse(BaseModel):
    """Schema for decision request responses."""

    id: UUID
    plan_id: UUID
    node_id: UUID | None = None
    requested_by_user_id: UUID
    requested_by_agent_name: str | None = None
    title: str
    context: str | None = None
    options: list[DecisionOption] = Field(default_factory=list)
    urgency: DecisionUrgency
    status: DecisionStatus
    expires_at: datetime | None = None
    decided_by_user_id: UUID | None = None
    decision: str | None = None
    rationale: str | None = None
    decided_at: datetime | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata")
    )
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("expires_at", "decided_at", "created_at", "updated_at")
    @classmethod
    def normalise_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class DecisionRequestList(BaseModel):
    """Schema for a paginated decision request list."""

    data: list[DecisionRequestResponse]
    pagination: PaginationMeta


class PendingCountResponse(BaseModel):
    pending_count: int
