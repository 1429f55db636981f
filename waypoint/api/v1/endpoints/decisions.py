"""Decision request API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from waypoint.api.dependencies import get_current_principal, get_decision_broker
from waypoint.core.models.decision import DecisionStatus, DecisionUrgency
from waypoint.core.schemas.decision import (
    DecisionCancel,
    DecisionRequestCreate,
    DecisionRequestList,
    DecisionRequestResponse,
    DecisionRequestUpdate,
    DecisionResolve,
    PaginationMeta,
    PendingCountResponse,
)
from waypoint.core.schemas.principal import Principal
from waypoint.core.services.decision_broker import DecisionBroker

router = APIRouter()


@router.get("/{plan_id}/decisions", response_model=DecisionRequestList)
async def list_decision_requests(
    plan_id: UUID,
    status_filter: DecisionStatus | None = Query(None, alias="status"),
    urgency: DecisionUrgency | None = Query(None),
    node_id: UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> DecisionRequestList:
    """List a plan's decision requests, newest first."""
    records, total = await broker.list_requests(
        plan_id,
        principal,
        status=status_filter,
        urgency=urgency.value if urgency else None,
        node_id=node_id,
        limit=limit,
        offset=offset,
    )
    return DecisionRequestList(
        data=[DecisionRequestResponse.model_validate(r) for r in records],
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(records) < total,
        ),
    )


# Declared before /{decision_id} so "pending-count" is not parsed as an id
@router.get("/{plan_id}/decisions/pending-count", response_model=PendingCountResponse)
async def get_pending_count(
    plan_id: UUID,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> PendingCountResponse:
    """Number of pending decision requests in a plan."""
    count = await broker.get_pending_count(plan_id, principal)
    return PendingCountResponse(pending_count=count)


@router.get("/{plan_id}/decisions/{decision_id}", response_model=DecisionRequestResponse)
async def get_decision_request(
    plan_id: UUID,
    decision_id: UUID,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> DecisionRequestResponse:
    """Get a decision request by ID."""
    decision = await broker.get(decision_id, plan_id, principal)
    return DecisionRequestResponse.model_validate(decision)


@router.post(
    "/{plan_id}/decisions",
    response_model=DecisionRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_decision_request(
    plan_id: UUID,
    data: DecisionRequestCreate,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> DecisionRequestResponse:
    """Raise a new decision request."""
    decision = await broker.create(plan_id, principal, data)
    return DecisionRequestResponse.model_validate(decision)


@router.put("/{plan_id}/decisions/{decision_id}", response_model=DecisionRequestResponse)
async def update_decision_request(
    plan_id: UUID,
    decision_id: UUID,
    patch: DecisionRequestUpdate,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> DecisionRequestResponse:
    """Edit a pending decision request."""
    decision = await broker.update(decision_id, plan_id, principal, patch)
    return DecisionRequestResponse.model_validate(decision)


@router.post(
    "/{plan_id}/decisions/{decision_id}/resolve",
    response_model=DecisionRequestResponse,
)
async def resolve_decision_request(
    plan_id: UUID,
    decision_id: UUID,
    body: DecisionResolve,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> DecisionRequestResponse:
    """Record the decision for a pending request."""
    decision = await broker.resolve(
        decision_id, plan_id, principal, body.decision, body.rationale
    )
    return DecisionRequestResponse.model_validate(decision)


@router.post(
    "/{plan_id}/decisions/{decision_id}/cancel",
    response_model=DecisionRequestResponse,
)
async def cancel_decision_request(
    plan_id: UUID,
    decision_id: UUID,
    body: DecisionCancel | None = None,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> DecisionRequestResponse:
    """Cancel a pending request."""
    reason = body.reason if body else None
    decision = await broker.cancel(decision_id, plan_id, principal, reason)
    return DecisionRequestResponse.model_validate(decision)


@router.delete(
    "/{plan_id}/decisions/{decision_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_decision_request(
    plan_id: UUID,
    decision_id: UUID,
    principal: Principal = Depends(get_current_principal),
    broker: DecisionBroker = Depends(get_decision_broker),
) -> Response:
    """Delete a decision request. Plan owners only."""
    await broker.delete(decision_id, plan_id, principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
