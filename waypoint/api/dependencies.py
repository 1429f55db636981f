"""API dependency injection."""

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from waypoint.core.database import get_db_session, get_session_factory
from waypoint.core.repositories import DecisionRepository, PlanRepository
from waypoint.core.schemas.principal import Principal
from waypoint.core.services.access import AccessGuard
from waypoint.core.services.decision_broker import DecisionBroker
from waypoint.core.services.event_bus import EventBus, event_bus
from waypoint.core.services.side_effects import SideEffectDispatcher
from waypoint.utils.config import get_settings

_dispatcher: SideEffectDispatcher | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    return event_bus


def get_side_effect_dispatcher() -> SideEffectDispatcher:
    """Get the process-wide side effect dispatcher, created on first use."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = SideEffectDispatcher(
            event_bus,
            get_session_factory(),
            max_concurrency=get_settings().side_effects.max_concurrency,
        )
    return _dispatcher


def reset_side_effect_dispatcher() -> SideEffectDispatcher | None:
    """Forget the current dispatcher and return it so the caller can drain it."""
    global _dispatcher
    dispatcher, _dispatcher = _dispatcher, None
    return dispatcher


async def get_current_principal(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> Principal:
    """Identify the caller.

    Authentication happens upstream (API key middleware or the gateway);
    by the time a request gets here it carries the resolved user id.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )
    return Principal(id=user_id, name=x_user_name, email=x_user_email)


# Repository dependencies
def get_decision_repository(
    session: AsyncSession = Depends(get_db_session),
) -> DecisionRepository:
    """Get decision repository."""
    return DecisionRepository(session)


def get_plan_repository(
    session: AsyncSession = Depends(get_db_session),
) -> PlanRepository:
    """Get plan repository."""
    return PlanRepository(session)


# Service dependencies
def get_access_guard(
    plan_repo: PlanRepository = Depends(get_plan_repository),
) -> AccessGuard:
    """Get access guard."""
    return AccessGuard(plan_repo)


def get_decision_broker(
    decision_repo: DecisionRepository = Depends(get_decision_repository),
    plan_repo: PlanRepository = Depends(get_plan_repository),
    access: AccessGuard = Depends(get_access_guard),
    dispatcher: SideEffectDispatcher = Depends(get_side_effect_dispatcher),
) -> DecisionBroker:
    """Get decision broker."""
    return DecisionBroker(decision_repo, plan_repo, access, dispatcher)
