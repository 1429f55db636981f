"""Plan-scoped access checks.

One place answers "may this user read / edit / own decisions in this
plan". The broker receives an ``AccessGuard`` instead of repeating the
owner and collaborator lookups in every operation.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from waypoint.core.repositories.plan import PlanRepository
from waypoint.utils.exceptions import AccessDeniedError

logger = logging.getLogger(__name__)

WRITE_ROLES = frozenset({"editor", "admin"})

NO_ACCESS_MESSAGE = "You do not have access to this plan"
NO_EDIT_ACCESS_MESSAGE = "You do not have edit access to this plan"
OWNER_ONLY_MESSAGE = "Only plan owners can delete decision requests"


@dataclass(frozen=True)
class AccessResult:
    has_access: bool
    is_owner: bool


NO_ACCESS = AccessResult(has_access=False, is_owner=False)


class AccessGuard:
    """Resolves a user's capability on a plan."""

    def __init__(self, plan_repo: PlanRepository) -> None:
        self._plans = plan_repo

    async def check_access(
        self, plan_id: UUID, user_id: UUID, require_write: bool = False
    ) -> AccessResult:
        """Owner has every right; collaborators read, editors and admins also write."""
        owner_id = await self._plans.get_owner_id(plan_id)
        if owner_id is None:
            return NO_ACCESS

        if owner_id == user_id:
            return AccessResult(has_access=True, is_owner=True)

        role = await self._plans.get_collaborator_role(plan_id, user_id)
        if role is None:
            return NO_ACCESS

        if require_write and role not in WRITE_ROLES:
            return NO_ACCESS

        return AccessResult(has_access=True, is_owner=False)

    async def require_read(self, plan_id: UUID, user_id: UUID) -> AccessResult:
        result = await self.check_access(plan_id, user_id)
        if not result.has_access:
            self._deny(NO_ACCESS_MESSAGE, plan_id, user_id)
        return result

    async def require_write(self, plan_id: UUID, user_id: UUID) -> AccessResult:
        result = await self.check_access(plan_id, user_id, require_write=True)
        if not result.has_access:
            self._deny(NO_EDIT_ACCESS_MESSAGE, plan_id, user_id)
        return result

    async def require_owner(self, plan_id: UUID, user_id: UUID) -> AccessResult:
        result = await self.check_access(plan_id, user_id)
        if not result.is_owner:
            self._deny(OWNER_ONLY_MESSAGE, plan_id, user_id)
        return result

    @staticmethod
    def _deny(message: str, plan_id: UUID, user_id: UUID) -> None:
        logger.info("Access denied: %s", message, extra={"plan_id": plan_id, "user_id": user_id})
        raise AccessDeniedError(message)
