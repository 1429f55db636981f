"""Authenticated caller identity."""

from uuid import UUID

from pydantic import BaseModel


class Principal(BaseModel):
    """The user on whose behalf a request runs.

    Agents act through the account that issued their token, so an agent
    request is still attributed to a user id.
    """

    id: UUID
    name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or str(self.id)
