"""Waypoint exception hierarchy.

Every error carries the HTTP status it maps to. The API layer translates
them in a single exception handler; services only raise.
"""


class WaypointError(Exception):
    """Base error. Unclassified failures surface as 500."""

    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        self.message = message
        super().__init__(message)


class AccessDeniedError(WaypointError):
    """Principal lacks read, write or owner capability on the plan."""

    status_code = 403


class NotFoundError(WaypointError):
    status_code = 404


class DecisionNotFoundError(NotFoundError):
    def __init__(self, message: str = "Decision request not found") -> None:
        super().__init__(message)


class InvalidInputError(WaypointError):
    """Missing or empty required field."""

    status_code = 400


class NodeNotFoundError(InvalidInputError):
    """Referenced node does not belong to the plan."""

    def __init__(self, message: str = "Node not found in this plan") -> None:
        super().__init__(message)


class InvalidStateError(WaypointError):
    """Decision is already terminal at pre-check time."""

    status_code = 400


class DecisionAlreadyResolvedError(InvalidStateError):
    def __init__(self, message: str = "Decision request has already been resolved") -> None:
        super().__init__(message)


class DecisionExpiredError(WaypointError):
    status_code = 400

    def __init__(self, message: str = "Decision request has expired") -> None:
        super().__init__(message)


class ResolutionConflictError(WaypointError):
    """The atomic transition lost a race to a concurrent resolver or canceller."""

    status_code = 409
