from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action (Forbidden)."""


class PolicyViolationError(AuthorizationError):
    """Raised when an actor carries a role the access model does not know."""


class NotEligibleError(DomainError):
    """The actor may attempt the action but fails a data-specific predicate."""


class WrongOfficeError(NotEligibleError):
    """The actor's office does not match the record's office."""


class InvalidStateError(DomainError):
    """Actor or target lacks configuration required to evaluate the rule."""


class ConfigurationError(InvalidStateError):
    """An actor is missing the office assignment its role requires."""


class OutOfRangeError(DomainError):
    """Reported position is outside the office geofence."""

    def __init__(self, distance_m: float, radius_m: float):
        self.distance_m = float(distance_m)
        self.radius_m = float(radius_m)
        super().__init__(
            f"You must be within {radius_m:g} meters of your office to mark attendance. "
            f"Current distance: {round(distance_m)} meters"
        )


class AlreadyMarkedError(DomainError):
    """Attendance for this user and day already exists."""


class AlreadyClaimedError(DomainError):
    """This recipient already claimed this distribution."""


class CapacityExhaustedError(DomainError):
    """No goodies remain for this distribution."""


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist."""


class DuplicateDistributionError(DomainError):
    """Same office, date and goods type already has a distribution."""


class HasDependentsError(DomainError):
    """Deletion refused because other records still reference the target."""


class ConflictError(DomainError):
    """A unique attribute (email, phone, employee id) is already taken."""
