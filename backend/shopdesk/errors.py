# Overview: Error taxonomy shared by the shift and loyalty engines.

"""
Domain and store errors.

Domain errors are expected, recoverable conditions. They carry enough
structured detail for a device screen to render an actionable message
("wait 7 more minutes", "finish: Mop floor") and are never retried.

StoreError is the only class a caller may retry (with backoff). It is raised
after the whole unit of work has been rolled back.
"""

from __future__ import annotations


class ShopdeskError(Exception):
    """Base class for everything the engines raise on purpose."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class DomainError(ShopdeskError):
    """Business rule rejected the operation. Surface verbatim, do not retry."""


# =============================================================================
# AUTH
# =============================================================================

class AuthError(DomainError):
    code = "auth_error"
    http_status = 401


class InvalidCredentialError(AuthError):
    code = "invalid_credential"

    def __init__(self, message: str = "Invalid PIN", **details):
        super().__init__(message, **details)


class InactiveEmployeeError(AuthError):
    code = "inactive"
    http_status = 403

    def __init__(self, message: str = "This staff account has been deactivated", **details):
        super().__init__(message, **details)


class PinChangeRequiredError(AuthError):
    code = "pin_change_required"
    http_status = 403

    def __init__(self, reason: str):
        super().__init__("PIN must be changed before clocking in", reason=reason)


class PinLockedError(AuthError):
    code = "pin_locked"
    http_status = 429

    def __init__(self, retry_after_minutes: int):
        super().__init__(
            "PIN entry temporarily locked due to too many failed attempts",
            retry_after_minutes=retry_after_minutes,
        )


class RemoteClockInBlockedError(AuthError):
    code = "remote_not_approved"
    http_status = 403

    def __init__(self, distance_meters: float | None):
        if distance_meters is None:
            message = "Location could not be verified and remote clock-in is not approved"
        else:
            message = f"You are {round(distance_meters)}m from the shop and remote clock-in is not approved"
        super().__init__(message, distance_meters=distance_meters)


# =============================================================================
# INPUT / LOOKUP
# =============================================================================

class ValidationError(DomainError):
    """400-level input problem."""
    code = "validation_error"
    http_status = 400


class NotFoundError(DomainError):
    code = "not_found"
    http_status = 404


# =============================================================================
# SHIFT SESSIONS
# =============================================================================

class TasksIncompleteError(DomainError):
    code = "tasks_incomplete"
    http_status = 409

    def __init__(self, incomplete_tasks: list[str]):
        super().__init__(
            "Complete all assigned tasks before clocking out",
            incomplete_tasks=list(incomplete_tasks),
        )

    @property
    def incomplete_tasks(self) -> list[str]:
        return self.details["incomplete_tasks"]


# =============================================================================
# LOYALTY
# =============================================================================

class CooldownError(DomainError):
    code = "cooldown"
    http_status = 429

    def __init__(self, remaining_minutes: int):
        plural = "" if remaining_minutes == 1 else "s"
        super().__init__(
            f"Please wait {remaining_minutes} more minute{plural} before adding points again",
            remaining_minutes=remaining_minutes,
        )

    @property
    def remaining_minutes(self) -> int:
        return self.details["remaining_minutes"]


class NotEligibleError(DomainError):
    code = "not_eligible"
    http_status = 409

    def __init__(self, current_points: int, required_points: int):
        super().__init__(
            f"Customer has {current_points} of {required_points} points needed for a reward",
            current_points=current_points,
            required_points=required_points,
            points_short=max(required_points - current_points, 0),
        )

    @property
    def points_short(self) -> int:
        return self.details["points_short"]


# =============================================================================
# STORE
# =============================================================================

class StoreError(ShopdeskError):
    """Persistence failure. The unit of work was rolled back; caller may retry."""
    code = "store_error"
    http_status = 503

    def __init__(self, message: str = "Storage temporarily unavailable, please try again", **details):
        super().__init__(message, **details)


class ConcurrentUpdateError(StoreError):
    """Another device changed the same row first (optimistic or unique conflict)."""
    code = "concurrent_update"
    http_status = 409

    def __init__(self, message: str = "Another device updated this record, please try again", **details):
        super().__init__(message, **details)
