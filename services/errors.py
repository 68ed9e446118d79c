"""
Billing Exceptions

Error taxonomy for user-invoked billing operations. Routers turn these into
the normalized error envelope; messages are safe to show to end users.
"""

from typing import Optional


class BillingError(Exception):
    """
    Base exception for all billing-related errors.
    """

    code = "internal"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class UnauthenticatedError(BillingError):
    """No verified caller identity."""

    code = "unauthenticated"
    status_code = 401


class InvalidArgumentError(BillingError):
    """Malformed or missing input."""

    code = "invalid-argument"
    status_code = 400


class NotFoundError(BillingError):
    """Referenced entity does not exist."""

    code = "not-found"
    status_code = 404


class FailedPreconditionError(BillingError):
    """
    The request is well-formed but current state forbids it.

    Examples:
        - Billing credentials missing for the active environment
        - Coupon already used
        - Trial or subscription already active
    """

    code = "failed-precondition"
    status_code = 412


class InternalError(BillingError):
    """Unexpected provider or store failure."""

    code = "internal"
    status_code = 500
