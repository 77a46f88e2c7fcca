from __future__ import annotations

from enum import Enum


class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ReviewValidationError(ServiceError):
    """Raised when a request is well-formed but cannot be applied."""


class DenyReason(str, Enum):
    NOT_FOUND = "not_found"
    MISSING_CREDENTIAL = "missing_credential"
    FORBIDDEN = "forbidden"


class OwnershipDeniedError(ServiceError):
    """Raised when the ownership check refuses a mutation."""

    reason: DenyReason
    default_message = "Not allowed to modify this review"

    def __init__(self, review_id: int, message: str | None = None):
        super().__init__(message or self.default_message)
        self.review_id = review_id


class ReviewNotFoundError(OwnershipDeniedError):
    reason = DenyReason.NOT_FOUND
    default_message = "Review not found"


class MissingCredentialError(OwnershipDeniedError):
    reason = DenyReason.MISSING_CREDENTIAL
    default_message = "Ownership token required"


class ForbiddenError(OwnershipDeniedError):
    reason = DenyReason.FORBIDDEN
    default_message = "Ownership token does not match"


class StoreUnavailableError(ServiceError):
    """Raised when the backing store cannot be reached or fails."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class StoreConflictError(ServiceError):
    """Raised when an insert violates a store uniqueness constraint."""


DENIAL_ERRORS = {
    DenyReason.NOT_FOUND: ReviewNotFoundError,
    DenyReason.MISSING_CREDENTIAL: MissingCredentialError,
    DenyReason.FORBIDDEN: ForbiddenError,
}
