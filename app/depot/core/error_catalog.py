from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    UNAUTHENTICATED_CALLER = ErrorDefinition(
        "UNAUTHENTICATED_CALLER",
        "Authenticated actor is required",
        status.HTTP_401_UNAUTHORIZED,
    )
    NOT_FOUND = ErrorDefinition("NOT_FOUND", "Resource not found", status.HTTP_404_NOT_FOUND)
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    EMPTY_TRANSFER = ErrorDefinition(
        "EMPTY_TRANSFER",
        "Transfer has no items",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INVALID_TRANSITION = ErrorDefinition(
        "INVALID_TRANSITION",
        "Action not allowed in current status",
        status.HTTP_409_CONFLICT,
    )
    QUANTITY_CONSERVATION_VIOLATION = ErrorDefinition(
        "QUANTITY_CONSERVATION_VIOLATION",
        "Quantity conservation violated",
        status.HTTP_409_CONFLICT,
    )
    CONCURRENT_MODIFICATION = ErrorDefinition(
        "CONCURRENT_MODIFICATION",
        "Record was modified concurrently",
        status.HTTP_409_CONFLICT,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)


class DomainError(AppError):
    """Base for transfer workflow failures.

    Subclasses pick their catalog entry; ``details`` always carries a
    human readable ``message`` plus whatever context identifies the cause.
    """

    definition: ErrorDefinition = ErrorCatalog.VALIDATION_ERROR

    def __init__(self, message: str, **details):
        self.message = message
        super().__init__(self.definition, details={"message": message, **details})

    def __str__(self) -> str:
        return self.message


class ValidationError(DomainError):
    definition = ErrorCatalog.VALIDATION_ERROR


class EmptyTransfer(ValidationError):
    definition = ErrorCatalog.EMPTY_TRANSFER


class InvalidTransition(DomainError):
    definition = ErrorCatalog.INVALID_TRANSITION


class QuantityConservationViolation(InvalidTransition):
    definition = ErrorCatalog.QUANTITY_CONSERVATION_VIOLATION

    def __init__(self, message: str, *, inequality: str, **details):
        self.inequality = inequality
        super().__init__(message, inequality=inequality, **details)


class ConcurrentModification(DomainError):
    definition = ErrorCatalog.CONCURRENT_MODIFICATION


class UnauthenticatedCaller(DomainError):
    definition = ErrorCatalog.UNAUTHENTICATED_CALLER


class NotFound(DomainError):
    definition = ErrorCatalog.NOT_FOUND
