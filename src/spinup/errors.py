"""Error handling module for spinup.

This module defines error codes, exception classes, and response models.
The provisioning core never terminates the process: every failure surfaces
as one of the exceptions below and is returned to the caller.

Error Response Format:
{
    "error": {
        "code": "ALLOCATION_EXHAUSTED",
        "message": "No free port in range 15000-15010"
    }
}

Usage:
    from spinup.errors import ValidationError, ProvisioningError

    # Raise with default message
    raise AllocationExhaustedError()

    # Raise with custom message
    raise ValidationError("db type postgresql is currently not supported")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    FORBIDDEN = "FORBIDDEN"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    ALLOCATION_EXHAUSTED = "ALLOCATION_EXHAUSTED"
    PORT_PROBE_FAILED = "PORT_PROBE_FAILED"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"


class RollbackStatus(str, Enum):
    """Outcome of the compensation pass after a failed provisioning call."""

    # Every compensation succeeded (or there was nothing to undo)
    CLEAN = "clean"
    # Some compensations failed, some succeeded
    PARTIAL = "partial"
    # Every compensation failed
    FAILED = "failed"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class SpinupError(Exception):
    """Base exception for spinup.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code for the serving layer
        retryable: Whether the caller may retry the same request
    """

    retryable: bool = False

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(error=ErrorDetail(code=self.code.value, message=self.message))


class ValidationError(SpinupError):
    """400 Bad Request - Request rejected before any resource was touched."""

    def __init__(
        self,
        message: str = "Invalid request",
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        status_code: int = 400,
    ) -> None:
        super().__init__(code, message, status_code)


class OwnershipError(ValidationError):
    """403 Forbidden - Request owner does not match the authenticated user."""

    def __init__(self, message: str = "userid doesn't match") -> None:
        super().__init__(message, ErrorCode.FORBIDDEN, 403)


class InstanceNotFoundError(ValidationError):
    """404 Not Found - No cluster record for the instance."""

    def __init__(self, message: str = "Instance not found") -> None:
        super().__init__(message, ErrorCode.INSTANCE_NOT_FOUND, 404)


class AllocationExhaustedError(SpinupError):
    """503 Service Unavailable - Every port in the configured range is taken."""

    def __init__(self, message: str = "error all allocated ports are occupied") -> None:
        super().__init__(ErrorCode.ALLOCATION_EXHAUSTED, message, 503)


class PortProbeError(SpinupError):
    """500 Internal Server Error - Port probe hit a genuine network fault."""

    def __init__(self, port: int, message: str) -> None:
        self.port = port
        super().__init__(ErrorCode.PORT_PROBE_FAILED, message, 500)


class CompensationFailure(BaseModel):
    """A compensation that raised while undoing a provisioning step."""

    action: str
    error_type: str
    error: str


class ProvisioningError(SpinupError):
    """500 Internal Server Error - Runtime resource creation failed.

    The original failure is chained as ``__cause__``. ``rollback`` tells
    operators whether the compensation pass left the host clean or leaked
    resources that need manual cleanup.
    """

    def __init__(
        self,
        step: str,
        message: str,
        rollback: RollbackStatus = RollbackStatus.CLEAN,
        compensation_errors: list[CompensationFailure] | None = None,
    ) -> None:
        self.step = step
        self.rollback = rollback
        self.compensation_errors = compensation_errors or []
        super().__init__(ErrorCode.PROVISIONING_FAILED, message, 500)

    @property
    def rolled_back(self) -> bool:
        """True when every created resource was removed again."""
        return self.rollback == RollbackStatus.CLEAN


class PersistenceError(SpinupError):
    """503 Service Unavailable - Metadata transaction failed and was rolled back.

    ``rollback`` is set when runtime resources had to be torn down because
    the instance could not be recorded.
    """

    retryable = True

    def __init__(
        self,
        operation: str,
        message: str,
        rollback: RollbackStatus | None = None,
    ) -> None:
        self.operation = operation
        self.rollback = rollback
        super().__init__(ErrorCode.PERSISTENCE_FAILED, message, 503)


class OperationTimeoutError(SpinupError):
    """504 Gateway Timeout - A bounded external call exceeded its deadline."""

    retryable = True

    def __init__(self, operation: str, timeout_s: float) -> None:
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(
            ErrorCode.OPERATION_TIMEOUT,
            f"{operation} timed out after {timeout_s:g}s",
            504,
        )
