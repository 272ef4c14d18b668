"""
Error taxonomy for the request pipeline.

Every failure the framework knows how to render derives from CodedError.
The classes are grouped by the layer that raises them:

- Global: ObjectValidationError (schema validation failures)
- Domain: DomainError and its subclasses (always masked at the boundary)
- App: UseCaseError and the business failures derived from it
- Infra: InfraError and its subclasses (always masked at the boundary)
- Presentation: ControllerError, AccessDeniedError, InvalidRequestError,
  InvalidResponseError, RouteNotFoundError
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional


class ErrorCodes:
    """Registry of every error code, grouped by the layer that raises it."""

    class Domain:
        DOMAIN_ERROR = "DOMAIN_ERROR"
        INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
        PARTIAL_LOAD = "PARTIAL_LOAD"

    class App:
        USE_CASE_ERROR = "USE_CASE_ERROR"
        NOT_FOUND = "NOT_FOUND"
        CONFLICT = "CONFLICT"
        UNPROCESSABLE = "UNPROCESSABLE"

    class Infra:
        INFRA_ERROR = "INFRA_ERROR"
        DB_ERROR = "DB_ERROR"
        NETWORK_ERROR = "NETWORK_ERROR"
        TIMEOUT_ERROR = "TIMEOUT_ERROR"
        EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    class Presentation:
        CONTROLLER_ERROR = "CONTROLLER_ERROR"
        ACCESS_DENIED = "ACCESS_DENIED"
        INVALID_REQUEST = "INVALID_REQUEST"
        INVALID_RESPONSE = "INVALID_RESPONSE"
        ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"

    class Global:
        OBJECT_VALIDATION_ERROR = "OBJECT_VALIDATION_ERROR"
        INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ValidationItem:
    """A single field-level validation failure."""

    field: str
    message: str


class CodedError(Exception):
    """Base exception carrying a machine-readable code and a human message.

    The optional cause is kept for server-side diagnostics only. It is also
    chained as ``__cause__`` so tracebacks show the original failure.
    """

    default_message = "An error occurred"
    default_code = "ERROR"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, cause: Optional[BaseException] = None):
        self.message = message if message is not None else self.default_message
        self.code = code if code is not None else self.default_code
        self.cause = cause
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self):
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"


def _coerce_items(items: Optional[Iterable[Any]]) -> List[ValidationItem]:
    """Accept ValidationItem instances or ``{"field", "message"}`` mappings."""
    result = []
    for item in items or ():
        if isinstance(item, ValidationItem):
            result.append(item)
        elif isinstance(item, dict):
            result.append(ValidationItem(field=str(item.get("field", "")), message=str(item.get("message", ""))))
        else:
            raise TypeError(f"Unsupported validation item: {item!r}")
    return result


class _ItemizedError(CodedError):
    """Shared behaviour for the validation kinds.

    A validation failure never leaves without at least one item: when the
    validator supplied none, a synthetic item naming ``stage`` is added.
    """

    default_stage = "request"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
        validation_errors: Optional[Iterable[Any]] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message, code, cause)
        self.stage = stage or self.default_stage
        self.validation_errors = _coerce_items(validation_errors)
        if not self.validation_errors:
            self.validation_errors = [ValidationItem(field=self.stage, message=self.message)]


class ObjectValidationError(_ItemizedError):
    """Raised by an object validator when a value does not fit its schema."""

    default_message = "Validation failed"
    default_code = ErrorCodes.Global.OBJECT_VALIDATION_ERROR
    default_stage = "object"


# Domain layer


class DomainError(CodedError):
    """Base class for domain rule failures. Masked at the boundary."""

    default_message = "Domain error"
    default_code = ErrorCodes.Domain.DOMAIN_ERROR


class InvariantViolationError(DomainError):
    default_message = "Invariant violated"
    default_code = ErrorCodes.Domain.INVARIANT_VIOLATION


class PartialLoadError(DomainError):
    """An aggregate was loaded without relations it needs."""

    default_message = "Aggregate partially loaded"
    default_code = ErrorCodes.Domain.PARTIAL_LOAD


# Application layer


class UseCaseError(CodedError):
    """Expected, caller-actionable failure from a use case (400)."""

    default_message = "Use case error"
    default_code = ErrorCodes.App.USE_CASE_ERROR


class NotFoundError(UseCaseError):
    default_message = "Resource not found"
    default_code = ErrorCodes.App.NOT_FOUND


class ConflictError(UseCaseError):
    default_message = "Resource conflict"
    default_code = ErrorCodes.App.CONFLICT


class UnprocessableError(UseCaseError):
    default_message = "Request cannot be processed"
    default_code = ErrorCodes.App.UNPROCESSABLE


# Infrastructure layer


class InfraError(CodedError):
    """Base class for data access and I/O failures. Masked at the boundary."""

    default_message = "Infrastructure error"
    default_code = ErrorCodes.Infra.INFRA_ERROR


class DbError(InfraError):
    default_message = "Database error"
    default_code = ErrorCodes.Infra.DB_ERROR


class NetworkError(InfraError):
    default_message = "Network error"
    default_code = ErrorCodes.Infra.NETWORK_ERROR


class InfraTimeoutError(InfraError):
    default_message = "Operation timed out"
    default_code = ErrorCodes.Infra.TIMEOUT_ERROR


class ExternalServiceError(InfraError):
    default_message = "External service error"
    default_code = ErrorCodes.Infra.EXTERNAL_SERVICE_ERROR


# Presentation layer


class ControllerError(CodedError):
    """Catch-all wrapper for anything unrecognised inside the pipeline."""

    default_message = "Pipeline execution failed"
    default_code = ErrorCodes.Presentation.CONTROLLER_ERROR


class AccessDeniedError(CodedError):
    default_message = "Access denied"
    default_code = ErrorCodes.Presentation.ACCESS_DENIED


class InvalidRequestError(_ItemizedError):
    """The request did not pass validation or mapping."""

    default_message = "Invalid request"
    default_code = ErrorCodes.Presentation.INVALID_REQUEST
    default_stage = "request"


class InvalidResponseError(_ItemizedError):
    """The use case output did not pass response validation."""

    default_message = "Invalid response"
    default_code = ErrorCodes.Presentation.INVALID_RESPONSE
    default_stage = "response"


class RouteNotFoundError(CodedError):
    """No registered route matches the request.

    Distinct from NotFoundError: this one is raised by the router before any
    handler runs.
    """

    default_message = "Route not found"
    default_code = ErrorCodes.Presentation.ROUTE_NOT_FOUND

    def __init__(self, method: str, path: str, message: Optional[str] = None):
        self.method = method
        self.path = path
        super().__init__(message or f"No route found for {method} {path}")
