"""
Mapping of raised errors to transport-safe error responses.

This is the single source of truth for turning any exception into a status
code and an ErrorResponseBody. Errors are first classified into an ErrorKind,
then the kind is looked up in a table. Kinds marked as masked always render
the fixed MASKED_ERROR_BODY, so internal messages and causes never reach the
caller.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Dict, List, Tuple, Type

from .error_models import MASKED_ERROR_BODY, ErrorItem, ErrorResponseBody, MappedErrorResponse
from .exceptions import (
    AccessDeniedError,
    CodedError,
    ConflictError,
    ControllerError,
    DomainError,
    InfraError,
    InvalidRequestError,
    InvalidResponseError,
    NotFoundError,
    ObjectValidationError,
    RouteNotFoundError,
    UnprocessableError,
    UseCaseError,
    ValidationItem,
)

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Closed set of failure kinds the mapper knows how to render."""

    OBJECT_VALIDATION = "object_validation"
    REQUEST_VALIDATION = "request_validation"
    ACCESS_DENIED = "access_denied"
    ROUTE_NOT_FOUND = "route_not_found"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNPROCESSABLE = "unprocessable"
    BUSINESS = "business"
    DOMAIN = "domain"
    INFRASTRUCTURE = "infrastructure"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class KindPolicy:
    """How a kind is rendered."""

    status_code: int
    masked: bool
    itemized: bool = False


ERROR_POLICIES: Dict[ErrorKind, KindPolicy] = {
    ErrorKind.OBJECT_VALIDATION: KindPolicy(HTTPStatus.BAD_REQUEST, masked=False, itemized=True),
    ErrorKind.REQUEST_VALIDATION: KindPolicy(HTTPStatus.BAD_REQUEST, masked=False, itemized=True),
    ErrorKind.ACCESS_DENIED: KindPolicy(HTTPStatus.FORBIDDEN, masked=False),
    ErrorKind.ROUTE_NOT_FOUND: KindPolicy(HTTPStatus.NOT_FOUND, masked=False),
    ErrorKind.NOT_FOUND: KindPolicy(HTTPStatus.NOT_FOUND, masked=False),
    ErrorKind.CONFLICT: KindPolicy(HTTPStatus.CONFLICT, masked=False),
    ErrorKind.UNPROCESSABLE: KindPolicy(HTTPStatus.UNPROCESSABLE_ENTITY, masked=False),
    ErrorKind.BUSINESS: KindPolicy(HTTPStatus.BAD_REQUEST, masked=False),
    ErrorKind.DOMAIN: KindPolicy(HTTPStatus.INTERNAL_SERVER_ERROR, masked=True),
    ErrorKind.INFRASTRUCTURE: KindPolicy(HTTPStatus.INTERNAL_SERVER_ERROR, masked=True),
    ErrorKind.UNEXPECTED: KindPolicy(HTTPStatus.INTERNAL_SERVER_ERROR, masked=True),
}

_missing_kinds = set(ErrorKind) - set(ERROR_POLICIES)
if _missing_kinds:
    raise RuntimeError(f"No error policy for kinds: {sorted(k.name for k in _missing_kinds)}")

# Checked in order, most specific classes first.
_CLASSIFICATION: List[Tuple[Type[BaseException], ErrorKind]] = [
    (ObjectValidationError, ErrorKind.OBJECT_VALIDATION),
    (InvalidRequestError, ErrorKind.REQUEST_VALIDATION),
    (InvalidResponseError, ErrorKind.REQUEST_VALIDATION),
    (AccessDeniedError, ErrorKind.ACCESS_DENIED),
    (RouteNotFoundError, ErrorKind.ROUTE_NOT_FOUND),
    (NotFoundError, ErrorKind.NOT_FOUND),
    (ConflictError, ErrorKind.CONFLICT),
    (UnprocessableError, ErrorKind.UNPROCESSABLE),
    (UseCaseError, ErrorKind.BUSINESS),
    (DomainError, ErrorKind.DOMAIN),
    (InfraError, ErrorKind.INFRASTRUCTURE),
    (ControllerError, ErrorKind.UNEXPECTED),
]


def classify_error(error: BaseException) -> ErrorKind:
    """Return the kind of ``error``.

    Anything outside the known hierarchy is UNEXPECTED, including CodedError
    subclasses the taxonomy does not name, so their details are masked.
    """
    for error_type, kind in _CLASSIFICATION:
        if isinstance(error, error_type):
            return kind
    return ErrorKind.UNEXPECTED


def get_http_status_code(error: BaseException) -> int:
    """Map an error to its HTTP status code."""
    return int(ERROR_POLICIES[classify_error(error)].status_code)


def should_mask_error(error: BaseException) -> bool:
    """Check whether the error's details must be hidden from the caller."""
    return ERROR_POLICIES[classify_error(error)].masked


def _build_items(items: List[ValidationItem], fallback: str, message: str) -> List[ErrorItem]:
    built = [ErrorItem(item=i.field, message=i.message) for i in items]
    if not built:
        built = [ErrorItem(item=fallback, message=message)]
    return built


def create_error_response_body(error: BaseException) -> ErrorResponseBody:
    """Create the response body for an error."""
    policy = ERROR_POLICIES[classify_error(error)]
    if policy.masked or not isinstance(error, CodedError):
        return MASKED_ERROR_BODY

    if policy.itemized:
        items = getattr(error, "validation_errors", [])
        stage = getattr(error, "stage", "request")
        return ErrorResponseBody(
            message=error.message,
            errorCode=error.code,
            errorItems=_build_items(items, stage, error.message),
        )

    return ErrorResponseBody(message=error.message, errorCode=error.code)


def map_error_to_response(error: BaseException) -> MappedErrorResponse:
    """Map an error to a complete transport response.

    Mapping strategy:

    - ObjectValidationError → 400 (with field errors)
    - InvalidRequestError / InvalidResponseError → 400 (with field errors)
    - AccessDeniedError → 403
    - RouteNotFoundError → 404 (ROUTE_NOT_FOUND)
    - NotFoundError → 404
    - ConflictError → 409
    - UnprocessableError → 422
    - Other UseCaseError → 400
    - DomainError, InfraError, ControllerError, unknown (including other
      CodedErrors) → 500 (masked)
    """
    kind = classify_error(error)
    logger.debug(f"Mapped {type(error).__name__} to {kind.name}")
    return MappedErrorResponse(
        status_code=int(ERROR_POLICIES[kind].status_code),
        body=create_error_response_body(error),
    )
