"""
A layered request pipeline: route resolution, ordered middleware context
building, controller pipelines around use cases, and a closed error taxonomy
mapped to safe transport responses.
"""

from http import HTTPStatus

from .config import HandlerConfig
from .controller import AccessGuardResult, Controller, PipelineContext, PipelineState, allow_all
from .error_mapping import (
    ErrorKind,
    classify_error,
    create_error_response_body,
    get_http_status_code,
    map_error_to_response,
    should_mask_error,
)
from .error_models import MASKED_ERROR_BODY, ErrorItem, ErrorResponseBody, MappedErrorResponse
from .exceptions import (
    AccessDeniedError,
    CodedError,
    ConflictError,
    ControllerError,
    DbError,
    DomainError,
    ErrorCodes,
    ExternalServiceError,
    InfraError,
    InfraTimeoutError,
    InvalidRequestError,
    InvalidResponseError,
    InvariantViolationError,
    NetworkError,
    NotFoundError,
    ObjectValidationError,
    PartialLoadError,
    RouteNotFoundError,
    UnprocessableError,
    UseCaseError,
    ValidationItem,
)
from .handler import ProxyHandler
from .middleware import Middleware, MiddlewareChain, MiddlewareOrderError, define_middleware, run_middleware_chain
from .models import HTTPMethod, MultiValueHeaders, Request, Response
from .outbound import OutboundAdapter
from .router import (
    ResolvedRoute,
    RouteDefinition,
    RouteInput,
    RouteMetadata,
    RoutePatternError,
    Router,
    compile_route_pattern,
)
from .use_case import UseCase
from .validation import SKIP_VALIDATION, PydanticObjectValidator, SchemaBoundValidator

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "HTTPStatus",
    "HTTPMethod",
    "MultiValueHeaders",
    "Request",
    "Response",
    # Routing
    "Router",
    "RouteMetadata",
    "RouteInput",
    "RouteDefinition",
    "ResolvedRoute",
    "RoutePatternError",
    "compile_route_pattern",
    # Middleware
    "Middleware",
    "MiddlewareChain",
    "MiddlewareOrderError",
    "define_middleware",
    "run_middleware_chain",
    # Controllers
    "Controller",
    "AccessGuardResult",
    "PipelineContext",
    "PipelineState",
    "allow_all",
    "UseCase",
    "OutboundAdapter",
    # Validation
    "SKIP_VALIDATION",
    "PydanticObjectValidator",
    "SchemaBoundValidator",
    # Errors
    "ErrorCodes",
    "ValidationItem",
    "CodedError",
    "ObjectValidationError",
    "DomainError",
    "InvariantViolationError",
    "PartialLoadError",
    "UseCaseError",
    "NotFoundError",
    "ConflictError",
    "UnprocessableError",
    "InfraError",
    "DbError",
    "NetworkError",
    "InfraTimeoutError",
    "ExternalServiceError",
    "ControllerError",
    "AccessDeniedError",
    "InvalidRequestError",
    "InvalidResponseError",
    "RouteNotFoundError",
    # Error mapping
    "ErrorKind",
    "ErrorItem",
    "ErrorResponseBody",
    "MappedErrorResponse",
    "MASKED_ERROR_BODY",
    "classify_error",
    "create_error_response_body",
    "get_http_status_code",
    "map_error_to_response",
    "should_mask_error",
    # Entry point
    "HandlerConfig",
    "ProxyHandler",
]
