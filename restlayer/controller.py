"""
Controller pipeline.

A controller runs one request through a fixed sequence of stages around a use
case. Each request gets its own small state machine (PipelineRun), following
the same pattern as a webmachine-style request state machine: every state is
a method that does its work and returns the next state method, or None when
the pipeline is complete.

States::

    RECEIVED → ACCESS_CHECKED → REQUEST_VALIDATED → USE_CASE_EXECUTED
             → RESPONSE_VALIDATED → MAPPED

``FAILED`` is terminal and reachable from every other state. Failures are
normalised on the way out: CodedErrors pass through unchanged, anything else
becomes a ControllerError with the original kept as ``cause``.
"""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from .exceptions import (
    AccessDeniedError,
    CodedError,
    ControllerError,
    InvalidRequestError,
    InvalidResponseError,
    ObjectValidationError,
)
from .models import Request
from .use_case import run_use_case
from .validation import SKIP_VALIDATION, BoundValidator

logger = logging.getLogger(__name__)

MAX_STATES = 20


class PipelineState(Enum):
    """States of a single controller run."""

    RECEIVED = "received"
    ACCESS_CHECKED = "access_checked"
    REQUEST_VALIDATED = "request_validated"
    USE_CASE_EXECUTED = "use_case_executed"
    RESPONSE_VALIDATED = "response_validated"
    MAPPED = "mapped"
    FAILED = "failed"


@dataclass(frozen=True)
class AccessGuardResult:
    """Outcome of an access guard."""

    is_allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "AccessGuardResult":
        return cls(is_allowed=True)

    @classmethod
    def deny(cls, reason: Optional[str] = None) -> "AccessGuardResult":
        return cls(is_allowed=False, reason=reason)


AccessGuard = Callable[[Any], Union[AccessGuardResult, bool, Awaitable[Union[AccessGuardResult, bool]]]]


def allow_all(request: Any) -> AccessGuardResult:
    """Default access guard."""
    return AccessGuardResult.allow()


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class PipelineContext:
    """Per-request state of a controller run."""

    request: Any
    state: PipelineState = PipelineState.RECEIVED
    input: Any = None
    output: Any = None
    response: Any = None
    error: Optional[BaseException] = None
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    @property
    def failed(self) -> bool:
        return self.state is PipelineState.FAILED

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)


def normalize_failure(error: BaseException) -> CodedError:
    """Pass CodedErrors through; wrap anything else in ControllerError."""
    if isinstance(error, CodedError):
        return error
    return ControllerError("Pipeline execution failed", cause=error)


class Controller:
    """Request/response pipeline around a use case.

    Args:
        request_mapper: Maps the (validated) request to the use case input.
        use_case: UseCase, object with ``execute``, or callable.
        response_mapper: Maps the (validated) use case output to the response.
        access_guard: Called with the request; returns AccessGuardResult or
            bool. Defaults to allowing everything.
        request_validator: BoundValidator applied to the request before
            mapping, SKIP_VALIDATION, or None for no request validation.
        response_validator: BoundValidator applied to the use case output,
            SKIP_VALIDATION, or None for no response validation.

    Controllers hold no per-request state and can serve concurrent requests.
    Subclasses may override the stage hooks (``check_access``,
    ``validate_request``, ``map_request``, ``execute_use_case``,
    ``validate_response``, ``map_response``).

    Example::

        controller = Controller.create(
            request_mapper=lambda req: GetUserInput(user_id=req["path_params"]["id"]),
            use_case=GetUser(users),
            response_mapper=lambda out: Response(200, out.model_dump()),
            request_validator=validator.bind(GetUserRequest),
        )
        response = await controller.execute(request)
    """

    def __init__(
        self,
        request_mapper: Callable[[Any], Any],
        use_case: Any,
        response_mapper: Callable[[Any], Any],
        access_guard: Optional[AccessGuard] = None,
        request_validator: Any = None,
        response_validator: Any = None,
    ):
        self.request_mapper = request_mapper
        self.use_case = use_case
        self.response_mapper = response_mapper
        self.access_guard = access_guard or allow_all
        self.request_validator = request_validator
        self.response_validator = response_validator

    @classmethod
    def create(cls, **config: Any) -> "Controller":
        """Create a controller from keyword configuration."""
        return cls(**config)

    async def execute(self, request: Any) -> Any:
        """Run the pipeline and return the mapped response.

        Raises:
            CodedError: The normalised failure if any stage fails.
        """
        ctx = await self.run(request)
        if ctx.failed:
            raise ctx.error
        return ctx.response

    async def run(self, request: Any) -> PipelineContext:
        """Run the pipeline and return the full per-request context.

        Never raises for pipeline failures; inspect ``ctx.state`` and
        ``ctx.error`` instead.
        """
        return await PipelineRun(self, request).process()

    # Stage hooks

    async def check_access(self, request: Any) -> None:
        result = await _maybe_await(self.access_guard(request))
        if isinstance(result, bool):
            result = AccessGuardResult(is_allowed=result)
        if not result.is_allowed:
            raise AccessDeniedError(result.reason or "Access denied")

    async def validate_request(self, request: Any) -> Any:
        validator = self.request_validator
        if validator is None:
            return request
        if validator is SKIP_VALIDATION:
            logger.debug("Request validation explicitly skipped")
            return request
        try:
            return await _maybe_await(_validate(validator, request_validation_input(request)))
        except ObjectValidationError as e:
            raise InvalidRequestError(e.message, cause=e, validation_errors=e.validation_errors, stage="request") from e

    async def map_request(self, request: Any) -> Any:
        try:
            return await _maybe_await(self.request_mapper(request))
        except ObjectValidationError as e:
            raise InvalidRequestError(e.message, cause=e, validation_errors=e.validation_errors, stage="request") from e

    async def execute_use_case(self, input: Any) -> Any:
        return await run_use_case(self.use_case, input)

    async def validate_response(self, output: Any) -> Any:
        validator = self.response_validator
        if validator is None:
            return output
        if validator is SKIP_VALIDATION:
            logger.debug("Response validation explicitly skipped")
            return output
        try:
            return await _maybe_await(_validate(validator, output))
        except ObjectValidationError as e:
            raise InvalidResponseError(
                "Response validation failed", cause=e, validation_errors=e.validation_errors, stage="response"
            ) from e

    async def map_response(self, output: Any) -> Any:
        try:
            return await _maybe_await(self.response_mapper(output))
        except ObjectValidationError as e:
            raise InvalidResponseError(
                "Response validation failed", cause=e, validation_errors=e.validation_errors, stage="response"
            ) from e


def _validate(validator: Any, value: Any) -> Any:
    if isinstance(validator, BoundValidator):
        return validator.validate(value)
    if callable(validator):
        return validator(value)
    raise TypeError(f"{validator!r} is not a validator")


def request_validation_input(request: Any) -> Any:
    """The value a request validator sees.

    For framework Requests this is a plain dict with ``body``, ``headers``,
    ``query_params``, ``path_params`` and ``context``; anything else is
    validated as-is. Header names are lower-cased and a header that repeats
    keeps all of its values as a list.
    """
    if not isinstance(request, Request):
        return request
    return {
        "body": request.body,
        "headers": {
            name.lower(): values[0] if len(values) == 1 else values
            for name, values in request.headers.to_multidict().items()
        },
        "query_params": dict(request.query_params or {}),
        "path_params": dict(request.path_params),
        "context": dict(request.context),
    }


class PipelineRun:
    """State machine for one request through one controller."""

    def __init__(self, controller: Controller, request: Any):
        self.controller = controller
        self.ctx = PipelineContext(request=request)

    async def process(self) -> PipelineContext:
        current: Optional[Callable[[], Awaitable[Any]]] = self.state_received
        state_count = 0

        while current is not None:
            state_count += 1
            if state_count > MAX_STATES:
                logger.error(f"Controller pipeline exceeded max states ({MAX_STATES})")
                self._fail(ControllerError("Internal error: pipeline loop detected"))
                break

            state_name = current.__name__
            logger.debug(f"  [{state_count}] → {state_name}")

            try:
                current = await current()
            except Exception as e:
                self._fail(e)
                break

        if not self.ctx.failed:
            logger.debug(f"  ✓ Complete in {state_count} states")
        return self.ctx

    def _fail(self, error: Exception) -> None:
        normalized = normalize_failure(error)
        if normalized is not error:
            logger.debug(f"Wrapped {type(error).__name__} from {self.ctx.state.value} as {type(normalized).__name__}")
        self.ctx.error = normalized
        self.ctx.advance(PipelineState.FAILED)

    # ========================================================================
    # STATE METHODS
    # ========================================================================

    async def state_received(self):
        await self.controller.check_access(self.ctx.request)
        self.ctx.advance(PipelineState.ACCESS_CHECKED)
        return self.state_access_checked

    async def state_access_checked(self):
        validated = await self.controller.validate_request(self.ctx.request)
        self.ctx.input = await self.controller.map_request(validated)
        self.ctx.advance(PipelineState.REQUEST_VALIDATED)
        return self.state_request_validated

    async def state_request_validated(self):
        self.ctx.output = await self.controller.execute_use_case(self.ctx.input)
        self.ctx.advance(PipelineState.USE_CASE_EXECUTED)
        return self.state_use_case_executed

    async def state_use_case_executed(self):
        self.ctx.output = await self.controller.validate_response(self.ctx.output)
        self.ctx.advance(PipelineState.RESPONSE_VALIDATED)
        return self.state_response_validated

    async def state_response_validated(self):
        self.ctx.response = await self.controller.map_response(self.ctx.output)
        self.ctx.advance(PipelineState.MAPPED)
        return None
