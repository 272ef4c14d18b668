"""Tests for the controller pipeline."""

from typing import List

import pytest
from pydantic import BaseModel

from restlayer import (
    SKIP_VALIDATION,
    AccessDeniedError,
    AccessGuardResult,
    Controller,
    ControllerError,
    HTTPMethod,
    InfraError,
    InvalidRequestError,
    InvalidResponseError,
    NotFoundError,
    PipelineState,
    PydanticObjectValidator,
    Request,
    Response,
    UseCase,
)
from restlayer.controller import request_validation_input

pytestmark = pytest.mark.anyio

validator = PydanticObjectValidator()


class CreateTaskBody(BaseModel):
    title: str
    priority: int = 0


class CreateTaskRequest(BaseModel):
    body: CreateTaskBody


class TaskOutput(BaseModel):
    id: str
    title: str
    priority: int


class CreateTask(UseCase):

    def __init__(self):
        self.calls: List[CreateTaskBody] = []

    async def handle(self, input):
        self.calls.append(input)
        return {"id": "t-1", "title": input.title, "priority": input.priority}


def make_request(body=None, headers=None):
    return Request(method=HTTPMethod.POST, path="/tasks", headers=headers or {}, body=body)


def make_controller(use_case=None, **overrides):
    config = dict(
        request_mapper=lambda validated: validated.body,
        use_case=use_case or CreateTask(),
        response_mapper=lambda output: Response(201, output.model_dump()),
        request_validator=validator.bind(CreateTaskRequest),
        response_validator=validator.bind(TaskOutput),
    )
    config.update(overrides)
    return Controller.create(**config)


class TestHappyPath:

    async def test_execute_returns_mapped_response(self):
        response = await make_controller().execute(make_request({"title": "Write docs", "priority": 2}))

        assert response.status_code == 201
        assert response.body == {"id": "t-1", "title": "Write docs", "priority": 2}

    async def test_states_visited_in_order(self):
        ctx = await make_controller().run(make_request({"title": "Write docs"}))

        assert ctx.history == [
            PipelineState.RECEIVED,
            PipelineState.ACCESS_CHECKED,
            PipelineState.REQUEST_VALIDATED,
            PipelineState.USE_CASE_EXECUTED,
            PipelineState.RESPONSE_VALIDATED,
            PipelineState.MAPPED,
        ]
        assert ctx.error is None
        assert isinstance(ctx.output, TaskOutput)

    async def test_plain_callable_use_case(self):
        controller = make_controller(use_case=lambda input: {"id": "t-2", "title": input.title, "priority": 1})

        response = await controller.execute(make_request({"title": "Ship"}))

        assert response.body["id"] == "t-2"

    async def test_async_mappers_and_guard(self):
        async def guard(request):
            return True

        async def request_mapper(validated):
            return validated.body

        async def response_mapper(output):
            return Response(200, output.model_dump())

        controller = make_controller(access_guard=guard, request_mapper=request_mapper, response_mapper=response_mapper)

        response = await controller.execute(make_request({"title": "Async"}))
        assert response.status_code == 200

    async def test_controller_is_reusable_across_requests(self):
        use_case = CreateTask()
        controller = make_controller(use_case=use_case)

        await controller.execute(make_request({"title": "one"}))
        await controller.execute(make_request({"title": "two"}))

        assert [call.title for call in use_case.calls] == ["one", "two"]


class TestAccessGuard:

    async def test_denied_with_reason(self):
        use_case = CreateTask()
        controller = make_controller(
            use_case=use_case,
            access_guard=lambda request: AccessGuardResult.deny("Only owners may create tasks"),
        )

        ctx = await controller.run(make_request({"title": "x"}))

        assert ctx.state is PipelineState.FAILED
        assert ctx.history == [PipelineState.RECEIVED, PipelineState.FAILED]
        assert isinstance(ctx.error, AccessDeniedError)
        assert ctx.error.message == "Only owners may create tasks"
        assert use_case.calls == []

    async def test_denied_without_reason(self):
        controller = make_controller(access_guard=lambda request: AccessGuardResult(is_allowed=False))

        with pytest.raises(AccessDeniedError, match="Access denied"):
            await controller.execute(make_request({"title": "x"}))

    async def test_boolean_guard(self):
        controller = make_controller(access_guard=lambda request: False)

        with pytest.raises(AccessDeniedError):
            await controller.execute(make_request({"title": "x"}))

    async def test_guard_sees_request_context(self):
        seen = []

        def guard(request):
            seen.append(request.context.get("user"))
            return AccessGuardResult.allow()

        controller = make_controller(access_guard=guard)
        request = make_request({"title": "x"})
        request.context = {"user": "alice"}

        await controller.execute(request)

        assert seen == ["alice"]


class TestRequestValidation:

    async def test_invalid_body_fails_before_use_case(self):
        use_case = CreateTask()
        ctx = await make_controller(use_case=use_case).run(make_request({"priority": "high"}))

        assert ctx.history == [PipelineState.RECEIVED, PipelineState.ACCESS_CHECKED, PipelineState.FAILED]
        assert isinstance(ctx.error, InvalidRequestError)
        assert ctx.error.stage == "request"
        fields = {item.field for item in ctx.error.validation_errors}
        assert fields == {"body.title", "body.priority"}
        assert use_case.calls == []

    async def test_validator_sees_lowercased_headers(self):
        seen = []

        def capture(value):
            seen.append(value)
            return value

        controller = make_controller(
            request_validator=capture,
            request_mapper=lambda validated: CreateTaskBody(**validated["body"]),
        )
        await controller.execute(make_request({"title": "x"}, headers={"X-Trace-Id": "abc"}))

        assert seen[0]["headers"] == {"x-trace-id": "abc"}
        assert seen[0]["body"] == {"title": "x"}

    async def test_skip_validation_passes_raw_request(self):
        request = make_request({"title": "raw"})
        controller = make_controller(
            request_validator=SKIP_VALIDATION,
            request_mapper=lambda req: CreateTaskBody(**req.body),
        )

        response = await controller.execute(request)

        assert response.body["title"] == "raw"

    async def test_no_validator_passes_raw_request(self):
        received = []

        def mapper(req):
            received.append(req)
            return CreateTaskBody(title="from mapper")

        request = make_request({"ignored": True})
        await make_controller(request_validator=None, request_mapper=mapper).execute(request)

        assert received == [request]

    async def test_mapper_validation_error_becomes_invalid_request(self):
        controller = make_controller(
            request_validator=None,
            request_mapper=lambda req: validator.validate(req.body, CreateTaskBody),
        )

        with pytest.raises(InvalidRequestError) as exc_info:
            await controller.execute(make_request({}))

        assert [item.field for item in exc_info.value.validation_errors] == ["title"]


class TestResponseValidation:

    async def test_invalid_output_is_invalid_response(self):
        controller = make_controller(use_case=lambda input: {"id": "t-1"})

        ctx = await controller.run(make_request({"title": "x"}))

        assert ctx.history[-2:] == [PipelineState.USE_CASE_EXECUTED, PipelineState.FAILED]
        assert isinstance(ctx.error, InvalidResponseError)
        assert ctx.error.stage == "response"
        assert ctx.error.message == "Response validation failed"

    async def test_skip_response_validation(self):
        controller = make_controller(
            use_case=lambda input: {"anything": "goes"},
            response_validator=SKIP_VALIDATION,
            response_mapper=lambda output: Response(200, output),
        )

        response = await controller.execute(make_request({"title": "x"}))

        assert response.body == {"anything": "goes"}


class TestFailureNormalization:

    async def test_coded_errors_pass_through_unchanged(self):
        error = NotFoundError("Project p1 not found")

        def use_case(input):
            raise error

        with pytest.raises(NotFoundError) as exc_info:
            await make_controller(use_case=use_case).execute(make_request({"title": "x"}))

        assert exc_info.value is error

    async def test_infra_error_passes_through(self):
        def use_case(input):
            raise InfraError("connection refused")

        ctx = await make_controller(use_case=use_case).run(make_request({"title": "x"}))

        assert isinstance(ctx.error, InfraError)

    async def test_unknown_error_is_wrapped(self):
        original = KeyError("missing")

        def use_case(input):
            raise original

        ctx = await make_controller(use_case=use_case).run(make_request({"title": "x"}))

        assert isinstance(ctx.error, ControllerError)
        assert ctx.error.message == "Pipeline execution failed"
        assert ctx.error.cause is original
        assert ctx.error.__cause__ is original

    async def test_mapper_crash_is_wrapped(self):
        def response_mapper(output):
            raise AttributeError("no such field")

        with pytest.raises(ControllerError):
            await make_controller(response_mapper=response_mapper).execute(make_request({"title": "x"}))

    async def test_guard_crash_is_wrapped(self):
        def guard(request):
            raise RuntimeError("policy store offline")

        ctx = await make_controller(access_guard=guard).run(make_request({"title": "x"}))

        assert ctx.history == [PipelineState.RECEIVED, PipelineState.FAILED]
        assert isinstance(ctx.error, ControllerError)


class TestRequestValidationInput:

    def test_request_is_flattened(self):
        request = Request(
            method="GET",
            path="/tasks/1",
            headers={"Accept": "application/json"},
            query_params={"expand": "owner"},
            path_params={"id": "1"},
        )

        assert request_validation_input(request) == {
            "body": None,
            "headers": {"accept": "application/json"},
            "query_params": {"expand": "owner"},
            "path_params": {"id": "1"},
            "context": {},
        }

    def test_repeated_header_keeps_every_value(self):
        request = Request(
            method="GET",
            path="/tasks",
            headers={"Accept": ["text/html", "application/json"], "X-Trace-Id": "abc"},
        )

        headers = request_validation_input(request)["headers"]

        assert headers == {"accept": ["text/html", "application/json"], "x-trace-id": "abc"}

    def test_other_values_pass_through(self):
        value = {"already": "shaped"}
        assert request_validation_input(value) is value
