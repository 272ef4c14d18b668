"""Tests for the ordered middleware chain."""

import logging

import pytest

from restlayer import (
    HTTPMethod,
    Middleware,
    MiddlewareChain,
    MiddlewareOrderError,
    Request,
    define_middleware,
    run_middleware_chain,
)


@pytest.fixture
def request_():
    return Request(method=HTTPMethod.GET, path="/projects/p1", headers={"Authorization": "Bearer alice"})


@define_middleware(provides={"user"})
async def authenticate(request, env, context):
    token = request.get_header("Authorization", "").replace("Bearer ", "")
    return {"user": {"name": token, "tenant_id": "t-1"}}


@define_middleware(requires={"user"}, provides={"tenant"})
def resolve_tenant(request, env, context):
    return {"tenant": context["user"]["tenant_id"]}


class TestDefineMiddleware:

    def test_bare_decorator(self):
        @define_middleware
        def noop(request, env, context):
            return {}

        assert isinstance(noop, Middleware)
        assert noop.name == "noop"
        assert noop.requires == frozenset()
        assert noop.provides == frozenset()

    def test_declared_contract(self):
        assert resolve_tenant.requires == frozenset({"user"})
        assert resolve_tenant.provides == frozenset({"tenant"})
        assert resolve_tenant.name == "resolve_tenant"

    def test_explicit_name(self):
        step = define_middleware(lambda request, env, context: {}, name="anonymous")
        assert step.name == "anonymous"


class TestChainConstruction:

    def test_use_returns_new_chain(self):
        base = MiddlewareChain()
        extended = base.use(authenticate)

        assert len(base) == 0
        assert len(extended) == 1
        assert extended.steps == (authenticate,)

    def test_provided_keys_accumulate(self):
        chain = MiddlewareChain().use(authenticate).use(resolve_tenant)
        assert chain.provided_keys == frozenset({"user", "tenant"})

    def test_step_before_its_requirement_is_rejected(self):
        with pytest.raises(MiddlewareOrderError) as exc_info:
            MiddlewareChain().use(resolve_tenant)

        assert "resolve_tenant" in str(exc_info.value)
        assert "user" in str(exc_info.value)

    def test_initial_keys_satisfy_requirements(self):
        chain = MiddlewareChain(initial_keys={"user"}).use(resolve_tenant)
        assert len(chain) == 1

    def test_duplicate_provider_is_rejected(self):
        @define_middleware(provides={"user"})
        def impersonate(request, env, context):
            return {"user": {"name": "mallory"}}

        with pytest.raises(MiddlewareOrderError):
            MiddlewareChain().use(authenticate).use(impersonate)

    def test_plain_functions_are_accepted(self):
        def request_id(request, env, context):
            return {"request_id": "r-1"}

        chain = MiddlewareChain().use(request_id)
        assert chain.steps[0].name == "request_id"


@pytest.mark.anyio
class TestChainExecution:

    async def test_context_accumulates_in_order(self, request_):
        chain = MiddlewareChain().use(authenticate).use(resolve_tenant)

        context = await chain.run(request_)

        assert context["user"]["name"] == "alice"
        assert context["tenant"] == "t-1"

    async def test_result_is_read_only(self, request_):
        context = await MiddlewareChain().use(authenticate).run(request_)

        with pytest.raises(TypeError):
            context["user"] = None

    async def test_steps_see_read_only_view(self, request_):
        seen = []

        def mutate(request, env, context):
            seen.append(dict(context))
            context["tampered"] = True
            return {}

        with pytest.raises(TypeError):
            await run_middleware_chain(request_, None, [mutate], {"start": 1})

        assert seen == [{"start": 1}]

    async def test_env_is_passed_to_every_step(self, request_):
        env = object()
        received = []

        def first(request, env_, context):
            received.append(env_)
            return {"a": 1}

        def second(request, env_, context):
            received.append(env_)
            return {"b": 2}

        await run_middleware_chain(request_, env, [first, second])

        assert received == [env, env]

    async def test_failing_step_stops_the_chain(self, request_):
        calls = []

        def fails(request, env, context):
            calls.append("fails")
            raise PermissionError("token expired")

        def never(request, env, context):
            calls.append("never")
            return {}

        with pytest.raises(PermissionError, match="token expired"):
            await run_middleware_chain(request_, None, [authenticate, fails, never])

        assert calls == ["fails"]

    async def test_none_fragment_names_the_step(self, request_):
        def forgetful(request, env, context):
            return None

        with pytest.raises(TypeError) as exc_info:
            await run_middleware_chain(request_, None, [authenticate, forgetful])

        assert "forgetful" in str(exc_info.value)
        assert "index 1" in str(exc_info.value)

    @pytest.mark.parametrize("fragment", [["user"], "user", 42])
    async def test_non_mapping_fragment_rejected(self, request_, fragment):
        with pytest.raises(TypeError):
            await run_middleware_chain(request_, None, [lambda request, env, context: fragment])

    async def test_collision_keeps_earlier_value(self, request_, caplog):
        def first(request, env, context):
            return {"locale": "en"}

        def second(request, env, context):
            return {"locale": "fr", "region": "eu"}

        with caplog.at_level(logging.WARNING, logger="restlayer.middleware"):
            context = await run_middleware_chain(request_, None, [first, second])

        assert context["locale"] == "en"
        assert context["region"] == "eu"
        assert "locale" in caplog.text

    async def test_initial_context_is_kept(self, request_):
        context = await MiddlewareChain(initial_keys={"trace_id"}).run(
            request_, initial_context={"trace_id": "abc"}
        )
        assert dict(context) == {"trace_id": "abc"}

    async def test_empty_chain_yields_empty_context(self, request_):
        context = await MiddlewareChain().run(request_)
        assert dict(context) == {}
