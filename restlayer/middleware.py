"""
Ordered middleware chain that builds the request context.

A middleware step is a stateless callable ``(request, env, context) -> dict``
(sync or async). Each step declares the context keys it requires and the keys
it provides. The chain is an explicit ordered list: a step that needs another
step's output must be added after it, and this is checked when the chain is
built, not on every request.

Example::

    @define_middleware(provides={"user"})
    async def authenticate(request, env, context):
        return {"user": await env.auth.verify(request.get_header("Authorization"))}

    @define_middleware(requires={"user"}, provides={"tenant"})
    def tenant(request, env, context):
        return {"tenant": context["user"].tenant_id}

    chain = MiddlewareChain().use(authenticate).use(tenant)
    context = await chain.run(request, env)
"""

import inspect
import logging
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

StepFunction = Callable[[Any, Any, Mapping[str, Any]], Any]


class MiddlewareOrderError(ValueError):
    """Raised when a chain is built with a step whose requirements are not met."""

    pass


@dataclass(frozen=True)
class Middleware:
    """A middleware step plus its declared context contract."""

    func: StepFunction
    requires: FrozenSet[str] = field(default_factory=frozenset)
    provides: FrozenSet[str] = field(default_factory=frozenset)
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "requires", frozenset(self.requires))
        object.__setattr__(self, "provides", frozenset(self.provides))
        if not self.name:
            object.__setattr__(self, "name", getattr(self.func, "__name__", type(self.func).__name__))

    async def __call__(self, request: Any, env: Any, context: Mapping[str, Any]) -> Any:
        result = self.func(request, env, context)
        if inspect.isawaitable(result):
            result = await result
        return result


def define_middleware(
    func: Optional[StepFunction] = None,
    *,
    requires: Iterable[str] = (),
    provides: Iterable[str] = (),
    name: Optional[str] = None,
):
    """Decorator turning a step function into a Middleware.

    Can be used bare (``@define_middleware``) or with a declared contract
    (``@define_middleware(requires={"user"}, provides={"tenant"})``).
    """
    def decorator(f: StepFunction) -> Middleware:
        return Middleware(f, frozenset(requires), frozenset(provides), name or "")

    if func is None:
        return decorator
    return decorator(func)


def _as_middleware(step: Union[Middleware, StepFunction]) -> Middleware:
    if isinstance(step, Middleware):
        return step
    return Middleware(step)


def _check_fragment(fragment: Any, index: int, step: Middleware) -> Mapping[str, Any]:
    if fragment is None:
        raise TypeError(
            f"Middleware {step.name!r} at index {index} returned None instead of a context mapping. "
            "Return {} for no additional context, or raise to abort the request."
        )
    if not isinstance(fragment, MappingABC):
        raise TypeError(
            f"Middleware {step.name!r} at index {index} returned {type(fragment).__name__} "
            "instead of a context mapping."
        )
    return fragment


async def run_middleware_chain(
    request: Any,
    env: Any,
    steps: Sequence[Union[Middleware, StepFunction]],
    initial_context: Optional[Mapping[str, Any]] = None,
) -> Mapping[str, Any]:
    """Run steps in order and return the accumulated, read-only context.

    Each step receives a read-only view of the context built so far. Keys are
    only ever added: if a fragment repeats a key that is already present, the
    earlier value is kept and a warning is logged. If a step raises, no later
    step runs and the exception propagates unchanged; the partial context is
    discarded.
    """
    accumulated: Dict[str, Any] = dict(initial_context or {})

    for index, raw_step in enumerate(steps):
        step = _as_middleware(raw_step)
        logger.debug(f"  middleware [{index}] → {step.name}")
        fragment = _check_fragment(await step(request, env, MappingProxyType(dict(accumulated))), index, step)

        for key, value in fragment.items():
            if key in accumulated:
                if accumulated[key] is not value:
                    logger.warning(
                        f"Middleware {step.name!r} tried to overwrite context key {key!r}; keeping the earlier value"
                    )
                continue
            accumulated[key] = value

    return MappingProxyType(accumulated)


class MiddlewareChain:
    """Immutable, ordered middleware chain builder.

    ``use()`` returns a new chain, so a chain can be shared between routes and
    extended without affecting the original.

    Args:
        initial_keys: Context keys guaranteed to be present before the first
            step runs (e.g. keys supplied by the hosting runtime).
    """

    def __init__(self, initial_keys: Iterable[str] = (), _steps: Tuple[Middleware, ...] = ()):
        self._initial_keys = frozenset(initial_keys)
        self._steps = _steps

    @property
    def steps(self) -> Tuple[Middleware, ...]:
        return self._steps

    @property
    def provided_keys(self) -> FrozenSet[str]:
        """Keys available to a step appended to this chain."""
        keys = set(self._initial_keys)
        for step in self._steps:
            keys |= step.provides
        return frozenset(keys)

    def use(self, step: Union[Middleware, StepFunction]) -> "MiddlewareChain":
        """Return a new chain with ``step`` appended.

        Raises:
            MiddlewareOrderError: If the step requires keys no earlier step
                provides, or declares keys an earlier step already provides.
        """
        middleware = _as_middleware(step)
        available = self.provided_keys

        missing = middleware.requires - available
        if missing:
            raise MiddlewareOrderError(
                f"Middleware {middleware.name!r} requires {sorted(missing)} "
                f"but the chain only provides {sorted(available)}"
            )

        clashing = middleware.provides & available
        if clashing:
            raise MiddlewareOrderError(
                f"Middleware {middleware.name!r} provides {sorted(clashing)} which are already provided"
            )

        return MiddlewareChain(self._initial_keys, self._steps + (middleware,))

    async def run(self, request: Any, env: Any = None, initial_context: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        """Run the chain for one request."""
        return await run_middleware_chain(request, env, self._steps, initial_context)

    def __len__(self):
        return len(self._steps)
