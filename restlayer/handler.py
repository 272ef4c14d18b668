"""
Proxy request handler.

Ties the pieces together for one entry point serving many routes:

    request → router → middleware chain → controller → response

Any failure along the way is turned into a single JSON error response by the
error mapper. Hosting runtimes (ASGI servers, serverless platforms, ...)
translate their own request objects into ``Request`` and call ``handle``.
"""

import dataclasses
import inspect
import logging
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import anyio

from .config import HandlerConfig
from .error_mapping import map_error_to_response, should_mask_error
from .middleware import Middleware, MiddlewareChain
from .models import Request, Response
from .router import RouteInput, Router

logger = logging.getLogger(__name__)


def to_response(result: Any) -> Response:
    """Coerce a handler result into a Response.

    Accepts a Response, a mapping with ``status_code`` (or ``statusCode``) and
    optional ``body``/``headers``, or any other value, which becomes the body
    of a 200 response.
    """
    if isinstance(result, Response):
        return result
    if isinstance(result, Mapping):
        status = result.get("status_code", result.get("statusCode"))
        if isinstance(status, int):
            return Response(status_code=status, body=result.get("body"), headers=dict(result.get("headers") or {}))
    return Response(status_code=200, body=result)


class ProxyHandler:
    """Single entry point dispatching requests to registered routes.

    Args:
        router: A Router, or an iterable of RouteInput declarations.
        middleware: A MiddlewareChain or a sequence of middleware steps run
            before every controller. A sequence is built into a chain here,
            so ordering mistakes raise MiddlewareOrderError at construction.
        env: Environment object handed to every middleware step.
        config: HandlerConfig; defaults to ``HandlerConfig.from_env()``.
        initial_context: Context present before the first middleware step.
    """

    def __init__(
        self,
        router: Union[Router, Iterable[RouteInput]],
        middleware: Optional[Union[MiddlewareChain, Sequence[Middleware]]] = None,
        env: Any = None,
        config: Optional[HandlerConfig] = None,
        initial_context: Optional[Mapping[str, Any]] = None,
    ):
        self.router = router if isinstance(router, Router) else Router(router)
        self.router.freeze()
        self.env = env
        self.config = config or HandlerConfig.from_env()
        self.initial_context = dict(initial_context or {})
        self.middleware = self._build_chain(middleware)

    async def handle(self, request: Request) -> Response:
        """Handle one request."""
        try:
            return await self._dispatch(request)
        except Exception as e:
            if not self.config.handle_exceptions:
                raise
            return self.error_response(e, request)

    def handle_sync(self, request: Request) -> Response:
        """Synchronous wrapper for handle().

        Uses anyio.run() to execute the async handle() method, for platforms
        that invoke handlers synchronously.
        """
        return anyio.run(self.handle, request)

    async def _dispatch(self, request: Request) -> Response:
        resolved = self.router.resolve(request.method, request.path)
        logger.debug(
            f"[{self.config.service_name}] Resolved route: {request.method.value} {request.path} -> "
            f"{resolved.route.metadata.method} {resolved.route.metadata.path_pattern} {resolved.path_params}"
        )

        context = await self._run_middleware(request)
        routed = dataclasses.replace(request, path_params=dict(resolved.path_params), context=context)
        result = await self._invoke(resolved.handler, routed)
        return to_response(result)

    def _build_chain(self, middleware: Optional[Union[MiddlewareChain, Sequence[Middleware]]]) -> MiddlewareChain:
        if isinstance(middleware, MiddlewareChain):
            return middleware
        chain = MiddlewareChain(initial_keys=self.initial_context)
        for step in middleware or ():
            chain = chain.use(step)
        return chain

    async def _run_middleware(self, request: Request) -> Mapping[str, Any]:
        return await self.middleware.run(request, self.env, self.initial_context)

    async def _invoke(self, handler: Any, request: Request) -> Any:
        if hasattr(handler, "execute"):
            result = handler.execute(request)
        else:
            result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def error_response(self, error: BaseException, request: Optional[Request] = None) -> Response:
        """Map an error to a JSON error response and log it."""
        mapped = map_error_to_response(error)
        where = f"{request.method.value} {request.path}" if request is not None else "request"

        if should_mask_error(error):
            logger.error(
                f"[{self.config.service_name}] {where} failed with {type(error).__name__}: {error}",
                exc_info=error,
            )
        elif self.config.log_expected_errors:
            logger.info(
                f"[{self.config.service_name}] {where} -> {mapped.status_code} {mapped.body.error_code}"
            )

        return Response(
            status_code=mapped.status_code,
            body=mapped.to_json(),
            content_type="application/json",
        )
