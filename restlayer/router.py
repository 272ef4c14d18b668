"""Route declaration, compilation and resolution."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Union

from .exceptions import RouteNotFoundError
from .models import HTTPMethod

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# A placeholder matches exactly one path segment.
SEGMENT_PATTERN = "([^/]+)"


class RoutePatternError(ValueError):
    """Raised at registration time for a malformed route pattern."""

    pass


def normalize_request_path(path: str) -> str:
    """Normalize a request path before matching.

    Strips the query string and fragment, surrounding whitespace and a single
    trailing slash, and makes sure the path starts with ``/``.

    Examples:
        normalize_request_path("users/42/?page=2") -> "/users/42"
        normalize_request_path("") -> "/"
    """
    normalized = path.split("?", 1)[0].split("#", 1)[0].strip()
    if not normalized:
        return "/"
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def normalize_path(prefix: str, path: str) -> str:
    """Normalize a path by combining prefix and path, handling double slashes.

    Args:
        prefix: The prefix path (e.g., "/", "/api", "/users")
        path: The route path (e.g., "/", "/list", "/{id}")

    Returns:
        Normalized path without double slashes

    Examples:
        normalize_path("/", "/users") -> "/users"
        normalize_path("/api", "users") -> "/api/users"
        normalize_path("/api/", "/users") -> "/api/users"
        normalize_path("/api", "/") -> "/api"
    """
    if not prefix.startswith('/'):
        prefix = '/' + prefix

    if prefix != '/' and prefix.endswith('/'):
        prefix = prefix.rstrip('/')

    if not path.startswith('/'):
        path = '/' + path

    if prefix == '/':
        return path

    if path == '/':
        return prefix

    return prefix + path


def compile_route_pattern(path_pattern: str) -> Tuple[Pattern[str], Tuple[str, ...]]:
    """Compile a ``{name}`` route pattern into an anchored regex.

    The pattern is scanned left to right. Literal runs are escaped, and each
    ``{name}`` becomes a capturing group for one path segment, with ``name``
    appended to the parameter list in encounter order.

    Returns:
        Tuple of (compiled regex, parameter names)

    Raises:
        RoutePatternError: For an empty pattern, a query string or fragment,
            an unbalanced brace, an invalid placeholder name or a duplicate
            placeholder name.
    """
    if not path_pattern or not path_pattern.strip():
        raise RoutePatternError("Route pattern must not be empty")
    if "?" in path_pattern or "#" in path_pattern:
        raise RoutePatternError(f"Route pattern {path_pattern!r} must not contain a query string or fragment")

    pattern = normalize_request_path(path_pattern)
    parts: List[str] = []
    names: List[str] = []
    pos = 0

    while pos < len(pattern):
        start = pattern.find("{", pos)
        literal = pattern[pos:] if start == -1 else pattern[pos:start]
        if "}" in literal:
            raise RoutePatternError(f"Unbalanced '}}' in route pattern {path_pattern!r}")
        parts.append(re.escape(literal))
        if start == -1:
            break

        end = pattern.find("}", start)
        if end == -1:
            raise RoutePatternError(f"Unclosed '{{' in route pattern {path_pattern!r}")

        name = pattern[start + 1:end]
        if not PLACEHOLDER_NAME.fullmatch(name):
            raise RoutePatternError(f"Invalid placeholder name {name!r} in route pattern {path_pattern!r}")
        if name in names:
            raise RoutePatternError(f"Duplicate placeholder {name!r} in route pattern {path_pattern!r}")

        names.append(name)
        parts.append(SEGMENT_PATTERN)
        pos = end + 1

    return re.compile("^" + "".join(parts) + "$"), tuple(names)


@dataclass(frozen=True)
class RouteMetadata:
    """Declared method and path pattern of a route."""

    method: str
    path_pattern: str

    def __post_init__(self):
        object.__setattr__(self, "method", HTTPMethod.parse(self.method).value)


@dataclass(frozen=True)
class RouteInput:
    """A route declaration: metadata plus an opaque handler."""

    metadata: RouteMetadata
    handler: Any


@dataclass(frozen=True)
class RouteDefinition:
    """A compiled, immutable route."""

    metadata: RouteMetadata
    pattern: Pattern[str]
    param_names: Tuple[str, ...]
    handler: Any = field(compare=False)

    @classmethod
    def compile(cls, metadata: RouteMetadata, handler: Any) -> "RouteDefinition":
        pattern, param_names = compile_route_pattern(metadata.path_pattern)
        return cls(metadata=metadata, pattern=pattern, param_names=param_names, handler=handler)

    def match(self, path: str) -> Optional[Dict[str, str]]:
        """Match a normalized path; return the path params or None."""
        match = self.pattern.match(path)
        if match is None:
            return None
        return dict(zip(self.param_names, match.groups()))

    def build_path(self, params: Dict[str, str]) -> str:
        """Substitute params back into the pattern."""
        path = normalize_request_path(self.metadata.path_pattern)
        for name in self.param_names:
            path = path.replace("{" + name + "}", str(params[name]), 1)
        return path


@dataclass(frozen=True)
class ResolvedRoute:
    """A matched route and the path params captured from the request path."""

    route: RouteDefinition
    path_params: Dict[str, str]

    @property
    def handler(self) -> Any:
        return self.route.handler


class Router:
    """Ordered route table.

    Routes are appended while the application is being assembled. The table
    is frozen by ``freeze()`` or by the first resolution; after that it is
    read-only. Resolution scans routes in registration order and the first
    match wins, so overlapping patterns are decided by declaration order,
    not by specificity.
    """

    def __init__(self, routes: Optional[Iterable[RouteInput]] = None):
        self._routes: List[RouteDefinition] = []
        self._frozen_routes: Optional[Tuple[RouteDefinition, ...]] = None
        if routes is not None:
            self.include(routes)

    @property
    def frozen(self) -> bool:
        return self._frozen_routes is not None

    @property
    def routes(self) -> Tuple[RouteDefinition, ...]:
        if self._frozen_routes is not None:
            return self._frozen_routes
        return tuple(self._routes)

    def freeze(self) -> None:
        """Freeze the route table. Further registrations raise RuntimeError."""
        if self._frozen_routes is None:
            self._frozen_routes = tuple(self._routes)
            logger.debug(f"Route table frozen with {len(self._frozen_routes)} routes")

    def add_route(self, method: Union[HTTPMethod, str], path_pattern: str, handler: Any) -> RouteDefinition:
        """Compile and append a route."""
        if self.frozen:
            raise RuntimeError("Cannot add routes after the route table is frozen")
        metadata = RouteMetadata(method=HTTPMethod.parse(method).value, path_pattern=path_pattern)
        route = RouteDefinition.compile(metadata, handler)
        self._routes.append(route)
        logger.debug(f"Registered route {metadata.method} {metadata.path_pattern}")
        return route

    def include(self, routes: Iterable[RouteInput]) -> None:
        """Append a list of route declarations, in order."""
        for route_input in routes:
            self.add_route(route_input.metadata.method, route_input.metadata.path_pattern, route_input.handler)

    def mount(self, prefix: str, router: "Router") -> None:
        """Append every route of ``router`` under ``prefix``.

        Example:
            users = Router()
            users.add_route("GET", "/{id}", get_user_controller)

            api = Router()
            api.mount("/users", users)  # GET /users/{id}
        """
        for route in router.routes:
            self.add_route(
                route.metadata.method,
                normalize_path(prefix, route.metadata.path_pattern),
                route.handler,
            )

    def get(self, path: str):
        """Decorator to register a GET route handler."""
        return self._route_decorator(HTTPMethod.GET, path)

    def post(self, path: str):
        """Decorator to register a POST route handler."""
        return self._route_decorator(HTTPMethod.POST, path)

    def put(self, path: str):
        """Decorator to register a PUT route handler."""
        return self._route_decorator(HTTPMethod.PUT, path)

    def delete(self, path: str):
        """Decorator to register a DELETE route handler."""
        return self._route_decorator(HTTPMethod.DELETE, path)

    def patch(self, path: str):
        """Decorator to register a PATCH route handler."""
        return self._route_decorator(HTTPMethod.PATCH, path)

    def _route_decorator(self, method: HTTPMethod, path: str):
        def decorator(handler: Callable):
            self.add_route(method, path, handler)
            return handler

        return decorator

    def match_route(self, method: Union[HTTPMethod, str], path: str) -> Optional[ResolvedRoute]:
        """Find the first route matching method and path, or None."""
        self.freeze()
        try:
            method_name = HTTPMethod.parse(method).value
        except ValueError:
            return None
        normalized = normalize_request_path(path)

        for route in self.routes:
            if route.metadata.method != method_name:
                continue
            params = route.match(normalized)
            if params is not None:
                return ResolvedRoute(route=route, path_params=params)
        return None

    def resolve(self, method: Union[HTTPMethod, str], path: str) -> ResolvedRoute:
        """Resolve method and path to a route.

        Raises:
            RouteNotFoundError: If no route matches.
        """
        resolved = self.match_route(method, path)
        if resolved is None:
            method_name = method.value if isinstance(method, HTTPMethod) else str(method).upper()
            raise RouteNotFoundError(method_name, normalize_request_path(path))
        return resolved

    def get_methods_for_path(self, path: str) -> List[str]:
        """Get the methods that have a route matching ``path``."""
        normalized = normalize_request_path(path)
        methods = {route.metadata.method for route in self.routes if route.match(normalized) is not None}
        return sorted(methods)
