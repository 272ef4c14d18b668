"""
Core data models for the request pipeline.

These are the abstract request/response shapes consumed by the router, the
middleware chain and controllers. Hosting runtimes translate their own
request objects into these.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

HeaderValue = Union[str, List[str]]


class MultiValueHeaders:
    """
    Multi-value, case-insensitive headers container.

    HTTP headers are case-insensitive per RFC 7230, and the same header can
    appear multiple times. Lookups ignore case and every value is kept.

    Example::

        headers = MultiValueHeaders({"Accept": ["text/html", "application/json"]})
        headers.get("accept")      # 'text/html'
        headers.get_all("accept")  # ['text/html', 'application/json']
    """

    def __init__(self, data=None):
        # Dict[lowercase_name, List[Tuple[original_name, value]]]
        self._headers: Dict[str, List[Tuple[str, str]]] = {}

        if data is not None:
            if isinstance(data, MultiValueHeaders):
                self._headers = {k: list(v) for k, v in data._headers.items()}
            elif isinstance(data, Mapping):
                for key, value in data.items():
                    if isinstance(value, (list, tuple)):
                        for v in value:
                            self.add(key, v)
                    else:
                        self.add(key, value)
            else:
                for key, value in data:
                    self.add(key, value)

    def add(self, name: str, value: str) -> None:
        """Add a header value, allowing multiple values for the same name."""
        self._headers.setdefault(name.lower(), []).append((name, str(value)))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value for a header name."""
        if not isinstance(name, str):
            return default
        values = self._headers.get(name.lower())
        if values:
            return values[0][1]
        return default

    def get_all(self, name: str) -> List[str]:
        """Get all values for a header name (empty list if not found)."""
        return [value for _, value in self._headers.get(name.lower(), [])]

    def set(self, name: str, value: str) -> None:
        """Set a header to a single value, replacing any existing values."""
        self._headers[name.lower()] = [(name, str(value))]

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return name.lower() in self._headers

    def __iter__(self):
        """Iterate over header names (original casing of first occurrence)."""
        for values in self._headers.values():
            if values:
                yield values[0][0]

    def __len__(self):
        return len(self._headers)

    def items(self):
        """Return (name, first_value) pairs."""
        return [(values[0][0], values[0][1]) for values in self._headers.values() if values]

    def to_dict(self) -> Dict[str, str]:
        """Convert to a plain dict with the first value for each header."""
        return dict(self.items())

    def to_multidict(self) -> Dict[str, List[str]]:
        """Convert to a dict with lists of all values."""
        return {
            values[0][0]: [v for _, v in values]
            for values in self._headers.values() if values
        }

    def copy(self):
        return MultiValueHeaders(self)

    def __eq__(self, other):
        if isinstance(other, MultiValueHeaders):
            return self._headers == other._headers
        return NotImplemented

    def __repr__(self):
        return f"MultiValueHeaders({self.items()!r})"


class HTTPMethod(Enum):
    """Enumeration of supported HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def parse(cls, value: Union["HTTPMethod", str]) -> "HTTPMethod":
        """Accept an HTTPMethod or a method name in any case."""
        if isinstance(value, HTTPMethod):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported HTTP method: {value!r}") from None


def _empty_context() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass
class Request:
    """Represents an abstract request.

    ``path_params`` are filled in by the router and ``context`` by the
    middleware chain; both are empty until then.
    """

    method: HTTPMethod
    path: str
    headers: Union[Mapping[str, HeaderValue], MultiValueHeaders] = field(default_factory=MultiValueHeaders)
    query_params: Optional[Dict[str, HeaderValue]] = None
    body: Any = None
    path_params: Dict[str, str] = field(default_factory=dict)
    context: Mapping[str, Any] = field(default_factory=_empty_context)

    def __post_init__(self):
        self.method = HTTPMethod.parse(self.method)
        if not isinstance(self.headers, MultiValueHeaders):
            self.headers = MultiValueHeaders(self.headers)
        if self.query_params is None:
            self.query_params = {}

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of a header (case-insensitive)."""
        return self.headers.get(name, default)

    def get_query_param(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of a query parameter."""
        value = self.query_params.get(name)
        if isinstance(value, list):
            return value[0] if value else default
        return value if value is not None else default


@dataclass
class Response:
    """Represents an abstract response."""

    status_code: int
    body: Any = None
    headers: Optional[Dict[str, str]] = None
    content_type: Optional[str] = None

    def __post_init__(self):
        if self.headers is None:
            self.headers = {}
        if self.content_type:
            self.headers["Content-Type"] = self.content_type

    def json(self) -> Any:
        """Decode a serialized JSON body; non-string bodies are returned as-is."""
        if isinstance(self.body, (str, bytes)):
            return json.loads(self.body)
        return self.body
