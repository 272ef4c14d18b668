"""
Test framework for request pipeline testing using 4-layer architecture.
"""

from .dsl import RestApiDsl, HttpRequest, HttpResponse
from .drivers import ProxyHandlerDriver, SyncProxyHandlerDriver

__all__ = [
    'RestApiDsl',
    'HttpRequest',
    'HttpResponse',
    'ProxyHandlerDriver',
    'SyncProxyHandlerDriver',
]
