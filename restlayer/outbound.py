"""
Error boundary for outbound adapters (repositories, API clients, ...).

An outbound adapter wraps a collaborator and implements the same interface.
Each forwarding method calls ``_invoke`` (or ``_invoke_async``), which turns
anything the collaborator raises into an InfraError so that storage and vendor
exceptions never travel further up the stack::

    class UserRepository(OutboundAdapter):
        def __init__(self, client):
            self._client = client

        async def find(self, user_id):
            return await self._invoke_async("find", self._client.find, user_id)
"""

import logging
from typing import Any, Awaitable, Callable

from .exceptions import InfraError

logger = logging.getLogger(__name__)


class OutboundAdapter:
    """Base class for explicit outbound error boundaries."""

    def create_infra_error(self, error: Exception, operation: str) -> InfraError:
        """Build the InfraError raised for a failed operation.

        Override to raise a more specific subclass (DbError, NetworkError, ...).
        """
        return InfraError(f"Outbound adapter error in {operation}", cause=error)

    def _invoke(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call ``func`` and normalise its failures."""
        try:
            return func(*args, **kwargs)
        except InfraError:
            raise
        except Exception as e:
            logger.debug(f"{type(self).__name__}.{operation} failed: {e!r}")
            raise self.create_infra_error(e, operation) from e

    async def _invoke_async(self, operation: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``func`` and normalise its failures."""
        try:
            return await func(*args, **kwargs)
        except InfraError:
            raise
        except Exception as e:
            logger.debug(f"{type(self).__name__}.{operation} failed: {e!r}")
            raise self.create_infra_error(e, operation) from e
