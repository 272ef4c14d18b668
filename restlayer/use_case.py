"""
Use case port.

A use case is the core operation a controller runs between its validation
stages. Controllers accept a UseCase subclass, any object with an
``execute(input)`` method, or a plain callable; sync and async are both fine.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

TInput = TypeVar("TInput")
TOutput = TypeVar("TOutput")


class UseCase(ABC, Generic[TInput, TOutput]):
    """Base class for use cases.

    Subclasses implement ``handle``. Errors are not translated here: business
    failures should be raised as UseCaseError subclasses, and anything else
    is classified by the controller.

    Example::

        class GetUser(UseCase[GetUserInput, UserOutput]):
            def __init__(self, users):
                self.users = users

            async def handle(self, input):
                user = await self.users.find(input.user_id)
                if user is None:
                    raise NotFoundError(f"User {input.user_id} not found")
                return UserOutput.model_validate(user)
    """

    @abstractmethod
    def handle(self, input: TInput) -> Any:
        """Run the use case. May be a coroutine function."""
        pass

    async def execute(self, input: TInput) -> TOutput:
        logger.debug(f"Executing use case {type(self).__name__}")
        result = self.handle(input)
        if inspect.isawaitable(result):
            result = await result
        return result


async def run_use_case(use_case: Any, input: Any) -> Any:
    """Invoke a use case however it is shaped and await the result if needed."""
    if hasattr(use_case, "execute"):
        result = use_case.execute(input)
    elif callable(use_case):
        result = use_case(input)
    else:
        raise TypeError(f"{use_case!r} is not a use case: expected an execute() method or a callable")
    if inspect.isawaitable(result):
        result = await result
    return result
