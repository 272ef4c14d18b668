"""
Error wrapping helpers for layer boundaries.

Each helper runs a callable and converts whatever it raises with an error
factory. The ``*_unless`` variants let selected error types through
unchanged.
"""

from typing import Any, Awaitable, Callable, Sequence, Type, TypeVar

T = TypeVar("T")

ErrorFactory = Callable[[Exception], Exception]


def wrap_error(func: Callable[[], T], error_factory: ErrorFactory) -> T:
    """Run ``func`` and convert any exception with ``error_factory``."""
    try:
        return func()
    except Exception as e:
        raise error_factory(e) from e


async def wrap_error_async(func: Callable[[], Awaitable[T]], error_factory: ErrorFactory) -> T:
    """Await ``func()`` and convert any exception with ``error_factory``."""
    try:
        return await func()
    except Exception as e:
        raise error_factory(e) from e


def wrap_error_unless(
    func: Callable[[], T],
    error_factory: ErrorFactory,
    passthrough: Sequence[Type[BaseException]],
) -> T:
    """Like wrap_error, but re-raise instances of ``passthrough`` as-is.

    Example::

        result = wrap_error_unless(
            lambda: mapper(request),
            lambda cause: ControllerError("Mapping failed", cause=cause),
            [CodedError],
        )
    """
    try:
        return func()
    except Exception as e:
        if isinstance(e, tuple(passthrough)):
            raise
        raise error_factory(e) from e


async def wrap_error_unless_async(
    func: Callable[[], Awaitable[Any]],
    error_factory: ErrorFactory,
    passthrough: Sequence[Type[BaseException]],
) -> Any:
    """Async counterpart of wrap_error_unless."""
    try:
        return await func()
    except Exception as e:
        if isinstance(e, tuple(passthrough)):
            raise
        raise error_factory(e) from e
