"""Run work guarded by one or more throttlers, counting only failures."""

import functools
import inspect
from collections.abc import Awaitable, Callable, Hashable, Iterable
from typing import Any, TypeVar

import structlog

from .throttler import Throttler

logger = structlog.get_logger()

T = TypeVar("T")

Guard = tuple[Throttler, Hashable]


def _normalize_guards(guards: Iterable[Guard]) -> list[Guard]:
    normalized = []
    for guard in guards:
        throttler, key = guard
        if not isinstance(throttler, Throttler):
            raise TypeError(f"Expected a Throttler, got {type(throttler).__name__}")
        normalized.append((throttler, key))
    return normalized


def _record_failures(entered: list[Guard], error: Exception) -> None:
    for throttler, key in entered:
        throttler.record_failure(key)
    logger.debug(
        "Throttled work failed",
        throttlers=[str(throttler.label) for throttler, _ in entered],
        error_type=type(error).__name__,
    )


def with_throttling(guards: Iterable[Guard], work: Callable[[], T]) -> T:
    """Run ``work`` unless one of ``guards`` has used up its attempts.

    Guards are checked in order, as if each wrapped the next. If a guard has no
    attempts left, ``RateLimited`` is raised for it and ``work`` does not run.
    If ``work`` raises, or a later guard rejects, an attempt is recorded on
    every guard checked so far and the exception is re-raised unchanged. A
    successful ``work`` records nothing.
    Only ``Exception`` subclasses are recorded; ``BaseException`` such as
    ``KeyboardInterrupt`` passes through unrecorded.

        with_throttling([(email_throttler, email), (ip_throttler, ip)], login)

    Args:
        guards: ``(throttler, key)`` pairs
        work: Zero-argument callable to run

    Returns:
        The result of ``work``
    """
    entered: list[Guard] = []
    try:
        for throttler, key in _normalize_guards(guards):
            entered.append((throttler, key))
            throttler.ensure_available(key)
        return work()
    except Exception as e:
        _record_failures(entered, e)
        raise


async def with_throttling_async(
    guards: Iterable[Guard], work: Callable[[], Awaitable[T]]
) -> T:
    """Coroutine version of ``with_throttling`` for async work."""
    entered: list[Guard] = []
    try:
        for throttler, key in _normalize_guards(guards):
            entered.append((throttler, key))
            throttler.ensure_available(key)
        return await work()
    except Exception as e:
        _record_failures(entered, e)
        raise


def throttled(*guards: tuple[Throttler, Any]) -> Callable[..., Any]:
    """Decorator that runs the function under ``with_throttling``.

    A guard key may be a callable, in which case it is called with the
    decorated function's arguments to produce the key:

        @throttled((login_throttler, lambda username, password: username))
        def login(username, password): ...

    Works for both regular and async functions.
    """

    def resolve(args: tuple[Any, ...], kwargs: dict[str, Any]) -> list[Guard]:
        return [
            (throttler, key(*args, **kwargs) if callable(key) else key)
            for throttler, key in guards
        ]

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                return await with_throttling_async(
                    resolve(args, kwargs), lambda: func(*args, **kwargs)
                )

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return with_throttling(resolve(args, kwargs), lambda: func(*args, **kwargs))

        return wrapper

    return decorator
