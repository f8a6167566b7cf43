# Langfuse integration
import functools
from typing import Any, Awaitable, Callable, TypeVar

from langfuse import observe

from infrastructure.config.settings import get_settings

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def traced(name: str) -> Callable[[F], F]:
    """Trace an async callable as a Langfuse observation when tracing is enabled.

    The flag is read per call so tests and local runs without Langfuse keys
    never reach the client.
    """

    def decorator(func: F) -> F:
        observed = observe(name=name)(func)

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if get_settings().langfuse_enabled:
                return await observed(*args, **kwargs)
            return await func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
