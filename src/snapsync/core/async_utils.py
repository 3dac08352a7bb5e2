"""Async utilities for bridging blocking store and dataset calls to the event loop."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

from .errors import RemoteUnavailable

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        # In the orchestrator:
        payload = await run_sync(dataset.export_all)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_with_timeout(
    timeout: float | None,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous remote call in a thread, bounded by *timeout* seconds.

    A timeout surfaces as ``RemoteUnavailable`` so the whole sync run fails
    instead of applying partial writes.  The worker thread itself cannot be
    interrupted; its result is discarded.

    Args:
        timeout: Seconds to wait, or ``None`` for no bound.
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        RemoteUnavailable: If the call did not finish in time.
    """
    name = getattr(func, "__name__", repr(func))
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs), timeout
        )
    except asyncio.TimeoutError:
        logger.warning("Remote call %s timed out after %ss", name, timeout)
        raise RemoteUnavailable(
            f"Remote call '{name}' timed out after {timeout}s"
        ) from None
