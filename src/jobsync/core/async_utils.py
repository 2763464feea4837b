"""Async utilities for calling the blocking HTTP client and disk writes from the event loop."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Example:
        ok = await run_sync(client.push, workspace_id, device_id, changes)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
