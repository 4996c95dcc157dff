"""Bridge blocking sync calls into async MCP handlers."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking function in a worker thread without blocking the event loop.

    Example:
        # In MCP tool handler:
        outcome = await run_sync(context.session.sync)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
