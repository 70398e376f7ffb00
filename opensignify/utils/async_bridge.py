"""Bridge from sync entry points (CLI) into the async service layer."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

from opensignify.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_async_context() -> bool:
    """Check if currently running inside an event loop."""
    try:
        asyncio.get_running_loop()
        return True
    except RuntimeError:
        return False


def run_async(coro: Coroutine[Any, Any, T], *, debug: bool = False) -> T:
    """Execute an async coroutine from synchronous code.

    Raises:
        RuntimeError: If called from inside a running event loop
        Any exception raised by the coroutine
    """
    if is_async_context():
        coro.close()
        raise RuntimeError("run_async() cannot be called from a running event loop; await instead")

    try:
        return asyncio.run(coro, debug=debug)
    except Exception as e:
        logger.debug(
            "async_bridge_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
