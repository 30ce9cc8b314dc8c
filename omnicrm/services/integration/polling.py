"""
Wait-with-timeout primitive for remote jobs (workflow executions and the like).
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ..exceptions import WaitTimeoutError

T = TypeVar('T')

async def wait_for_completion(fetch: Callable[[], Awaitable[T]],
                              is_done: Callable[[T], bool],
                              timeout: float,
                              interval: float = 1.0,
                              cancel_event: Optional[asyncio.Event] = None) -> T:
    """
    Poll `fetch` until `is_done(result)` is true.

    Raises WaitTimeoutError when `timeout` seconds pass first, and
    asyncio.CancelledError when `cancel_event` is set.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    def timed_out():
        return WaitTimeoutError(f"Job not finished after {timeout}s",
                                deadline=time.time() + (deadline - loop.time()))

    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise asyncio.CancelledError("wait cancelled")
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise timed_out()
        # a slow fetch must not outlive the deadline
        try:
            result = await asyncio.wait_for(fetch(), timeout=remaining)
        except asyncio.TimeoutError:
            raise timed_out() from None
        if is_done(result):
            return result
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise timed_out()
        pause = min(interval, remaining)
        if cancel_event is None:
            await asyncio.sleep(pause)
        else:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=pause)
            except asyncio.TimeoutError:
                pass
