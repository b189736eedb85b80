"""A background asyncio loop shared by every Dash callback.

Dash serves callbacks from Flask worker threads, while the controller's
state must only be touched from one logical thread. ``LoopRunner`` owns that
thread: callbacks hand work to it and, for commands, wait for the result.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoopRunner:
    def __init__(self, timeout: Optional[float] = 30.0):
        self.timeout = timeout
        self._loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "LoopRunner":
        if self.running:
            return self
        if self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run, name="geminichat-loop", daemon=True
        )
        self._thread.start()
        return self

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        logger.debug("Event loop thread started")
        self._loop.run_forever()

    def stop(self) -> None:
        """Cancels pending tasks, then stops and closes the loop."""
        if not self.running:
            return
        try:
            self.run(self._cancel_pending())
        except Exception:
            logger.exception("Failed to cancel pending tasks")
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=self.timeout)
        if self._thread.is_alive():
            logger.warning("Event loop thread did not stop in time")
        else:
            self._loop.close()
        self._thread = None

    async def _cancel_pending(self) -> None:
        current = asyncio.current_task()
        pending = [t for t in asyncio.all_tasks() if t is not current]
        if pending:
            logger.info("Cancelling %d pending tasks", len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def submit(self, coro: Awaitable[T]) -> "concurrent.futures.Future[T]":
        """Schedules ``coro`` on the loop without waiting for it."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Awaitable[T]) -> T:
        """Runs ``coro`` on the loop and waits for its result."""
        return self.submit(coro).result(timeout=self.timeout)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Runs a plain function on the loop thread and returns its result."""

        async def invoke():
            return func(*args, **kwargs)

        return self.run(invoke())
