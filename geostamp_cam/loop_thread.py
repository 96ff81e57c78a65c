"""A private asyncio loop on a daemon thread.

Flask serves requests on worker threads; the editing session, its debounce
timers and search tasks all live on this one loop so every mutation happens
on a single thread. Request threads hand work over with :meth:`call` (plain
function) or :meth:`run` (coroutine) and block on the returned future.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventLoopThread:
    def __init__(self, name: str = "geostamp-loop"):
        self.name = name
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    def start(self) -> "EventLoopThread":
        if self.thread and self.thread.is_alive():
            return self
        self.thread = threading.Thread(target=self._run_event_loop, name=self.name, daemon=True)
        self.thread.start()
        if not self._ready.wait(timeout=5.0):
            raise RuntimeError("event loop failed to start within 5 seconds")
        logger.debug("Event loop running in thread %s", self.thread.ident)
        return self

    def _run_event_loop(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()
            logger.debug("Event loop stopped")

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run ``coro`` on the loop and wait for its result."""
        if self.loop is None:
            raise RuntimeError("event loop not started")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def call(self, func: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
        """Run a plain function on the loop thread and wait for its result."""
        async def _invoke() -> T:
            return func(*args)
        return self.run(_invoke(), timeout)

    def stop(self) -> None:
        if self.loop is None or self.thread is None:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=2.0)
        self.thread = None
        self.loop = None
        self._ready.clear()
