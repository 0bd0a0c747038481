"""Background asyncio loop shared by the HTTP side of the runtime."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import TimeoutError
from typing import Any, TypeVar

L = logging.getLogger("reflex_runtime.lifecycle")


T = TypeVar("T")


class LoopRunner:
    """Owns one asyncio loop on a daemon thread; sync code submits coroutines to it."""

    def __init__(self, *, name: str = "reflex-async", logger: logging.Logger | None = None):
        self._name = name
        self._logger = logger or L
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._thread_ident: int | None = None
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return bool(self._loop and thread and thread.is_alive())

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._stopped:
                raise RuntimeError("Async loop already stopped")
            if self.running:
                return self._loop
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _runner():
                asyncio.set_event_loop(loop)
                self._thread_ident = threading.get_ident()
                ready.set()
                loop.run_forever()

            self._loop = loop
            self._thread = threading.Thread(target=_runner, name=self._name, daemon=True)
            self._thread.start()
            ready.wait(timeout=0.5)
            return loop

    def _on_loop_thread(self) -> bool:
        return self._thread_ident is not None and threading.get_ident() == self._thread_ident

    def run_async(self, coro: Coroutine[Any, Any, T], timeout: float | None = 0.5) -> T:
        """Run a coroutine on the loop from another thread and wait for its result."""
        loop = self._ensure_loop()
        if self._on_loop_thread():
            raise RuntimeError("run_async must not be called from the loop thread; await directly")
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return fut.result(timeout=timeout)
        except TimeoutError:
            fut.cancel()
            self._logger.warning("run_async timeout after %.2fs", timeout or 0)
            raise

    def shutdown_loop(self, timeout: float = 1.0):
        """Cancel pending tasks, stop the loop and join its thread."""
        if self._on_loop_thread():
            raise RuntimeError("shutdown_loop must not be called from the loop thread")
        with self._lock:
            self._stopped = True
            loop = self._loop
            thread = self._thread
            if loop is None or thread is None or loop.is_closed():
                return

        async def _cancel_pending():
            current = asyncio.current_task()
            tasks = [t for t in asyncio.all_tasks() if t is not current and not t.done()]
            self._logger.debug("shutdown_loop pending_tasks=%d", len(tasks))
            for t in tasks:
                t.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await loop.shutdown_asyncgens()

        fut = asyncio.run_coroutine_threadsafe(_cancel_pending(), loop)
        try:
            fut.result(timeout=timeout)
        except TimeoutError:
            fut.cancel()
            raise
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=timeout)
            if not thread.is_alive() and not loop.is_closed():
                loop.close()
            self._loop = None
            self._thread = None
            self._thread_ident = None


def run_async_cleanup(
    coro: Coroutine[Any, Any, Any],
    *,
    loop_runner: LoopRunner,
    timeout: float = 0.5,
):
    """Run async cleanup from sync code with a bounded wait."""
    loop_runner.run_async(coro, timeout=timeout)


__all__ = ["LoopRunner", "run_async_cleanup"]
