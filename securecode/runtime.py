"""Background event loop shared by the pipeline and the relay.

Flask serves requests on worker threads; every coroutine is handed to this
loop so detached analysis tasks outlive the request that created them.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional

logger = logging.getLogger("securecode")


class AnalysisRuntime:
    def __init__(self, name: str = "securecode-runtime") -> None:
        self.loop = asyncio.new_event_loop()
        self._ready = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "AnalysisRuntime":
        if not self._thread.is_alive():
            self._thread.start()
            self._ready.wait()
        return self

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        self.loop.run_forever()

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the loop and block the calling thread for its result."""
        return self.submit(coro).result(timeout)

    async def _cancel_outstanding(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in asyncio.all_tasks() if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def stop(self, before_stop: Optional[Coroutine[Any, Any, Any]] = None, timeout: float = 10.0) -> None:
        if not self._thread.is_alive():
            return
        try:
            if before_stop is not None:
                self.call(before_stop, timeout)
            self.call(self._cancel_outstanding(), timeout)
        except Exception as exc:
            logger.error("Runtime shutdown did not finish cleanly: %s", exc)
        finally:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout)
            if not self._thread.is_alive():
                self.loop.close()


__all__ = ["AnalysisRuntime"]
