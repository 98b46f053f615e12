"""A single asyncio loop running in a daemon thread.

Streamlit reruns the script on its own threads; every coroutine of the
tracker is handed to this loop so the sync queue only ever runs on one.
"""
import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional


class BackgroundLoop:
    def __init__(self, name: str = "credit-calculator-sync"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def spawn(self, coro: Coroutine) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine, timeout: Optional[float] = None) -> Any:
        return self.spawn(coro).result(timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
