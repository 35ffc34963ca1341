import asyncio


class RateLimiter:
    """Minimum spacing between JSON-RPC requests.

    One instance per RPC endpoint; every coroutine issuing calls through the
    same client waits on the same lock, so poller, balance lookups and block
    timestamp fetches share the provider's request budget. ``max_rps <= 0``
    disables limiting.
    """

    def __init__(self, max_rps: float) -> None:
        self._min_interval = 1.0 / max_rps if max_rps > 0 else 0.0
        self._next_allowed = 0.0
        self._lock = asyncio.Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def acquire(self) -> None:
        if self._min_interval == 0.0:
            return
        async with self._lock:
            loop = asyncio.get_running_loop()
            delay = self._next_allowed - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            self._next_allowed = loop.time() + self._min_interval
