"""Production clock using the system wall clock and asyncio sleeps."""

import asyncio
import time

from quotaguard.domain.interfaces.clock import Clock


class SystemClock(Clock):
    """Clock reading ``time.time()`` and sleeping with ``asyncio.sleep``."""

    def now_ms(self) -> float:
        return time.time() * 1000

    async def sleep(self, delay_ms: float) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
        else:
            # Still yield to the loop so other tasks can progress
            await asyncio.sleep(0)
