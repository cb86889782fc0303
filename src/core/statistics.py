"""Process-lifetime keeper statistics.

Counters are owned by one keeper instance and mutated only by the executor
after a completed attempt. Scan-side counts (ticks, opportunities) live in
the runner. Nothing is persisted; a restart starts from zero.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass
class KeeperStatistics:
    """Running counters for executions and realized profit."""

    executions_attempted: int = 0
    successes: int = 0
    failures: int = 0
    total_profit: int = 0  # base units of the flash-loaned token
    total_gas_used: int = 0
    started_at: float = field(default_factory=time.monotonic)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    async def record_attempt(self) -> None:
        async with self._lock:
            self.executions_attempted += 1

    async def record_success(self, profit: int, gas_used: int = 0) -> None:
        async with self._lock:
            self.successes += 1
            self.total_profit += int(profit)
            self.total_gas_used += int(gas_used)

    async def record_failure(self, gas_used: int = 0) -> None:
        async with self._lock:
            self.failures += 1
            self.total_gas_used += int(gas_used)

    @property
    def average_profit(self) -> float:
        if self.successes == 0:
            return 0.0
        return self.total_profit / self.successes

    @property
    def success_rate(self) -> float:
        finished = self.successes + self.failures
        if finished == 0:
            return 0.0
        return self.successes / finished

    def snapshot(self) -> dict[str, Any]:
        """Plain dict view for the periodic statistics log line."""
        return {
            "uptime_seconds": round(time.monotonic() - self.started_at, 1),
            "executions_attempted": self.executions_attempted,
            "successes": self.successes,
            "failures": self.failures,
            "total_profit": self.total_profit,
            "average_profit": round(self.average_profit, 2),
            "success_rate": round(self.success_rate, 3),
            "total_gas_used": self.total_gas_used,
        }
