"""Startup health checks for the keeper.

RPC reachability, chain id and strategy bytecode are fatal: the keeper must
not start without them. A paused strategy or a low keeper balance is only a
warning; the gate will reject executions until it is resolved.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
import time
from typing import Protocol

import structlog
from web3 import AsyncWeb3, Web3

from src.dex.config import KeeperConfigError
from src.utils.resilience import with_exponential_backoff

log = structlog.get_logger()


class PausableContract(Protocol):
    address: str

    async def paused(self) -> bool: ...


@dataclass(frozen=True)
class HealthStatus:
    component: str
    healthy: bool
    message: str
    fatal: bool = False
    latency_ms: float | None = None


class HealthMonitor:
    """Run connectivity and contract checks before the loop starts."""

    def __init__(
        self,
        w3: AsyncWeb3,
        strategy: PausableContract,
        keeper_address: str,
        expected_chain_id: int,
        min_keeper_balance_eth: Decimal = Decimal("0.01"),
        probe_retries: int = 3,
        probe_base_delay: float = 1.0,
    ):
        self.w3 = w3
        self.strategy = strategy
        self.keeper_address = keeper_address
        self.expected_chain_id = expected_chain_id
        self.min_keeper_balance_eth = min_keeper_balance_eth
        self.probe_retries = probe_retries
        self.probe_base_delay = probe_base_delay

    async def run(self) -> list[HealthStatus]:
        """Run every check and log each result."""
        rpc = await self._check_rpc()
        checks = [rpc]

        # Nothing else can be answered without a working RPC
        if rpc.healthy:
            checks.extend(
                await asyncio.gather(
                    self._check_chain_id(),
                    self._check_contract_code(),
                    self._check_paused(),
                    self._check_keeper_balance(),
                )
            )

        for status in checks:
            if status.healthy:
                log.info("health.ok", component=status.component, message=status.message)
            else:
                log.warning(
                    "health.failed",
                    component=status.component,
                    message=status.message,
                    fatal=status.fatal,
                )
        return checks

    async def ensure_ready(self) -> list[HealthStatus]:
        """Run the checks and raise ``KeeperConfigError`` if any fatal one failed."""
        checks = await self.run()
        fatal = [c for c in checks if c.fatal and not c.healthy]
        if fatal:
            details = "; ".join(f"{c.component}: {c.message}" for c in fatal)
            raise KeeperConfigError(f"Keeper is not ready: {details}")
        return checks

    async def _check_rpc(self) -> HealthStatus:
        @with_exponential_backoff(
            max_retries=self.probe_retries, base_delay=self.probe_base_delay
        )
        async def probe() -> int:
            return await self.w3.eth.block_number

        start = time.monotonic()
        try:
            block = await probe()
        except Exception as e:
            return HealthStatus("rpc", False, f"Unreachable: {e}", fatal=True)
        latency = (time.monotonic() - start) * 1000
        return HealthStatus("rpc", True, f"Connected - block {block}", latency_ms=latency)

    async def _check_chain_id(self) -> HealthStatus:
        try:
            chain_id = await self.w3.eth.chain_id
        except Exception as e:
            return HealthStatus("chain_id", False, f"Query failed: {e}", fatal=True)
        if chain_id != self.expected_chain_id:
            return HealthStatus(
                "chain_id",
                False,
                f"Connected to chain {chain_id}, expected {self.expected_chain_id}",
                fatal=True,
            )
        return HealthStatus("chain_id", True, f"Chain {chain_id}")

    async def _check_contract_code(self) -> HealthStatus:
        try:
            code = await self.w3.eth.get_code(Web3.to_checksum_address(self.strategy.address))
        except Exception as e:
            return HealthStatus("strategy_code", False, f"Query failed: {e}", fatal=True)
        if not code:
            return HealthStatus(
                "strategy_code",
                False,
                f"No contract deployed at {self.strategy.address}",
                fatal=True,
            )
        return HealthStatus("strategy_code", True, f"{len(code)} bytes deployed")

    async def _check_paused(self) -> HealthStatus:
        try:
            paused = await self.strategy.paused()
        except Exception as e:
            return HealthStatus("strategy_paused", False, f"Query failed: {e}")
        if paused:
            return HealthStatus("strategy_paused", False, "Strategy is paused")
        return HealthStatus("strategy_paused", True, "Active")

    async def _check_keeper_balance(self) -> HealthStatus:
        try:
            balance_wei = await self.w3.eth.get_balance(
                Web3.to_checksum_address(self.keeper_address)
            )
        except Exception as e:
            return HealthStatus("keeper_balance", False, f"Query failed: {e}")
        balance = Decimal(balance_wei) / Decimal(10**18)
        if balance < self.min_keeper_balance_eth:
            return HealthStatus(
                "keeper_balance",
                False,
                f"Low balance {balance} ETH (minimum {self.min_keeper_balance_eth})",
            )
        return HealthStatus("keeper_balance", True, f"{balance} ETH")
