"""Tests for keeper statistics counters."""

import asyncio

import pytest

from src.core.statistics import KeeperStatistics


def test_empty_statistics_have_zero_rates() -> None:
    stats = KeeperStatistics()

    assert stats.average_profit == 0.0
    assert stats.success_rate == 0.0


@pytest.mark.asyncio
async def test_concurrent_updates_are_not_lost() -> None:
    stats = KeeperStatistics()

    await asyncio.gather(
        *(stats.record_success(profit=3, gas_used=10) for _ in range(50)),
        *(stats.record_failure(gas_used=5) for _ in range(25)),
        *(stats.record_attempt() for _ in range(75)),
    )

    assert stats.successes == 50
    assert stats.failures == 25
    assert stats.executions_attempted == 75
    assert stats.total_profit == 150
    assert stats.total_gas_used == 50 * 10 + 25 * 5
    assert stats.success_rate == pytest.approx(50 / 75)
    assert stats.average_profit == 3


@pytest.mark.asyncio
async def test_snapshot_reports_all_counters() -> None:
    stats = KeeperStatistics()
    await stats.record_attempt()
    await stats.record_failure(gas_used=21_000)

    snapshot = stats.snapshot()

    assert snapshot["executions_attempted"] == 1
    assert snapshot["failures"] == 1
    assert snapshot["total_gas_used"] == 21_000
    assert snapshot["total_profit"] == 0
    assert snapshot["uptime_seconds"] >= 0
    assert set(snapshot) >= {"successes", "average_profit", "success_rate"}
