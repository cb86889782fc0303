"""Tests for the gas oracle sources, tiers and cache."""

from decimal import Decimal

import httpx
import pytest

from src.live.gas_oracle import GasOracle, GasPrice

GWEI = 10**9


class FakeEth:
    def __init__(self, gas_price=None, error=None):
        self._gas_price = gas_price
        self._error = error
        self.calls = 0

    @property
    def gas_price(self):
        self.calls += 1
        return self._fetch()

    async def _fetch(self):
        if self._error is not None:
            raise self._error
        return self._gas_price


class FakeWeb3:
    def __init__(self, **kwargs):
        self.eth = FakeEth(**kwargs)


def etherscan_transport(payload: dict, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, json=payload)

    return httpx.MockTransport(handler)


def test_tiers_are_derived_from_standard_price() -> None:
    price = GasPrice.from_standard(10 * GWEI, "rpc", "high")

    assert price.slow_wei == 9 * GWEI
    assert price.fast_wei == 12 * GWEI
    assert price.gwei == Decimal("10")
    assert price.cost_wei(21_000) == 21_000 * 10 * GWEI


@pytest.mark.asyncio
async def test_rpc_price_is_used_and_cached() -> None:
    w3 = FakeWeb3(gas_price=2 * GWEI)
    oracle = GasOracle(w3, cache_ttl_seconds=60.0)

    first = await oracle.get_gas_price()
    second = await oracle.get_gas_price()

    assert first is not None and first.source == "rpc"
    assert first.gwei == Decimal("2")
    assert second is first
    assert w3.eth.calls == 1

    oracle.clear_cache()
    await oracle.get_gas_price()
    assert w3.eth.calls == 2


@pytest.mark.asyncio
async def test_falls_back_to_etherscan_when_rpc_fails() -> None:
    seen: list[httpx.Request] = []
    transport = etherscan_transport(
        {
            "status": "1",
            "message": "OK",
            "result": {"SafeGasPrice": "0.9", "ProposeGasPrice": "1", "FastGasPrice": "1.5"},
        },
        seen,
    )
    oracle = GasOracle(
        FakeWeb3(error=ConnectionError("rpc down")),
        chain_id=8453,
        etherscan_api_key="key",
        transport=transport,
    )

    price = await oracle.get_gas_price()

    assert price is not None
    assert price.source == "etherscan"
    assert price.wei == GWEI
    assert price.slow_wei == 9 * GWEI // 10
    assert price.fast_wei == 3 * GWEI // 2
    assert seen[0].url.params["chainid"] == "8453"
    assert seen[0].url.params["action"] == "gasoracle"


@pytest.mark.asyncio
async def test_unknown_when_every_source_fails() -> None:
    oracle = GasOracle(FakeWeb3(error=ConnectionError("rpc down")))

    assert await oracle.get_gas_price() is None
    assert await oracle.is_acceptable(Decimal("100")) is False


@pytest.mark.asyncio
async def test_etherscan_error_payload_is_ignored() -> None:
    transport = etherscan_transport({"status": "0", "message": "NOTOK", "result": "Invalid API Key"})
    oracle = GasOracle(None, etherscan_api_key="bad", transport=transport)

    assert await oracle.get_gas_price() is None


@pytest.mark.asyncio
async def test_is_acceptable_compares_against_ceiling() -> None:
    oracle = GasOracle(FakeWeb3(gas_price=150 * GWEI))

    assert await oracle.is_acceptable(Decimal("100")) is False
    assert await oracle.is_acceptable(Decimal("150")) is True
