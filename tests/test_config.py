"""Tests for keeper settings loading and validation."""

from decimal import Decimal

import pytest

from src.core.types import PriceBasis
from src.dex.config import KeeperConfigError, load_settings

REQUIRED = {
    "rpc_url": "https://mainnet.base.org",
    "keeper_private_key": "0x" + "11" * 32,
    "arbitrage_strategy_address": "0x7777777777777777777777777777777777777777",
    "dex_aggregator_address": "0x8888888888888888888888888888888888888888",
}


def settings(**overrides):
    return load_settings(_env_file=None, **{**REQUIRED, **overrides})


def test_defaults_match_keeper_conventions() -> None:
    s = settings()

    assert s.chain_id == 8453
    assert s.min_spread_pct == Decimal("0.5")
    assert s.max_liquidity_fraction == Decimal("0.30")
    assert s.min_profit == Decimal("10")
    assert s.max_gas_price_gwei == Decimal("100")
    assert s.max_gas_limit == 500_000
    assert s.poll_interval_seconds == 5.0
    assert s.stats_interval_seconds == 60.0
    assert s.enable_execution is False


def test_missing_required_value_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RPC_URL", raising=False)
    values = {k: v for k, v in REQUIRED.items() if k != "rpc_url"}

    with pytest.raises(KeeperConfigError, match="RPC_URL"):
        load_settings(_env_file=None, **values)


def test_environment_names_are_read_and_stripped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RPC_URL", "  https://base.example/rpc \n")
    monkeypatch.setenv("KEEPER_PRIVATE_KEY", REQUIRED["keeper_private_key"])
    monkeypatch.setenv("ARBITRAGE_STRATEGY_ADDRESS", REQUIRED["arbitrage_strategy_address"])
    monkeypatch.setenv("DEX_AGGREGATOR_ADDRESS", REQUIRED["dex_aggregator_address"])
    monkeypatch.setenv("MIN_SPREAD_PCT", "0.8")
    monkeypatch.setenv("ENABLE_EXECUTION", "true")

    s = load_settings(_env_file=None)

    assert s.rpc_url is not None
    assert s.rpc_url.get_secret_value() == "https://base.example/rpc"
    assert s.min_spread_pct == Decimal("0.8")
    assert s.enable_execution is True


def test_invalid_liquidity_fraction_is_rejected() -> None:
    with pytest.raises(KeeperConfigError):
        settings(max_liquidity_fraction=Decimal("1.5"))


def test_default_pairs() -> None:
    pairs = settings().build_pairs()

    assert [p.symbol for p in pairs] == ["USDC/WETH", "USDC/DAI", "WETH/WBTC"]
    usdc_weth, _, weth_wbtc = pairs
    assert usdc_weth.token_a_decimals == 6
    assert usdc_weth.basis is PriceBasis.USD
    assert weth_wbtc.token_a_decimals == 18
    assert weth_wbtc.basis is PriceBasis.NATIVE


def test_usd_thresholds_convert_per_input_token() -> None:
    s = settings()
    usdc_weth, _, weth_wbtc = s.build_pairs()
    eth_usd = Decimal("2500")

    assert usdc_weth.usd_to_base_units(s.min_profit, eth_usd) == 10 * 10**6
    assert usdc_weth.usd_to_base_units(s.quote_amount, eth_usd) == 1_000 * 10**6
    # $10 and $1000 at 2500 USD/ETH
    assert weth_wbtc.usd_to_base_units(s.min_profit, eth_usd) == 4 * 10**15
    assert weth_wbtc.usd_to_base_units(s.quote_amount, eth_usd) == 4 * 10**17
    assert weth_wbtc.usd_to_base_units(s.quote_amount, None) is None


def test_unlisted_input_token_is_unpriced() -> None:
    (pair,) = settings(keeper_pairs="WBTC/USDC").build_pairs()

    assert pair.basis is None
    assert pair.usd_to_base_units(Decimal("10"), Decimal("2500")) is None


def test_empty_native_price_means_live_feed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NATIVE_PRICE_USD", "")

    assert settings().native_price_usd is None


def test_nonpositive_native_price_is_rejected() -> None:
    with pytest.raises(KeeperConfigError):
        settings(native_price_usd=Decimal("0"))


@pytest.mark.parametrize("pairs", ["USDC/PEPE", "USDC-WETH", "USDC/USDC", " , "])
def test_bad_pairs_raise_config_error(pairs: str) -> None:
    with pytest.raises(KeeperConfigError):
        settings(keeper_pairs=pairs).build_pairs()


def test_venues_are_quoted_through_aggregator() -> None:
    venues = settings().build_venues()

    assert [v.venue_type for v in venues] == ["aerodrome", "uniswap_v3"]
    assert all(v.quoter == REQUIRED["dex_aggregator_address"] for v in venues)
    assert venues[1].fee_tier == 3000
