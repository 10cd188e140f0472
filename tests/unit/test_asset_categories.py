import pytest

from crypto_agent.asset_categories import (
    ASSET_CATEGORIES, LONG_TAIL, classify_symbol, calculate_allocation
)
from crypto_agent.models import Portfolio


class TestClassifySymbol:
    @pytest.mark.parametrize("symbol,category,risk_level", [
        ("USDC", "stablecoin", "low"),
        ("dai", "stablecoin", "low"),
        ("ETH", "blue_chip", "medium"),
        ("WBTC", "blue_chip", "medium"),
        ("SOL", "large_cap_alt", "medium"),
        ("UNI", "defi", "high"),
        ("CAKE", "defi", "high"),
        ("PEPE", "long_tail", "high"),
    ])
    def test_known_symbols(self, symbol, category, risk_level):
        result = classify_symbol(symbol)
        assert result.name == category
        assert result.risk_level == risk_level

    def test_unknown_symbol_falls_into_long_tail(self):
        assert classify_symbol("NOTAREALTOKEN") is LONG_TAIL
        assert classify_symbol("") is LONG_TAIL

    def test_catch_all_is_last(self):
        assert ASSET_CATEGORIES[-1] is LONG_TAIL
        assert all(category.symbols is not None for category in ASSET_CATEGORIES[:-1])

    def test_symbol_lists_do_not_overlap(self):
        seen = set()
        for category in ASSET_CATEGORIES[:-1]:
            assert not (seen & category.symbols)
            seen |= category.symbols


class TestCalculateAllocation:
    def test_mixed_portfolio(self, make_portfolio):
        portfolio = make_portfolio([
            ("USDC", 2500.0, 0.0),
            ("ETH", 5000.0, 1.0),
            ("UNI", 1500.0, 2.0),
            ("PEPE", 1000.0, 10.0),
        ])

        allocation = calculate_allocation(portfolio)

        assert allocation.by_risk_level == {"low": 25.0, "medium": 50.0, "high": 25.0}
        assert allocation.by_category == {
            "stablecoin": 25.0, "blue_chip": 50.0, "defi": 15.0, "long_tail": 10.0
        }
        # 0.25*5 + 0.5*60 + 0.15*100 + 0.1*150
        assert allocation.weighted_expected_volatility == pytest.approx(61.25)

    def test_zero_categories_are_omitted(self, make_portfolio):
        allocation = calculate_allocation(make_portfolio([("ETH", 1000.0, 1.0)]))

        assert allocation.by_category == {"blue_chip": 100.0}
        assert allocation.by_risk_level == {"low": 0.0, "medium": 100.0, "high": 0.0}

    def test_empty_portfolio(self, sample_wallet_address):
        portfolio = Portfolio(wallet_address=sample_wallet_address, blockchain="ethereum")

        allocation = calculate_allocation(portfolio)

        assert allocation.by_category == {}
        assert set(allocation.by_risk_level) == {"low", "medium", "high"}
        assert sum(allocation.by_risk_level.values()) == 0
