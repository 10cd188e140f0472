import math
import pytest
from unittest.mock import AsyncMock

from crypto_agent.risk_engine import (
    RiskCalculator, build_risk_report, calculate_risk_metrics, calculate_diversification,
    calculate_concentration, generate_recommendations, compose_risk_score,
    risk_level_for_score, z_score_for
)
from crypto_agent.models import Portfolio
from crypto_agent.error_handling import ValidationError, ProviderError, UnsupportedChainError


class TestRiskCalculator:
    """Tests for the risk analytics engine"""

    @pytest.fixture
    def single_eth(self, make_portfolio):
        # 2.5 ETH at $2000, up 4% over 24h
        return make_portfolio([("ETH", 5000.0, 4.0)])

    @pytest.fixture
    def empty_portfolio(self, sample_wallet_address):
        return Portfolio(wallet_address=sample_wallet_address, blockchain="ethereum")

    @pytest.fixture
    def healthy_portfolio(self, make_portfolio):
        return make_portfolio([
            ("USDC", 2000.0, 0.01),
            ("ETH", 2000.0, 0.5),
            ("BTC", 2000.0, 0.5),
            ("SOL", 2000.0, 0.5),
            ("LINK", 2000.0, 0.5),
        ])

    class TestRiskMetrics:
        """Volatility, VaR, Sharpe and drawdown"""

        def test_single_holding_scenario(self, single_eth):
            metrics = calculate_risk_metrics(single_eth, 0.95)

            assert metrics.annualized_volatility_pct == pytest.approx(round(4.0 * math.sqrt(365), 2))
            assert metrics.var_1d_usd == pytest.approx(5000 * 0.04 * 1.645, abs=0.01)
            assert metrics.var_7d_usd == pytest.approx(5000 * 0.04 * 1.645 * math.sqrt(7), abs=0.01)
            assert metrics.max_drawdown_pct == 100.0

        def test_sharpe_ratio_positive_return(self, single_eth):
            metrics = calculate_risk_metrics(single_eth)

            expected = (0.04 - 0.02 / 365) / 0.04
            assert metrics.sharpe_ratio == pytest.approx(expected, abs=1e-3)

        def test_sharpe_ratio_zero_on_loss(self, make_portfolio):
            portfolio = make_portfolio([("ETH", 5000.0, -6.0)])

            assert calculate_risk_metrics(portfolio).sharpe_ratio == 0.0

        def test_sharpe_ratio_zero_without_volatility(self, make_portfolio):
            portfolio = make_portfolio([("USDC", 1000.0, 0.0)])

            metrics = calculate_risk_metrics(portfolio)
            assert metrics.sharpe_ratio == 0.0
            assert metrics.var_1d_usd == 0.0

        def test_volatility_is_value_weighted(self, make_portfolio):
            portfolio = make_portfolio([("ETH", 3000.0, 10.0), ("USDC", 1000.0, -2.0)])

            metrics = calculate_risk_metrics(portfolio)
            expected_daily = 0.75 * 10.0 + 0.25 * 2.0
            assert metrics.annualized_volatility_pct == pytest.approx(expected_daily * math.sqrt(365), abs=0.01)

        def test_drawdown_below_cap(self, make_portfolio):
            portfolio = make_portfolio([("ETH", 1000.0, 1.0)])

            metrics = calculate_risk_metrics(portfolio)
            assert metrics.max_drawdown_pct == pytest.approx(2 * math.sqrt(365), abs=0.01)

        def test_z_score_table(self):
            assert z_score_for(0.90) == 1.282
            assert z_score_for(0.95) == 1.645
            assert z_score_for(0.99) == 2.326
            # Unlisted levels are not interpolated
            assert z_score_for(0.975) == 1.645

        def test_higher_confidence_raises_var(self, single_eth):
            var_95 = calculate_risk_metrics(single_eth, 0.95).var_1d_usd
            var_99 = calculate_risk_metrics(single_eth, 0.99).var_1d_usd
            assert var_99 > var_95

    class TestDiversification:
        """Herfindahl index and concentration"""

        def test_single_holding(self, single_eth):
            diversification = calculate_diversification(single_eth)

            assert diversification.herfindahl_index == 1.0
            assert diversification.effective_asset_count == 1.0
            assert diversification.diversification_ratio == 1.0

        def test_equal_weights(self, make_portfolio):
            portfolio = make_portfolio([(s, 1000.0, 1.0) for s in ("ETH", "BTC", "SOL", "UNI")])

            diversification = calculate_diversification(portfolio)
            assert diversification.herfindahl_index == pytest.approx(0.25)
            assert diversification.effective_asset_count == pytest.approx(4.0)
            assert diversification.asset_count == 4

        def test_herfindahl_bounds(self, make_portfolio):
            portfolio = make_portfolio([("ETH", 7000.0, 1.0), ("BTC", 2000.0, 1.0), ("UNI", 1000.0, 1.0)])

            hhi = calculate_diversification(portfolio).herfindahl_index
            assert 1 / 3 < hhi <= 1.0
            assert hhi == pytest.approx(0.49 + 0.04 + 0.01)

        def test_herfindahl_equal_weights_is_one_over_n(self, make_portfolio):
            portfolio = make_portfolio([(s, 1000.0, 1.0) for s in ("ETH", "BTC", "UNI")])

            diversification = calculate_diversification(portfolio)
            assert diversification.herfindahl_index == pytest.approx(1 / 3, rel=1e-12)
            assert diversification.effective_asset_count == 3.0

        def test_concentration_cumulative(self, make_portfolio):
            portfolio = make_portfolio([
                ("ETH", 4000.0, 1.0), ("BTC", 2000.0, 1.0), ("SOL", 1500.0, 1.0),
                ("UNI", 1000.0, 1.0), ("LINK", 1000.0, 1.0), ("AAVE", 500.0, 1.0),
            ])

            concentration = calculate_concentration(portfolio)
            assert concentration.top1_pct == 40.0
            assert concentration.top3_pct == 75.0
            assert concentration.top5_pct == 95.0
            assert concentration.level == "medium"

        def test_concentration_fewer_than_five(self, make_portfolio):
            portfolio = make_portfolio([("ETH", 6000.0, 1.0), ("BTC", 4000.0, 1.0)])

            concentration = calculate_concentration(portfolio)
            assert concentration.top1_pct == 60.0
            assert concentration.top3_pct == 100.0
            assert concentration.top5_pct == 100.0
            assert concentration.level == "high"

        def test_concentration_monotone(self, make_portfolio):
            portfolio = make_portfolio([(f"T{i}", 1000.0 / 3, 1.0) for i in range(7)])

            concentration = calculate_concentration(portfolio)
            assert concentration.top1_pct <= concentration.top3_pct <= concentration.top5_pct <= 100
            assert concentration.level == "low"

    class TestRecommendations:
        """Rule order and the healthy fallback"""

        def _recommend(self, portfolio):
            metrics = calculate_risk_metrics(portfolio)
            return generate_recommendations(
                portfolio, metrics, calculate_diversification(portfolio), calculate_concentration(portfolio)
            )

        def test_single_holding(self, single_eth):
            recommendations = self._recommend(single_eth)

            assert [(r.type, r.priority) for r in recommendations] == [
                ("rebalance", "high"),
                ("diversify", "medium"),
            ]

        def test_all_rules_fire_in_order(self, make_portfolio):
            portfolio = make_portfolio([("PEPE", 5000.0, 30.0)])

            recommendations = self._recommend(portfolio)
            assert [r.type for r in recommendations] == ["rebalance", "reduce_risk", "diversify", "hedge"]

        def test_healthy_portfolio(self, healthy_portfolio):
            recommendations = self._recommend(healthy_portfolio)

            assert len(recommendations) == 1
            assert recommendations[0].type == "diversify"
            assert recommendations[0].priority == "low"

        def test_empty_portfolio(self, empty_portfolio):
            recommendations = self._recommend(empty_portfolio)

            assert len(recommendations) == 1
            assert recommendations[0].priority == "low"

    class TestRiskScore:
        """Composite 1-10 score"""

        def _score(self, portfolio, reference=None):
            metrics = calculate_risk_metrics(portfolio)
            return compose_risk_score(
                portfolio, metrics, calculate_diversification(portfolio),
                calculate_concentration(portfolio), reference
            )

        def test_single_holding(self, single_eth):
            # vol 76% (+1), top1 100% (+3), ratio 1.0 (+0), VaR 6.6% (+1)
            assert self._score(single_eth) == 6

        def test_fixed_reference_size(self, single_eth):
            # Against $10k the same VaR is 3.3% and adds nothing
            assert self._score(single_eth, reference=10000) == 5

        def test_healthy_portfolio(self, healthy_portfolio):
            assert self._score(healthy_portfolio) == 1

        def test_clamped_to_ten(self, make_portfolio):
            positions = [("PEPE", 9000.0, 30.0)] + [(f"MEME{i}", 1000.0 / 9, 30.0) for i in range(9)]
            portfolio = make_portfolio(positions)

            assert self._score(portfolio) == 10

        def test_empty_portfolio(self, empty_portfolio):
            assert self._score(empty_portfolio) == 1

        @pytest.mark.parametrize("score,level", [(1, "low"), (3, "low"), (4, "medium"), (6, "medium"),
                                                 (7, "high"), (10, "high")])
        def test_risk_level_for_score(self, score, level):
            assert risk_level_for_score(score) == level

    class TestRiskReport:
        def test_build_report(self, single_eth):
            report = build_risk_report(single_eth, 0.95)

            assert report.total_value == 5000.0
            assert report.asset_count == 1
            assert report.overall_risk_score == 6
            assert report.risk_level == "medium"
            assert report.allocation.by_category == {"blue_chip": 100.0}

        def test_report_is_immutable(self, single_eth):
            report = build_risk_report(single_eth)

            with pytest.raises(Exception):
                report.overall_risk_score = 1

        def test_empty_portfolio_report(self, empty_portfolio):
            report = build_risk_report(empty_portfolio)

            assert report.total_value == 0
            assert report.overall_risk_score == 1
            assert report.risk_level == "low"
            assert len(report.recommendations) == 1
            assert report.concentration.level == "low"

        @pytest.mark.parametrize("confidence", [0, 1, 1.5, -0.2])
        def test_invalid_confidence(self, single_eth, confidence):
            with pytest.raises(ValidationError):
                build_risk_report(single_eth, confidence)

    class TestOrchestration:
        """RiskCalculator on top of a mocked provider"""

        @pytest.mark.asyncio
        async def test_calculate_portfolio(self, mock_provider, sample_wallet_address):
            calculator = RiskCalculator(provider=mock_provider)

            portfolio = await calculator.calculate_portfolio(sample_wallet_address, "ethereum")

            assert portfolio.total_value == pytest.approx(6400.0)
            assert portfolio.blockchain == "ethereum"
            mock_provider.resolve_holdings.assert_awaited_once_with(sample_wallet_address, "ethereum")

        @pytest.mark.asyncio
        async def test_analyze_portfolio_risk(self, mock_provider, sample_wallet_address):
            calculator = RiskCalculator(provider=mock_provider)

            report = await calculator.analyze_portfolio_risk(sample_wallet_address, "Ethereum")

            assert report.asset_count == 3
            assert 1 <= report.overall_risk_score <= 10
            assert report.confidence_level == 0.95
            assert sum(report.allocation.by_risk_level.values()) == pytest.approx(100.0, abs=0.05)

        @pytest.mark.asyncio
        async def test_empty_wallet(self, mock_provider, sample_wallet_address):
            mock_provider.resolve_holdings.return_value = []
            calculator = RiskCalculator(provider=mock_provider)

            report = await calculator.analyze_portfolio_risk(sample_wallet_address, "ethereum")

            assert report.total_value == 0
            assert report.overall_risk_score == 1
            mock_provider.resolve_prices.assert_not_awaited()

        @pytest.mark.asyncio
        async def test_malformed_address(self, mock_provider):
            calculator = RiskCalculator(provider=mock_provider)

            with pytest.raises(ValidationError):
                await calculator.calculate_portfolio("0x123", "ethereum")
            mock_provider.resolve_holdings.assert_not_awaited()

        @pytest.mark.asyncio
        async def test_unsupported_chain(self, mock_provider, sample_wallet_address):
            calculator = RiskCalculator(provider=mock_provider)

            with pytest.raises(UnsupportedChainError):
                await calculator.calculate_portfolio(sample_wallet_address, "avalanche")

        @pytest.mark.asyncio
        async def test_provider_error_propagates(self, mock_provider, sample_wallet_address):
            mock_provider.resolve_holdings = AsyncMock(side_effect=ProviderError("API request failed: 503"))
            calculator = RiskCalculator(provider=mock_provider)

            with pytest.raises(ProviderError):
                await calculator.analyze_portfolio_risk(sample_wallet_address, "ethereum")

        @pytest.mark.asyncio
        async def test_solana_wallet(self, mock_provider, sample_solana_address):
            calculator = RiskCalculator(provider=mock_provider)

            portfolio = await calculator.calculate_portfolio(sample_solana_address, "solana")
            assert portfolio.blockchain == "solana"
