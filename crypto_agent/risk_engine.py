import math
from typing import List, Optional
import numpy as np
import structlog

from .config import settings, RiskLevel, Priority, RecommendationType
from .error_handling import ProviderError, ValidationError
from .models import (
    Portfolio, RiskMetrics, DiversificationMetrics, ConcentrationRisk,
    RiskRecommendation, RiskReport
)
from .asset_categories import calculate_allocation
from .external_apis import api_manager
from .security import validate_wallet_request
from .valuation import value_portfolio

logger = structlog.get_logger()

# One-sided normal quantiles; anything else falls back to 95%
Z_SCORES = {
    0.90: 1.282,
    0.95: 1.645,
    0.99: 2.326,
}
DEFAULT_Z_SCORE = 1.645

def z_score_for(confidence_level: float) -> float:
    return Z_SCORES.get(round(confidence_level, 4), DEFAULT_Z_SCORE)

def validate_confidence(confidence_level: float) -> float:
    if confidence_level is None or not 0 < confidence_level < 1:
        raise ValidationError(f"Confidence level must be between 0 and 1, got {confidence_level}")
    return confidence_level

def _weights(portfolio: Portfolio) -> np.ndarray:
    values = np.array([h.value for h in portfolio.holdings], dtype=float)
    return values / portfolio.total_value

def calculate_risk_metrics(portfolio: Portfolio, confidence_level: float = 0.95) -> RiskMetrics:
    """Volatility, VaR, Sharpe and drawdown estimates for a valued portfolio.

    Volatility here is a proxy: the value-weighted absolute 24h move of each
    holding, annualized with sqrt(365). It is a single-day snapshot rather
    than a standard deviation over a return series, and everything derived
    from it (VaR, Sharpe, drawdown) inherits that coarseness.
    """
    if portfolio.is_empty:
        return RiskMetrics()

    weights = _weights(portfolio)
    daily_moves = np.abs([h.change_percentage_24h for h in portfolio.holdings])
    daily_volatility_pct = float(np.dot(weights, daily_moves))
    annualized_volatility_pct = daily_volatility_pct * math.sqrt(365)

    var_1d = portfolio.total_value * (daily_volatility_pct / 100) * z_score_for(confidence_level)
    var_7d = var_1d * math.sqrt(7)

    daily_return = portfolio.total_change_percentage_24h / 100
    if daily_return <= 0 or daily_volatility_pct == 0:
        sharpe_ratio = 0.0
    else:
        daily_risk_free = settings.RISK_FREE_RATE / 365
        sharpe_ratio = (daily_return - daily_risk_free) / (daily_volatility_pct / 100)

    max_drawdown_pct = min(2 * annualized_volatility_pct, 100.0)

    return RiskMetrics(
        annualized_volatility_pct=round(annualized_volatility_pct, 2),
        var_1d_usd=round(var_1d, 2),
        var_7d_usd=round(var_7d, 2),
        sharpe_ratio=round(sharpe_ratio, 3),
        max_drawdown_pct=round(max_drawdown_pct, 2)
    )

def calculate_diversification(portfolio: Portfolio) -> DiversificationMetrics:
    """Herfindahl index and the effective number of equally weighted assets"""
    if portfolio.is_empty:
        return DiversificationMetrics()

    weights = _weights(portfolio)
    herfindahl_index = float(np.sum(weights ** 2))
    effective_assets = 1 / herfindahl_index
    asset_count = len(portfolio.holdings)

    return DiversificationMetrics(
        asset_count=asset_count,
        herfindahl_index=herfindahl_index,
        effective_asset_count=round(effective_assets, 2),
        diversification_ratio=round(min(effective_assets / asset_count, 1.0), 3)
    )

def concentration_level(top1_pct: float) -> str:
    if top1_pct > 50:
        return RiskLevel.HIGH
    elif top1_pct > 25:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW

def calculate_concentration(portfolio: Portfolio) -> ConcentrationRisk:
    """Cumulative value share of the largest 1, 3 and 5 holdings"""
    if portfolio.is_empty:
        return ConcentrationRisk()

    values = sorted((h.value for h in portfolio.holdings), reverse=True)
    shares = np.cumsum(values) / portfolio.total_value * 100

    def top(n: int) -> float:
        return round(min(float(shares[min(n, len(shares)) - 1]), 100.0), 2)

    top1, top3, top5 = top(1), top(3), top(5)
    # Rounding must not break top1 <= top3 <= top5
    top3 = max(top3, top1)
    top5 = max(top5, top3)

    return ConcentrationRisk(
        top1_pct=top1,
        top3_pct=top3,
        top5_pct=top5,
        level=concentration_level(top1)
    )

def var_share_pct(portfolio: Portfolio, metrics: RiskMetrics,
                  reference_value: Optional[float] = None) -> float:
    """1-day VaR as a percentage of the portfolio (or of a fixed reference size)"""
    base = reference_value or portfolio.total_value
    if not base:
        return 0.0
    return metrics.var_1d_usd / base * 100

def generate_recommendations(portfolio: Portfolio, metrics: RiskMetrics,
                             diversification: DiversificationMetrics,
                             concentration: ConcentrationRisk) -> List[RiskRecommendation]:
    """Rule-based advice; rules are independent and appended in a fixed order"""
    if portfolio.is_empty:
        return [RiskRecommendation(
            type=RecommendationType.DIVERSIFY,
            priority=Priority.LOW,
            message="No priced holdings found for this wallet",
            suggested_action="Fund the wallet or check the address and chain before analyzing risk"
        )]

    recommendations = []

    if concentration.level == RiskLevel.HIGH:
        recommendations.append(RiskRecommendation(
            type=RecommendationType.REBALANCE,
            priority=Priority.HIGH,
            message=f"Largest holding is {concentration.top1_pct:.1f}% of the portfolio",
            suggested_action="Rebalance so no single asset exceeds 25-30% of total value"
        ))

    if metrics.annualized_volatility_pct > 100:
        recommendations.append(RiskRecommendation(
            type=RecommendationType.REDUCE_RISK,
            priority=Priority.HIGH,
            message=f"Annualized volatility is {metrics.annualized_volatility_pct:.1f}%",
            suggested_action="Shift part of the portfolio into stablecoins or blue-chip assets"
        ))

    if diversification.asset_count < 5:
        recommendations.append(RiskRecommendation(
            type=RecommendationType.DIVERSIFY,
            priority=Priority.MEDIUM,
            message=f"Portfolio holds only {diversification.asset_count} asset(s)",
            suggested_action="Spread exposure across at least 5 assets in different categories"
        ))

    if var_share_pct(portfolio, metrics) > 10:
        recommendations.append(RiskRecommendation(
            type=RecommendationType.HEDGE,
            priority=Priority.HIGH,
            message=f"1-day VaR of ${metrics.var_1d_usd:,.2f} exceeds 10% of portfolio value",
            suggested_action="Consider hedging with stablecoins or protective positions"
        ))

    if not recommendations:
        recommendations.append(RiskRecommendation(
            type=RecommendationType.DIVERSIFY,
            priority=Priority.LOW,
            message="Portfolio risk profile looks healthy",
            suggested_action="Keep monitoring and rebalance periodically"
        ))

    return recommendations

def compose_risk_score(portfolio: Portfolio, metrics: RiskMetrics,
                       diversification: DiversificationMetrics,
                       concentration: ConcentrationRisk,
                       var_reference_usd: Optional[float] = None) -> int:
    """Overall 1-10 risk score built from bounded per-metric contributions"""
    if portfolio.is_empty:
        return 1

    score = 1

    volatility = metrics.annualized_volatility_pct
    if volatility > 150:
        score += 3
    elif volatility > 100:
        score += 2
    elif volatility > 50:
        score += 1

    top1 = concentration.top1_pct
    if top1 > 70:
        score += 3
    elif top1 > 50:
        score += 2
    elif top1 > 30:
        score += 1

    if diversification.diversification_ratio < 0.3:
        score += 2
    elif diversification.diversification_ratio < 0.5:
        score += 1

    var_pct = var_share_pct(portfolio, metrics, var_reference_usd)
    if var_pct > 10:
        score += 2
    elif var_pct > 5:
        score += 1

    return max(1, min(score, 10))

def risk_level_for_score(score: int) -> str:
    if score <= 3:
        return RiskLevel.LOW
    elif score <= 6:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH

def build_risk_report(portfolio: Portfolio, confidence_level: float = 0.95,
                      var_reference_usd: Optional[float] = None) -> RiskReport:
    """Assemble the full report from a valued portfolio; no I/O"""
    validate_confidence(confidence_level)
    if var_reference_usd is None:
        var_reference_usd = settings.VAR_SCORE_REFERENCE_USD

    metrics = calculate_risk_metrics(portfolio, confidence_level)
    diversification = calculate_diversification(portfolio)
    concentration = calculate_concentration(portfolio)
    allocation = calculate_allocation(portfolio)
    recommendations = generate_recommendations(portfolio, metrics, diversification, concentration)
    score = compose_risk_score(portfolio, metrics, diversification, concentration, var_reference_usd)

    return RiskReport(
        wallet_address=portfolio.wallet_address,
        blockchain=portfolio.blockchain,
        confidence_level=confidence_level,
        total_value=round(portfolio.total_value, 2),
        asset_count=len(portfolio.holdings),
        portfolio=portfolio,
        risk_metrics=metrics,
        diversification=diversification,
        concentration=concentration,
        allocation=allocation,
        recommendations=recommendations,
        overall_risk_score=score,
        risk_level=risk_level_for_score(score)
    )

class RiskCalculator:
    """Portfolio valuation and risk analysis on top of the market data provider"""

    def __init__(self, provider=None):
        self.provider = provider or api_manager
        self.var_confidence = settings.VAR_CONFIDENCE

    async def calculate_portfolio(self, wallet_address: str, chain: str) -> Portfolio:
        """Resolve, price and value the holdings of a wallet"""
        wallet_address, chain = validate_wallet_request(wallet_address, chain)

        try:
            balances = await self.provider.resolve_holdings(wallet_address, chain)
            quotes = await self.provider.resolve_prices(balances, chain) if balances else {}
        except ProviderError as e:
            logger.error(f"Error resolving portfolio for {wallet_address} on {chain}", error=str(e))
            raise

        portfolio = value_portfolio(wallet_address, chain, balances, quotes)
        logger.info("Portfolio calculated",
                    wallet=wallet_address,
                    chain=chain,
                    total_value=round(portfolio.total_value, 2),
                    holdings=len(portfolio.holdings))
        return portfolio

    async def analyze_portfolio_risk(self, wallet_address: str, chain: str,
                                     confidence_level: Optional[float] = None) -> RiskReport:
        """Full risk report for a wallet"""
        if confidence_level is None:
            confidence_level = self.var_confidence
        validate_confidence(confidence_level)

        portfolio = await self.calculate_portfolio(wallet_address, chain)
        report = build_risk_report(portfolio, confidence_level)

        logger.info("Risk analysis completed",
                    wallet=report.wallet_address,
                    chain=report.blockchain,
                    risk_score=report.overall_risk_score,
                    risk_level=report.risk_level)
        return report

# Global risk calculator instance
risk_calculator = RiskCalculator()
