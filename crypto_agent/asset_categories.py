"""
Static asset taxonomy used for the allocation breakdown of a risk report.

Categories are matched in declaration order and the first match wins. The
last category has no symbol list and catches everything else, so every
holding lands in exactly one bucket.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from .config import RiskLevel
from .models import Portfolio, AssetAllocation

@dataclass(frozen=True)
class AssetCategory:
    name: str
    risk_level: str
    expected_volatility: float  # annualized, percent
    symbols: Optional[FrozenSet[str]] = None  # None matches any symbol

    def matches(self, symbol: str) -> bool:
        return self.symbols is None or symbol.upper() in self.symbols

STABLECOIN = AssetCategory(
    name="stablecoin",
    risk_level=RiskLevel.LOW,
    expected_volatility=5.0,
    symbols=frozenset({"USDC", "USDT", "DAI", "BUSD", "FRAX", "TUSD", "FDUSD", "USDP", "PYUSD"}),
)
BLUE_CHIP = AssetCategory(
    name="blue_chip",
    risk_level=RiskLevel.MEDIUM,
    expected_volatility=60.0,
    symbols=frozenset({"BTC", "ETH", "WBTC", "WETH"}),
)
LARGE_CAP_ALT = AssetCategory(
    name="large_cap_alt",
    risk_level=RiskLevel.MEDIUM,
    expected_volatility=80.0,
    symbols=frozenset({"BNB", "SOL", "MATIC", "WMATIC", "ADA", "DOT", "AVAX", "ATOM", "NEAR", "LINK", "XRP"}),
)
DEFI = AssetCategory(
    name="defi",
    risk_level=RiskLevel.HIGH,
    expected_volatility=100.0,
    symbols=frozenset({"UNI", "AAVE", "COMP", "MKR", "SNX", "YFI", "SUSHI", "CRV", "BAL",
                       "1INCH", "CAKE", "QUICK", "JUP", "RAY"}),
)
LONG_TAIL = AssetCategory(
    name="long_tail",
    risk_level=RiskLevel.HIGH,
    expected_volatility=150.0,
)

ASSET_CATEGORIES: Tuple[AssetCategory, ...] = (STABLECOIN, BLUE_CHIP, LARGE_CAP_ALT, DEFI, LONG_TAIL)

def classify_symbol(symbol: str) -> AssetCategory:
    for category in ASSET_CATEGORIES:
        if category.matches(symbol or ""):
            return category
    return LONG_TAIL

def calculate_allocation(portfolio: Portfolio) -> AssetAllocation:
    """Percentage of portfolio value per risk level and per category"""
    by_risk_level: Dict[str, float] = {level: 0.0 for level in RiskLevel.ALL}
    by_category: Dict[str, float] = {}
    weighted_volatility = 0.0

    if portfolio.is_empty:
        return AssetAllocation(by_risk_level=by_risk_level, by_category=by_category)

    for holding in portfolio.holdings:
        category = classify_symbol(holding.symbol)
        weight = holding.value / portfolio.total_value
        by_risk_level[category.risk_level] += weight * 100
        by_category[category.name] = by_category.get(category.name, 0.0) + weight * 100
        weighted_volatility += weight * category.expected_volatility

    return AssetAllocation(
        by_risk_level={level: round(pct, 2) for level, pct in by_risk_level.items()},
        by_category={name: round(pct, 2) for name, pct in by_category.items() if pct > 0},
        weighted_expected_volatility=round(weighted_volatility, 2)
    )
