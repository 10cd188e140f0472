import pytest
import os
from unittest.mock import AsyncMock
from typing import Dict, List, Optional

import pytest_asyncio

# Set test environment
os.environ["ENV"] = "test"
os.environ["LOG_LEVEL"] = "ERROR"  # Reduce noise in tests
os.environ["USE_SAMPLE_HOLDINGS"] = "true"
os.environ.pop("MORALIS_API_KEY", None)
os.environ.pop("RESEND_API_KEY", None)

from crypto_agent.models import TokenBalance, PriceQuote, Holding, Portfolio
from crypto_agent.price_alerts import AlertRegistry, PriceAlertMonitor, PriceAlertService
from crypto_agent.external_apis import SAMPLE_HOLDINGS

class FakePriceFeed:
    """Provider stand-in that replays a price sequence per symbol"""

    def __init__(self, prices: Optional[Dict[str, List[Optional[float]]]] = None):
        self.prices = {symbol: list(seq) for symbol, seq in (prices or {}).items()}
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}

    async def get_price(self, symbol: str) -> Optional[float]:
        self.calls.append(symbol)
        if symbol in self.failures:
            raise self.failures[symbol]
        sequence = self.prices.get(symbol)
        if not sequence:
            return None
        # Last price repeats once the sequence is exhausted
        return sequence.pop(0) if len(sequence) > 1 else sequence[0]

@pytest.fixture
def sample_wallet_address():
    """Sample Ethereum wallet address for testing"""
    return "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"

@pytest.fixture
def sample_solana_address():
    return "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"

@pytest.fixture
def make_portfolio(sample_wallet_address):
    """Build a valued portfolio from (symbol, value, change_pct) tuples"""
    def _make(positions, chain="ethereum"):
        holdings = [
            Holding(
                name=symbol,
                symbol=symbol,
                amount=1.0,
                current_price=value,
                value=value,
                change_24h=value - value / (1 + pct / 100),
                change_percentage_24h=pct
            )
            for symbol, value, pct in positions
        ]
        holdings.sort(key=lambda h: h.value, reverse=True)
        total = sum(h.value for h in holdings)
        total_change = sum(h.change_24h for h in holdings)
        previous = total - total_change
        return Portfolio(
            wallet_address=sample_wallet_address,
            blockchain=chain,
            total_value=total,
            total_change_24h=total_change,
            total_change_percentage_24h=(total_change / previous * 100) if previous > 0 else 0.0,
            holdings=holdings
        )
    return _make

@pytest.fixture
def sample_balances():
    return [balance.model_copy() for balance in SAMPLE_HOLDINGS["ethereum"]]

@pytest.fixture
def sample_quotes():
    return {
        "ethereum": PriceQuote(usd_price=2000.0, usd_24h_change_pct=3.0),
        "usd-coin": PriceQuote(usd_price=1.0, usd_24h_change_pct=0.01),
        "uniswap": PriceQuote(usd_price=8.0, usd_24h_change_pct=-4.0),
    }

@pytest.fixture
def mock_provider(sample_balances, sample_quotes):
    """Mock market data provider"""
    provider = AsyncMock()
    provider.resolve_holdings.return_value = sample_balances
    provider.resolve_prices.return_value = sample_quotes
    provider.get_price.return_value = 150.0
    return provider

@pytest.fixture
def mock_email_service():
    """Mock email collaborator that always delivers"""
    service = AsyncMock()
    service.send_price_alert.return_value = True
    return service

@pytest.fixture
def price_feed():
    return FakePriceFeed()

@pytest.fixture
def alert_registry():
    return AlertRegistry()

@pytest.fixture
def alert_monitor(alert_registry, price_feed, mock_email_service):
    return PriceAlertMonitor(alert_registry, provider=price_feed, email=mock_email_service,
                             check_interval=0.01)

@pytest.fixture
def alert_service(alert_registry, alert_monitor, price_feed):
    return PriceAlertService(alert_registry, alert_monitor, provider=price_feed)

@pytest_asyncio.fixture
async def running_monitor(alert_monitor):
    """Alert monitor started for the duration of a test"""
    await alert_monitor.start()
    yield alert_monitor
    await alert_monitor.stop()

@pytest.fixture
def token_balance():
    def _make(symbol, amount, coingecko_id=None):
        return TokenBalance(symbol=symbol, name=symbol, amount=amount, coingecko_id=coingecko_id)
    return _make
