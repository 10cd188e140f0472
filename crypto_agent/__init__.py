"""
Crypto Agent Toolset - tools for a conversational crypto assistant

This package provides a FastAPI microservice exposing the tools a crypto
AI agent calls on behalf of a user.

Key Features:
- Wallet portfolio valuation on Ethereum, Polygon, BSC and Solana
- Live holdings from Moralis and prices from CoinGecko
- Volatility, VaR, Sharpe ratio and drawdown estimates
- Herfindahl diversification and top-N concentration analysis
- Asset allocation by category and risk tier
- Composite 1-10 risk score with rule-based recommendations
- Social sentiment scoring for a token
- Price alerts polled every 30 seconds, with email delivery through Resend
- Structured logging with structlog

Version: 1.0.0
"""

__version__ = "1.0.0"

from .main import app
from .config import settings

__all__ = ["app", "settings"]
