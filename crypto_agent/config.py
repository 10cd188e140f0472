from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",  # Allow extra fields in .env
    )

    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    AGENT_PORT: int = 8080

    # Market data providers
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    COINGECKO_API_KEY: Optional[str] = None
    MORALIS_BASE_URL: str = "https://deep-index.moralis.io/api/v2.2"
    MORALIS_SOLANA_BASE_URL: str = "https://solana-gateway.moralis.io"
    MORALIS_API_KEY: Optional[str] = None
    USE_SAMPLE_HOLDINGS: bool = True

    # Email delivery (Resend)
    RESEND_BASE_URL: str = "https://api.resend.com"
    RESEND_API_KEY: Optional[str] = None
    ALERT_FROM_EMAIL: str = "Crypto Alerts <onboarding@resend.dev>"

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 10.0
    HTTP_RETRY_ATTEMPTS: int = 3

    # Price alert monitor
    ALERT_CHECK_INTERVAL_SECONDS: float = 30.0
    ALERT_RECENT_TRIGGERS_LIMIT: int = 10

    # Risk calculation parameters
    VAR_CONFIDENCE: float = 0.95
    RISK_FREE_RATE: float = 0.02
    # Unset: VaR score tier is measured against the analyzed portfolio.
    # 10000 reproduces the legacy fixed-size scoring.
    VAR_SCORE_REFERENCE_USD: Optional[float] = None

    # Sentiment
    SENTIMENT_MIN_INTERVAL_SECONDS: float = 2.0

# Global settings instance
settings = Settings()

# Risk tiers shared by categories, concentration and report
class RiskLevel:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (LOW, MEDIUM, HIGH)

# Recommendation priorities
class Priority:
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

# Recommendation kinds
class RecommendationType:
    REBALANCE = "rebalance"
    DIVERSIFY = "diversify"
    REDUCE_RISK = "reduce_risk"
    HEDGE = "hedge"

# Which side of an alert fired
class ThresholdType:
    LOW = "low"
    HIGH = "high"

# Alert lifecycle as reported to callers
class AlertStatus:
    MONITORING = "monitoring"
    TRIGGERED = "triggered"

# Supported chains (closed set)
class SupportedChains:
    ETHEREUM = "ethereum"
    SOLANA = "solana"
    POLYGON = "polygon"
    BSC = "bsc"

    ALL = (ETHEREUM, SOLANA, POLYGON, BSC)

# Per-chain holdings configuration
CHAIN_CONFIG = {
    "ethereum": {
        "moralis_chain": "eth",
        "native_symbol": "ETH",
        "native_name": "Ethereum",
        "native_coingecko_id": "ethereum",
        "native_decimals": 18,
        "address_format": "evm",
    },
    "polygon": {
        "moralis_chain": "polygon",
        "native_symbol": "MATIC",
        "native_name": "Polygon",
        "native_coingecko_id": "matic-network",
        "native_decimals": 18,
        "address_format": "evm",
    },
    "bsc": {
        "moralis_chain": "bsc",
        "native_symbol": "BNB",
        "native_name": "BNB",
        "native_coingecko_id": "binancecoin",
        "native_decimals": 18,
        "address_format": "evm",
    },
    "solana": {
        "moralis_chain": "mainnet",
        "native_symbol": "SOL",
        "native_name": "Solana",
        "native_coingecko_id": "solana",
        "native_decimals": 9,
        "address_format": "solana",
    },
}

# Token symbol -> CoinGecko id
COINGECKO_IDS = {
    "ETH": "ethereum",
    "WETH": "ethereum",
    "BTC": "bitcoin",
    "WBTC": "wrapped-bitcoin",
    "SOL": "solana",
    "BNB": "binancecoin",
    "MATIC": "matic-network",
    "WMATIC": "matic-network",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "BUSD": "binance-usd",
    "UNI": "uniswap",
    "AAVE": "aave",
    "LINK": "chainlink",
    "COMP": "compound-governance-token",
    "MKR": "maker",
    "SNX": "havven",
    "YFI": "yearn-finance",
    "SUSHI": "sushi",
    "CRV": "curve-dao-token",
    "BAL": "balancer",
    "1INCH": "1inch",
    "QUICK": "quickswap",
    "CAKE": "pancakeswap-token",
    "JUP": "jupiter-exchange-solana",
    "RAY": "raydium",
    "BONK": "bonk",
}
