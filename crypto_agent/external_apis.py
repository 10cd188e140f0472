import httpx
from typing import Dict, List, Optional, Any
import structlog

from .config import settings, CHAIN_CONFIG, COINGECKO_IDS, SupportedChains
from .error_handling import ProviderError, retry_with_backoff
from .models import TokenBalance, PriceQuote
from .security import normalize_chain

logger = structlog.get_logger()

class BaseAPIClient:
    def __init__(self, base_url: str, headers: Optional[Dict] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url
        self.default_headers = headers or {}
        self.transport = transport
        self.client = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.default_headers,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=self.transport,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()
            self.client = None

    @retry_with_backoff(
        max_attempts=settings.HTTP_RETRY_ATTEMPTS,
        exceptions=(httpx.TransportError,)
    )
    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        return await self.client.request(method, endpoint, **kwargs)

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make HTTP request, retrying transport failures"""
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        try:
            response = await self._send(method, endpoint, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {method} {endpoint}",
                         error=str(e), status_code=e.response.status_code)
            raise ProviderError(f"API request failed: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error for {method} {endpoint}", error=str(e))
            raise ProviderError(f"Network error: {str(e)}") from e
        except ValueError as e:
            logger.error(f"Invalid JSON from {method} {endpoint}", error=str(e))
            raise ProviderError("Provider returned a malformed response") from e

class CoinGeckoClient(BaseAPIClient):
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Accept": "application/json"}
        if settings.COINGECKO_API_KEY:
            headers["x-cg-demo-api-key"] = settings.COINGECKO_API_KEY
        super().__init__(settings.COINGECKO_BASE_URL, headers, transport)

    async def get_simple_prices(self, coin_ids: List[str], vs_currency: str = "usd") -> Dict[str, PriceQuote]:
        """Get current prices and 24h change for CoinGecko coin ids"""
        if not coin_ids:
            return {}

        params = {
            "ids": ",".join(coin_ids),
            "vs_currencies": vs_currency,
            "include_24hr_change": "true"
        }
        data = await self._make_request("GET", "/simple/price", params=params)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ProviderError("CoinGecko returned a malformed price payload")

        quotes = {}
        for coin_id, price_data in data.items():
            # Coins without a quote are left out; callers treat them as unpriced
            if not isinstance(price_data, dict) or price_data.get(vs_currency) is None:
                continue
            try:
                quotes[coin_id] = PriceQuote(
                    usd_price=float(price_data[vs_currency]),
                    usd_24h_change_pct=float(price_data.get(f"{vs_currency}_24h_change") or 0.0)
                )
            except (TypeError, ValueError) as e:
                # pydantic's ValidationError is a ValueError
                raise ProviderError(f"Invalid price data for {coin_id}: {e}") from e

        return quotes

class MoralisClient(BaseAPIClient):
    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {
            "X-API-Key": settings.MORALIS_API_KEY or "",
            "Accept": "application/json"
        }
        super().__init__(base_url, headers, transport)

    async def get_native_balance(self, wallet_address: str, moralis_chain: str) -> Optional[str]:
        data = await self._make_request("GET", f"/{wallet_address}/balance", params={"chain": moralis_chain})
        return (data or {}).get("balance")

    async def get_token_balances(self, wallet_address: str, moralis_chain: str) -> List[Dict]:
        data = await self._make_request("GET", f"/{wallet_address}/erc20", params={"chain": moralis_chain})
        # v2.2 returns a bare list; paginated variants wrap it in "result"
        if isinstance(data, dict):
            return data.get("result", [])
        return data or []

    async def get_solana_portfolio(self, wallet_address: str) -> Dict:
        return await self._make_request("GET", f"/account/mainnet/{wallet_address}/portfolio")

    async def get_evm_holdings(self, wallet_address: str, chain: str) -> List[TokenBalance]:
        """Native balance plus ERC20/BEP20 tokens for an EVM wallet"""
        moralis_chain = CHAIN_CONFIG[chain]["moralis_chain"]
        native_balance = await self.get_native_balance(wallet_address, moralis_chain)
        token_records = await self.get_token_balances(wallet_address, moralis_chain)
        return normalize_evm_balances(native_balance, token_records, chain)

    async def get_solana_holdings(self, wallet_address: str) -> List[TokenBalance]:
        payload = await self.get_solana_portfolio(wallet_address)
        return normalize_solana_portfolio(payload)

def coingecko_id_for(symbol: str) -> Optional[str]:
    return COINGECKO_IDS.get((symbol or "").upper())

def _scaled(raw_amount: Any, decimals: Any) -> float:
    try:
        return int(raw_amount) / 10 ** int(decimals)
    except (TypeError, ValueError):
        return 0.0

def normalize_evm_balances(native_balance: Optional[str], token_records: List[Dict], chain: str) -> List[TokenBalance]:
    """Convert Moralis EVM balance records into TokenBalance entries"""
    chain_config = CHAIN_CONFIG[chain]
    holdings = []

    native_amount = _scaled(native_balance, chain_config["native_decimals"]) if native_balance else 0.0
    if native_amount > 0:
        holdings.append(TokenBalance(
            symbol=chain_config["native_symbol"],
            name=chain_config["native_name"],
            amount=native_amount,
            token_address=None,
            coingecko_id=chain_config["native_coingecko_id"]
        ))

    for token in token_records:
        if token.get("possible_spam"):
            continue
        amount = _scaled(token.get("balance"), token.get("decimals", 18))
        symbol = (token.get("symbol") or "").upper()
        if amount <= 0 or not symbol:
            continue
        holdings.append(TokenBalance(
            symbol=symbol,
            name=token.get("name") or symbol,
            amount=amount,
            token_address=token.get("token_address"),
            coingecko_id=coingecko_id_for(symbol)
        ))

    return holdings

def normalize_solana_portfolio(payload: Dict) -> List[TokenBalance]:
    """Convert a Moralis Solana portfolio payload into TokenBalance entries"""
    chain_config = CHAIN_CONFIG[SupportedChains.SOLANA]
    holdings = []

    native = (payload or {}).get("nativeBalance") or {}
    if native.get("lamports") is not None:
        native_amount = _scaled(native["lamports"], chain_config["native_decimals"])
    else:
        native_amount = float(native.get("solana") or 0)

    if native_amount > 0:
        holdings.append(TokenBalance(
            symbol=chain_config["native_symbol"],
            name=chain_config["native_name"],
            amount=native_amount,
            coingecko_id=chain_config["native_coingecko_id"]
        ))

    for token in (payload or {}).get("tokens", []):
        if token.get("amountRaw") is not None and token.get("decimals") is not None:
            amount = _scaled(token["amountRaw"], token["decimals"])
        else:
            amount = float(token.get("amount") or 0)
        symbol = (token.get("symbol") or "").upper()
        if amount <= 0 or not symbol:
            continue
        holdings.append(TokenBalance(
            symbol=symbol,
            name=token.get("name") or symbol,
            amount=amount,
            token_address=token.get("mint"),
            coingecko_id=coingecko_id_for(symbol)
        ))

    return holdings

# Demo holdings served when no Moralis key is configured
SAMPLE_HOLDINGS = {
    "ethereum": [
        TokenBalance(symbol="ETH", name="Ethereum", amount=2.5, coingecko_id="ethereum"),
        TokenBalance(symbol="USDC", name="USD Coin", amount=1000,
                     token_address="0xA0b86a33E6441c8e1e8A7C0f16B4A0fE8F70BF88", coingecko_id="usd-coin"),
        TokenBalance(symbol="UNI", name="Uniswap", amount=50,
                     token_address="0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", coingecko_id="uniswap"),
    ],
    "bsc": [
        TokenBalance(symbol="BNB", name="BNB", amount=5, coingecko_id="binancecoin"),
        TokenBalance(symbol="CAKE", name="PancakeSwap Token", amount=25,
                     token_address="0x0E09FaBB73Bd3Ade0a17ECC321fD13a19e81cE82", coingecko_id="pancakeswap-token"),
    ],
    "polygon": [
        TokenBalance(symbol="MATIC", name="Polygon", amount=1500, coingecko_id="matic-network"),
        TokenBalance(symbol="QUICK", name="QuickSwap", amount=40,
                     token_address="0xB5C064F955D8e7F38fE0460C556a72987494eE17", coingecko_id="quickswap"),
    ],
    "solana": [
        TokenBalance(symbol="SOL", name="Solana", amount=12, coingecko_id="solana"),
        TokenBalance(symbol="JUP", name="Jupiter", amount=800,
                     token_address="JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", coingecko_id="jupiter-exchange-solana"),
    ],
}

def holding_key(balance: TokenBalance) -> Optional[str]:
    """Key used to join holdings with price quotes"""
    return balance.coingecko_id

class MarketDataProvider:
    """Holdings and pricing collaborator used by the risk engine and alert monitor"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def resolve_holdings(self, wallet_address: str, chain: str) -> List[TokenBalance]:
        """Fetch and normalize the token balances of a wallet"""
        chain = normalize_chain(chain)

        if not settings.MORALIS_API_KEY:
            if settings.USE_SAMPLE_HOLDINGS:
                logger.warning("MORALIS_API_KEY not configured, using sample holdings", chain=chain)
                return [balance.model_copy() for balance in SAMPLE_HOLDINGS[chain]]
            raise ProviderError("Holdings provider is not configured (MORALIS_API_KEY missing)")

        if chain == SupportedChains.SOLANA:
            async with MoralisClient(settings.MORALIS_SOLANA_BASE_URL, self.transport) as moralis:
                holdings = await moralis.get_solana_holdings(wallet_address)
        else:
            async with MoralisClient(settings.MORALIS_BASE_URL, self.transport) as moralis:
                holdings = await moralis.get_evm_holdings(wallet_address, chain)

        logger.info("Resolved wallet holdings", wallet=wallet_address, chain=chain, holdings=len(holdings))
        return holdings

    async def resolve_prices(self, holdings: List[TokenBalance], chain: str) -> Dict[str, PriceQuote]:
        """Price holdings; holdings missing from the result are unpriced"""
        coin_ids = sorted({key for key in (holding_key(h) for h in holdings) if key})
        if not coin_ids:
            return {}

        async with CoinGeckoClient(self.transport) as coingecko:
            quotes = await coingecko.get_simple_prices(coin_ids)

        logger.info("Resolved prices", chain=chain, requested=len(coin_ids), priced=len(quotes))
        return quotes

    async def get_price(self, symbol: str) -> Optional[float]:
        """Current USD price for a CoinGecko coin id, None when the feed has none"""
        async with CoinGeckoClient(self.transport) as coingecko:
            quotes = await coingecko.get_simple_prices([symbol])

        quote = quotes.get(symbol)
        return quote.usd_price if quote else None

# Global API manager instance
api_manager = MarketDataProvider()
