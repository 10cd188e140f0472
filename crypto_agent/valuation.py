from typing import Dict, List
import structlog

from .models import TokenBalance, PriceQuote, Holding, Portfolio
from .external_apis import holding_key
from .security import normalize_chain

logger = structlog.get_logger()

def change_from_pct(value: float, change_pct: float) -> float:
    """USD change over 24h for a position now worth `value` after moving `change_pct` percent"""
    if change_pct <= -100:
        return 0.0
    previous_value = value / (1 + change_pct / 100)
    return value - previous_value

def value_portfolio(wallet_address: str, chain: str, balances: List[TokenBalance],
                    quotes: Dict[str, PriceQuote]) -> Portfolio:
    """Combine holdings with prices into a valued portfolio.

    Holdings without a positive quote are dropped rather than counted at zero, so a
    wallet where nothing resolves to a price comes back as an empty
    portfolio instead of an error.
    """
    chain = normalize_chain(chain)

    holdings: List[Holding] = []
    unpriced = []
    for balance in balances:
        quote = quotes.get(holding_key(balance)) if holding_key(balance) else None
        # A zero quote carries no value; it counts as unpriced
        if quote is None or quote.usd_price <= 0:
            unpriced.append(balance.symbol)
            continue

        value = balance.amount * quote.usd_price
        holdings.append(Holding(
            name=balance.name,
            symbol=balance.symbol,
            amount=balance.amount,
            current_price=quote.usd_price,
            value=value,
            change_24h=change_from_pct(value, quote.usd_24h_change_pct),
            change_percentage_24h=quote.usd_24h_change_pct,
            token_address=balance.token_address
        ))

    if unpriced:
        logger.info("Dropped unpriced holdings", wallet=wallet_address, chain=chain, symbols=unpriced)

    holdings.sort(key=lambda h: h.value, reverse=True)

    total_value = sum(h.value for h in holdings)
    total_change = sum(h.change_24h for h in holdings)
    previous_total = total_value - total_change
    total_change_pct = (total_change / previous_total * 100) if previous_total > 0 else 0.0

    return Portfolio(
        wallet_address=wallet_address,
        blockchain=chain,
        total_value=total_value,
        total_change_24h=total_change,
        total_change_percentage_24h=total_change_pct,
        holdings=holdings
    )
