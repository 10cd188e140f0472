import re
import structlog

from .config import CHAIN_CONFIG, SupportedChains
from .error_handling import UnsupportedChainError, ValidationError

logger = structlog.get_logger()

# Wallet address validation regexes
EVM_ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')
SOLANA_ADDRESS_PATTERN = re.compile(r'^[1-9A-HJ-NP-Za-km-z]{32,44}$')

def normalize_chain(chain: str) -> str:
    """Lower-case a chain name and reject anything outside the supported set"""
    normalized = (chain or "").strip().lower()
    if normalized not in SupportedChains.ALL:
        raise UnsupportedChainError(chain)
    return normalized

def verify_wallet_address(wallet_address: str, chain: str = SupportedChains.ETHEREUM) -> bool:
    """Verify a wallet address matches the address format of its chain"""
    if not wallet_address:
        return False

    address_format = CHAIN_CONFIG[normalize_chain(chain)]["address_format"]
    if address_format == "solana":
        return bool(SOLANA_ADDRESS_PATTERN.match(wallet_address))
    return bool(EVM_ADDRESS_PATTERN.match(wallet_address))

def validate_wallet_request(wallet_address: str, chain: str) -> tuple:
    """Return the normalized (wallet_address, chain) pair or raise ValidationError"""
    normalized_chain = normalize_chain(chain)
    wallet_address = (wallet_address or "").strip()

    if not verify_wallet_address(wallet_address, normalized_chain):
        logger.warning("Rejected malformed wallet address",
                       wallet=wallet_address, chain=normalized_chain)
        raise ValidationError(f"Invalid {normalized_chain} wallet address format: {wallet_address!r}")

    return wallet_address, normalized_chain
