"""Token registry, exact unit conversion and address validation"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Dict, Optional, Union

from solders.pubkey import Pubkey

from src.chains.networks import Network, parse_network

NATIVE_TOKEN_SENTINEL = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@dataclass(frozen=True)
class Token:
    """Token metadata"""

    symbol: str
    address: str
    decimals: int
    # Native asset or its wrapped form; gas converts 1:1 into it
    native_equivalent: bool = False


TOKENS: Dict[Network, Dict[str, Token]] = {
    Network.POLYGON: {
        "USDC_E": Token("USDC_E", "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174", 6),
        "USDC": Token("USDC", "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", 6),
        "WETH": Token("WETH", "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619", 18),
        "WMATIC": Token("WMATIC", "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270", 18, native_equivalent=True),
        "USDT": Token("USDT", "0xc2132D05D31c914a87C6611C10748AEb04B58e8F", 6),
        "DAI": Token("DAI", "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063", 18),
        "POL": Token("POL", NATIVE_TOKEN_SENTINEL, 18, native_equivalent=True),
    },
    Network.ETHEREUM: {
        "USDC": Token("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
        "USDT": Token("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
        "WETH": Token("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18, native_equivalent=True),
        "ETH": Token("ETH", NATIVE_TOKEN_SENTINEL, 18, native_equivalent=True),
    },
    Network.ARBITRUM: {
        "USDC": Token("USDC", "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", 6),
        "USDT": Token("USDT", "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", 6),
        "DAI": Token("DAI", "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1", 18),
        "WETH": Token("WETH", "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", 18, native_equivalent=True),
        "ETH": Token("ETH", NATIVE_TOKEN_SENTINEL, 18, native_equivalent=True),
    },
    Network.BSC: {
        "USDC": Token("USDC", "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", 18),
        "USDT": Token("USDT", "0x55d398326f99059fF775485246999027B3197955", 18),
        "DAI": Token("DAI", "0x1AF3F329e8BE154074D8769D1FFa4eE058B1DBc3", 18),
        "WBNB": Token("WBNB", "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c", 18, native_equivalent=True),
        "BNB": Token("BNB", NATIVE_TOKEN_SENTINEL, 18, native_equivalent=True),
    },
    Network.SOLANA_MAINNET: {
        "SOL": Token("SOL", WRAPPED_SOL_MINT, 9, native_equivalent=True),
        "USDC": Token("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
        "USDT": Token("USDT", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
    },
    Network.SOLANA_DEVNET: {
        "SOL": Token("SOL", WRAPPED_SOL_MINT, 9, native_equivalent=True),
        "USDC": Token("USDC", "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU", 6),
    },
}


def get_token(network: Union[str, Network], symbol: str) -> Token:
    """
    Look up a token by symbol.

    Raises:
        KeyError: If the network has no token with that symbol
    """
    tokens = TOKENS.get(parse_network(network), {})
    return tokens[symbol.upper()]


def find_token(network: Union[str, Network], address: str) -> Optional[Token]:
    """Look up a token by address (case-insensitive for EVM)"""
    for token in TOKENS.get(parse_network(network), {}).values():
        if token.address == address or token.address.lower() == address.lower():
            return token
    return None


def is_native_token(address: str) -> bool:
    """True for the EVM native sentinel and the wrapped SOL mint"""
    return address.lower() == NATIVE_TOKEN_SENTINEL.lower() or address == WRAPPED_SOL_MINT


def to_base_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """
    Convert a human amount into integer base units without floating point.

    Raises:
        ValueError: If the amount is malformed, negative or finer than one base unit
    """
    if isinstance(amount, float):
        raise ValueError("Pass amounts as str, int or Decimal, not float")
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount}") from None

    if value < 0:
        raise ValueError(f"Amount must be non-negative: {amount}")

    with localcontext() as ctx:
        ctx.prec = 80
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Exact Decimal value of an integer base-unit amount"""
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(int(amount)).scaleb(-decimals)


def is_valid_evm_address(address: Optional[str]) -> bool:
    return bool(address) and bool(_EVM_ADDRESS_RE.match(address))


def is_valid_solana_address(address: Optional[str]) -> bool:
    if not address:
        return False
    try:
        Pubkey.from_string(address)
    except ValueError:
        return False
    return True
