"""Network and token registry

Connectors live in src.chains.evm_connector and src.chains.solana_connector and
are imported from there, since they depend on src.config.
"""

from src.chains.networks import (
    NETWORKS,
    ChainType,
    Network,
    NetworkInfo,
    get_network_info,
    parse_network,
    resolve_network,
    rpc_urls_for,
)
from src.chains.tokens import (
    NATIVE_TOKEN_SENTINEL,
    TOKENS,
    WRAPPED_SOL_MINT,
    Token,
    find_token,
    from_base_units,
    get_token,
    is_native_token,
    to_base_units,
)

__all__ = [
    "NETWORKS",
    "ChainType",
    "Network",
    "NetworkInfo",
    "get_network_info",
    "parse_network",
    "resolve_network",
    "rpc_urls_for",
    "NATIVE_TOKEN_SENTINEL",
    "TOKENS",
    "WRAPPED_SOL_MINT",
    "Token",
    "find_token",
    "from_base_units",
    "get_token",
    "is_native_token",
    "to_base_units",
]
