"""Network registry: chain identifiers, RPC endpoints and mainnet/testnet mapping"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

from src.errors import ConfigurationError


class ChainType(Enum):
    """Chain families supported by the pipeline"""

    EVM = "EVM"
    SOLANA = "SOLANA"


class Network(Enum):
    """Closed set of networks; raw strings are validated by parse_network"""

    POLYGON = "POLYGON"
    ETHEREUM = "ETHEREUM"
    ARBITRUM = "ARBITRUM"
    BSC = "BSC"
    POLYGON_AMOY = "POLYGON_AMOY"
    SEPOLIA = "SEPOLIA"
    ARBITRUM_SEPOLIA = "ARBITRUM_SEPOLIA"
    BSC_TESTNET = "BSC_TESTNET"
    SOLANA_MAINNET = "SOLANA_MAINNET"
    SOLANA_DEVNET = "SOLANA_DEVNET"


@dataclass(frozen=True)
class NetworkInfo:
    """Static metadata for one network"""

    network: Network
    chain_type: ChainType
    chain_id: Optional[int]
    default_rpc_url: str
    rpc_env_var: str
    native_symbol: str
    native_decimals: int
    is_testnet: bool
    # Fixed USD price approximation (in cents) used only for gas-to-input conversion
    native_price_cents: int

    @property
    def name(self) -> str:
        return self.network.value


NETWORKS: Dict[Network, NetworkInfo] = {
    Network.POLYGON: NetworkInfo(
        network=Network.POLYGON,
        chain_type=ChainType.EVM,
        chain_id=137,
        default_rpc_url="https://polygon-rpc.com",
        rpc_env_var="EVM_POLYGON_RPC_URL",
        native_symbol="POL",
        native_decimals=18,
        is_testnet=False,
        native_price_cents=40,
    ),
    Network.ETHEREUM: NetworkInfo(
        network=Network.ETHEREUM,
        chain_type=ChainType.EVM,
        chain_id=1,
        default_rpc_url="https://eth.llamarpc.com",
        rpc_env_var="EVM_ETHEREUM_RPC_URL",
        native_symbol="ETH",
        native_decimals=18,
        is_testnet=False,
        native_price_cents=250000,
    ),
    Network.ARBITRUM: NetworkInfo(
        network=Network.ARBITRUM,
        chain_type=ChainType.EVM,
        chain_id=42161,
        default_rpc_url="https://arb1.arbitrum.io/rpc",
        rpc_env_var="EVM_ARBITRUM_RPC_URL",
        native_symbol="ETH",
        native_decimals=18,
        is_testnet=False,
        native_price_cents=250000,
    ),
    Network.BSC: NetworkInfo(
        network=Network.BSC,
        chain_type=ChainType.EVM,
        chain_id=56,
        default_rpc_url="https://bsc-dataseed1.binance.org",
        rpc_env_var="EVM_BSC_RPC_URL",
        native_symbol="BNB",
        native_decimals=18,
        is_testnet=False,
        native_price_cents=30000,
    ),
    Network.POLYGON_AMOY: NetworkInfo(
        network=Network.POLYGON_AMOY,
        chain_type=ChainType.EVM,
        chain_id=80002,
        default_rpc_url="https://rpc-amoy.polygon.technology",
        rpc_env_var="EVM_POLYGON_AMOY_RPC_URL",
        native_symbol="POL",
        native_decimals=18,
        is_testnet=True,
        native_price_cents=40,
    ),
    Network.SEPOLIA: NetworkInfo(
        network=Network.SEPOLIA,
        chain_type=ChainType.EVM,
        chain_id=11155111,
        default_rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        rpc_env_var="EVM_SEPOLIA_RPC_URL",
        native_symbol="ETH",
        native_decimals=18,
        is_testnet=True,
        native_price_cents=250000,
    ),
    Network.ARBITRUM_SEPOLIA: NetworkInfo(
        network=Network.ARBITRUM_SEPOLIA,
        chain_type=ChainType.EVM,
        chain_id=421614,
        default_rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
        rpc_env_var="EVM_ARBITRUM_SEPOLIA_RPC_URL",
        native_symbol="ETH",
        native_decimals=18,
        is_testnet=True,
        native_price_cents=250000,
    ),
    Network.BSC_TESTNET: NetworkInfo(
        network=Network.BSC_TESTNET,
        chain_type=ChainType.EVM,
        chain_id=97,
        default_rpc_url="https://data-seed-prebsc-1-s1.binance.org:8545",
        rpc_env_var="EVM_BSC_TESTNET_RPC_URL",
        native_symbol="BNB",
        native_decimals=18,
        is_testnet=True,
        native_price_cents=30000,
    ),
    Network.SOLANA_MAINNET: NetworkInfo(
        network=Network.SOLANA_MAINNET,
        chain_type=ChainType.SOLANA,
        chain_id=None,
        default_rpc_url="https://api.mainnet-beta.solana.com",
        rpc_env_var="SOLANA_RPC_URL",
        native_symbol="SOL",
        native_decimals=9,
        is_testnet=False,
        native_price_cents=15000,
    ),
    Network.SOLANA_DEVNET: NetworkInfo(
        network=Network.SOLANA_DEVNET,
        chain_type=ChainType.SOLANA,
        chain_id=None,
        default_rpc_url="https://api.devnet.solana.com",
        rpc_env_var="SOLANA_DEVNET_RPC_URL",
        native_symbol="SOL",
        native_decimals=9,
        is_testnet=True,
        native_price_cents=15000,
    ),
}

MAINNET_TO_TESTNET: Dict[Network, Network] = {
    Network.POLYGON: Network.POLYGON_AMOY,
    Network.ETHEREUM: Network.SEPOLIA,
    Network.ARBITRUM: Network.ARBITRUM_SEPOLIA,
    Network.BSC: Network.BSC_TESTNET,
    Network.SOLANA_MAINNET: Network.SOLANA_DEVNET,
}

TESTNET_TO_MAINNET: Dict[Network, Network] = {
    testnet: mainnet for mainnet, testnet in MAINNET_TO_TESTNET.items()
}

# Strategy rows written before Solana networks were explicit carry no network
_LEGACY_ALIASES = {
    "SOLANA": Network.SOLANA_MAINNET,
    "DEVNET": Network.SOLANA_DEVNET,
    "AMOY": Network.POLYGON_AMOY,
}


def parse_network(value: Union[str, Network]) -> Network:
    """
    Validate a raw network identifier.

    Raises:
        ConfigurationError: If the identifier is not a supported network
    """
    if isinstance(value, Network):
        return value
    if not value:
        raise ConfigurationError("Network is required")

    normalized = value.strip().upper()
    if normalized in _LEGACY_ALIASES:
        return _LEGACY_ALIASES[normalized]
    try:
        return Network(normalized)
    except ValueError:
        raise ConfigurationError(f"Unsupported network: {value}") from None


def get_network_info(network: Union[str, Network]) -> NetworkInfo:
    """Get static metadata for a network"""
    return NETWORKS[parse_network(network)]


def resolve_network(requested: Union[str, Network], is_mainnet_mode: bool) -> Network:
    """
    Map a configured network onto the one that should actually be used.

    A strategy configured for POLYGON runs against POLYGON_AMOY while the
    system is not in mainnet mode, and a testnet strategy is promoted to its
    mainnet counterpart once mainnet mode is on.
    """
    network = parse_network(requested)
    info = NETWORKS[network]

    if is_mainnet_mode and info.is_testnet:
        return TESTNET_TO_MAINNET[network]
    if not is_mainnet_mode and not info.is_testnet:
        return MAINNET_TO_TESTNET[network]
    return network


def rpc_urls_for(network: Union[str, Network], override: Optional[str] = None) -> List[str]:
    """
    Ordered RPC endpoints for a network: dedicated override first, public fallback last.
    """
    info = get_network_info(network)
    urls: List[str] = []
    if override and override.strip():
        urls.append(override.strip())
    if info.default_rpc_url not in urls:
        urls.append(info.default_rpc_url)
    return urls
