"""Connector construction per network"""

from typing import Dict, Union

import structlog

from src.chains.connector import ChainConnector
from src.chains.evm_connector import EvmConnector
from src.chains.networks import ChainType, Network, get_network_info
from src.chains.solana_connector import SolanaConnector
from src.config.models import Settings
from src.errors import ConfigurationError

logger = structlog.get_logger()


class ConnectorRegistry:
    """Lazily builds one connector per network and keeps it for the process lifetime"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._connectors: Dict[Network, ChainConnector] = {}

    def get(self, network: Union[str, Network]) -> ChainConnector:
        info = get_network_info(network)
        connector = self._connectors.get(info.network)
        if connector is not None:
            return connector

        config = self.settings.get_chain_config(info.network)
        if info.chain_type == ChainType.EVM:
            connector = EvmConnector(config)
        elif info.chain_type == ChainType.SOLANA:
            connector = SolanaConnector(config)
        else:
            raise ConfigurationError(f"No connector for chain type {info.chain_type}")

        self._connectors[info.network] = connector
        logger.info("chain_connector_created", network=info.name, rpc_urls=len(config.rpc_urls))
        return connector

    async def close(self) -> None:
        for connector in self._connectors.values():
            if isinstance(connector, SolanaConnector):
                await connector.close()
        self._connectors.clear()
