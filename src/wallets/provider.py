"""Signer lookup per network"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Union

import structlog
from pydantic import SecretStr

from src.chains.networks import ChainType, Network, get_network_info, parse_network
from src.errors import ConfigurationError
from src.wallets.evm_wallet import EvmOpsWallet
from src.wallets.fee_payers import FeePayerPool

logger = structlog.get_logger()


class OpsWalletProvider:
    """One cached EVM operations wallet per network, built on first use"""

    def __init__(self, private_key: Optional[SecretStr]):
        self._private_key = private_key
        self._wallets: Dict[Network, EvmOpsWallet] = {}

    def get_wallet(self, network: Union[str, Network]) -> EvmOpsWallet:
        """
        Raises:
            ConfigurationError: If the network is not EVM or no key is configured
        """
        info = get_network_info(network)
        if info.chain_type != ChainType.EVM:
            raise ConfigurationError(f"No EVM ops wallet for {info.name}")

        wallet = self._wallets.get(info.network)
        if wallet is None:
            wallet = EvmOpsWallet(self._private_key)
            self._wallets[info.network] = wallet
            logger.info("ops_wallet_loaded", network=info.name, address=wallet.address)
        return wallet


class WalletProvider:
    """Uniform signer access for the orchestrator"""

    def __init__(self, ops_wallets: OpsWalletProvider, fee_payers: Optional[FeePayerPool] = None):
        self.ops_wallets = ops_wallets
        self.fee_payers = fee_payers

    @asynccontextmanager
    async def signer(self, network: Union[str, Network]) -> AsyncIterator:
        """Yield the EVM ops wallet, or a leased Solana fee payer for the duration"""
        info = get_network_info(parse_network(network))

        if info.chain_type == ChainType.EVM:
            yield self.ops_wallets.get_wallet(info.network)
        elif info.chain_type == ChainType.SOLANA:
            if self.fee_payers is None:
                raise ConfigurationError("Fee payer pool is not configured")
            async with self.fee_payers.lease() as signer:
                yield signer
        else:
            raise ConfigurationError(f"No signer for chain type {info.chain_type}")
