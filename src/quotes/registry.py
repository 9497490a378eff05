"""Per-chain-family cache of quote providers"""

from typing import Dict, Optional, Union

import httpx

from src.chains.networks import ChainType, Network, get_network_info
from src.config.models import Settings
from src.quotes import create_quote_provider
from src.quotes.provider import QuoteProvider


class QuoteProviderRegistry:
    """Builds one adapter per chain family on first use and shares its HTTP client"""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client
        self._providers: Dict[ChainType, QuoteProvider] = {}

    def get(self, network: Union[str, Network]) -> QuoteProvider:
        info = get_network_info(network)
        provider = self._providers.get(info.chain_type)
        if provider is None:
            provider = create_quote_provider(info, self.settings, self._client)
            self._providers[info.chain_type] = provider
        return provider

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()
        self._providers.clear()
