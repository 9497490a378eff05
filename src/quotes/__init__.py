"""Aggregator quote adapters"""

from typing import Optional

import httpx

from src.chains.networks import ChainType, NetworkInfo
from src.config.models import Settings
from src.errors import ConfigurationError
from src.quotes.jupiter import JupiterQuoteProvider
from src.quotes.models import QuoteResponse, SwapQuote
from src.quotes.provider import QuoteProvider
from src.quotes.zerox import ZeroExQuoteProvider


def create_quote_provider(
    network_info: NetworkInfo, settings: Settings, client: Optional[httpx.AsyncClient] = None
) -> QuoteProvider:
    """
    Pick the aggregator for a network's chain family.

    Raises:
        ConfigurationError: If an EVM network is requested without a 0x API key
    """
    if network_info.chain_type == ChainType.SOLANA:
        return JupiterQuoteProvider(
            base_url=settings.jupiter_api_base_url,
            timeout_seconds=settings.quote_timeout_seconds,
            client=client,
        )

    if network_info.chain_type == ChainType.EVM:
        if settings.zerox_api_key is None or not settings.zerox_api_key.get_secret_value():
            raise ConfigurationError("ZEROX_API_KEY is required for EVM quotes")
        return ZeroExQuoteProvider(
            api_key=settings.zerox_api_key.get_secret_value(),
            base_url=settings.zerox_api_base_url,
            timeout_seconds=settings.quote_timeout_seconds,
            client=client,
        )

    raise ConfigurationError(f"No quote provider for chain type {network_info.chain_type}")


__all__ = [
    "JupiterQuoteProvider",
    "QuoteProvider",
    "QuoteResponse",
    "SwapQuote",
    "ZeroExQuoteProvider",
    "create_quote_provider",
]
