"""0x Swap API v2 adapter (allowance-holder flow)"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from src.chains.networks import ChainType, Network, get_network_info
from src.errors import ConfigurationError
from src.quotes.models import QuoteResponse, SwapQuote
from src.quotes.provider import MALFORMED_RESPONSE_ERRORS, QuoteProvider

PRICE_PATH = "/swap/allowance-holder/price"
QUOTE_PATH = "/swap/allowance-holder/quote"

# Sell amounts below this are not worth a request
DUST_THRESHOLD = 1000

DEFAULT_GAS_ESTIMATE = 300000


class ZeroExQuoteProvider(QuoteProvider):
    """Quotes EVM swaps through the 0x aggregator"""

    name = "0x"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.0x.org",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ConfigurationError("ZEROX_API_KEY is required for 0x API v2")
        super().__init__(base_url, timeout_seconds, client)
        self._headers = {"0x-api-key": api_key, "0x-version": "v2"}

    def supports(self, network: Network) -> bool:
        info = get_network_info(network)
        return info.chain_type == ChainType.EVM and info.chain_id is not None

    async def fetch_price(
        self,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: Optional[str] = None,
        included_sources: Optional[List[str]] = None,
        excluded_sources: Optional[List[str]] = None,
        slippage_bps: Optional[int] = None,
    ) -> QuoteResponse:
        return await self._fetch(
            PRICE_PATH, "price", network, sell_token, buy_token, sell_amount,
            taker, included_sources, excluded_sources, slippage_bps,
        )

    async def fetch_quote(
        self,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: str,
        included_sources: Optional[List[str]] = None,
        excluded_sources: Optional[List[str]] = None,
        slippage_bps: Optional[int] = None,
    ) -> QuoteResponse:
        if not taker:
            return QuoteResponse(error="Executable 0x quotes require a taker address")
        return await self._fetch(
            QUOTE_PATH, "quote", network, sell_token, buy_token, sell_amount,
            taker, included_sources, excluded_sources, slippage_bps,
        )

    async def _fetch(
        self,
        path: str,
        kind: str,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: Optional[str],
        included_sources: Optional[List[str]],
        excluded_sources: Optional[List[str]],
        slippage_bps: Optional[int],
    ) -> QuoteResponse:
        if not self.supports(network):
            return QuoteResponse(error=f"0x does not support {network.value}")
        if sell_amount <= 0:
            return QuoteResponse(error=f"Invalid sell amount: {sell_amount}")
        if sell_amount < DUST_THRESHOLD:
            return QuoteResponse(error=f"Sell amount {sell_amount} below dust threshold {DUST_THRESHOLD}")

        params: Dict[str, Any] = {
            "chainId": get_network_info(network).chain_id,
            "sellToken": sell_token,
            "buyToken": buy_token,
            "sellAmount": str(sell_amount),
        }
        if taker:
            params["taker"] = taker
        if included_sources:
            params["includedSources"] = ",".join(included_sources)
        if excluded_sources:
            params["excludedSources"] = ",".join(excluded_sources)
        if slippage_bps:
            params["slippageBps"] = str(slippage_bps)

        payload, response = await self._request(
            "GET", path, network, kind, params=params, headers=self._headers
        )
        if payload is None:
            return response

        try:
            quote = self._normalize(payload, network, sell_token, buy_token, sell_amount)
        except MALFORMED_RESPONSE_ERRORS as e:
            return self._malformed(network, kind, response.status_code, e)
        if quote is None:
            self._record(network, kind, "no_liquidity")
            return QuoteResponse(status_code=response.status_code, error="No liquidity available")

        self._record(network, kind, "ok")
        return QuoteResponse(quote=quote, status_code=response.status_code)

    def _normalize(
        self,
        payload: Dict[str, Any],
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
    ) -> Optional[SwapQuote]:
        """Flatten v2 responses; older shapes carry transaction fields at the top level"""
        if payload.get("liquidityAvailable") is False:
            return None

        buy_amount = int(payload.get("buyAmount") or 0)
        if buy_amount <= 0:
            return None

        tx = payload.get("transaction") or {}
        issues = payload.get("issues") or {}
        allowance = issues.get("allowance") or {}
        fills = (payload.get("route") or {}).get("fills") or []
        gas = tx.get("gas") or payload.get("gas") or payload.get("estimatedGas")
        gas_price = tx.get("gasPrice") or payload.get("gasPrice")
        min_buy = payload.get("minBuyAmount")

        sources: List[str] = []
        for fill in fills:
            source = fill.get("source")
            if source and source not in sources:
                sources.append(source)

        return SwapQuote(
            provider=self.name,
            network=network,
            sell_token=payload.get("sellToken") or sell_token,
            buy_token=payload.get("buyToken") or buy_token,
            sell_amount=int(payload.get("sellAmount") or sell_amount),
            buy_amount=buy_amount,
            min_buy_amount=int(min_buy) if min_buy else None,
            gas_estimate=int(gas) if gas else DEFAULT_GAS_ESTIMATE,
            gas_price=int(gas_price) if gas_price else None,
            price_impact_pct=_to_decimal(payload.get("estimatedPriceImpact")),
            sources=sources,
            to=tx.get("to") or payload.get("to"),
            data=tx.get("data") or payload.get("data"),
            value=int(tx.get("value") or payload.get("value") or 0),
            allowance_target=allowance.get("spender") or payload.get("allowanceTarget"),
            raw=payload,
        )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
