"""
Alpha Vantage Provider
======================
Basic quotes from the Alpha Vantage GLOBAL_QUOTE endpoint.
"""

import asyncio
from typing import List, Optional

import httpx
import structlog

from tradedesk_core.exceptions import TradeDeskError, UpstreamCallError

from .base import StockProvider
from .http import VendorHttpClient
from .models import Quote

logger = structlog.get_logger(__name__)


class AlphaVantageProvider(StockProvider):
    """
    Alpha Vantage quote provider (quotes only).

    The free tier has no batch endpoint and allows 5 calls per minute,
    so batches are fetched one symbol at a time with ``spacing`` seconds
    between calls; failed symbols are skipped.
    """

    name = "Alpha Vantage"
    provider_type = "alpha-vantage"
    base_url = "https://www.alphavantage.co"

    def __init__(
        self,
        api_key: Optional[str] = None,
        spacing: float = 12.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key)
        self.spacing = spacing
        self._http = VendorHttpClient(self.base_url, "alpha-vantage", transport=transport)

    async def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        data = await self._http.get(
            "/query",
            params={"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key},
        )

        quote = data.get("Global Quote") if isinstance(data, dict) else None
        if not quote:
            raise UpstreamCallError(
                f"No data found for symbol: {symbol}",
                service="alpha-vantage",
                provider=self.name,
            )

        try:
            price = float(quote["05. price"])
            change = float(quote["09. change"])
            change_percent = float(quote["10. change percent"].rstrip("%"))
        except (KeyError, ValueError) as e:
            raise UpstreamCallError(
                f"Malformed quote for {symbol}: {e}",
                service="alpha-vantage",
                provider=self.name,
            ) from e

        volume = quote.get("06. volume")
        return Quote(
            symbol=symbol,
            name=f"{symbol} Corporation",
            price=price,
            change=change,
            change_percent=change_percent,
            volume=int(volume) if volume else None,
            provider=self.name,
        )

    async def get_multiple_quotes(self, symbols: List[str]) -> List[Quote]:
        quotes: List[Quote] = []
        for index, symbol in enumerate(symbols):
            try:
                quotes.append(await self.get_quote(symbol))
            except TradeDeskError as e:
                logger.warning(
                    "batch_quote_skipped",
                    provider=self.name,
                    symbol=symbol,
                    error=str(e),
                )
            if self.spacing and index < len(symbols) - 1:
                await asyncio.sleep(self.spacing)
        return quotes

    async def aclose(self) -> None:
        await self._http.aclose()
        await super().aclose()
