"""
Finnhub Provider
================
Quotes, daily/weekly/monthly candles and trade streaming from Finnhub.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import structlog

from tradedesk_core.exceptions import TradeDeskError, ValidationError

from .base import StockProvider, resolve_date_range
from .http import VendorHttpClient
from .models import Capability, HistoricalBar, Quote
from .realtime import RealtimeConnection

logger = structlog.get_logger(__name__)

_RESOLUTIONS = {"day": "D", "week": "W", "month": "M"}


class FinnhubProvider(StockProvider):
    """
    Finnhub quote provider.

    Features:
    - Quotes enriched with the company name (best effort)
    - Historical candles
    - WebSocket trade stream
    """

    name = "Finnhub"
    provider_type = "finnhub"
    capabilities = frozenset({
        Capability.QUOTES,
        Capability.HISTORICAL,
        Capability.REALTIME,
    })
    base_url = "https://finnhub.io/api/v1"
    ws_url = "wss://ws.finnhub.io"

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key)
        self._http = VendorHttpClient(self.base_url, "finnhub", transport=transport)

    async def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        quote, profile = await asyncio.gather(
            self._http.get("/quote", params={"symbol": symbol, "token": self.api_key}),
            self._fetch_profile(symbol),
        )

        return Quote(
            symbol=symbol,
            name=profile.get("name") or f"{symbol} Corporation",
            price=float(quote.get("c") or 0),
            change=float(quote.get("d") or 0),
            change_percent=float(quote.get("dp") or 0),
            market_cap=profile.get("marketCapitalization"),
            provider=self.name,
        )

    async def _fetch_profile(self, symbol: str) -> Dict[str, Any]:
        try:
            profile = await self._http.get(
                "/stock/profile2",
                params={"symbol": symbol, "token": self.api_key},
            )
        except TradeDeskError as e:
            logger.debug("profile_unavailable", provider=self.name, symbol=symbol, error=str(e))
            return {}
        return profile if isinstance(profile, dict) else {}

    async def get_historical_data(
        self,
        symbol: str,
        timespan: str = "day",
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> List[HistoricalBar]:
        self.require(Capability.HISTORICAL)
        resolution = _RESOLUTIONS.get(timespan)
        if resolution is None:
            raise ValidationError(f"Unsupported timespan: {timespan}", field="timespan")

        start, end = resolve_date_range(from_date, to_date)
        data = await self._http.get(
            "/stock/candle",
            params={
                "symbol": symbol.upper(),
                "resolution": resolution,
                "from": _to_epoch(start),
                "to": _to_epoch(end),
                "token": self.api_key,
            },
        )

        if data.get("s") != "ok":
            return []

        return [
            HistoricalBar(
                timestamp=int(t) * 1000,
                open=o,
                high=h,
                low=low,
                close=c,
                volume=v,
            )
            for t, o, h, low, c, v in zip(
                data["t"], data["o"], data["h"], data["l"], data["c"], data["v"]
            )
        ]

    def create_realtime_connection(
        self,
        symbols: Iterable[str],
        on_message: Callable[[Any], Any],
    ) -> RealtimeConnection:
        self.require(Capability.REALTIME)
        symbols = [symbol.upper() for symbol in symbols]
        return RealtimeConnection(
            url=f"{self.ws_url}?token={self.api_key}",
            symbols=symbols,
            on_message=on_message,
            frames=[{"type": "subscribe", "symbol": symbol} for symbol in symbols],
            service_name="finnhub",
        )

    async def aclose(self) -> None:
        await self._http.aclose()
        await super().aclose()


def _to_epoch(day: str) -> int:
    try:
        parsed = datetime.strptime(day, "%Y-%m-%d")
    except ValueError as e:
        raise ValidationError(f"Expected YYYY-MM-DD, got {day!r}", field="date") from e
    return int(parsed.replace(tzinfo=timezone.utc).timestamp())
