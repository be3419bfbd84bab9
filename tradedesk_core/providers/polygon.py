"""
Polygon.io Provider
===================
Full-featured provider: snapshots, options, aggregates, reference data
and trade streaming.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx
import structlog

from tradedesk_core.exceptions import TradeDeskError, UpstreamCallError

from . import analytics
from .base import StockProvider, resolve_date_range
from .http import VendorHttpClient
from .models import (
    Capability,
    HistoricalBar,
    OptionsContract,
    OptionsSummary,
    Quote,
    UnusualOptionsActivity,
    WheelStrategyData,
)
from .realtime import RealtimeConnection

logger = structlog.get_logger(__name__)

UNUSUAL_SCAN_CONTRACTS = 100
UNUSUAL_ANALYZED_CONTRACTS = 20


class PolygonProvider(StockProvider):
    """
    Polygon.io provider.

    Features:
    - Snapshot quotes
    - Options chains, options summary and wheel-strategy analytics
    - Unusual options activity scan
    - Historical aggregates
    - Market status, dividends and splits
    - WebSocket trade stream
    """

    name = "Polygon.io"
    provider_type = "polygon"
    capabilities = frozenset({
        Capability.QUOTES,
        Capability.OPTIONS_CHAIN,
        Capability.HISTORICAL,
        Capability.WHEEL_STRATEGY,
        Capability.UNUSUAL_OPTIONS,
        Capability.REALTIME,
        Capability.REFERENCE_DATA,
    })
    base_url = "https://api.polygon.io"
    ws_url = "wss://socket.polygon.io/stocks"

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key)
        self._http = VendorHttpClient(self.base_url, "polygon", transport=transport)

    async def _get(self, path: str, **params: Any) -> Dict[str, Any]:
        params["apiKey"] = self.api_key
        data = await self._http.get(path, params=params)
        return data if isinstance(data, dict) else {}

    async def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        data = await self._get(f"/v2/snapshot/locale/us/markets/stocks/tickers/{symbol}")

        ticker = data.get("ticker")
        if not ticker:
            raise UpstreamCallError(
                f"No data available for {symbol}",
                service="polygon",
                provider=self.name,
            )

        last = ticker.get("lastTrade") or ticker.get("last") or {}
        minute = ticker.get("min") or {}
        day = ticker.get("day") or {}
        prev_day = ticker.get("prevDay") or {}

        current_price = last.get("p") or last.get("price") or minute.get("c") or day.get("c") or 0
        previous_close = prev_day.get("c") or 0
        change = current_price - previous_close if previous_close else 0
        change_percent = change / previous_close * 100 if previous_close else 0

        return Quote(
            symbol=symbol,
            name=symbol,
            price=round(current_price, 2),
            change=round(change, 2),
            change_percent=round(change_percent, 2),
            volume=int(day.get("v") or minute.get("v") or 0),
            provider=self.name,
        )

    async def get_multiple_quotes(self, symbols: List[str]) -> List[Quote]:
        """Fetch concurrently and drop failed symbols; fail only if all fail."""
        results = await asyncio.gather(
            *(self.get_quote(symbol) for symbol in symbols),
            return_exceptions=True,
        )

        quotes: List[Quote] = []
        errors: List[BaseException] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Quote):
                quotes.append(result)
            else:
                errors.append(result)
                logger.warning("batch_quote_skipped", provider=self.name, symbol=symbol, error=str(result))

        if symbols and not quotes:
            raise errors[0]
        return quotes

    async def get_options_chain(
        self,
        symbol: str,
        expiration: Optional[str] = None,
        strike_price: Optional[float] = None,
        contract_type: Optional[str] = None,
    ) -> List[OptionsContract]:
        self.require(Capability.OPTIONS_CHAIN)
        symbol = symbol.upper()
        params: Dict[str, Any] = {"underlying_ticker": symbol}
        if expiration:
            params["expiration_date"] = expiration
        if strike_price:
            params["strike_price"] = strike_price
        if contract_type:
            params["contract_type"] = contract_type

        data = await self._get("/v3/reference/options/contracts", **params)
        return [_parse_contract(raw, symbol) for raw in data.get("results") or []]

    async def get_historical_data(
        self,
        symbol: str,
        timespan: str = "day",
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> List[HistoricalBar]:
        self.require(Capability.HISTORICAL)
        start, end = resolve_date_range(from_date, to_date)
        data = await self._get(f"/v2/aggs/ticker/{symbol.upper()}/range/1/{timespan}/{start}/{end}")
        return [_parse_bar(raw) for raw in data.get("results") or []]

    async def get_market_status(self) -> Dict[str, Any]:
        self.require(Capability.REFERENCE_DATA)
        return await self._get("/v1/marketstatus/now")

    async def get_dividends(self, symbol: str) -> Dict[str, Any]:
        self.require(Capability.REFERENCE_DATA)
        return await self._get("/v3/reference/dividends", ticker=symbol.upper())

    async def get_stock_splits(self, symbol: str) -> Dict[str, Any]:
        self.require(Capability.REFERENCE_DATA)
        return await self._get("/v3/reference/splits", ticker=symbol.upper())

    async def get_options_analysis(self, symbol: str, expiration: str) -> Optional[OptionsSummary]:
        """Call/put counts and strike range for one expiration."""
        chain = await self.get_options_chain(symbol, expiration)
        return analytics.summarize_chain(symbol.upper(), expiration, chain)

    async def get_wheel_strategy_data(
        self,
        symbol: str,
        target_strike: Optional[float] = None,
    ) -> WheelStrategyData:
        self.require(Capability.WHEEL_STRATEGY)
        quote, chain, bars = await asyncio.gather(
            self.get_quote(symbol),
            self._best_effort(self.get_options_chain(symbol), "options_chain", symbol),
            self._best_effort(self.get_historical_data(symbol, "day"), "historical", symbol),
        )
        return analytics.build_wheel_strategy(quote.price, chain, bars, target_strike)

    async def _best_effort(self, call, what: str, symbol: str) -> list:
        try:
            return await call
        except TradeDeskError as e:
            logger.warning("wheel_input_unavailable", provider=self.name, symbol=symbol, source=what, error=str(e))
            return []

    async def get_unusual_options_activity(self, symbol: str) -> List[UnusualOptionsActivity]:
        self.require(Capability.UNUSUAL_OPTIONS)
        symbol = symbol.upper()
        data = await self._get(
            "/v3/reference/options/contracts",
            underlying_ticker=symbol,
            order="desc",
            limit=UNUSUAL_SCAN_CONTRACTS,
        )
        contracts = [_parse_contract(raw, symbol) for raw in data.get("results") or []]
        if not contracts:
            logger.info("no_options_contracts", provider=self.name, symbol=symbol)
            return []

        quote = await self.get_quote(symbol)
        day = (datetime.now(timezone.utc).date() - timedelta(days=1)).isoformat()

        scored = await asyncio.gather(*(
            self._score_contract(contract, day, quote.price)
            for contract in contracts[:UNUSUAL_ANALYZED_CONTRACTS]
        ))
        return analytics.top_activity([item for item in scored if item is not None])

    async def _score_contract(
        self,
        contract: OptionsContract,
        day: str,
        current_price: float,
    ) -> Optional[UnusualOptionsActivity]:
        try:
            data = await self._get(f"/v2/aggs/ticker/{contract.ticker}/range/1/day/{day}/{day}")
        except TradeDeskError as e:
            logger.debug("contract_bars_unavailable", ticker=contract.ticker, error=str(e))
            return None

        bars = data.get("results") or []
        if not bars:
            return None
        bar = bars[0]
        return analytics.score_activity(contract, bar.get("v") or 0, bar.get("c"), current_price)

    def create_realtime_connection(
        self,
        symbols: Iterable[str],
        on_message: Callable[[Any], Any],
    ) -> RealtimeConnection:
        self.require(Capability.REALTIME)
        symbols = [symbol.upper() for symbol in symbols]
        return RealtimeConnection(
            url=self.ws_url,
            symbols=symbols,
            on_message=on_message,
            frames=[
                {"action": "auth", "params": self.api_key},
                {"action": "subscribe", "params": ",".join(f"T.{symbol}" for symbol in symbols)},
            ],
            service_name="polygon",
        )

    async def aclose(self) -> None:
        await self._http.aclose()
        await super().aclose()


def _parse_contract(raw: Dict[str, Any], symbol: str) -> OptionsContract:
    return OptionsContract(
        ticker=raw.get("ticker") or "",
        strike_price=float(raw.get("strike_price") or 0),
        expiration_date=raw.get("expiration_date") or "",
        contract_type=raw.get("contract_type") or "call",
        underlying_ticker=raw.get("underlying_ticker") or symbol,
        exercise_style=raw.get("exercise_style"),
        shares_per_contract=raw.get("shares_per_contract"),
    )


def _parse_bar(raw: Dict[str, Any]) -> HistoricalBar:
    return HistoricalBar(
        timestamp=int(raw.get("t") or 0),
        open=raw.get("o") or 0,
        high=raw.get("h") or 0,
        low=raw.get("l") or 0,
        close=raw.get("c") or 0,
        volume=raw.get("v") or 0,
        vwap=raw.get("vw"),
    )
