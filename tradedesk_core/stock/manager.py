"""
Stock Service Manager
=====================
Stable quote API composing the stock service with a per-provider rate
limiter and circuit breaker.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

import structlog

from tradedesk_core.circuit_breaker import CircuitBreakerRegistry
from tradedesk_core.config import StockServiceConfig
from tradedesk_core.exceptions import DuplicateRequestError
from tradedesk_core.providers import Capability, RealtimeConnection, create_provider
from tradedesk_core.providers.base import resolve_date_range
from tradedesk_core.providers.models import (
    HistoricalBar,
    OptionsContract,
    OptionsSummary,
    Quote,
    UnusualOptionsActivity,
    WheelStrategyData,
)
from tradedesk_core.rate_limit import RateLimitConfig, RateLimiter, get_rate_limit_config
from tradedesk_core.validation import validate_symbol, validate_symbols

from .service import StockService

logger = structlog.get_logger(__name__)


class StockServiceManager:
    """
    Rate-limited, cached and breaker-protected access to the active provider.

    Example:
        manager = StockServiceManager(StockServiceConfig(provider="polygon", api_key="..."), registry)
        quote = await manager.get_quote("AAPL")
    """

    def __init__(
        self,
        config: Optional[StockServiceConfig] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        service: Optional[StockService] = None,
        rate_limits: Optional[Dict[str, RateLimitConfig]] = None,
        provider_options: Optional[Dict[str, Dict[str, Any]]] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or StockServiceConfig()
        self.registry = registry or CircuitBreakerRegistry(clock=clock)
        self._rate_limits = rate_limits or {}
        self._provider_options = provider_options or {}
        self._clock = clock
        self._sleep = sleep

        self._service = service or StockService.from_config(self.config, self._provider_options)
        self._limiter = self._build_limiter(self._service.provider_type)
        self._active_batches: Set[str] = set()

    def _build_limiter(self, provider_type: str) -> RateLimiter:
        config = self._rate_limits.get(provider_type) or get_rate_limit_config(provider_type)
        return RateLimiter(
            f"stock-{provider_type}",
            config,
            registry=self.registry,
            clock=self._clock,
            sleep=self._sleep,
        )

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def service(self) -> StockService:
        return self._service

    # =========================================================================
    # Quotes
    # =========================================================================

    async def get_quote(self, symbol: str, force_refresh: bool = False) -> Quote:
        symbol = validate_symbol(symbol)
        return await self._limiter.execute_request(
            f"quote-{symbol}",
            lambda: self._service.get_quote(symbol),
            force_refresh,
        )

    async def get_multiple_quotes(
        self,
        symbols: Iterable[str],
        force_refresh: bool = False,
    ) -> List[Quote]:
        """
        Fetch a batch of quotes.

        Raises:
            DuplicateRequestError: The same symbol set is already being fetched
        """
        normalized = validate_symbols(symbols)
        key = "batch-" + ",".join(sorted(normalized))

        if key in self._active_batches:
            logger.info("duplicate_batch_rejected", key=key)
            raise DuplicateRequestError(key, service=self._limiter.service_name)

        self._active_batches.add(key)
        try:
            return await self._limiter.execute_request(
                key,
                lambda: self._service.get_multiple_quotes(normalized),
                force_refresh,
            )
        finally:
            self._active_batches.discard(key)

    # =========================================================================
    # Advanced features (no fallback)
    # =========================================================================

    async def get_options_chain(
        self,
        symbol: str,
        expiration: Optional[str] = None,
        strike_price: Optional[float] = None,
        contract_type: Optional[str] = None,
    ) -> List[OptionsContract]:
        self._require(Capability.OPTIONS_CHAIN)
        symbol = validate_symbol(symbol)
        key = (
            f"options-{symbol}-{expiration or 'all'}"
            f"-{strike_price or 'all'}-{contract_type or 'all'}"
        )
        return await self._limiter.execute_request(
            key,
            lambda: self._service.provider.get_options_chain(
                symbol, expiration, strike_price, contract_type
            ),
        )

    async def get_historical_data(
        self,
        symbol: str,
        timespan: str = "day",
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> List[HistoricalBar]:
        self._require(Capability.HISTORICAL)
        symbol = validate_symbol(symbol)
        start, end = resolve_date_range(from_date, to_date)
        return await self._limiter.execute_request(
            f"historical-{symbol}-{timespan}-{start}-{end}",
            lambda: self._service.provider.get_historical_data(symbol, timespan, start, end),
        )

    async def get_wheel_strategy_data(
        self,
        symbol: str,
        target_strike: Optional[float] = None,
    ) -> WheelStrategyData:
        self._require(Capability.WHEEL_STRATEGY)
        symbol = validate_symbol(symbol)
        return await self._limiter.execute_request(
            f"wheel-{symbol}-{target_strike or 'auto'}",
            lambda: self._service.provider.get_wheel_strategy_data(symbol, target_strike),
        )

    async def get_unusual_options_activity(self, symbol: str) -> List[UnusualOptionsActivity]:
        self._require(Capability.UNUSUAL_OPTIONS)
        symbol = validate_symbol(symbol)
        return await self._limiter.execute_request(
            f"unusual-options-{symbol}",
            lambda: self._service.provider.get_unusual_options_activity(symbol),
        )

    async def get_options_analysis(self, symbol: str, expiration: str) -> Optional[OptionsSummary]:
        self._require(Capability.OPTIONS_CHAIN)
        symbol = validate_symbol(symbol)
        return await self._limiter.execute_request(
            f"options-analysis-{symbol}-{expiration}",
            lambda: self._service.provider.get_options_analysis(symbol, expiration),
        )

    async def get_market_status(self) -> Dict[str, Any]:
        self._require(Capability.REFERENCE_DATA)
        return await self._limiter.execute_request(
            "market-status",
            self._service.provider.get_market_status,
        )

    async def get_dividends(self, symbol: str) -> Dict[str, Any]:
        self._require(Capability.REFERENCE_DATA)
        symbol = validate_symbol(symbol)
        return await self._limiter.execute_request(
            f"dividends-{symbol}",
            lambda: self._service.provider.get_dividends(symbol),
        )

    async def get_stock_splits(self, symbol: str) -> Dict[str, Any]:
        self._require(Capability.REFERENCE_DATA)
        symbol = validate_symbol(symbol)
        return await self._limiter.execute_request(
            f"splits-{symbol}",
            lambda: self._service.provider.get_stock_splits(symbol),
        )

    def create_realtime_connection(
        self,
        symbols: Iterable[str],
        on_message: Callable[[Any], Any],
    ) -> RealtimeConnection:
        self._require(Capability.REALTIME)
        return self._service.provider.create_realtime_connection(
            validate_symbols(symbols),
            on_message,
        )

    def _require(self, capability: Capability) -> None:
        self._service.provider.require(capability)

    # =========================================================================
    # Provider management
    # =========================================================================

    def get_current_provider(self) -> str:
        return self._service.get_current_provider()

    def is_configured(self) -> bool:
        return self._service.is_configured()

    def has_advanced_features(self) -> bool:
        return self._service.has_advanced_features()

    def get_provider_capabilities(self) -> Dict[str, bool]:
        return self._service.get_provider_capabilities()

    async def switch_provider(self, provider_type: str, api_key: Optional[str] = None) -> None:
        """Replace the primary provider and its rate limiter."""
        provider = create_provider(
            provider_type,
            api_key,
            **self._provider_options.get(provider_type, {}),
        )
        old_limiter = self._limiter

        await self._service.switch_provider(provider, provider_type)
        self._limiter = self._build_limiter(provider_type)
        self._active_batches.clear()
        await old_limiter.aclose()

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_rate_limit_stats(self) -> Dict[str, Any]:
        return self._limiter.get_stats()

    def get_circuit_breaker_status(self) -> Dict[str, Any]:
        return self._limiter.get_circuit_breaker_status()

    def reset_circuit_breaker(self) -> None:
        self._limiter.reset_circuit_breaker()

    async def aclose(self) -> None:
        await self._limiter.aclose()
        await self._service.aclose()
