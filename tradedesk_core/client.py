"""
TradeDesk Client
================
Composition root wiring one breaker registry into the stock service
manager and the model router.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

import httpx
import structlog

from tradedesk_core.ai import AnalysisResult, ModelBackend, ModelRouter
from tradedesk_core.circuit_breaker import CircuitBreakerRegistry
from tradedesk_core.config import TradeDeskConfig
from tradedesk_core.log_setup import setup_logging
from tradedesk_core.metrics import get_metrics_text
from tradedesk_core.providers.models import Quote
from tradedesk_core.stock import StockServiceManager

logger = structlog.get_logger(__name__)


class TradeDeskClient:
    """
    Entry point for dashboard code.

    Example:
        async with TradeDeskClient() as client:
            quote = await client.get_quote("AAPL")
            analysis = await client.get_hybrid_analysis("technical", "AAPL", {"price": quote.price})
    """

    def __init__(
        self,
        config: Optional[TradeDeskConfig] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        ai_transport: Optional[httpx.AsyncBaseTransport] = None,
        provider_options: Optional[Dict[str, Dict[str, Any]]] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        configure_logging: bool = False,
    ):
        self.config = config or TradeDeskConfig()
        if configure_logging:
            setup_logging(self.config.service_name, self.config.log_level, self.config.json_logs)

        self.registry = registry or CircuitBreakerRegistry(clock=clock)
        self.stock = StockServiceManager(
            self.config.stock,
            self.registry,
            provider_options=provider_options,
            clock=clock,
            sleep=sleep,
        )
        self.router = ModelRouter.from_config(
            self.config.ai,
            self.registry,
            transport=ai_transport,
            clock=clock,
            sleep=sleep,
        )
        logger.info(
            "tradedesk_client_ready",
            provider=self.stock.get_current_provider(),
            ai_backends=[b.value for b in self.router.available_backends()],
        )

    async def get_quote(self, symbol: str, force_refresh: bool = False) -> Quote:
        return await self.stock.get_quote(symbol, force_refresh)

    async def get_multiple_quotes(self, symbols: Iterable[str], force_refresh: bool = False) -> List[Quote]:
        return await self.stock.get_multiple_quotes(symbols, force_refresh)

    async def get_hybrid_analysis(
        self,
        category: str,
        subject: str,
        data: Optional[Dict[str, Any]] = None,
        requires_realtime: bool = False,
        force_model: Optional[Union[str, ModelBackend]] = None,
    ) -> AnalysisResult:
        return await self.router.get_analysis(
            category,
            subject,
            data,
            requires_realtime=requires_realtime,
            force_model=force_model,
        )

    def has_advanced_features(self) -> bool:
        return self.stock.has_advanced_features()

    def get_provider_capabilities(self) -> Dict[str, bool]:
        return self.stock.get_provider_capabilities()

    def get_circuit_breaker_status(self) -> Dict[str, Dict[str, Any]]:
        """Metrics for every breaker in the shared registry."""
        return self.registry.get_all_metrics()

    def get_metrics_text(self) -> str:
        return get_metrics_text()

    async def aclose(self) -> None:
        await self.stock.aclose()
        await self.router.aclose()

    async def __aenter__(self) -> "TradeDeskClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
