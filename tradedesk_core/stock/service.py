"""
Stock Service
=============
Primary provider with an optional fallback for whole-quote fetches.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog

from tradedesk_core.config import StockServiceConfig
from tradedesk_core.exceptions import UpstreamCallError
from tradedesk_core.providers import StockProvider, create_provider
from tradedesk_core.providers.models import Quote

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class StockService:
    """
    Holds the active provider and the fallback provider.

    Any primary failure on ``get_quote`` / ``get_multiple_quotes``
    (including an unconfigured primary) is retried once on the fallback,
    if one is configured. The ``provider`` field on each returned quote
    names the provider that served it. Advanced methods never fall back.
    """

    def __init__(
        self,
        provider: StockProvider,
        fallback: Optional[StockProvider] = None,
        provider_type: Optional[str] = None,
    ):
        self.provider = provider
        self.fallback = fallback
        self.provider_type = provider_type or provider.provider_type

    @classmethod
    def from_config(
        cls,
        config: StockServiceConfig,
        provider_options: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> "StockService":
        options = provider_options or {}
        provider = create_provider(
            config.provider,
            config.api_key,
            **options.get(config.provider, {}),
        )
        fallback = None
        if config.fallback_provider:
            fallback = create_provider(
                config.fallback_provider,
                config.fallback_api_key or config.api_key,
                **options.get(config.fallback_provider, {}),
            )
        return cls(provider, fallback, config.provider)

    async def get_quote(self, symbol: str) -> Quote:
        return await self._with_fallback(
            "get_quote",
            lambda provider: provider.get_quote(symbol),
        )

    async def get_multiple_quotes(self, symbols: List[str]) -> List[Quote]:
        return await self._with_fallback(
            "get_multiple_quotes",
            lambda provider: provider.get_multiple_quotes(symbols),
        )

    async def _with_fallback(
        self,
        operation: str,
        call: Callable[[StockProvider], Awaitable[T]],
    ) -> T:
        try:
            if not self.provider.is_configured():
                raise UpstreamCallError(
                    f"{self.provider.name} provider is not configured",
                    service=self.provider_type,
                    provider=self.provider.name,
                )
            logger.debug("provider_call", provider=self.provider.name, operation=operation)
            return await call(self.provider)
        except Exception as e:
            if self.fallback is None or not self.fallback.is_configured():
                raise
            logger.warning(
                "provider_fallback",
                provider=self.provider.name,
                fallback=self.fallback.name,
                operation=operation,
                error=str(e),
            )
            return await call(self.fallback)

    def get_current_provider(self) -> str:
        return self.provider.name

    def is_configured(self) -> bool:
        return self.provider.is_configured()

    def has_advanced_features(self) -> bool:
        return self.provider.has_advanced_features

    def get_provider_capabilities(self) -> Dict[str, bool]:
        return self.provider.describe_capabilities()

    async def switch_provider(self, provider: StockProvider, provider_type: Optional[str] = None) -> None:
        """Replace the primary provider, closing the old one."""
        old = self.provider
        self.provider = provider
        self.provider_type = provider_type or provider.provider_type
        if old is not self.fallback:
            await old.aclose()
        logger.info("provider_switched", old=old.name, new=provider.name)

    async def aclose(self) -> None:
        await self.provider.aclose()
        if self.fallback is not None and self.fallback is not self.provider:
            await self.fallback.aclose()
