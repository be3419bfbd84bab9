"""
Quote Provider Base
===================
Capability-flagged base class for interchangeable market data vendors.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

import structlog

from tradedesk_core.exceptions import CapabilityUnsupportedError

from .models import (
    ADVANCED_CAPABILITIES,
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

DEFAULT_HISTORY_DAYS = 30

# Methods a subclass must override when it declares the capability
CAPABILITY_METHODS: Dict[Capability, Tuple[str, ...]] = {
    Capability.OPTIONS_CHAIN: ("get_options_chain", "get_options_analysis"),
    Capability.HISTORICAL: ("get_historical_data",),
    Capability.WHEEL_STRATEGY: ("get_wheel_strategy_data",),
    Capability.UNUSUAL_OPTIONS: ("get_unusual_options_activity",),
    Capability.REALTIME: ("create_realtime_connection",),
    Capability.REFERENCE_DATA: ("get_market_status", "get_dividends", "get_stock_splits"),
}


def resolve_date_range(
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> Tuple[str, str]:
    """Fill missing bounds with the last 30 days (YYYY-MM-DD, UTC)."""
    today = datetime.now(timezone.utc).date()
    start = from_date or (today - timedelta(days=DEFAULT_HISTORY_DAYS)).isoformat()
    end = to_date or today.isoformat()
    return start, end


class StockProvider(ABC):
    """
    Abstract base class for quote providers.

    Each subclass declares the operations it offers through
    ``capabilities``; advanced calls against a provider lacking the
    capability raise ``CapabilityUnsupportedError`` before any upstream work.

    The advanced methods below only gate on the capability. A subclass that
    declares a capability must override its methods (see
    ``CAPABILITY_METHODS``); this is checked when the subclass is defined.
    """

    name: str = "base"
    provider_type: str = "base"
    capabilities: FrozenSet[Capability] = frozenset({Capability.QUOTES})

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        missing = [
            method
            for capability in cls.capabilities
            for method in CAPABILITY_METHODS.get(capability, ())
            if getattr(cls, method) is getattr(StockProvider, method)
        ]
        if missing:
            raise TypeError(
                f"{cls.__name__} declares capabilities without implementing: "
                f"{', '.join(sorted(missing))}"
            )

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or ""
        self.capabilities = frozenset(type(self).capabilities)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        """Raise unless the provider offers ``capability``."""
        if capability not in self.capabilities:
            raise CapabilityUnsupportedError(capability.value, self.name)

    @property
    def has_advanced_features(self) -> bool:
        return bool(self.capabilities & ADVANCED_CAPABILITIES)

    def describe_capabilities(self) -> Dict[str, bool]:
        return {capability.value: capability in self.capabilities for capability in Capability}

    @abstractmethod
    async def get_quote(self, symbol: str) -> Quote:
        """Fetch a single quote."""
        pass

    async def get_multiple_quotes(self, symbols: List[str]) -> List[Quote]:
        """Fetch quotes concurrently; one failure fails the batch."""
        return list(await asyncio.gather(*(self.get_quote(symbol) for symbol in symbols)))

    async def get_options_chain(
        self,
        symbol: str,
        expiration: Optional[str] = None,
        strike_price: Optional[float] = None,
        contract_type: Optional[str] = None,
    ) -> List[OptionsContract]:
        self.require(Capability.OPTIONS_CHAIN)
        raise NotImplementedError(f"{self.name} must implement get_options_chain")

    async def get_historical_data(
        self,
        symbol: str,
        timespan: str = "day",
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> List[HistoricalBar]:
        self.require(Capability.HISTORICAL)
        raise NotImplementedError(f"{self.name} must implement get_historical_data")

    async def get_wheel_strategy_data(
        self,
        symbol: str,
        target_strike: Optional[float] = None,
    ) -> WheelStrategyData:
        self.require(Capability.WHEEL_STRATEGY)
        raise NotImplementedError(f"{self.name} must implement get_wheel_strategy_data")

    async def get_unusual_options_activity(self, symbol: str) -> List[UnusualOptionsActivity]:
        self.require(Capability.UNUSUAL_OPTIONS)
        raise NotImplementedError(f"{self.name} must implement get_unusual_options_activity")

    async def get_options_analysis(self, symbol: str, expiration: str) -> Optional[OptionsSummary]:
        self.require(Capability.OPTIONS_CHAIN)
        raise NotImplementedError(f"{self.name} must implement get_options_analysis")

    async def get_market_status(self) -> Dict[str, Any]:
        self.require(Capability.REFERENCE_DATA)
        raise NotImplementedError(f"{self.name} must implement get_market_status")

    async def get_dividends(self, symbol: str) -> Dict[str, Any]:
        self.require(Capability.REFERENCE_DATA)
        raise NotImplementedError(f"{self.name} must implement get_dividends")

    async def get_stock_splits(self, symbol: str) -> Dict[str, Any]:
        self.require(Capability.REFERENCE_DATA)
        raise NotImplementedError(f"{self.name} must implement get_stock_splits")

    def create_realtime_connection(
        self,
        symbols: Iterable[str],
        on_message: Callable[[Any], Any],
    ) -> RealtimeConnection:
        self.require(Capability.REALTIME)
        raise NotImplementedError(f"{self.name} must implement create_realtime_connection")

    async def aclose(self) -> None:
        """Release HTTP resources."""
        logger.debug("provider_closed", provider=self.name)
