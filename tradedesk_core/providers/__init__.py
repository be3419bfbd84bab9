"""
TradeDesk Quote Providers
=========================
Interchangeable market data vendors behind one capability-flagged interface.
"""

from .models import (
    Capability,
    ADVANCED_CAPABILITIES,
    Quote,
    OptionsContract,
    HistoricalBar,
    PutStrike,
    RiskAnalysis,
    WheelStrategyData,
    UnusualOptionsActivity,
    OptionsSummary,
)
from .base import StockProvider
from .realtime import RealtimeConnection
from .http import VendorHttpClient
from .mock import MockProvider
from .alpha_vantage import AlphaVantageProvider
from .finnhub import FinnhubProvider
from .polygon import PolygonProvider
from .factory import PROVIDER_TYPES, available_providers, create_provider

__all__ = [
    # Models
    "Capability",
    "ADVANCED_CAPABILITIES",
    "Quote",
    "OptionsContract",
    "HistoricalBar",
    "PutStrike",
    "RiskAnalysis",
    "WheelStrategyData",
    "UnusualOptionsActivity",
    "OptionsSummary",
    # Base
    "StockProvider",
    "RealtimeConnection",
    "VendorHttpClient",
    # Providers
    "MockProvider",
    "AlphaVantageProvider",
    "FinnhubProvider",
    "PolygonProvider",
    # Factory
    "PROVIDER_TYPES",
    "available_providers",
    "create_provider",
]
