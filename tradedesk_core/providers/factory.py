"""
Provider Factory
================
Builds provider instances from a provider type string.
"""

from typing import Any, Dict, List, Optional, Type

import structlog

from tradedesk_core.exceptions import ValidationError

from .alpha_vantage import AlphaVantageProvider
from .base import StockProvider
from .finnhub import FinnhubProvider
from .mock import MockProvider
from .polygon import PolygonProvider

logger = structlog.get_logger(__name__)

PROVIDER_TYPES: Dict[str, Type[StockProvider]] = {
    "mock": MockProvider,
    "alpha-vantage": AlphaVantageProvider,
    "finnhub": FinnhubProvider,
    "polygon": PolygonProvider,
}


def available_providers() -> List[str]:
    return list(PROVIDER_TYPES)


def create_provider(
    provider_type: str,
    api_key: Optional[str] = None,
    **options: Any,
) -> StockProvider:
    """
    Instantiate a provider by type.

    Args:
        provider_type: One of "mock", "alpha-vantage", "finnhub", "polygon"
        api_key: Vendor API key (ignored by the mock provider)
        **options: Provider-specific keyword arguments (e.g. transport, latency)
    """
    provider_cls = PROVIDER_TYPES.get(provider_type)
    if provider_cls is None:
        raise ValidationError(
            f"Unknown provider: {provider_type}",
            field="provider",
        )
    provider = provider_cls(api_key=api_key, **options)
    logger.debug("provider_created", provider=provider.name, configured=provider.is_configured())
    return provider
