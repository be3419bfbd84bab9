"""
Mock Quote Provider
===================
Always-available provider returning synthetic quotes.
"""

import asyncio
import random
from typing import Optional

from .base import StockProvider
from .models import Quote


class MockProvider(StockProvider):
    """
    Synthetic quotes for development and as the usual fallback.

    Prices are uniform in [50, 250) with a change within +/-5.
    """

    name = "Mock Data"
    provider_type = "mock"

    def __init__(
        self,
        api_key: Optional[str] = None,
        latency: float = 0.5,
        seed: Optional[int] = None,
    ):
        super().__init__(api_key)
        self.latency = latency
        self._random = random.Random(seed)

    def is_configured(self) -> bool:
        return True

    async def get_quote(self, symbol: str) -> Quote:
        if self.latency:
            await asyncio.sleep(self.latency)

        symbol = symbol.upper()
        base_price = 50 + self._random.random() * 200
        change = (self._random.random() - 0.5) * 10
        change_percent = change / base_price * 100

        return Quote(
            symbol=symbol,
            name=f"{symbol} Corporation",
            price=round(base_price, 2),
            change=round(change, 2),
            change_percent=round(change_percent, 2),
            provider=self.name,
        )
