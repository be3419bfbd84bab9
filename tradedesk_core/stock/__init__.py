"""
TradeDesk Stock Services
========================
Primary/fallback quote service and the rate-limited manager in front of it.
"""

from .service import StockService
from .manager import StockServiceManager

__all__ = [
    "StockService",
    "StockServiceManager",
]
