"""
Market Data Models
==================
Normalized records returned by every quote provider.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Capability(str, Enum):
    """Operations a provider may offer beyond basic quotes."""
    QUOTES = "quotes"
    OPTIONS_CHAIN = "options_chain"
    HISTORICAL = "historical"
    WHEEL_STRATEGY = "wheel_strategy"
    UNUSUAL_OPTIONS = "unusual_options"
    REALTIME = "realtime"
    REFERENCE_DATA = "reference_data"  # Market status, dividends, splits


# Any of these marks a provider as having advanced features
ADVANCED_CAPABILITIES = frozenset({
    Capability.OPTIONS_CHAIN,
    Capability.WHEEL_STRATEGY,
    Capability.UNUSUAL_OPTIONS,
})


@dataclass
class Quote:
    """Point-in-time stock quote."""
    symbol: str
    name: str
    price: float
    change: float
    change_percent: float
    volume: Optional[int] = None
    market_cap: Optional[float] = None
    last_updated: str = field(default_factory=utc_now_iso)
    provider: str = ""  # Name of the provider that actually served the quote


@dataclass
class OptionsContract:
    ticker: str
    strike_price: float
    expiration_date: str
    contract_type: str  # "call" or "put"
    underlying_ticker: str
    exercise_style: Optional[str] = None
    shares_per_contract: Optional[int] = None


@dataclass
class HistoricalBar:
    """One aggregate bar (timestamp in epoch milliseconds)."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    vwap: Optional[float] = None


@dataclass
class PutStrike:
    strike: float
    expiration: str
    ticker: str
    premium: float = 0.0
    probability: float = 0.0
    annualized_return: float = 0.0


@dataclass
class RiskAnalysis:
    max_loss: float
    breakeven: float
    profit_probability: float


@dataclass
class WheelStrategyData:
    current_price: float
    volatility: float  # Annualized, in percent
    suitable_put_strikes: List[PutStrike]
    recommended_strike: float
    risk_analysis: RiskAnalysis


@dataclass
class UnusualOptionsActivity:
    ticker: str
    strike: float
    expiration: str
    contract_type: str
    volume: float
    volume_ratio: float
    price: float
    sentiment: str
    context: str
    is_unusual: bool = True


@dataclass
class OptionsSummary:
    total_contracts: int
    calls: int
    puts: int
    min_strike: float
    max_strike: float
    expiration_date: str
    underlying_symbol: str
