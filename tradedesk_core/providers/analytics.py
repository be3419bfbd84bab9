"""
Options Analytics
=================
Derived wheel-strategy and unusual-activity figures built from raw
vendor data. Pure functions, no I/O.
"""

import math
from typing import List, Optional, Sequence

from .models import (
    HistoricalBar,
    OptionsContract,
    OptionsSummary,
    PutStrike,
    RiskAnalysis,
    UnusualOptionsActivity,
    WheelStrategyData,
)

TRADING_DAYS_PER_YEAR = 252
PUT_STRIKE_FLOOR = 0.85        # Lowest put strike considered, as a share of spot
DEFAULT_STRIKE_RATIO = 0.95    # Recommended strike when no target is given
PROFIT_PROBABILITY = 0.7
UNUSUAL_VOLUME_RATIO = 2.0
UNUSUAL_MIN_VOLUME = 500
BASELINE_VOLUME_SHARE = 0.4
BASELINE_MIN_VOLUME = 100
MAX_UNUSUAL_RESULTS = 10


def calculate_volatility(bars: Sequence[HistoricalBar]) -> float:
    """Annualized volatility of daily log returns, in percent."""
    closes = [bar.close for bar in bars if bar.close and bar.close > 0]
    if len(closes) < 2:
        return 0.0

    returns = [math.log(curr / prev) for prev, curr in zip(closes, closes[1:])]
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance * TRADING_DAYS_PER_YEAR) * 100


def build_wheel_strategy(
    current_price: float,
    chain: Sequence[OptionsContract],
    bars: Sequence[HistoricalBar],
    target_strike: Optional[float] = None,
) -> WheelStrategyData:
    """Cash-secured put candidates between 85% and 100% of spot."""
    floor = current_price * PUT_STRIKE_FLOOR
    puts = [
        PutStrike(
            strike=contract.strike_price,
            expiration=contract.expiration_date,
            ticker=contract.ticker,
        )
        for contract in chain
        if contract.contract_type == "put"
        and contract.strike_price
        and floor <= contract.strike_price <= current_price
    ]

    recommended = target_strike or current_price * DEFAULT_STRIKE_RATIO

    return WheelStrategyData(
        current_price=current_price,
        volatility=calculate_volatility(bars),
        suitable_put_strikes=puts,
        recommended_strike=recommended,
        risk_analysis=RiskAnalysis(
            max_loss=current_price - recommended,
            breakeven=recommended,
            profit_probability=PROFIT_PROBABILITY,
        ),
    )


def summarize_chain(
    symbol: str,
    expiration: str,
    chain: Sequence[OptionsContract],
) -> Optional[OptionsSummary]:
    if not chain:
        return None
    strikes = [contract.strike_price or 0 for contract in chain]
    return OptionsSummary(
        total_contracts=len(chain),
        calls=sum(1 for contract in chain if contract.contract_type == "call"),
        puts=sum(1 for contract in chain if contract.contract_type == "put"),
        min_strike=min(strikes),
        max_strike=max(strikes),
        expiration_date=expiration,
        underlying_symbol=symbol,
    )


def analyze_sentiment(contract_type: str, strike: float, current_price: float) -> str:
    """Label directional intent from contract type and moneyness."""
    if contract_type == "call":
        if current_price > strike:
            return "Bullish"
        if current_price < strike * 0.95:
            return "Very Bullish"
        return "Moderately Bullish"
    if contract_type == "put":
        if current_price < strike:
            return "Bearish"
        if current_price > strike * 1.05:
            return "Protective/Hedging"
        return "Moderately Bearish"
    return "Neutral"


def activity_context(contract_type: str, volume_ratio: float, volume: float) -> str:
    is_call = contract_type == "call"
    if volume_ratio > 5:
        return "Massive call buying" if is_call else "Heavy put activity"
    if volume_ratio > 3:
        return "Large call sweep" if is_call else "Significant put flow"
    if volume > 5000:
        return "High call volume" if is_call else "Elevated put interest"
    return "Notable call activity" if is_call else "Unusual put activity"


def score_activity(
    contract: OptionsContract,
    volume: float,
    close: Optional[float],
    current_price: float,
) -> Optional[UnusualOptionsActivity]:
    """Return an activity record if the day's volume looks unusual."""
    baseline = max(volume * BASELINE_VOLUME_SHARE, BASELINE_MIN_VOLUME)
    volume_ratio = volume / baseline if baseline > 0 else 1.0

    if not (volume_ratio > UNUSUAL_VOLUME_RATIO or volume > UNUSUAL_MIN_VOLUME):
        return None

    return UnusualOptionsActivity(
        ticker=contract.ticker,
        strike=contract.strike_price,
        expiration=contract.expiration_date,
        contract_type=contract.contract_type,
        volume=volume,
        volume_ratio=round(volume_ratio, 1),
        price=close if close else round(contract.strike_price * 0.05, 2),
        sentiment=analyze_sentiment(contract.contract_type, contract.strike_price, current_price),
        context=activity_context(contract.contract_type, volume_ratio, volume),
    )


def top_activity(
    activity: List[UnusualOptionsActivity],
    limit: int = MAX_UNUSUAL_RESULTS,
) -> List[UnusualOptionsActivity]:
    return sorted(activity, key=lambda item: (item.volume_ratio, item.volume), reverse=True)[:limit]
