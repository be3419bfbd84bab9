"""
Prompt assembly for analysis requests.
"""

import json
from typing import Any, Dict

from .models import AnalysisCategory

_FOCUS = {
    AnalysisCategory.TECHNICAL: "technical analysis: price action, key levels, momentum and trade setup",
    AnalysisCategory.OPTIONS: "options analysis: positioning, implied volatility and strategy candidates",
    AnalysisCategory.RISK: "risk analysis: downside scenarios, position sizing and hedges",
    AnalysisCategory.STRATEGY: "strategy analysis: entry, management and exit plan",
    AnalysisCategory.SENTIMENT: "market sentiment analysis from the latest news and social flow",
    AnalysisCategory.NEWS: "a summary of the latest news and its likely price impact",
    AnalysisCategory.GENERAL: "a general overview",
}


def build_prompt(category: AnalysisCategory, subject: str, payload: Dict[str, Any]) -> str:
    context = json.dumps(payload, indent=2, sort_keys=True, default=str)
    return (
        f"You are an expert financial analyst providing detailed analysis for {subject}.\n\n"
        f"Current data:\n{context}\n\n"
        f"Provide {_FOCUS[category]} for {subject}."
    )
