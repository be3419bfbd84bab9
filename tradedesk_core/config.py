"""
TradeDesk Configuration
=======================
Dataclass configuration with environment variable defaults. Values are
read when the dataclass is instantiated.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.environ.get(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _anthropic_key() -> str:
    for name in ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY", "ANTHROPIC_KEY"):
        value = os.environ.get(name)
        if value:
            return value
    return ""


@dataclass
class StockServiceConfig:
    """Quote provider selection."""
    provider: str = field(default_factory=lambda: os.environ.get("STOCK_PROVIDER", "mock"))
    api_key: str = field(default_factory=lambda: os.environ.get("STOCK_API_KEY", ""))
    fallback_provider: Optional[str] = field(
        default_factory=lambda: os.environ.get("STOCK_FALLBACK_PROVIDER", "mock") or None
    )
    fallback_api_key: Optional[str] = None  # Defaults to api_key


@dataclass
class AIConfig:
    """Model router settings and backend credentials."""
    openai_api_key: str = field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""))
    perplexity_api_key: str = field(default_factory=lambda: os.environ.get("PERPLEXITY_API_KEY", ""))
    anthropic_api_key: str = field(default_factory=_anthropic_key)
    preferred_model: str = field(default_factory=lambda: os.environ.get("AI_PREFERRED_MODEL", "auto"))
    fallback_order: List[str] = field(
        default_factory=lambda: _env_list("AI_FALLBACK_ORDER", ["claude", "openai", "perplexity"])
    )
    enable_auto_routing: bool = field(default_factory=lambda: _env_bool("AI_AUTO_ROUTING", True))
    timeout: float = field(default_factory=lambda: float(os.environ.get("AI_TIMEOUT_SECONDS", "60")))
    max_tokens: int = 2000
    temperature: float = 0.3


@dataclass
class TradeDeskConfig:
    """Top-level configuration for TradeDeskClient."""
    stock: StockServiceConfig = field(default_factory=StockServiceConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    service_name: str = "tradedesk"
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))
    json_logs: bool = field(default_factory=lambda: _env_bool("LOG_JSON", True))
