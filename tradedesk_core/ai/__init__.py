"""
TradeDesk AI Analysis
=====================
Model router over OpenAI, Perplexity and Claude backends.
"""

from .models import (
    AUTO,
    ModelBackend,
    AnalysisCategory,
    ModelPreferences,
    AnalysisRequest,
    AnalysisResult,
    BackendResponse,
)
from .backends import (
    ModelBackendClient,
    OpenAIBackend,
    PerplexityBackend,
    ClaudeBackend,
    BACKEND_CLASSES,
)
from .prompts import build_prompt
from .router import ModelRouter, analysis_cache_key

__all__ = [
    # Models
    "AUTO",
    "ModelBackend",
    "AnalysisCategory",
    "ModelPreferences",
    "AnalysisRequest",
    "AnalysisResult",
    "BackendResponse",
    # Backends
    "ModelBackendClient",
    "OpenAIBackend",
    "PerplexityBackend",
    "ClaudeBackend",
    "BACKEND_CLASSES",
    # Routing
    "build_prompt",
    "ModelRouter",
    "analysis_cache_key",
]
