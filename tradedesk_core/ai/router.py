"""
Model Router
============
Policy-driven selection among AI backends with per-backend rate
limiting, caching, circuit breaking and ordered fallback.
"""

import asyncio
import hashlib
import json
import time
from dataclasses import fields, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx
import structlog

from tradedesk_core.circuit_breaker import CircuitBreakerRegistry
from tradedesk_core.config import AIConfig
from tradedesk_core.exceptions import TradeDeskError, UpstreamCallError, ValidationError
from tradedesk_core.rate_limit import AI_RATE_LIMIT, RateLimitConfig, RateLimiter

from .backends import BACKEND_CLASSES, ModelBackendClient
from .models import (
    AUTO,
    REALTIME_CATEGORIES,
    REASONING_CATEGORIES,
    AnalysisCategory,
    AnalysisRequest,
    AnalysisResult,
    BackendResponse,
    ModelBackend,
    ModelPreferences,
    parse_backend,
)
from .prompts import build_prompt

logger = structlog.get_logger(__name__)

PAYLOAD_KEY_CHARS = 500


def analysis_cache_key(
    category: str,
    subject: str,
    backend: str,
    payload: Dict[str, Any],
) -> str:
    """Fingerprint of (category, subject, backend, truncated payload)."""
    serialized = json.dumps(payload, sort_keys=True, default=str)[:PAYLOAD_KEY_CHARS]
    digest = hashlib.sha256(f"{category}:{subject}:{backend}:{serialized}".encode()).hexdigest()
    return f"analysis-{digest[:16]}"


class ModelRouter:
    """
    Routes analysis requests to the best backend and falls back on failure.

    Selection policy:
    1. ``force_model`` wins and disables fallback
    2. auto-routing off: ``preferred_model`` (or the head of
       ``fallback_order`` when the preference is "auto")
    3. auto-routing on: news/sentiment or real-time requests go to
       Perplexity, technical/risk/options/strategy to Claude, the rest to OpenAI

    Example:
        router = ModelRouter.from_config(AIConfig(), registry)
        result = await router.get_analysis("technical", "AAPL", {"price": 190.1})
    """

    def __init__(
        self,
        backends: Dict[ModelBackend, ModelBackendClient],
        preferences: Optional[ModelPreferences] = None,
        registry: Optional[CircuitBreakerRegistry] = None,
        rate_limit: Optional[RateLimitConfig] = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._backends = dict(backends)
        self.preferences = preferences or ModelPreferences()
        self.registry = registry or CircuitBreakerRegistry(clock=clock)
        self.rate_limit = rate_limit or AI_RATE_LIMIT
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._clock = clock
        self._sleep = sleep
        self._limiters: Dict[ModelBackend, RateLimiter] = {}

    @classmethod
    def from_config(
        cls,
        config: AIConfig,
        registry: Optional[CircuitBreakerRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> "ModelRouter":
        keys = {
            ModelBackend.OPENAI: config.openai_api_key,
            ModelBackend.PERPLEXITY: config.perplexity_api_key,
            ModelBackend.CLAUDE: config.anthropic_api_key,
        }
        backends = {
            backend: BACKEND_CLASSES[backend](
                api_key=keys[backend],
                timeout=config.timeout,
                transport=transport,
            )
            for backend in ModelBackend
        }
        preferences = ModelPreferences(
            preferred_model=config.preferred_model,
            fallback_order=config.fallback_order,
            enable_auto_routing=config.enable_auto_routing,
        )
        return cls(
            backends,
            preferences,
            registry=registry,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            **kwargs,
        )

    # =========================================================================
    # Preferences
    # =========================================================================

    def update_preferences(self, **changes: Any) -> ModelPreferences:
        """Replace individual preference fields; returns the new preferences."""
        known = {f.name for f in fields(ModelPreferences)}
        for name in changes:
            if name not in known:
                raise ValidationError(f"Unknown preference: {name}", field=name)
        self.preferences = replace(self.preferences, **changes)
        logger.info(
            "model_preferences_updated",
            preferred_model=str(self.preferences.preferred_model),
            fallback_order=[b.value for b in self.preferences.fallback_order],
            auto_routing=self.preferences.enable_auto_routing,
        )
        return self.preferences

    def available_backends(self) -> List[ModelBackend]:
        return [backend for backend, client in self._backends.items() if client.is_configured()]

    # =========================================================================
    # Routing
    # =========================================================================

    def select_model(
        self,
        category: Union[str, AnalysisCategory],
        requires_realtime: bool = False,
        force_model: Optional[Union[str, ModelBackend]] = None,
    ) -> ModelBackend:
        if force_model:
            return parse_backend(force_model, "force_model")

        prefs = self.preferences
        if not prefs.enable_auto_routing:
            if prefs.preferred_model != AUTO:
                return prefs.preferred_model
            if prefs.fallback_order:
                return prefs.fallback_order[0]
            return ModelBackend.OPENAI

        try:
            category = AnalysisCategory(category)
        except ValueError as e:
            raise ValidationError(f"Unknown analysis category: {category!r}", field="category") from e

        if requires_realtime or category in REALTIME_CATEGORIES:
            return ModelBackend.PERPLEXITY
        if category in REASONING_CATEGORIES:
            return ModelBackend.CLAUDE
        return ModelBackend.OPENAI

    async def get_analysis(
        self,
        category: Union[str, AnalysisCategory],
        subject: str,
        payload: Optional[Dict[str, Any]] = None,
        requires_realtime: bool = False,
        force_model: Optional[Union[str, ModelBackend]] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> AnalysisResult:
        """
        Produce an analysis, trying fallback backends when the chosen one fails.

        Raises:
            ValidationError: Malformed request
            TradeDeskError: Every candidate backend failed (last error)
        """
        request = AnalysisRequest.build(
            category=category,
            subject=subject,
            payload=payload or {},
            requires_realtime=requires_realtime,
            force_model=force_model,
            max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
            temperature=temperature if temperature is not None else self.temperature,
        )

        primary = self.select_model(request.category, request.requires_realtime, request.force_model)
        candidates = [primary]
        if request.force_model is None:
            candidates += [b for b in self.preferences.fallback_order if b != primary]

        logger.info(
            "analysis_routed",
            category=request.category.value,
            subject=request.subject,
            backend=primary.value,
            forced=request.force_model is not None,
        )

        last_error: Optional[TradeDeskError] = None
        for backend in candidates:
            client = self._backends.get(backend)
            if client is None or not client.is_configured():
                logger.debug("backend_skipped", backend=backend.value, reason="not_configured")
                if last_error is None:
                    last_error = UpstreamCallError(
                        f"{backend.value} backend not configured",
                        service=f"ai-analysis:{backend.value}",
                        provider=backend.value,
                    )
                continue

            start = time.perf_counter()
            try:
                response = await self._dispatch(backend, client, request)
            except TradeDeskError as e:
                last_error = e
                logger.warning("backend_failed", backend=backend.value, error=str(e))
                continue

            metadata = dict(response.metadata)
            metadata.update({
                "model_name": response.model_name,
                "processing_time_ms": round((time.perf_counter() - start) * 1000),
                "fallback_from": primary.value if backend != primary else None,
            })
            return AnalysisResult(
                content=response.content.strip(),
                model=backend.value,
                confidence=response.confidence,
                category=request.category.value,
                subject=request.subject,
                metadata=metadata,
            )

        raise last_error or UpstreamCallError("No AI backend available", service="ai-analysis")

    async def _dispatch(
        self,
        backend: ModelBackend,
        client: ModelBackendClient,
        request: AnalysisRequest,
    ) -> BackendResponse:
        limiter = self._limiter_for(backend)
        prompt = build_prompt(request.category, request.subject, request.payload)
        service = limiter.service_name

        async def call() -> BackendResponse:
            response = await client.complete(prompt, request.max_tokens, request.temperature)
            if not response.content or not response.content.strip():
                raise ValidationError("Empty response from AI model", field="content", service=service)
            return response

        key = analysis_cache_key(
            request.category.value,
            request.subject,
            backend.value,
            request.payload,
        )
        return await limiter.execute_request(key, call)

    def _limiter_for(self, backend: ModelBackend) -> RateLimiter:
        limiter = self._limiters.get(backend)
        if limiter is None:
            limiter = RateLimiter(
                f"ai-analysis:{backend.value}",
                self.rate_limit,
                registry=self.registry,
                clock=self._clock,
                sleep=self._sleep,
            )
            self._limiters[backend] = limiter
        return limiter

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_circuit_breaker_status(self) -> Dict[str, Dict[str, Any]]:
        return {
            backend.value: limiter.get_circuit_breaker_status()
            for backend, limiter in self._limiters.items()
        }

    def reset_circuit_breakers(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset_circuit_breaker()

    async def aclose(self) -> None:
        for limiter in self._limiters.values():
            await limiter.aclose()
        for client in self._backends.values():
            await client.aclose()
