"""
AI Backend Clients
==================
Chat-completion clients for the OpenAI, Perplexity and Anthropic APIs.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import structlog

from tradedesk_core.exceptions import UpstreamCallError, UpstreamTimeoutError
from tradedesk_core.providers.http import VendorHttpClient

from .models import BackendResponse, ModelBackend

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a financial analyst providing detailed, comprehensive analysis. "
    "Always provide complete responses with specific insights and actionable recommendations."
)


class ModelBackendClient(ABC):
    """
    Base class for AI inference backends.

    ``complete`` enforces a hard wall-clock timeout on top of the HTTP
    client's own timeouts.
    """

    backend: ModelBackend
    base_url: str
    path: str
    default_model: str
    confidence: float

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or ""
        self.model = model or self.default_model
        self.timeout = timeout
        self._http = VendorHttpClient(
            self.base_url,
            f"ai-analysis:{self.backend.value}",
            timeout=timeout,
            headers=self._auth_headers(),
            transport=transport,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @abstractmethod
    def _build_body(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        pass

    @abstractmethod
    def _extract_content(self, data: Dict[str, Any]) -> str:
        pass

    def _extract_metadata(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {"usage": data.get("usage")}

    async def complete(self, prompt: str, max_tokens: int = 2000, temperature: float = 0.3) -> BackendResponse:
        """Send ``prompt`` and return the completion text (possibly empty)."""
        if not self.is_configured():
            raise UpstreamCallError(
                f"{self.backend.value} API key not configured",
                service=f"ai-analysis:{self.backend.value}",
                provider=self.backend.value,
            )

        body = self._build_body(prompt, min(max_tokens, 4000), temperature)
        logger.debug("ai_request", backend=self.backend.value, model=self.model, max_tokens=body.get("max_tokens"))

        try:
            data = await asyncio.wait_for(self._http.post(self.path, json=body), self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(
                f"No response within {self.timeout:.0f}s",
                service=f"ai-analysis:{self.backend.value}",
                provider=self.backend.value,
            ) from e

        data = data if isinstance(data, dict) else {}
        return BackendResponse(
            content=self._extract_content(data),
            confidence=self.confidence,
            model_name=self.model,
            metadata=self._extract_metadata(data),
        )

    async def aclose(self) -> None:
        await self._http.aclose()


class _ChatCompletionsBackend(ModelBackendClient):
    """OpenAI-compatible /chat/completions request and response shape."""

    def _messages(self, prompt: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    def _build_body(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": self._messages(prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _extract_content(self, data: Dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    def _extract_metadata(self, data: Dict[str, Any]) -> Dict[str, Any]:
        choices = data.get("choices") or [{}]
        return {
            "usage": data.get("usage"),
            "finish_reason": choices[0].get("finish_reason"),
        }


class OpenAIBackend(_ChatCompletionsBackend):
    backend = ModelBackend.OPENAI
    base_url = "https://api.openai.com"
    path = "/v1/chat/completions"
    default_model = "gpt-4o-mini"
    confidence = 0.82


class PerplexityBackend(_ChatCompletionsBackend):
    backend = ModelBackend.PERPLEXITY
    base_url = "https://api.perplexity.ai"
    path = "/chat/completions"
    default_model = "llama-3.1-sonar-large-128k-online"
    confidence = 0.80

    def _build_body(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        body = super()._build_body(prompt, max_tokens, temperature)
        body["top_p"] = 0.9
        body["search_recency_filter"] = "day"
        return body


class ClaudeBackend(ModelBackendClient):
    backend = ModelBackend.CLAUDE
    base_url = "https://api.anthropic.com"
    path = "/v1/messages"
    default_model = "claude-3-5-sonnet-20241022"
    confidence = 0.85

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
        }

    def _build_body(self, prompt: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt.strip()}],
        }

    def _extract_content(self, data: Dict[str, Any]) -> str:
        content = data.get("content")
        if isinstance(content, str):
            return content
        for block in content or []:
            if block.get("type") == "text":
                return block.get("text") or ""
        return ""

    def _extract_metadata(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "usage": data.get("usage"),
            "finish_reason": data.get("stop_reason"),
        }


BACKEND_CLASSES = {
    ModelBackend.OPENAI: OpenAIBackend,
    ModelBackend.PERPLEXITY: PerplexityBackend,
    ModelBackend.CLAUDE: ClaudeBackend,
}
