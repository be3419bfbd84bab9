"""
Unit Tests for the Model Router
===============================
Selection policy, fallback, request validation and backend wire formats.
"""

import asyncio
import json

import httpx
import pytest


class FakeBackend:
    """In-memory stand-in for a ModelBackendClient."""

    def __init__(self, name, content="Detailed analysis", configured=True, error=None):
        self.name = name
        self.content = content
        self.configured = configured
        self.error = error
        self.calls = 0
        self.closed = False

    def is_configured(self):
        return self.configured

    async def complete(self, prompt, max_tokens=2000, temperature=0.3):
        from tradedesk_core.ai import BackendResponse

        self.calls += 1
        if self.error is not None:
            raise self.error
        return BackendResponse(content=self.content, confidence=0.9, model_name=f"{self.name}-test")

    async def aclose(self):
        self.closed = True


def make_router(clock, preferences=None, **backends):
    from dataclasses import replace

    from tradedesk_core.ai import ModelBackend, ModelRouter
    from tradedesk_core.rate_limit import AI_RATE_LIMIT

    clients = {
        ModelBackend(name): backends.get(name, FakeBackend(name))
        for name in ("openai", "perplexity", "claude")
    }
    return ModelRouter(
        clients,
        preferences,
        rate_limit=replace(AI_RATE_LIMIT, sweep_interval=None),
        clock=clock,
        sleep=clock.sleep,
    )


def upstream_error(name):
    from tradedesk_core.exceptions import UpstreamCallError

    return UpstreamCallError("HTTP 500 Error", service=f"ai-analysis:{name}", status_code=500)


class TestModelSelection:
    """Tests for the routing policy."""

    @pytest.mark.parametrize("category, requires_realtime, expected", [
        ("news", False, "perplexity"),
        ("sentiment", False, "perplexity"),
        ("technical", False, "claude"),
        ("risk", False, "claude"),
        ("options", False, "claude"),
        ("strategy", False, "claude"),
        ("general", False, "openai"),
        ("general", True, "perplexity"),
        ("technical", True, "perplexity"),
    ])
    def test_auto_routing(self, clock, category, requires_realtime, expected):
        """Should route by category and real-time need."""
        router = make_router(clock)

        assert router.select_model(category, requires_realtime).value == expected

    def test_force_model_wins(self, clock):
        """Should honour a forced model over the policy."""
        router = make_router(clock)

        assert router.select_model("news", True, force_model="claude").value == "claude"

    def test_preferred_model_without_auto_routing(self, clock):
        """Should use the preferred model when auto-routing is off."""
        router = make_router(clock)
        router.update_preferences(enable_auto_routing=False, preferred_model="perplexity")

        assert router.select_model("technical").value == "perplexity"

    def test_auto_preference_uses_fallback_head(self, clock):
        """Should use the head of the fallback order for an "auto" preference."""
        router = make_router(clock)
        router.update_preferences(enable_auto_routing=False, fallback_order=["openai", "claude"])

        assert router.select_model("technical").value == "openai"

    def test_empty_fallback_order_defaults_to_openai(self, clock):
        """Should default to OpenAI with no preference and no fallback order."""
        router = make_router(clock)
        router.update_preferences(enable_auto_routing=False, fallback_order=[])

        assert router.select_model("news").value == "openai"

    def test_invalid_preferences(self, clock):
        """Should reject unknown backends in preferences."""
        from tradedesk_core.exceptions import ValidationError

        router = make_router(clock)

        with pytest.raises(ValidationError):
            router.update_preferences(preferred_model="gpt-9")

    def test_unknown_preference_field(self, clock):
        """Should reject unknown preference names and keep the current preferences."""
        from tradedesk_core.exceptions import ValidationError

        router = make_router(clock)
        before = router.preferences

        with pytest.raises(ValidationError) as exc_info:
            router.update_preferences(prefered_model="claude")

        assert exc_info.value.field == "prefered_model"
        assert router.preferences is before

    def test_unknown_category(self, clock):
        """Should reject an unknown analysis category."""
        from tradedesk_core.exceptions import ValidationError

        with pytest.raises(ValidationError):
            make_router(clock).select_model("astrology")


class TestGetAnalysis:
    """Tests for dispatch and fallback."""

    @pytest.mark.asyncio
    async def test_routes_to_selected_backend(self, clock):
        """Should answer from the selected backend."""
        router = make_router(clock)

        result = await router.get_analysis("technical", "aapl", {"price": 190.1})

        assert result.model == "claude"
        assert result.subject == "AAPL"
        assert result.category == "technical"
        assert result.content == "Detailed analysis"
        assert result.metadata["model_name"] == "claude-test"
        assert result.metadata["fallback_from"] is None
        await router.aclose()

    @pytest.mark.asyncio
    async def test_falls_back_after_retries(self, clock):
        """Should try the next backend once retries are exhausted."""
        claude = FakeBackend("claude", error=upstream_error("claude"))
        openai = FakeBackend("openai", content="Fallback analysis")
        router = make_router(clock, claude=claude, openai=openai)

        result = await router.get_analysis("technical", "AAPL")

        assert result.model == "openai"
        assert result.content == "Fallback analysis"
        assert result.metadata["fallback_from"] == "claude"
        assert claude.calls == 2
        assert clock.sleeps == [1.0]
        await router.aclose()

    @pytest.mark.asyncio
    async def test_empty_content_triggers_fallback(self, clock):
        """Should treat blank completions as failures."""
        claude = FakeBackend("claude", content="   ")
        router = make_router(clock, claude=claude)

        result = await router.get_analysis("risk", "TSLA")

        assert result.model == "openai"
        assert claude.calls == 2
        await router.aclose()

    @pytest.mark.asyncio
    async def test_forced_model_has_no_fallback(self, clock):
        """Should not fall back from a forced model."""
        from tradedesk_core.exceptions import UpstreamCallError

        openai = FakeBackend("openai", error=upstream_error("openai"))
        claude = FakeBackend("claude")
        router = make_router(clock, openai=openai, claude=claude)

        with pytest.raises(UpstreamCallError):
            await router.get_analysis("technical", "AAPL", force_model="openai")

        assert claude.calls == 0
        await router.aclose()

    @pytest.mark.asyncio
    async def test_skips_unconfigured_backends(self, clock):
        """Should skip backends without credentials."""
        claude = FakeBackend("claude", configured=False)
        router = make_router(clock, claude=claude)

        result = await router.get_analysis("technical", "AAPL")

        assert result.model == "openai"
        assert result.metadata["fallback_from"] == "claude"
        assert claude.calls == 0
        await router.aclose()

    @pytest.mark.asyncio
    async def test_no_backend_configured(self, clock):
        """Should fail when no backend has credentials."""
        from tradedesk_core.exceptions import UpstreamCallError

        router = make_router(
            clock,
            openai=FakeBackend("openai", configured=False),
            perplexity=FakeBackend("perplexity", configured=False),
            claude=FakeBackend("claude", configured=False),
        )

        assert router.available_backends() == []
        with pytest.raises(UpstreamCallError):
            await router.get_analysis("general", "AAPL")
        await router.aclose()

    @pytest.mark.asyncio
    async def test_identical_requests_are_cached(self, clock):
        """Should cache identical analysis requests."""
        openai = FakeBackend("openai")
        router = make_router(clock, openai=openai)

        await router.get_analysis("general", "AAPL", {"price": 1})
        await router.get_analysis("general", "AAPL", {"price": 1})
        await router.get_analysis("general", "AAPL", {"price": 2})

        assert openai.calls == 2
        await router.aclose()

    @pytest.mark.asyncio
    async def test_breaker_status_per_backend(self, clock):
        """Should keep one breaker per backend."""
        router = make_router(clock, claude=FakeBackend("claude", error=upstream_error("claude")))

        await router.get_analysis("technical", "AAPL")
        status = router.get_circuit_breaker_status()

        assert set(status) == {"claude", "openai"}
        assert status["claude"]["failure_count"] == 2
        assert "ai-analysis:claude" in router.registry

        router.reset_circuit_breakers()
        assert router.get_circuit_breaker_status()["claude"]["failure_count"] == 0
        await router.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_backends(self, clock):
        """Should close backend HTTP clients."""
        openai = FakeBackend("openai")
        router = make_router(clock, openai=openai)

        await router.aclose()

        assert openai.closed is True


class TestAnalysisRequest:
    """Tests for request validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs, field", [
        ({"category": "astrology"}, "category"),
        ({"subject": "not a ticker"}, "subject"),
        ({"max_tokens": 5000}, "max_tokens"),
        ({"max_tokens": 0}, "max_tokens"),
        ({"temperature": 3.0}, "temperature"),
        ({"force_model": "gpt-9"}, "force_model"),
    ])
    async def test_rejects_invalid_requests(self, clock, kwargs, field):
        """Should reject malformed requests naming the bad field."""
        from tradedesk_core.exceptions import ValidationError

        router = make_router(clock)
        request = {"category": "general", "subject": "AAPL"}
        request.update(kwargs)

        with pytest.raises(ValidationError) as exc_info:
            await router.get_analysis(**request)

        assert exc_info.value.field == field
        await router.aclose()

    def test_cache_key(self):
        """Should fingerprint category, subject, backend and payload."""
        from tradedesk_core.ai import analysis_cache_key

        key = analysis_cache_key("technical", "AAPL", "claude", {"price": 1})

        assert key.startswith("analysis-")
        assert len(key) == len("analysis-") + 16
        assert key == analysis_cache_key("technical", "AAPL", "claude", {"price": 1})
        assert key != analysis_cache_key("technical", "AAPL", "openai", {"price": 1})

    def test_cache_key_truncates_payload(self):
        """Should ignore payload text beyond the key prefix."""
        from tradedesk_core.ai import analysis_cache_key

        base = {"notes": "x" * 600}

        assert analysis_cache_key("news", "AAPL", "perplexity", dict(base, z=1)) == \
            analysis_cache_key("news", "AAPL", "perplexity", dict(base, z=2))


class TestBackendClients:
    """Tests for the HTTP wire format of each backend."""

    @pytest.mark.asyncio
    async def test_claude_request_and_response(self):
        """Should speak the Anthropic messages format."""
        from tradedesk_core.ai import ClaudeBackend

        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "content": [{"type": "text", "text": "Deep analysis"}],
                "stop_reason": "end_turn",
            })

        backend = ClaudeBackend("ck", transport=httpx.MockTransport(handler))
        response = await backend.complete("  Analyze AAPL  ", max_tokens=9000, temperature=0.2)

        body = json.loads(seen[0].content)
        assert seen[0].url.path == "/v1/messages"
        assert seen[0].headers["x-api-key"] == "ck"
        assert seen[0].headers["anthropic-version"] == "2023-06-01"
        assert body["max_tokens"] == 4000
        assert body["messages"] == [{"role": "user", "content": "Analyze AAPL"}]
        assert response.content == "Deep analysis"
        assert response.confidence == 0.85
        assert response.metadata["finish_reason"] == "end_turn"
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_openai_request_and_response(self):
        """Should speak the chat completions format."""
        from tradedesk_core.ai import OpenAIBackend

        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "choices": [{"message": {"content": "General view"}, "finish_reason": "stop"}],
            })

        backend = OpenAIBackend("ok", transport=httpx.MockTransport(handler))
        response = await backend.complete("Analyze AAPL")

        body = json.loads(seen[0].content)
        assert seen[0].headers["Authorization"] == "Bearer ok"
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"][0]["role"] == "system"
        assert response.content == "General view"
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_perplexity_adds_search_options(self):
        """Should add search options to Perplexity requests."""
        from tradedesk_core.ai import PerplexityBackend

        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"choices": [{"message": {"content": "News"}}]})

        backend = PerplexityBackend("pk", transport=httpx.MockTransport(handler))
        await backend.complete("Latest on AAPL")

        body = json.loads(seen[0].content)
        assert seen[0].url.path == "/chat/completions"
        assert body["top_p"] == 0.9
        assert body["search_recency_filter"] == "day"
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_unconfigured_backend_raises(self):
        """Should refuse to call without an API key."""
        from tradedesk_core.ai import OpenAIBackend
        from tradedesk_core.exceptions import UpstreamCallError

        backend = OpenAIBackend("")

        with pytest.raises(UpstreamCallError):
            await backend.complete("hello")
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_wall_clock_timeout(self):
        """Should enforce the wall-clock timeout."""
        from tradedesk_core.ai import OpenAIBackend
        from tradedesk_core.exceptions import UpstreamTimeoutError

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

        backend = OpenAIBackend("ok", timeout=0.01, transport=httpx.MockTransport(handler))

        with pytest.raises(UpstreamTimeoutError):
            await backend.complete("hello")
        await backend.aclose()
