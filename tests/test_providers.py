"""
Unit Tests for Quote Providers
==============================
Vendor response parsing against httpx mock transports, capability
gating and options analytics.
"""

import httpx
import pytest


def json_transport(routes, seen=None):
    """MockTransport answering by path prefix; unmatched paths return 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        for prefix, response in routes.items():
            if request.url.path.startswith(prefix):
                if isinstance(response, httpx.Response):
                    return response
                return httpx.Response(200, json=response)
        return httpx.Response(404, json={"error": "not found"})

    return httpx.MockTransport(handler)


POLYGON_SNAPSHOT = {
    "ticker": {
        "ticker": "AAPL",
        "lastTrade": {"p": 190.5},
        "day": {"c": 190.0, "v": 51234567},
        "prevDay": {"c": 188.0},
    }
}


class TestMockProvider:
    """Tests for the synthetic provider."""

    @pytest.mark.asyncio
    async def test_quote_within_range(self):
        """Should generate a quote in the synthetic price range."""
        from tradedesk_core.providers import MockProvider

        provider = MockProvider(latency=0, seed=42)
        quote = await provider.get_quote("aapl")

        assert quote.symbol == "AAPL"
        assert quote.provider == "Mock Data"
        assert 50 <= quote.price < 250
        assert -5 <= quote.change <= 5
        assert provider.is_configured() is True

    @pytest.mark.asyncio
    async def test_advanced_calls_raise_capability_error(self):
        """Should reject advanced calls it does not support."""
        from tradedesk_core.exceptions import CapabilityUnsupportedError
        from tradedesk_core.providers import MockProvider

        provider = MockProvider(latency=0)

        with pytest.raises(CapabilityUnsupportedError) as exc_info:
            await provider.get_options_chain("AAPL")

        assert exc_info.value.capability == "options_chain"
        assert provider.has_advanced_features is False

    def test_describe_capabilities(self):
        """Should describe capabilities as flags."""
        from tradedesk_core.providers import MockProvider

        capabilities = MockProvider(latency=0).describe_capabilities()

        assert capabilities["quotes"] is True
        assert capabilities["options_chain"] is False
        assert capabilities["realtime"] is False

    def test_declared_capability_requires_override(self):
        """Should refuse a subclass declaring a capability it does not implement."""
        from tradedesk_core.providers import StockProvider
        from tradedesk_core.providers.models import Capability

        with pytest.raises(TypeError, match="get_historical_data"):
            class HalfDoneProvider(StockProvider):
                capabilities = frozenset({Capability.QUOTES, Capability.HISTORICAL})

                async def get_quote(self, symbol):
                    raise NotImplementedError

        class HistoryProvider(StockProvider):
            capabilities = frozenset({Capability.QUOTES, Capability.HISTORICAL})

            async def get_quote(self, symbol):
                raise NotImplementedError

            async def get_historical_data(self, symbol, timespan="day", from_date=None, to_date=None):
                return []

        assert HistoryProvider("key").supports(Capability.HISTORICAL) is True


class TestAlphaVantageProvider:
    """Tests for the Alpha Vantage provider."""

    @pytest.mark.asyncio
    async def test_parses_global_quote(self):
        """Should parse a GLOBAL_QUOTE response."""
        from tradedesk_core.providers import AlphaVantageProvider

        seen = []
        transport = json_transport({
            "/query": {
                "Global Quote": {
                    "01. symbol": "IBM",
                    "05. price": "182.3000",
                    "06. volume": "3456789",
                    "09. change": "-1.2000",
                    "10. change percent": "-0.6540%",
                }
            }
        }, seen)
        provider = AlphaVantageProvider("av-key", transport=transport)

        quote = await provider.get_quote("ibm")

        assert quote.symbol == "IBM"
        assert quote.price == pytest.approx(182.3)
        assert quote.change == pytest.approx(-1.2)
        assert quote.change_percent == pytest.approx(-0.654)
        assert quote.volume == 3456789
        assert seen[0].url.params["function"] == "GLOBAL_QUOTE"
        assert seen[0].url.params["apikey"] == "av-key"
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_missing_quote_raises(self):
        """Should raise when the response has no quote."""
        from tradedesk_core.exceptions import UpstreamCallError
        from tradedesk_core.providers import AlphaVantageProvider

        provider = AlphaVantageProvider("av-key", transport=json_transport({"/query": {"Note": "limit"}}))

        with pytest.raises(UpstreamCallError):
            await provider.get_quote("IBM")
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_batch_skips_failed_symbols(self):
        """Should skip symbols that fail in a batch."""
        from tradedesk_core.providers import AlphaVantageProvider

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["symbol"] == "BAD":
                return httpx.Response(200, json={})
            return httpx.Response(200, json={"Global Quote": {
                "05. price": "10.0",
                "09. change": "0.5",
                "10. change percent": "5.0%",
            }})

        provider = AlphaVantageProvider("av-key", spacing=0, transport=httpx.MockTransport(handler))
        quotes = await provider.get_multiple_quotes(["IBM", "BAD", "MSFT"])

        assert [q.symbol for q in quotes] == ["IBM", "MSFT"]
        await provider.aclose()

    def test_unconfigured_without_key(self):
        """Should report unconfigured without an API key."""
        from tradedesk_core.providers import AlphaVantageProvider

        assert AlphaVantageProvider().is_configured() is False


class TestFinnhubProvider:
    """Tests for the Finnhub provider."""

    @pytest.mark.asyncio
    async def test_quote_with_profile(self):
        """Should enrich the quote with the company profile."""
        from tradedesk_core.providers import FinnhubProvider

        transport = json_transport({
            "/api/v1/quote": {"c": 150.25, "d": 2.5, "dp": 1.69},
            "/api/v1/stock/profile2": {"name": "Apple Inc", "marketCapitalization": 2900000},
        })
        provider = FinnhubProvider("fh-key", transport=transport)

        quote = await provider.get_quote("AAPL")

        assert quote.name == "Apple Inc"
        assert quote.price == 150.25
        assert quote.change_percent == 1.69
        assert quote.market_cap == 2900000
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_profile_failure_is_best_effort(self):
        """Should fall back to a generated name without a profile."""
        from tradedesk_core.providers import FinnhubProvider

        transport = json_transport({"/api/v1/quote": {"c": 10.0, "d": 0.1, "dp": 1.0}})
        provider = FinnhubProvider("fh-key", transport=transport)

        quote = await provider.get_quote("XYZ")

        assert quote.name == "XYZ Corporation"
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_historical_candles(self):
        """Should convert candles to bars."""
        from tradedesk_core.providers import FinnhubProvider

        seen = []
        transport = json_transport({
            "/api/v1/stock/candle": {
                "s": "ok",
                "t": [1704067200, 1704153600],
                "o": [100, 101],
                "h": [102, 103],
                "l": [99, 100],
                "c": [101, 102],
                "v": [1000, 2000],
            }
        }, seen)
        provider = FinnhubProvider("fh-key", transport=transport)

        bars = await provider.get_historical_data("AAPL", "week", "2024-01-01", "2024-01-31")

        assert len(bars) == 2
        assert bars[0].timestamp == 1704067200000
        assert bars[1].close == 102
        assert seen[0].url.params["resolution"] == "W"
        assert seen[0].url.params["from"] == "1704067200"
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_no_data_returns_empty(self):
        """Should return no bars when the vendor has no data."""
        from tradedesk_core.providers import FinnhubProvider

        provider = FinnhubProvider("fh-key", transport=json_transport({"/api/v1/stock/candle": {"s": "no_data"}}))

        assert await provider.get_historical_data("AAPL") == []
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_invalid_timespan(self):
        """Should reject unsupported timespans."""
        from tradedesk_core.exceptions import ValidationError
        from tradedesk_core.providers import FinnhubProvider

        provider = FinnhubProvider("fh-key", transport=json_transport({}))

        with pytest.raises(ValidationError):
            await provider.get_historical_data("AAPL", "minute")
        await provider.aclose()

    def test_realtime_frames(self):
        """Should subscribe one frame per symbol."""
        from tradedesk_core.providers import FinnhubProvider

        conn = FinnhubProvider("fh-key").create_realtime_connection(["aapl", "msft"], print)

        assert conn.url == "wss://ws.finnhub.io?token=fh-key"
        assert conn.subscription_frames() == [
            {"type": "subscribe", "symbol": "AAPL"},
            {"type": "subscribe", "symbol": "MSFT"},
        ]
        assert conn.connected is False


class TestPolygonProvider:
    """Tests for the Polygon.io provider."""

    @pytest.mark.asyncio
    async def test_snapshot_quote(self):
        """Should build a quote from the ticker snapshot."""
        from tradedesk_core.providers import PolygonProvider

        seen = []
        provider = PolygonProvider("pg-key", transport=json_transport(
            {"/v2/snapshot/locale/us/markets/stocks/tickers/AAPL": POLYGON_SNAPSHOT}, seen,
        ))

        quote = await provider.get_quote("AAPL")

        assert quote.price == 190.5
        assert quote.change == 2.5
        assert quote.change_percent == 1.33
        assert quote.volume == 51234567
        assert quote.provider == "Polygon.io"
        assert seen[0].url.params["apiKey"] == "pg-key"
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_http_errors_are_mapped(self):
        """Should map HTTP errors to library exceptions."""
        from tradedesk_core.exceptions import RateLimitExceededError, UpstreamCallError
        from tradedesk_core.providers import PolygonProvider

        provider = PolygonProvider("pg-key", transport=json_transport({
            "/v2/snapshot/locale/us/markets/stocks/tickers/AAPL": httpx.Response(
                429, headers={"Retry-After": "12"}, json={},
            ),
            "/v2/snapshot/locale/us/markets/stocks/tickers/MSFT": httpx.Response(500, text="oops"),
        }))

        with pytest.raises(RateLimitExceededError) as limited:
            await provider.get_quote("AAPL")
        with pytest.raises(UpstreamCallError) as failed:
            await provider.get_quote("MSFT")

        assert limited.value.retry_after == 12.0
        assert failed.value.status_code == 500
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_batch_drops_failures(self):
        """Should drop failed symbols from a batch."""
        from tradedesk_core.providers import PolygonProvider

        provider = PolygonProvider("pg-key", transport=json_transport(
            {"/v2/snapshot/locale/us/markets/stocks/tickers/AAPL": POLYGON_SNAPSHOT},
        ))

        quotes = await provider.get_multiple_quotes(["AAPL", "NOPE"])

        assert [q.symbol for q in quotes] == ["AAPL"]
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_batch_raises_when_all_fail(self):
        """Should raise when every symbol in a batch fails."""
        from tradedesk_core.exceptions import UpstreamCallError
        from tradedesk_core.providers import PolygonProvider

        provider = PolygonProvider("pg-key", transport=json_transport({}))

        with pytest.raises(UpstreamCallError):
            await provider.get_multiple_quotes(["NOPE", "NADA"])
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_options_chain_and_summary(self):
        """Should parse the chain and summarize it."""
        from tradedesk_core.providers import PolygonProvider

        seen = []
        provider = PolygonProvider("pg-key", transport=json_transport({
            "/v3/reference/options/contracts": {"results": [
                {"ticker": "O:AAPL240119C00180000", "strike_price": 180, "expiration_date": "2024-01-19",
                 "contract_type": "call", "underlying_ticker": "AAPL"},
                {"ticker": "O:AAPL240119P00170000", "strike_price": 170, "expiration_date": "2024-01-19",
                 "contract_type": "put", "underlying_ticker": "AAPL"},
            ]},
        }, seen))

        chain = await provider.get_options_chain("aapl", expiration="2024-01-19", contract_type="put")
        summary = await provider.get_options_analysis("AAPL", "2024-01-19")

        assert len(chain) == 2
        assert chain[1].strike_price == 170.0
        assert seen[0].url.params["underlying_ticker"] == "AAPL"
        assert seen[0].url.params["contract_type"] == "put"
        assert summary.calls == 1
        assert summary.puts == 1
        assert summary.min_strike == 170.0
        assert summary.max_strike == 180.0
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_wheel_strategy_tolerates_missing_inputs(self):
        """Chain and history failures degrade to empty inputs."""
        from tradedesk_core.providers import PolygonProvider

        provider = PolygonProvider("pg-key", transport=json_transport(
            {"/v2/snapshot/locale/us/markets/stocks/tickers/AAPL": POLYGON_SNAPSHOT},
        ))

        wheel = await provider.get_wheel_strategy_data("AAPL", target_strike=180.0)

        assert wheel.current_price == 190.5
        assert wheel.suitable_put_strikes == []
        assert wheel.volatility == 0.0
        assert wheel.recommended_strike == 180.0
        assert wheel.risk_analysis.max_loss == pytest.approx(10.5)
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_unusual_activity(self):
        """Should score contracts with unusual volume."""
        from tradedesk_core.providers import PolygonProvider

        provider = PolygonProvider("pg-key", transport=json_transport({
            "/v3/reference/options/contracts": {"results": [
                {"ticker": "O:AAPL240119C00210000", "strike_price": 210, "expiration_date": "2024-01-19",
                 "contract_type": "call"},
            ]},
            "/v2/snapshot/locale/us/markets/stocks/tickers/AAPL": POLYGON_SNAPSHOT,
            "/v2/aggs/ticker/O:AAPL240119C00210000": {"results": [{"v": 6000, "c": 1.25}]},
        }))

        activity = await provider.get_unusual_options_activity("AAPL")

        assert len(activity) == 1
        assert activity[0].volume == 6000
        assert activity[0].price == 1.25
        assert activity[0].sentiment == "Very Bullish"
        assert activity[0].context == "High call volume"
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_unusual_activity_without_contracts(self):
        """Should return nothing without contracts."""
        from tradedesk_core.providers import PolygonProvider

        provider = PolygonProvider("pg-key", transport=json_transport(
            {"/v3/reference/options/contracts": {"results": []}},
        ))

        assert await provider.get_unusual_options_activity("AAPL") == []
        await provider.aclose()

    def test_realtime_frames_authenticate_first(self):
        """Should authenticate before subscribing."""
        from tradedesk_core.providers import PolygonProvider

        conn = PolygonProvider("pg-key").create_realtime_connection(["aapl", "msft"], print)

        assert conn.url == "wss://socket.polygon.io/stocks"
        assert conn.subscription_frames() == [
            {"action": "auth", "params": "pg-key"},
            {"action": "subscribe", "params": "T.AAPL,T.MSFT"},
        ]

    def test_has_advanced_features(self):
        """Should report advanced features."""
        from tradedesk_core.providers import PolygonProvider

        assert PolygonProvider("pg-key").has_advanced_features is True


class TestOptionsAnalytics:
    """Tests for the pure analytics helpers."""

    def test_volatility_needs_two_closes(self):
        """Should return zero volatility without two closes."""
        from tradedesk_core.providers.analytics import calculate_volatility
        from tradedesk_core.providers.models import HistoricalBar

        assert calculate_volatility([]) == 0.0
        assert calculate_volatility([HistoricalBar(0, 1, 1, 1, 100, 10)]) == 0.0

    def test_volatility_of_flat_prices_is_zero(self):
        """Should return zero volatility for flat prices."""
        from tradedesk_core.providers.analytics import calculate_volatility
        from tradedesk_core.providers.models import HistoricalBar

        bars = [HistoricalBar(i, 1, 1, 1, 100, 10) for i in range(5)]

        assert calculate_volatility(bars) == 0.0

    def test_wheel_filters_put_strikes(self):
        """Should keep puts between 85% and 100% of spot."""
        from tradedesk_core.providers.analytics import build_wheel_strategy
        from tradedesk_core.providers.models import OptionsContract

        chain = [
            OptionsContract("P80", 80, "2024-01-19", "put", "X"),
            OptionsContract("P90", 90, "2024-01-19", "put", "X"),
            OptionsContract("P100", 100, "2024-01-19", "put", "X"),
            OptionsContract("P105", 105, "2024-01-19", "put", "X"),
            OptionsContract("C95", 95, "2024-01-19", "call", "X"),
        ]

        wheel = build_wheel_strategy(100.0, chain, [])

        assert [p.ticker for p in wheel.suitable_put_strikes] == ["P90", "P100"]
        assert wheel.recommended_strike == pytest.approx(95.0)
        assert wheel.risk_analysis.breakeven == pytest.approx(95.0)
        assert wheel.risk_analysis.profit_probability == 0.7

    def test_sentiment_labels(self):
        """Should label sentiment by type and moneyness."""
        from tradedesk_core.providers.analytics import analyze_sentiment

        assert analyze_sentiment("call", 90, 100) == "Bullish"
        assert analyze_sentiment("call", 120, 100) == "Very Bullish"
        assert analyze_sentiment("call", 102, 100) == "Moderately Bullish"
        assert analyze_sentiment("put", 110, 100) == "Bearish"
        assert analyze_sentiment("put", 90, 100) == "Protective/Hedging"
        assert analyze_sentiment("put", 98, 100) == "Moderately Bearish"
        assert analyze_sentiment("other", 100, 100) == "Neutral"

    def test_score_activity_threshold(self):
        """Should flag only volume above the threshold."""
        from tradedesk_core.providers.analytics import score_activity
        from tradedesk_core.providers.models import OptionsContract

        contract = OptionsContract("C100", 100, "2024-01-19", "call", "X")

        assert score_activity(contract, 150, 2.0, 100) is None

        scored = score_activity(contract, 1000, None, 100)
        assert scored.volume_ratio == 2.5
        assert scored.price == 5.0
        assert scored.context == "Notable call activity"

    def test_top_activity_orders_and_limits(self):
        """Should keep the ten most unusual contracts."""
        from tradedesk_core.providers.analytics import score_activity, top_activity
        from tradedesk_core.providers.models import OptionsContract

        items = [
            score_activity(OptionsContract(f"C{i}", 100, "2024-01-19", "call", "X"), 300 + i * 100, 1.0, 100)
            for i in range(15)
        ]

        top = top_activity(items)

        assert len(top) == 10
        assert top[0].ticker == "C14"


class TestProviderFactory:
    """Tests for provider construction."""

    def test_creates_known_types(self):
        """Should build providers by type."""
        from tradedesk_core.providers import PolygonProvider, available_providers, create_provider

        provider = create_provider("polygon", "pg-key")

        assert isinstance(provider, PolygonProvider)
        assert provider.api_key == "pg-key"
        assert set(available_providers()) == {"mock", "alpha-vantage", "finnhub", "polygon"}

    def test_passes_options(self):
        """Should pass provider-specific options through."""
        from tradedesk_core.providers import create_provider

        provider = create_provider("mock", latency=0)

        assert provider.latency == 0

    def test_unknown_type_raises(self):
        """Should reject unknown provider types."""
        from tradedesk_core.exceptions import ValidationError
        from tradedesk_core.providers import create_provider

        with pytest.raises(ValidationError) as exc_info:
            create_provider("bloomberg")

        assert exc_info.value.field == "provider"
