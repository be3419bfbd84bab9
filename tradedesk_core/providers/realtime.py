"""
Streaming Quotes
================
WebSocket subscription channel for vendors that push trades.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import aiohttp
import structlog

from tradedesk_core.exceptions import UpstreamCallError

logger = structlog.get_logger(__name__)


class RealtimeConnection:
    """
    Subscribe-by-symbol-list WebSocket channel.

    Nothing is opened until ``connect()`` (or ``run()``) is awaited. On
    connect every frame from ``subscription_frames()`` is sent in order,
    then each JSON message is passed to ``on_message``.

    Example:
        conn = provider.create_realtime_connection(["AAPL"], handle_trade)
        await conn.run()
    """

    def __init__(
        self,
        url: str,
        symbols: List[str],
        on_message: Callable[[Any], Any],
        frames: List[Dict[str, Any]],
        service_name: str = "realtime",
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.symbols = list(symbols)
        self.on_message = on_message
        self.service_name = service_name
        self._frames = frames
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    def subscription_frames(self) -> List[Dict[str, Any]]:
        """Frames sent right after the socket opens (auth first, if any)."""
        return [dict(frame) for frame in self._frames]

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=30.0)
        except aiohttp.ClientError as e:
            raise UpstreamCallError(
                f"WebSocket connect failed: {e}",
                service=self.service_name,
            ) from e

        for frame in self._frames:
            await self._ws.send_json(frame)
        logger.info("realtime_connected", service=self.service_name, symbols=self.symbols)

    async def run(self) -> None:
        """Dispatch messages until the socket closes."""
        if not self.connected:
            await self.connect()

        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    payload = json.loads(msg.data)
                except ValueError:
                    logger.warning("realtime_invalid_frame", service=self.service_name)
                    continue
                self.on_message(payload)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(
                    "realtime_error",
                    service=self.service_name,
                    error=str(self._ws.exception()),
                )
                break

        logger.info("realtime_closed", service=self.service_name)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
