"""
Trading-bot backend push-feed client.

Holds one websocket connection to the backend's ``/ws`` endpoint and
forwards ``24hrTicker`` and ``depthUpdate`` events to a single
*on_event* callback. The connection is retried forever after a fixed
delay; there is no terminal failure state, only the ``connected`` flag
reported through *on_status*.

Usage::

    import asyncio
    from crypton.feeds.backend_websocket import BackendFeedClient

    def handle_event(event) -> None:
        print(event)

    feed = BackendFeedClient(
        url="ws://127.0.0.1:8000/ws",
        on_event=handle_event,
    )
    asyncio.run(feed.run_forever())
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from crypton.core.models import FeedEvent, PayloadError, parse_feed_message

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_WS_URL = "ws://127.0.0.1:8000/ws"

# Seconds to wait before attempting a reconnect (fixed, not exponential).
_RECONNECT_DELAY_SECS = 3

EventCallback = Callable[[FeedEvent], None]
StatusCallback = Callable[[bool], None]


# ---------------------------------------------------------------------------
# Feed client
# ---------------------------------------------------------------------------

class BackendFeedClient:
    """
    Receive ticker and depth events from the bot backend.

    Parameters
    ----------
    url : str
        Websocket endpoint.
    on_event : EventCallback
        Called on the event-loop thread for every recognised event. Must be
        non-blocking; the pipeline passes its buffering ``submit_event``.
    on_status : StatusCallback, optional
        Called with ``True`` on connect and ``False`` on loss.
    reconnect_delay_secs : float
        Fixed delay between reconnect attempts.
    quote_assets : Iterable[str], optional
        Quote codes used to rewrite ``BTCUSDT`` to ``BTC/USDT``.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    connect : callable, optional
        Connection factory, ``websockets.connect`` by default.
    """

    def __init__(
        self,
        url: str = _WS_URL,
        on_event: Optional[EventCallback] = None,
        on_status: Optional[StatusCallback] = None,
        reconnect_delay_secs: float = _RECONNECT_DELAY_SECS,
        quote_assets: Optional[Iterable[str]] = None,
        logger: Optional[logging.Logger] = None,
        connect: Optional[Callable] = None,
    ) -> None:
        self.url = url
        self.on_event = on_event
        self.on_status = on_status
        self.reconnect_delay_secs = reconnect_delay_secs
        self.quote_assets = list(quote_assets) if quote_assets is not None else None
        self.logger = logger or logging.getLogger(__name__)
        self._connect = connect or websockets.connect
        self._stop_event: asyncio.Event | None = None
        self._running = False

        self.connected = False
        self.connect_count = 0
        self.dropped_messages = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_forever(self) -> None:
        """Connect and listen until :meth:`stop` is called."""
        if self._running:
            self.logger.warning("[Feed] run_forever called while already running; ignored.")
            return
        self._running = True
        self._stop_event = asyncio.Event()
        try:
            await self._run()
        finally:
            self._running = False
            self._set_connected(False)

    def stop(self) -> None:
        """Signal the connection loop to exit."""
        if self._stop_event:
            self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return bool(self._stop_event and self._stop_event.is_set())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_connected(self, flag: bool) -> None:
        if flag == self.connected:
            return
        self.connected = flag
        if self.on_status:
            self.on_status(flag)

    async def _run(self) -> None:
        while not self.stopped:
            try:
                self.connect_count += 1
                self.logger.info(f"[Feed] Connecting to {self.url} …")
                async with self._connect(
                    self.url, ping_interval=20, ping_timeout=10
                ) as ws:
                    self.logger.info("[Feed] Connected.")
                    self._set_connected(True)
                    await self._listen(ws)
                if self.stopped:
                    break
                self._set_connected(False)
                self.logger.warning(
                    f"[Feed] Stream ended. Reconnecting in {self.reconnect_delay_secs}s …"
                )

            except (ConnectionClosedError, ConnectionClosedOK) as exc:
                self._set_connected(False)
                if self.stopped:
                    break
                self.logger.warning(
                    f"[Feed] Connection closed ({exc}). "
                    f"Reconnecting in {self.reconnect_delay_secs}s …"
                )

            except Exception as exc:
                self._set_connected(False)
                if self.stopped:
                    break
                self.logger.error(
                    f"[Feed] Unexpected error: {exc}. "
                    f"Reconnecting in {self.reconnect_delay_secs}s …"
                )

            await asyncio.sleep(self.reconnect_delay_secs)

        self.logger.info("[Feed] Stream stopped.")

    async def _listen(self, ws) -> None:
        """Receive messages and dispatch recognised events."""
        async for raw in ws:
            if self.stopped:
                break
            self.handle_message(raw)

    def handle_message(self, raw) -> Optional[FeedEvent]:
        """Parse one raw message and forward it; malformed input is dropped."""
        try:
            event = parse_feed_message(raw, self.quote_assets)
        except PayloadError as exc:
            self.dropped_messages += 1
            self.logger.debug(f"[Feed] Dropped malformed message: {exc}")
            return None
        if event is not None and self.on_event:
            try:
                self.on_event(event)
            except Exception as exc:
                self.logger.error(
                    f"[Feed] Event handling error: {exc}", exc_info=True
                )
        return event
