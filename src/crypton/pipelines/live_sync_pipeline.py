"""
Live Sync Pipeline — main entry point.

Keeps the dashboard's market state in sync with the trading-bot backend:

    [1] INIT       — Load config, setup logger
    [2] CLIENTS    — Build the REST snapshot client and the websocket feed
    [3] SYNC       — Flush buffered feed events every 300 ms, pull
                     account / candles / trade log every 5 s
    [4] ANALYTICS  — EMA 7/25/99 and trade markers, recomputed on change

Usage::

    python -m crypton.pipelines.live_sync_pipeline [path/to/config.json]
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from crypton.analytics.indicators import DEFAULT_EMA_PERIODS, IndicatorEngine
from crypton.analytics.markers import MarkerProjector
from crypton.core.models import FeedEvent
from crypton.feeds.backend_rest import BackendRestClient
from crypton.feeds.backend_websocket import BackendFeedClient
from crypton.feeds.base import SnapshotSource
from crypton.sync.coalescer import DEFAULT_FLUSH_INTERVAL_MS, UpdateCoalescer
from crypton.sync.poller import (
    DEFAULT_ORDERBOOK_LIMIT,
    DEFAULT_POLL_INTERVAL_MS,
    ReconciliationPoller,
)
from crypton.sync.scheduler import AsyncioScheduler, Scheduler
from crypton.sync.store import DEFAULT_INTERVAL, DEFAULT_SYMBOL, MarketStateStore
from crypton.sync.view import DEFAULT_BOOK_DEPTH, ChartView, build_view
from crypton.utils.logger import setup_logger

# ---------------------------------------------------------------------------
# Project root (three levels up: src/crypton/pipelines/ → repo root)
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[3]
DEFAULT_CONFIG_PATH = ROOT / "config" / "live_sync.json"


# ═══════════════════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════════════════

class LiveSyncPipeline:
    """
    One independent sync instance: store, buffers, timers and feed.

    Parameters
    ----------
    config : dict
        Parsed ``live_sync.json``; missing keys fall back to defaults.
    source : SnapshotSource
        Pull side of the backend.
    scheduler : Scheduler, optional
        Dedicated to this pipeline; ``stop`` cancels everything on it.
        An ``AsyncioScheduler`` is created when omitted.
    feed : BackendFeedClient, optional
        Push side. Without one, events are fed through :meth:`submit_event`.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        config: dict,
        source: SnapshotSource,
        scheduler: Optional[Scheduler] = None,
        feed: Optional[BackendFeedClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.config = config

        sync_cfg = config.get("sync", {})
        chart_cfg = config.get("chart", {})

        self.flush_interval_secs: float = sync_cfg.get("flush_interval_ms", DEFAULT_FLUSH_INTERVAL_MS) / 1000
        self.poll_interval_secs: float = sync_cfg.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS) / 1000
        self.book_depth: int = sync_cfg.get("orderbook_depth", DEFAULT_BOOK_DEPTH)

        self.store = MarketStateStore(
            symbol=chart_cfg.get("symbol", DEFAULT_SYMBOL),
            interval=chart_cfg.get("interval", DEFAULT_INTERVAL),
            quote_assets=config.get("quote_assets"),
        )
        self.source = source
        self.coalescer = UpdateCoalescer(self.store, logger=self.logger)
        self.poller = ReconciliationPoller(
            self.store,
            source,
            orderbook_limit=sync_cfg.get("orderbook_limit", DEFAULT_ORDERBOOK_LIMIT),
            logger=self.logger,
        )
        self.indicators = IndicatorEngine(chart_cfg.get("ema_periods", DEFAULT_EMA_PERIODS))
        self.markers = MarkerProjector(placeholder=chart_cfg.get("placeholder_marker", False))

        self.scheduler = scheduler
        self.feed = feed
        if feed is not None:
            # Feed and store must split symbols the same way.
            feed.quote_assets = self.store.quote_assets
            feed.on_event = self.submit_event
            feed.on_status = self.store.set_feed_connected

        self._feed_task: Optional[asyncio.Task] = None
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> bool:
        """
        Register the flush and poll timers, pull the first snapshots and
        start the feed. A second call is a no-op, so exactly one flush timer
        and one poll timer exist per pipeline.
        """
        if self._started:
            self.logger.warning("Pipeline already started; start() ignored.")
            return False
        if self.scheduler is None:
            self.scheduler = AsyncioScheduler(logger=self.logger)

        self.scheduler.call_every(self.flush_interval_secs, self.coalescer.flush, name="flush")
        self.scheduler.call_every(self.poll_interval_secs, self.poller.poll, name="poll")
        self.scheduler.spawn(self.poller.bootstrap, name="bootstrap")

        if self.feed is not None:
            self._feed_task = asyncio.create_task(self.feed.run_forever())

        self._started = True
        self.logger.info(
            f"Pipeline started — {self.store.symbol} {self.store.interval}, "
            f"flush={self.flush_interval_secs * 1000:.0f}ms, "
            f"poll={self.poll_interval_secs * 1000:.0f}ms"
        )
        return True

    async def stop(self) -> None:
        """Close the feed and cancel both timers. Buffered events are discarded."""
        if not self._started:
            return
        self._started = False

        if self.feed is not None:
            self.feed.stop()
        if self._feed_task is not None:
            self._feed_task.cancel()
            await asyncio.gather(self._feed_task, return_exceptions=True)
            self._feed_task = None

        await self.scheduler.shutdown()
        self.coalescer.clear()
        self.logger.info("Pipeline stopped.")

    async def __aenter__(self) -> LiveSyncPipeline:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def submit_event(self, event: FeedEvent) -> bool:
        """Single entry point for push events; buffered until the next flush."""
        return self.coalescer.submit(event)

    def select_symbol(self, symbol: str, interval: Optional[str] = None) -> bool:
        """
        Switch the active symbol and/or interval.

        Pending depth for the old symbol is dropped and candles, trade log
        and order book are re-pulled immediately, outside the poll cadence.
        """
        if not self.store.select(symbol, interval):
            return False
        self.coalescer.discard_order_book()
        self.logger.info(f"Selected {self.store.symbol} {self.store.interval}")
        if self._started:
            self.scheduler.spawn(self.poller.pull_selection, name="select")
        return True

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def view(self, now_secs: Optional[float] = None) -> ChartView:
        """Everything the renderer draws, with analytics derived on change."""
        snapshot = self.store.snapshot()
        return build_view(
            snapshot,
            indicators=self.indicators.update(snapshot.candles),
            markers=self.markers.update(snapshot.trades, now_secs=now_secs),
            book_depth=self.book_depth,
        )


# ═══════════════════════════════════════════════════════════════════════════
# STAGE 1 — INIT
# ═══════════════════════════════════════════════════════════════════════════

def load_config(config_path: Path) -> dict:
    """Read and return the JSON configuration file."""
    with open(config_path, "r") as f:
        return json.load(f)


def init(config_path: Optional[Path] = None) -> tuple[dict, logging.Logger]:
    """
    Stage 1: load configuration and set up the logger.

    Returns
    -------
    config : dict
        Parsed contents of ``live_sync.json``.
    logger : logging.Logger
        Configured rotating logger.
    """
    config_path = Path(config_path or DEFAULT_CONFIG_PATH)
    config = load_config(config_path)

    log_path = ROOT / config.get("data_paths", {}).get("log_path", "logs") / "live_sync_pipeline.log"
    log_level = getattr(
        logging, config.get("log_level", "INFO").upper(), logging.INFO
    )
    logger = setup_logger("live_sync", log_path, level=log_level)

    logger.info("=" * 60)
    logger.info("Live Sync Pipeline starting")
    logger.info("=" * 60)
    logger.info("Stage 1 — INIT")
    logger.info(f"Config loaded from: {config_path}")
    return config, logger


# ═══════════════════════════════════════════════════════════════════════════
# STAGE 2 — CLIENTS
# ═══════════════════════════════════════════════════════════════════════════

def build_pipeline(config: dict, logger: logging.Logger) -> LiveSyncPipeline:
    """Stage 2: wire the REST client and websocket feed into a pipeline."""
    logger.info("Stage 2 — CLIENTS")
    backend_cfg = config.get("backend", {})
    sync_cfg = config.get("sync", {})

    rest = BackendRestClient(
        base_url=backend_cfg.get("rest_url", "http://127.0.0.1:8000"),
        timeout=backend_cfg.get("request_timeout_secs", 10),
        quote_assets=config.get("quote_assets"),
    )
    feed = BackendFeedClient(
        url=backend_cfg.get("ws_url", "ws://127.0.0.1:8000/ws"),
        reconnect_delay_secs=sync_cfg.get("reconnect_delay_secs", 3),
        quote_assets=config.get("quote_assets"),
        logger=logger,
    )
    logger.info(f"REST: {backend_cfg.get('rest_url')} | WS: {backend_cfg.get('ws_url')}")
    return LiveSyncPipeline(config, rest, feed=feed, logger=logger)


# ═══════════════════════════════════════════════════════════════════════════
# STAGE 3 — SYNC
# ═══════════════════════════════════════════════════════════════════════════

def describe(view: ChartView) -> str:
    ticker = view.ticker
    last = ticker.last if ticker and ticker.last is not None else 0.0
    return (
        f"{view.symbol} {view.interval} last={last:,.2f} | "
        f"candles={len(view.candles)} markers={len(view.markers)} "
        f"bids={len(view.order_book.bids)} asks={len(view.order_book.asks)} | "
        f"api={'online' if view.online else 'offline'} "
        f"feed={'connected' if view.feed_connected else 'offline'}"
    )


async def run(pipeline: LiveSyncPipeline, logger: logging.Logger, heartbeat_secs: float = 60) -> None:
    """Stage 3: run the pipeline, logging a heartbeat until cancelled."""
    logger.info("Stage 3 — SYNC")
    try:
        async with pipeline:
            while True:
                await asyncio.sleep(heartbeat_secs)
                logger.info(f"Heartbeat: {describe(pipeline.view())}")
    finally:
        pipeline.source.close()


# ═══════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════

def main(argv: Optional[list[str]] = None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    config, logger = init(Path(argv[0]) if argv else None)
    pipeline = build_pipeline(config, logger)
    try:
        asyncio.run(run(pipeline, logger, config.get("heartbeat_secs", 60)))
    except KeyboardInterrupt:
        logger.info("Live sync stopped by user.")


if __name__ == "__main__":
    main()
