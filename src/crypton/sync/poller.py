"""
Periodic pull of backend snapshots into the store.

Each cycle issues three independent pulls (account, candles, trade log).
A failed pull is logged and leaves its store fields untouched; it never
blocks or fails the others. The blocking ``requests`` calls run in worker
threads so the event loop keeps flushing feed events meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Callable, Optional

from crypton.feeds.base import SnapshotSource
from crypton.sync.store import MarketStateStore

DEFAULT_POLL_INTERVAL_MS = 5000
DEFAULT_ORDERBOOK_LIMIT = 20

API_ERROR = "API Connection Error"


class ReconciliationPoller:
    """
    Parameters
    ----------
    store : MarketStateStore
        Receives every successful pull.
    source : SnapshotSource
        Pull side of the backend, e.g. ``BackendRestClient``.
    orderbook_limit : int
        Depth requested from the REST order book on symbol change.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        store: MarketStateStore,
        source: SnapshotSource,
        orderbook_limit: int = DEFAULT_ORDERBOOK_LIMIT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.source = source
        self.orderbook_limit = orderbook_limit
        self.logger = logger or logging.getLogger(__name__)
        self.failures: Counter[str] = Counter()
        self.cycles = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def poll(self) -> None:
        """One cadence cycle: account, candles and trade log."""
        self.cycles += 1
        await asyncio.gather(
            self.pull_account(),
            self.pull_candles(),
            self.pull_trades(),
        )

    async def pull_selection(self) -> None:
        """Out-of-cadence pull after a symbol or interval change."""
        await asyncio.gather(
            self.pull_candles(),
            self.pull_trades(),
            self.pull_order_book(),
        )

    async def bootstrap(self) -> None:
        """First pull on start, including the one-off ticker snapshot."""
        await asyncio.gather(
            self.pull_account(),
            self.pull_tickers(),
            self.pull_selection(),
        )

    # ------------------------------------------------------------------
    # Individual pulls
    # ------------------------------------------------------------------

    async def pull_account(self) -> bool:
        account = await self._guarded("account", self.source.fetch_account)
        if account is None:
            self.store.set_online(False, API_ERROR)
            return False
        self.store.replace_account(account)
        self.store.set_online(True)
        return True

    async def pull_tickers(self) -> bool:
        snapshot = await self._guarded("tickers", self.source.fetch_tickers)
        if snapshot is None:
            return False
        self.store.replace_tickers_snapshot(snapshot)
        return True

    async def pull_candles(self) -> bool:
        # Capture the selection now; it may change while the request is in flight.
        symbol, interval = self.store.symbol, self.store.interval
        candles = await self._guarded(
            "candles", self.source.fetch_candles, symbol, interval
        )
        if candles is None:
            return False
        if not self.store.replace_candles(symbol, interval, candles):
            self.logger.debug(f"[Poll] Discarded stale candles for {symbol} {interval}.")
            return False
        return True

    async def pull_trades(self) -> bool:
        symbol = self.store.symbol
        trades = await self._guarded("trades", self.source.fetch_trades, symbol)
        if trades is None:
            return False
        if not self.store.replace_trades(symbol, trades):
            self.logger.debug(f"[Poll] Discarded stale trade log for {symbol}.")
            return False
        return True

    async def pull_order_book(self) -> bool:
        symbol = self.store.symbol
        book = await self._guarded(
            "orderbook", self.source.fetch_order_book, symbol, self.orderbook_limit
        )
        if book is None:
            return False
        return self.store.replace_order_book(book)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _guarded(self, name: str, fetch: Callable[..., Any], *args) -> Any:
        """Run a blocking fetch off-loop; ``None`` on any failure."""
        try:
            return await asyncio.to_thread(fetch, *args)
        except Exception as exc:
            self.failures[name] += 1
            self.logger.warning(f"[Poll] {name} pull failed: {exc}")
            return None
