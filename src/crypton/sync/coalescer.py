"""
Buffers push-feed events and applies them to the store at a fixed cadence.

The feed can deliver far more ticker and depth messages than a renderer
consumes. Events accumulate here and ``flush`` merges them once per flush
interval, so the store mutates at most once per interval regardless of
the arrival rate. Within one window the last value per ticker field wins
and only the newest depth snapshot survives; intermediate values are not
kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from crypton.core.models import DepthEvent, FeedEvent, OrderBook, TickerEvent
from crypton.sync.store import MarketStateStore

DEFAULT_FLUSH_INTERVAL_MS = 300


@dataclass
class CoalescerStats:
    accepted: int = 0
    dropped_depth: int = 0
    flushes: int = 0


class UpdateCoalescer:
    """
    Two pending buffers: ``symbol -> partial ticker fields`` and a single
    optional order-book snapshot for the selected symbol.

    Parameters
    ----------
    store : MarketStateStore
        Target of every flush; also supplies the selected symbol.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        store: MarketStateStore,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.pending_tickers: dict[str, dict[str, float]] = {}
        self.pending_book: Optional[OrderBook] = None
        self.stats = CoalescerStats()

    def submit(self, event: FeedEvent) -> bool:
        """
        Buffer one feed event. Returns ``False`` when it was dropped.

        Depth events are only kept for the currently selected symbol and
        are never queued for later.
        """
        if isinstance(event, TickerEvent):
            symbol = self.store.display_symbol(event.symbol)
            self.pending_tickers.setdefault(symbol, {}).update(event.fields)
            self.stats.accepted += 1
            return True

        if isinstance(event, DepthEvent):
            symbol = self.store.display_symbol(event.symbol)
            if symbol != self.store.symbol:
                self.stats.dropped_depth += 1
                return False
            self.pending_book = OrderBook(
                symbol=symbol, bids=list(event.bids), asks=list(event.asks)
            )
            self.stats.accepted += 1
            return True

        raise TypeError(f"Unsupported feed event: {type(event).__name__}")

    def flush(self) -> bool:
        """Apply and clear both buffers. Returns whether anything was applied."""
        tickers, self.pending_tickers = self.pending_tickers, {}
        book, self.pending_book = self.pending_book, None

        applied = False
        if tickers:
            self.store.merge_tickers(tickers)
            applied = True
        if book is not None:
            # The selection may have changed since the event was accepted.
            if self.store.replace_order_book(book):
                applied = True
            else:
                self.stats.dropped_depth += 1
                self.logger.debug(
                    f"Discarded pending book for {book.symbol}; "
                    f"selected symbol is {self.store.symbol}."
                )

        if applied:
            self.stats.flushes += 1
        return applied

    def discard_order_book(self) -> None:
        self.pending_book = None

    def clear(self) -> None:
        """Drop everything buffered without applying it."""
        self.pending_tickers = {}
        self.pending_book = None

    @property
    def has_pending(self) -> bool:
        return bool(self.pending_tickers) or self.pending_book is not None
