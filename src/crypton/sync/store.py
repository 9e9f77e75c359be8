"""
Single source of truth for the dashboard.

Push-derived fields (tickers, order book) are written by the
``UpdateCoalescer``; pull-derived fields (candles, trade log, account) by
the ``ReconciliationPoller``. All writes happen on the event-loop thread,
so no locking is needed.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Optional

from crypton.core.models import AccountSnapshot, Candle, OrderBook, Ticker, TradeRecord
from crypton.helpers.symbol_helper import to_display_symbol

DEFAULT_SYMBOL = "BTC/USDT"
DEFAULT_INTERVAL = "15m"


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time copy of the store handed to readers."""
    symbol: str
    interval: str
    tickers: dict[str, Ticker]
    order_book: OrderBook
    candles: list[Candle]
    trades: list[TradeRecord]
    account: AccountSnapshot
    online: bool
    feed_connected: bool
    last_error: Optional[str]
    revision: int


@dataclass
class MarketStateStore:
    symbol: str = DEFAULT_SYMBOL
    interval: str = DEFAULT_INTERVAL
    tickers: dict[str, Ticker] = field(default_factory=dict)
    order_book: Optional[OrderBook] = None
    candles: list[Candle] = field(default_factory=list)
    trades: list[TradeRecord] = field(default_factory=list)
    account: AccountSnapshot = field(default_factory=AccountSnapshot)
    online: bool = False
    feed_connected: bool = False
    last_error: Optional[str] = None
    revision: int = 0
    quote_assets: Optional[tuple[str, ...]] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.quote_assets is not None:
            self.quote_assets = tuple(self.quote_assets)
        self.symbol = self.display_symbol(self.symbol)
        if self.order_book is None:
            self.order_book = OrderBook(symbol=self.symbol)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def display_symbol(self, symbol: str) -> str:
        """Normalise with the configured quote assets."""
        return to_display_symbol(symbol, self.quote_assets)

    def is_selected(self, symbol: str, interval: Optional[str] = None) -> bool:
        if self.display_symbol(symbol) != self.symbol:
            return False
        return interval is None or interval == self.interval

    def select(self, symbol: str, interval: Optional[str] = None) -> bool:
        """Change the active symbol/interval. Returns whether anything changed."""
        symbol = self.display_symbol(symbol)
        interval = interval or self.interval
        if symbol == self.symbol and interval == self.interval:
            return False
        if symbol != self.symbol:
            # The previous symbol's depth is meaningless for the new one.
            self.order_book = OrderBook(symbol=symbol)
            self.trades = []
        self.symbol = symbol
        self.interval = interval
        self.candles = []
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Push-derived writes
    # ------------------------------------------------------------------

    def merge_tickers(self, updates: dict[str, dict[str, float]]) -> None:
        """Per-field merge: only fields present in an update are overwritten."""
        if not updates:
            return
        for symbol, fields in updates.items():
            ticker = self.tickers.get(symbol)
            if ticker is None:
                ticker = self.tickers[symbol] = Ticker(symbol=symbol)
            ticker.apply(fields)
        self._touch()

    def replace_order_book(self, book: OrderBook) -> bool:
        """Wholesale replace; books for a non-selected symbol are refused."""
        if not self.is_selected(book.symbol):
            return False
        self.order_book = book
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Pull-derived writes
    # ------------------------------------------------------------------

    def replace_tickers_snapshot(self, snapshot: dict[str, dict[str, float]]) -> None:
        self.merge_tickers(snapshot)

    def replace_candles(self, symbol: str, interval: str, candles: list[Candle]) -> bool:
        if not self.is_selected(symbol, interval):
            return False
        # New list object even when equal: the indicator engine keys on identity.
        self.candles = list(candles)
        self._touch()
        return True

    def replace_trades(self, symbol: str, trades: list[TradeRecord]) -> bool:
        if not self.is_selected(symbol):
            return False
        self.trades = list(trades)
        self._touch()
        return True

    def replace_account(self, account: AccountSnapshot) -> None:
        self.account = account
        self._touch()

    def set_online(self, ok: bool, error: Optional[str] = None) -> None:
        self.online = ok
        self.last_error = None if ok else error
        self._touch()

    def set_feed_connected(self, flag: bool) -> None:
        self.feed_connected = flag
        self._touch()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            symbol=self.symbol,
            interval=self.interval,
            tickers=copy.deepcopy(self.tickers),
            order_book=copy.deepcopy(self.order_book),
            # Series lists are only ever replaced, never mutated in place.
            candles=self.candles,
            trades=self.trades,
            account=copy.deepcopy(self.account),
            online=self.online,
            feed_connected=self.feed_connected,
            last_error=self.last_error,
            revision=self.revision,
        )

    def _touch(self) -> None:
        self.revision += 1
