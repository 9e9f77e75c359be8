import threading

import pytest
import requests

from crypton.core.models import AccountSnapshot, Candle, OrderBook, TradeRecord
from crypton.feeds.base import SnapshotSource


def make_candles(closes, start=0, step=60):
    """Candles with the given closes; open is the previous close."""
    candles = []
    prev = closes[0] if closes else 0.0
    for i, close in enumerate(closes):
        candles.append(Candle(
            time=start + i * step,
            open=prev,
            high=max(prev, close) + 1,
            low=min(prev, close) - 1,
            close=close,
            volume=100.0 + i,
        ))
        prev = close
    return candles


class FakeSource(SnapshotSource):
    """In-memory backend. Methods named in ``failing`` raise ConnectionError."""

    def __init__(self):
        self.account = AccountSnapshot(balance=1000.0, positions=[{"symbol": "BTCUSDT", "size": 0.1}])
        self.tickers = {"BTC/USDT": {"last": 50000.0, "percent_change_24h": 1.5}}
        self.books = {}
        self.candles = {}
        self.trades = {}
        self.failing = set()
        self.calls = []
        self._lock = threading.Lock()
        self.closed = False

    def _record(self, name, *args):
        with self._lock:
            self.calls.append((name,) + args)
        if name in self.failing:
            raise requests.ConnectionError(f"{name} unreachable")

    def call_names(self):
        return [c[0] for c in self.calls]

    def fetch_account(self):
        self._record("account")
        return self.account

    def fetch_tickers(self):
        self._record("tickers")
        return self.tickers

    def fetch_order_book(self, symbol, limit):
        self._record("orderbook", symbol, limit)
        return self.books.get(symbol, OrderBook(symbol=symbol))

    def fetch_candles(self, symbol, interval):
        self._record("candles", symbol, interval)
        return self.candles.get((symbol, interval), [])

    def fetch_trades(self, symbol):
        self._record("trades", symbol)
        return self.trades.get(symbol, [])

    def close(self):
        self.closed = True


@pytest.fixture
def source():
    src = FakeSource()
    src.candles[("BTC/USDT", "15m")] = make_candles([100.0, 101.0, 102.0])
    src.trades["BTC/USDT"] = [
        TradeRecord(timestamp=1_000, symbol="BTC/USDT", side="buy", price=100.0, amount=0.1),
    ]
    src.books["BTC/USDT"] = OrderBook(symbol="BTC/USDT", bids=[(99.0, 1.0)], asks=[(101.0, 2.0)])
    return src
