"""
Renderer-facing view of the store plus the symbol joins the dashboard
tables need (orders per position, bot per symbol, sidebar search).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from crypton.core.models import Candle, IndicatorPoint, Marker, OrderBook, Ticker
from crypton.helpers.symbol_helper import same_symbol
from crypton.sync.store import MarketSnapshot

DEFAULT_BOOK_DEPTH = 15

VOLUME_UP_COLOR = "rgba(14, 203, 129, 0.3)"
VOLUME_DOWN_COLOR = "rgba(246, 70, 93, 0.3)"

STOP_LOSS_TYPES = ("STOP_MARKET",)
TAKE_PROFIT_TYPES = ("LIMIT", "TAKE_PROFIT")


@dataclass
class VolumePoint:
    time: int
    value: float
    color: str


@dataclass
class ChartView:
    symbol: str
    interval: str
    candles: list[Candle]
    volume: list[VolumePoint]
    indicators: dict[int, list[IndicatorPoint]]
    markers: list[Marker]
    order_book: OrderBook
    tickers: dict[str, Ticker]
    balance: float = 0.0
    positions: list[dict] = field(default_factory=list)
    open_orders: list[dict] = field(default_factory=list)
    active_bots: list[dict] = field(default_factory=list)
    assets: list[dict] = field(default_factory=list)
    online: bool = False
    feed_connected: bool = False
    last_error: Optional[str] = None

    @property
    def ticker(self) -> Optional[Ticker]:
        return self.tickers.get(self.symbol)


def volume_points(candles: list[Candle]) -> list[VolumePoint]:
    return [
        VolumePoint(
            time=c.time,
            value=c.volume,
            color=VOLUME_UP_COLOR if c.close >= c.open else VOLUME_DOWN_COLOR,
        )
        for c in candles
    ]


def build_view(
    snapshot: MarketSnapshot,
    indicators: dict[int, list[IndicatorPoint]],
    markers: list[Marker],
    book_depth: int = DEFAULT_BOOK_DEPTH,
) -> ChartView:
    account = snapshot.account
    return ChartView(
        symbol=snapshot.symbol,
        interval=snapshot.interval,
        candles=snapshot.candles,
        volume=volume_points(snapshot.candles),
        indicators=indicators,
        markers=markers,
        order_book=snapshot.order_book.top(book_depth),
        tickers=snapshot.tickers,
        balance=account.balance,
        positions=account.positions,
        open_orders=account.open_orders,
        active_bots=account.active_bots,
        assets=account.assets,
        online=snapshot.online,
        feed_connected=snapshot.feed_connected,
        last_error=snapshot.last_error,
    )


# ---------------------------------------------------------------------------
# Display joins
# ---------------------------------------------------------------------------

def filter_tickers(tickers: dict[str, Ticker], search: str = "") -> dict[str, Ticker]:
    """Sidebar search: case-insensitive substring match on the symbol."""
    needle = search.strip().lower()
    if not needle:
        return dict(tickers)
    return {s: t for s, t in tickers.items() if needle in s.lower()}


def orders_for_position(position: dict, open_orders: list[dict]) -> list[dict]:
    symbol = position.get("symbol") or ""
    return [o for o in open_orders if same_symbol(o.get("symbol") or "", symbol)]


def _first_of_type(orders: list[dict], types: tuple[str, ...]) -> Optional[dict]:
    for order in orders:
        if str(order.get("type", "")).upper() in types:
            return order
    return None


def stop_loss_order(position: dict, open_orders: list[dict]) -> Optional[dict]:
    return _first_of_type(orders_for_position(position, open_orders), STOP_LOSS_TYPES)


def take_profit_order(position: dict, open_orders: list[dict]) -> Optional[dict]:
    return _first_of_type(orders_for_position(position, open_orders), TAKE_PROFIT_TYPES)


def bot_for_symbol(symbol: str, active_bots: list[dict]) -> Optional[dict]:
    """Bot records may carry ``BTC/USDT`` or ``BTCUSDT``; match either."""
    for bot in active_bots:
        if same_symbol(bot.get("symbol") or "", symbol):
            return bot
    return None


def is_bot_running(symbol: str, active_bots: list[dict]) -> bool:
    return bot_for_symbol(symbol, active_bots) is not None
