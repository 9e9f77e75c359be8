from __future__ import annotations

import json
from dataclasses import dataclass, field, fields as dc_fields, replace
from typing import Any, Optional, Union

from crypton.helpers.symbol_helper import to_display_symbol

Level = tuple[float, float]  # (price, size)


class PayloadError(ValueError):
    """A push message or pull response is missing its expected shape."""


@dataclass
class Ticker:
    symbol: str      # display form, e.g. "BTC/USDT"
    last: Optional[float] = None
    percent_change_24h: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    funding_rate: Optional[float] = None

    def apply(self, updates: dict[str, float]) -> None:
        """Overwrite only the fields present in *updates*."""
        for name, value in updates.items():
            if name in TICKER_FIELDS:
                setattr(self, name, value)


TICKER_FIELDS = frozenset(f.name for f in dc_fields(Ticker) if f.name != "symbol")


@dataclass
class OrderBook:
    symbol: str
    bids: list[Level] = field(default_factory=list)
    asks: list[Level] = field(default_factory=list)

    def top(self, depth: int) -> OrderBook:
        return replace(self, bids=self.bids[:depth], asks=self.asks[:depth])

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks


@dataclass
class Candle:
    time: int        # open time, seconds since epoch (renderer's unit)
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass
class IndicatorPoint:
    time: int
    value: float


@dataclass
class TradeRecord:
    timestamp: int   # milliseconds since epoch
    symbol: str
    side: str        # "buy" or "sell"
    price: float
    amount: float
    realized_pnl: Optional[float] = None


@dataclass
class Marker:
    time: float      # seconds
    position: str    # "belowBar" or "aboveBar"
    color: str
    shape: str       # "arrowUp" or "arrowDown"
    text: str


@dataclass
class AccountSnapshot:
    balance: float = 0.0
    assets: list[dict] = field(default_factory=list)
    positions: list[dict] = field(default_factory=list)
    open_orders: list[dict] = field(default_factory=list)
    active_bots: list[dict] = field(default_factory=list)


@dataclass
class TickerEvent:
    symbol: str
    fields: dict[str, float]


@dataclass
class DepthEvent:
    symbol: str
    bids: list[Level]
    asks: list[Level]


FeedEvent = Union[TickerEvent, DepthEvent]


# ---------------------------------------------------------------------------
# Wire formats
# ---------------------------------------------------------------------------

# Push ticker keys -> Ticker field names.
_TICKER_WIRE_FIELDS = {
    "c": "last",
    "P": "percent_change_24h",
    "h": "high_24h",
    "l": "low_24h",
    "r": "funding_rate",
}

# Pull /tickers keys -> Ticker field names.
_TICKER_SNAPSHOT_FIELDS = {
    "last": "last",
    "percentage": "percent_change_24h",
    "high": "high_24h",
    "low": "low_24h",
    "funding": "funding_rate",
}

_SIDES = ("buy", "sell")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_float(value: Any, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"{what}: not a number ({value!r})") from exc


def _require(payload: dict, key: str, what: str) -> Any:
    if not isinstance(payload, dict) or key not in payload:
        raise PayloadError(f"{what}: missing '{key}'")
    return payload[key]


def _require_list(value: Any, what: str) -> list:
    if not isinstance(value, list):
        raise PayloadError(f"{what}: expected a list, got {type(value).__name__}")
    return value


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

def parse_levels(raw: Any, what: str = "levels") -> list[Level]:
    """Convert ``[[price, size], ...]`` (strings or numbers) to float tuples."""
    levels = []
    for entry in _require_list(raw, what):
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            raise PayloadError(f"{what}: malformed level {entry!r}")
        levels.append((_to_float(entry[0], what), _to_float(entry[1], what)))
    return levels


def parse_feed_message(raw: Union[str, bytes], quote_assets=None) -> Optional[FeedEvent]:
    """
    Parse one push-feed message.

    Returns ``None`` for well-formed messages of a type the core does not
    consume (subscription acks, other event tags). Raises ``PayloadError``
    for anything unparsable.
    """
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as exc:
        raise PayloadError(f"feed message is not JSON: {exc}") from exc
    if not isinstance(msg, dict):
        raise PayloadError("feed message is not an object")

    # Combined-stream envelope: {"stream": ..., "data": {...}}
    if isinstance(msg.get("data"), dict):
        msg = msg["data"]

    kind = msg.get("e")
    if kind not in ("24hrTicker", "depthUpdate"):
        return None

    raw_symbol = _require(msg, "s", kind)
    if not isinstance(raw_symbol, str) or not raw_symbol:
        raise PayloadError(f"{kind}: empty symbol")
    symbol = to_display_symbol(raw_symbol, quote_assets)

    if kind == "24hrTicker":
        updates = {
            name: _to_float(msg[key], f"{kind}.{key}")
            for key, name in _TICKER_WIRE_FIELDS.items()
            if key in msg
        }
        return TickerEvent(symbol=symbol, fields=updates)

    return DepthEvent(
        symbol=symbol,
        bids=parse_levels(_require(msg, "b", kind), f"{kind}.b"),
        asks=parse_levels(_require(msg, "a", kind), f"{kind}.a"),
    )


def parse_ticker_snapshot(payload: Any, quote_assets=None) -> dict[str, dict[str, float]]:
    """``/tickers`` response -> ``{display_symbol: {field: value}}``."""
    if not isinstance(payload, dict):
        raise PayloadError("tickers: expected an object")
    snapshot = {}
    for symbol, record in payload.items():
        if not isinstance(record, dict):
            raise PayloadError(f"tickers[{symbol}]: expected an object")
        snapshot[to_display_symbol(symbol, quote_assets)] = {
            name: _to_float(record[key], f"tickers[{symbol}].{key}")
            for key, name in _TICKER_SNAPSHOT_FIELDS.items()
            if record.get(key) is not None
        }
    return snapshot


def parse_order_book(payload: Any, symbol: str) -> OrderBook:
    return OrderBook(
        symbol=symbol,
        bids=parse_levels(_require(payload, "bids", "orderbook"), "orderbook.bids"),
        asks=parse_levels(_require(payload, "asks", "orderbook"), "orderbook.asks"),
    )


def parse_candles(payload: Any) -> list[Candle]:
    """
    ``/klines`` response -> candles ordered by time.

    Duplicate open times keep the last occurrence so the series satisfies
    the strictly-increasing time invariant.
    """
    by_time: dict[int, Candle] = {}
    for row in _require_list(payload, "klines"):
        candle = Candle(
            time=int(_to_float(_require(row, "time", "kline"), "kline.time")),
            open=_to_float(_require(row, "open", "kline"), "kline.open"),
            high=_to_float(_require(row, "high", "kline"), "kline.high"),
            low=_to_float(_require(row, "low", "kline"), "kline.low"),
            close=_to_float(_require(row, "close", "kline"), "kline.close"),
            volume=_to_float(row.get("volume", 0.0), "kline.volume"),
        )
        by_time[candle.time] = candle
    return [by_time[t] for t in sorted(by_time)]


def parse_trades(payload: Any, default_symbol: str = "") -> list[TradeRecord]:
    """``/history`` response -> trade records ordered by timestamp ascending."""
    trades = []
    for row in _require_list(payload, "history"):
        side = str(_require(row, "side", "trade")).lower()
        if side not in _SIDES:
            raise PayloadError(f"trade: unknown side {side!r}")
        pnl = row.get("pnl", row.get("realized_pnl"))
        trades.append(TradeRecord(
            timestamp=int(_to_float(_require(row, "timestamp", "trade"), "trade.timestamp")),
            symbol=row.get("symbol") or default_symbol,
            side=side,
            price=_to_float(row.get("price", 0.0), "trade.price"),
            amount=_to_float(row.get("amount", 0.0), "trade.amount"),
            realized_pnl=None if pnl is None else _to_float(pnl, "trade.pnl"),
        ))
    trades.sort(key=lambda t: t.timestamp)
    return trades


def parse_account(payload: Any) -> AccountSnapshot:
    """``/bot/status`` response -> AccountSnapshot (inner records stay opaque)."""
    if not isinstance(payload, dict):
        raise PayloadError("status: expected an object")
    return AccountSnapshot(
        balance=_to_float(payload.get("balance") or 0.0, "status.balance"),
        assets=list(_require_list(payload.get("assets") or [], "status.assets")),
        positions=list(_require_list(payload.get("positions") or [], "status.positions")),
        open_orders=list(_require_list(payload.get("open_orders") or [], "status.open_orders")),
        active_bots=list(_require_list(payload.get("active_bots") or [], "status.active_bots")),
    )
