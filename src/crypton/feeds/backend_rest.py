"""
Thin client for the trading-bot backend REST endpoints.

    GET http://127.0.0.1:8000/bot/status
    GET http://127.0.0.1:8000/tickers
    GET http://127.0.0.1:8000/orderbook?symbol=BTC/USDT&limit=20
    GET http://127.0.0.1:8000/klines?symbol=BTC/USDT&interval=15m
    GET http://127.0.0.1:8000/history?symbol=BTC/USDT
"""

from typing import Any, Iterable, Optional

import requests

from crypton.core.models import (
    AccountSnapshot,
    Candle,
    OrderBook,
    TradeRecord,
    parse_account,
    parse_candles,
    parse_order_book,
    parse_ticker_snapshot,
    parse_trades,
)
from crypton.feeds.base import SnapshotSource

_BASE_URL = "http://127.0.0.1:8000"
_STATUS_ENDPOINT = "/bot/status"
_TICKERS_ENDPOINT = "/tickers"
_ORDERBOOK_ENDPOINT = "/orderbook"
_KLINES_ENDPOINT = "/klines"
_HISTORY_ENDPOINT = "/history"

_REQUEST_TIMEOUT = 10


class BackendRestClient(SnapshotSource):
    """
    Fetches account, market and trade-log snapshots from the bot backend.

    Every method raises ``requests.RequestException`` on transport or HTTP
    errors and ``PayloadError`` when the response is missing its expected
    shape. Callers decide whether to keep stale data.

    Parameters
    ----------
    base_url : str
        Override the default base URL (useful for testing).
    timeout : float
        Per-request timeout in seconds.
    session : requests.Session, optional
        Shared session; one is created when omitted.
    quote_assets : Iterable[str], optional
        Quote codes used to split ticker keys into display symbols.
    """

    def __init__(
        self,
        base_url: str = _BASE_URL,
        timeout: float = _REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        quote_assets: Optional[Iterable[str]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self.quote_assets = tuple(quote_assets) if quote_assets is not None else None

    def _get_json(self, endpoint: str, params: Optional[dict] = None) -> Any:
        response = self._session.get(
            self._base_url + endpoint,
            params=params,
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.json()

    def fetch_account(self) -> AccountSnapshot:
        return parse_account(self._get_json(_STATUS_ENDPOINT))

    def fetch_tickers(self) -> dict[str, dict[str, float]]:
        """Return ``{display_symbol: {field: value}}`` for the sidebar listing."""
        return parse_ticker_snapshot(self._get_json(_TICKERS_ENDPOINT), self.quote_assets)

    def fetch_order_book(self, symbol: str, limit: int = 20) -> OrderBook:
        payload = self._get_json(
            _ORDERBOOK_ENDPOINT, params={"symbol": symbol, "limit": limit}
        )
        return parse_order_book(payload, symbol)

    def fetch_candles(self, symbol: str, interval: str) -> list[Candle]:
        """
        Fetch the candle series for one symbol+interval.

        Parameters
        ----------
        symbol : str
            Display symbol, e.g. ``"BTC/USDT"``.
        interval : str
            Interval string, e.g. ``"1m"``, ``"15m"``, ``"4h"``.

        Returns
        -------
        list[Candle]
            Ordered by ``time`` (seconds), duplicates removed.
        """
        payload = self._get_json(
            _KLINES_ENDPOINT, params={"symbol": symbol, "interval": interval}
        )
        return parse_candles(payload)

    def fetch_trades(self, symbol: str) -> list[TradeRecord]:
        payload = self._get_json(_HISTORY_ENDPOINT, params={"symbol": symbol})
        return parse_trades(payload, default_symbol=symbol)

    def close(self) -> None:
        self._session.close()
