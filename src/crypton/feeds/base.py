from abc import ABC, abstractmethod
from typing import Dict, List

from crypton.core.models import AccountSnapshot, Candle, OrderBook, TradeRecord


class SnapshotSource(ABC):
    """Pull side of the backend. Implementations may block; callers run them off-loop."""

    # Account Methods
    @abstractmethod
    def fetch_account(self) -> AccountSnapshot:
        pass

    # Market Data Methods
    @abstractmethod
    def fetch_tickers(self) -> Dict[str, Dict[str, float]]:
        pass

    @abstractmethod
    def fetch_order_book(self, symbol: str, limit: int) -> OrderBook:
        pass

    @abstractmethod
    def fetch_candles(self, symbol: str, interval: str) -> List[Candle]:
        pass

    @abstractmethod
    def fetch_trades(self, symbol: str) -> List[TradeRecord]:
        pass

    def close(self) -> None:
        """Release connections held by the source."""
