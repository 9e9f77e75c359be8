"""Symbol Helper Functions

The push feed speaks exchange symbols (``BTCUSDT``) while the pull
endpoints and the UI speak display symbols (``BTC/USDT``). These helpers
convert between the two so both channels key the same records.
"""

from typing import Iterable, Optional

DEFAULT_QUOTE_ASSETS = ("USDT", "USDC", "BUSD", "FDUSD", "BTC", "ETH", "BNB")

SEPARATOR = "/"


def to_display_symbol(raw: str, quote_assets: Optional[Iterable[str]] = None) -> str:
    """Rewrite a combined exchange symbol to ``BASE/QUOTE`` form.

    Args:
        raw: Symbol as sent by the feed, e.g. ``"BTCUSDT"``
        quote_assets: Quote asset codes to recognise (default: DEFAULT_QUOTE_ASSETS)

    Returns:
        Display symbol, e.g. ``"BTC/USDT"``. Symbols already containing a
        separator, or with no recognised quote suffix, come back unchanged
        apart from upper-casing.
    """
    symbol = raw.strip().upper()
    if SEPARATOR in symbol:
        return symbol

    quotes = quote_assets if quote_assets is not None else DEFAULT_QUOTE_ASSETS
    # Longest suffix first so "FDUSD" wins over "USD"-like shorter codes.
    for quote in sorted((q.upper() for q in quotes), key=len, reverse=True):
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return f"{symbol[:-len(quote)]}{SEPARATOR}{quote}"
    return symbol


def to_exchange_symbol(display: str) -> str:
    """Strip the separator (and any ``:SETTLE`` suffix): ``"BTC/USDT"`` -> ``"BTCUSDT"``."""
    return display.split(":")[0].replace(SEPARATOR, "").upper()


def same_symbol(a: str, b: str) -> bool:
    """Compare two symbols regardless of separator and case."""
    return to_exchange_symbol(a) == to_exchange_symbol(b)
