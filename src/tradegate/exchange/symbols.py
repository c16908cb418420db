"""Trading pair resolution from free-form symbol strings.

Accepts "BTC/USDT", "btc-usdt", "BTCUSDT" and similar, and returns a
canonical (base, quote) pair.

Known limitation: pairs outside the table are split assuming a 3-letter base
asset. "DOGEUSDT" resolves to ("DOG", "EUSDT"). Callers that trade such
assets must pass a symbol the venue accepts and expect the venue to reject
a wrong split.
"""

from dataclasses import dataclass

from tradegate.exceptions import InvalidSymbolError

_MIN_FALLBACK_LENGTH = 6
_BASE_LENGTH = 3


@dataclass(frozen=True)
class TradingPair:
    """Canonical currency pair."""

    base: str
    quote: str

    @property
    def symbol(self) -> str:
        """Unified ccxt symbol, e.g. "BTC/USDT"."""
        return f"{self.base}/{self.quote}"

    @property
    def compact(self) -> str:
        """Separator-free form, e.g. "BTCUSDT"."""
        return f"{self.base}{self.quote}"


KNOWN_PAIRS: dict[str, TradingPair] = {
    "BTCUSDT": TradingPair("BTC", "USDT"),
    "ETHUSDT": TradingPair("ETH", "USDT"),
    "BTCUSD": TradingPair("BTC", "USD"),
    "ETHUSD": TradingPair("ETH", "USD"),
    "BTCEUR": TradingPair("BTC", "EUR"),
    "ETHEUR": TradingPair("ETH", "EUR"),
}


def normalize_symbol(raw: str) -> str:
    """Strip "/" and "-" separators and upper-case."""
    return raw.replace("/", "").replace("-", "").strip().upper()


class SymbolResolver:
    """Maps raw symbol strings to TradingPair. Pure and deterministic."""

    def __init__(self, known_pairs: dict[str, TradingPair] | None = None) -> None:
        self._known = dict(KNOWN_PAIRS if known_pairs is None else known_pairs)

    def resolve(self, raw: str) -> TradingPair:
        """Resolve a raw symbol.

        Resolution order: exact match in the known-pairs table, then a split
        into a 3-character base and the remaining quote.

        Raises:
            InvalidSymbolError: If the normalised symbol is not in the table
                and shorter than 6 characters, or contains characters other
                than letters and digits.
        """
        if not raw:
            raise InvalidSymbolError("Symbol is empty")

        normalized = normalize_symbol(raw)
        pair = self._known.get(normalized)
        if pair is not None:
            return pair

        if not normalized.isalnum():
            raise InvalidSymbolError(f"Invalid currency pair format: {raw}")
        if len(normalized) < _MIN_FALLBACK_LENGTH:
            raise InvalidSymbolError(f"Invalid currency pair format: {raw}")

        return TradingPair(normalized[:_BASE_LENGTH], normalized[_BASE_LENGTH:])
