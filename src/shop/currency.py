"""
Display currency conversion.

Customers are always charged in the base currency; conversions are only
shown next to the real amount. Rates come from an injectable fetcher and
are memoized per base currency for a fixed TTL.
"""

from __future__ import annotations

import os
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from utils.logger import get_logger
from utils.pure import to_decimal

_logger = get_logger(__name__)

BASE_CURRENCY = os.getenv("SUPERMARKET_BASE_CURRENCY", "SGD")
RATE_TTL = float(os.getenv("SUPERMARKET_RATE_TTL", "3600"))

# code -> (name, symbol)
CURRENCIES: Dict[str, Tuple[str, str]] = {
    "SGD": ("Singapore Dollar", "S$"),
    "USD": ("US Dollar", "$"),
    "EUR": ("Euro", "€"),
    "GBP": ("British Pound", "£"),
    "JPY": ("Japanese Yen", "¥"),
    "AUD": ("Australian Dollar", "A$"),
    "CNY": ("Chinese Yuan", "¥"),
    "MYR": ("Malaysian Ringgit", "RM"),
    "THB": ("Thai Baht", "฿"),
    "KRW": ("South Korean Won", "₩"),
}
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}

# approximate, relative to SGD; used when no live rates are available
FALLBACK_RATES: Dict[str, Decimal] = {
    "SGD": Decimal("1.00"),
    "USD": Decimal("0.74"),
    "EUR": Decimal("0.68"),
    "GBP": Decimal("0.58"),
    "JPY": Decimal("110.50"),
    "AUD": Decimal("1.09"),
    "CNY": Decimal("4.76"),
    "MYR": Decimal("3.12"),
    "THB": Decimal("25.20"),
    "KRW": Decimal("880.00"),
}

RateFetcher = Callable[[str], Awaitable[Dict[str, Decimal]]]


def rebase(rates: Dict[str, Decimal], base: str) -> Dict[str, Decimal]:
    """Express SGD-relative rates relative to another base."""
    pivot = rates.get(base)
    if not pivot:
        return dict(rates)
    return {code: rate / pivot for code, rate in rates.items()}


async def fallback_rates(base: str) -> Dict[str, Decimal]:
    return rebase(FALLBACK_RATES, base)


class RateCache:
    """
    get-or-refresh memo of rate tables keyed by base currency.

    clock returns seconds; tests pass a fake one to move time by hand.
    A failed fetch falls back to FALLBACK_RATES without caching them, so
    the next lookup tries the fetcher again.
    """

    def __init__(
        self,
        fetcher: RateFetcher = fallback_rates,
        ttl: float = RATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, Decimal]]] = {}

    async def get_or_refresh(
        self, key: str, ttl: Optional[float] = None
    ) -> Dict[str, Decimal]:
        ttl = self._ttl if ttl is None else ttl
        now = self._clock()
        hit = self._entries.get(key)
        if hit is not None and now - hit[0] < ttl:
            return hit[1]

        try:
            rates = await self._fetcher(key)
        except Exception:
            _logger.warning(
                f"Exchange rate fetch for {key} failed, using fallback rates",
                exc_info=True,
            )
            return rebase(FALLBACK_RATES, key)

        rates = {code: to_decimal(rate) for code, rate in rates.items()}
        self._entries[key] = (now, rates)
        _logger.debug(f"Exchange rates for {key} refreshed ({len(rates)} codes)")
        return rates

    def invalidate(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


def available_currencies() -> List[Tuple[str, str, str]]:
    return [(code, name, symbol) for code, (name, symbol) in CURRENCIES.items()]


def format_amount(amount, currency: str) -> str:
    info = CURRENCIES.get(currency)
    decimals = 0 if currency in ZERO_DECIMAL_CURRENCIES else 2
    value = to_decimal(amount).quantize(
        Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP
    )
    if info is None:
        return f"{value:.2f} {currency}"
    return f"{info[1]}{value:,.{decimals}f}"


class CurrencyConverter:
    def __init__(self, cache: Optional[RateCache] = None, base: str = BASE_CURRENCY):
        self.cache = cache or RateCache()
        self.base = base

    async def convert(self, amount, target: str) -> Decimal:
        """Amount in target currency; unknown targets return the amount unchanged."""
        rates = await self.cache.get_or_refresh(self.base)
        rate = rates.get(target)
        if rate is None:
            _logger.error(f"Exchange rate not available for {target}")
            return to_decimal(amount)
        return to_decimal(amount) * rate

    async def format_converted(self, amount, target: str) -> str:
        converted = await self.convert(amount, target)
        if target not in (await self.cache.get_or_refresh(self.base)):
            target = self.base
        return format_amount(converted, target)
