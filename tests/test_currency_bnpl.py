import os
import sys
import unittest
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from shop import bnpl  # noqa: E402
from shop.currency import (  # noqa: E402
    FALLBACK_RATES,
    CurrencyConverter,
    RateCache,
    available_currencies,
    format_amount,
    rebase,
)
from shop.errors import ValidationError  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingFetcher:
    def __init__(self, rates=None, fail: bool = False):
        self.calls = []
        self.rates = rates or {"SGD": Decimal("1"), "USD": Decimal("0.75")}
        self.fail = fail

    async def __call__(self, base: str):
        self.calls.append(base)
        if self.fail:
            raise ConnectionError("rate service unreachable")
        return dict(self.rates)


class RateCacheTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_hit_within_ttl(self):
        clock, fetcher = FakeClock(), CountingFetcher()
        cache = RateCache(fetcher, ttl=60, clock=clock)

        first = await cache.get_or_refresh("SGD")
        clock.now += 59
        second = await cache.get_or_refresh("SGD")

        self.assertEqual(first, second)
        self.assertEqual(fetcher.calls, ["SGD"])

    async def test_refresh_after_expiry(self):
        clock, fetcher = FakeClock(), CountingFetcher()
        cache = RateCache(fetcher, ttl=60, clock=clock)

        await cache.get_or_refresh("SGD")
        clock.now += 60
        fetcher.rates["USD"] = Decimal("0.80")
        rates = await cache.get_or_refresh("SGD")

        self.assertEqual(fetcher.calls, ["SGD", "SGD"])
        self.assertEqual(rates["USD"], Decimal("0.80"))

    async def test_per_call_ttl_and_keys(self):
        clock, fetcher = FakeClock(), CountingFetcher()
        cache = RateCache(fetcher, ttl=3600, clock=clock)

        await cache.get_or_refresh("SGD")
        await cache.get_or_refresh("USD")
        clock.now += 10
        await cache.get_or_refresh("SGD", ttl=5)
        self.assertEqual(fetcher.calls, ["SGD", "USD", "SGD"])

    async def test_invalidate(self):
        fetcher = CountingFetcher()
        cache = RateCache(fetcher, ttl=3600, clock=FakeClock())
        await cache.get_or_refresh("SGD")
        cache.invalidate("SGD")
        await cache.get_or_refresh("SGD")
        cache.invalidate()
        await cache.get_or_refresh("SGD")
        self.assertEqual(len(fetcher.calls), 3)

    async def test_fetch_failure_uses_fallback_without_caching(self):
        fetcher = CountingFetcher(fail=True)
        cache = RateCache(fetcher, ttl=3600, clock=FakeClock())

        with self.assertLogs("shop.currency", level="WARNING"):
            rates = await cache.get_or_refresh("SGD")
        self.assertEqual(rates, FALLBACK_RATES)

        fetcher.fail = False
        rates = await cache.get_or_refresh("SGD")
        self.assertEqual(rates["USD"], Decimal("0.75"))
        self.assertEqual(len(fetcher.calls), 2)

    def test_rebase(self):
        rates = rebase({"SGD": Decimal("1"), "USD": Decimal("0.5")}, "USD")
        self.assertEqual(rates["USD"], Decimal("1"))
        self.assertEqual(rates["SGD"], Decimal("2"))
        # unknown base leaves the table as is
        self.assertEqual(rebase({"SGD": Decimal("1")}, "XYZ"), {"SGD": Decimal("1")})


class CurrencyConverterTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.fetcher = CountingFetcher(
            {"SGD": Decimal("1"), "USD": Decimal("0.74"), "JPY": Decimal("110.5")}
        )
        self.converter = CurrencyConverter(
            RateCache(self.fetcher, ttl=3600, clock=FakeClock()), base="SGD"
        )

    async def test_convert(self):
        self.assertEqual(
            await self.converter.convert(Decimal("10.00"), "USD"), Decimal("7.4000")
        )
        self.assertEqual(
            await self.converter.format_converted(Decimal("10.00"), "USD"), "$7.40"
        )
        self.assertEqual(
            await self.converter.format_converted(Decimal("7.00"), "JPY"), "¥774"
        )

    async def test_unknown_target_returns_amount(self):
        with self.assertLogs("shop.currency", level="ERROR"):
            converted = await self.converter.convert(Decimal("10.00"), "XYZ")
        self.assertEqual(converted, Decimal("10.00"))
        with self.assertLogs("shop.currency", level="ERROR"):
            text = await self.converter.format_converted(Decimal("10.00"), "XYZ")
        self.assertEqual(text, "S$10.00")


class FormatAmountTestCase(unittest.TestCase):
    def test_symbols_and_decimals(self):
        self.assertEqual(format_amount(Decimal("1234.5"), "SGD"), "S$1,234.50")
        self.assertEqual(format_amount(Decimal("0.005"), "USD"), "$0.01")
        self.assertEqual(format_amount(Decimal("1500.4"), "KRW"), "₩1,500")
        self.assertEqual(format_amount("12", "ZZZ"), "12.00 ZZZ")
        self.assertEqual(format_amount("garbage", "EUR"), "€0.00")

    def test_available_currencies(self):
        codes = [code for code, _, _ in available_currencies()]
        self.assertIn("SGD", codes)
        self.assertIn("JPY", codes)
        self.assertEqual(len(codes), len(set(codes)))


class BnplTestCase(unittest.TestCase):
    def test_qualifies_from_fifty(self):
        self.assertFalse(bnpl.qualifies(Decimal("49.99")))
        self.assertTrue(bnpl.qualifies(Decimal("50.00")))

    def test_installment(self):
        plan = bnpl.installment(Decimal("100.00"), 3)
        self.assertEqual(plan.monthly_payment, Decimal("33.33"))
        self.assertEqual(plan.total, Decimal("100.00"))
        self.assertEqual(plan.interest_rate, Decimal("0"))
        with self.assertRaises(ValidationError):
            bnpl.installment(Decimal("100.00"), 5)

    def test_all_plans(self):
        self.assertEqual(
            [p.months for p in bnpl.all_plans(Decimal("120"))], [3, 6, 12]
        )

    def test_recommended_plan(self):
        self.assertEqual(bnpl.recommended_plan(Decimal("99.99")).months, 3)
        self.assertEqual(bnpl.recommended_plan(Decimal("100")).months, 6)
        self.assertEqual(bnpl.recommended_plan(Decimal("299.99")).months, 6)
        self.assertEqual(bnpl.recommended_plan(Decimal("300")).months, 12)

    def test_validate_choice(self):
        self.assertIsNone(bnpl.validate_choice(Decimal("10"), None))
        self.assertEqual(bnpl.validate_choice(Decimal("60"), 6), 6)
        with self.assertRaises(ValidationError):
            bnpl.validate_choice(Decimal("49"), 3)
        with self.assertRaises(ValidationError):
            bnpl.validate_choice(Decimal("60"), 4)


if __name__ == "__main__":
    unittest.main()
