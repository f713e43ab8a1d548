import os
import sys
import unittest
from datetime import datetime
from decimal import Decimal

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from db.models import User  # noqa: E402
from shop.cart import Cart, CartEntry, CartStore  # noqa: E402
from shop.errors import AccessDeniedError  # noqa: E402
from utils.pure import (  # noqa: E402
    format_ts,
    generate_markdown_table,
    money,
    parse_ts,
    to_decimal,
    to_int,
)
from utils.state import GlobalState  # noqa: E402


class PureHelpersTestCase(unittest.TestCase):
    def test_to_int(self):
        self.assertEqual(to_int("3"), 3)
        self.assertEqual(to_int(4.9), 4)
        self.assertEqual(to_int("nan"), 0)
        self.assertEqual(to_int(None), 0)
        self.assertEqual(to_int(float("inf")), 0)

    def test_to_decimal_and_money(self):
        self.assertEqual(to_decimal("2.5"), Decimal("2.5"))
        self.assertEqual(to_decimal("Infinity"), Decimal(0))
        self.assertEqual(to_decimal(None), Decimal(0))
        self.assertEqual(money("2.345"), Decimal("2.35"))
        self.assertEqual(money(4.2), Decimal("4.20"))
        self.assertEqual(str(money(7)), "7.00")

    def test_timestamps(self):
        when = datetime(2025, 11, 1, 10, 0, 0)
        self.assertEqual(format_ts(when), "2025-11-01 10:00:00")
        self.assertEqual(parse_ts("2025-11-01 10:00:00"), when)
        self.assertIs(parse_ts(when), when)
        self.assertIsNone(parse_ts(None))
        self.assertIsNone(parse_ts("yesterday"))

    def test_markdown_table(self):
        md = generate_markdown_table(["A", "B"], [[1, 2]], ["l", "r"])
        self.assertIn("| A | B |", md)
        self.assertIn("| 1 | 2 |", md)
        self.assertEqual(generate_markdown_table(["A"], []), "")


class GlobalStateTestCase(unittest.TestCase):
    def test_session_lifecycle(self):
        state = GlobalState()
        state.cart = CartStore(Cart((CartEntry(1, "Milk", Decimal("3.50"), 1),)))

        state.start_session(User(1001, "Alice Tan", "alice@example.com", "customer"))
        self.assertEqual(state.uid, 1001)
        self.assertEqual(state.username, "Alice Tan")
        self.assertTrue(state.cart.is_empty)

        state.end_session()
        self.assertIsNone(state.uid)
        self.assertIsNone(state.role)

    def test_require_role(self):
        state = GlobalState()
        with self.assertRaises(AccessDeniedError):
            state.require_role("admin")

        state.start_session(User(1001, "Alice Tan", "alice@example.com", "customer"))
        with self.assertRaises(AccessDeniedError):
            state.require_role("admin")
        state.require_role("customer")

        state.start_session(User(1, "Store Admin", "admin@supermarket.sg", "admin"))
        state.require_role("admin")


if __name__ == "__main__":
    unittest.main()
