import unittest
from decimal import Decimal

from db_case import TempDatabaseCase

from db import database as db_database
from shop.cart import Cart, CartEntry, CartStore, compute_totals
from shop.errors import (
    InsufficientStockError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
)


class ComputeTotalsTestCase(unittest.TestCase):
    def test_line_and_grand_totals(self):
        totals = compute_totals(
            [
                CartEntry(1, "Milk", Decimal("3.50"), 2),
                CartEntry(2, "Bread", Decimal("2.95"), 1),
            ]
        )
        self.assertEqual(
            [line.line_total for line in totals.lines],
            [Decimal("7.00"), Decimal("2.95")],
        )
        self.assertEqual(totals.total, Decimal("9.95"))
        self.assertEqual(totals.item_count, 3)

    def test_malformed_values_count_as_zero(self):
        totals = compute_totals(
            [
                CartEntry(1, "Milk", "not a price", 2),
                CartEntry(2, "Bread", Decimal("2.00"), "lots"),
                CartEntry(3, "Eggs", Decimal("4.00"), -3),
                CartEntry(4, "Juice", Decimal("1.25"), 2),
            ]
        )
        self.assertEqual(totals.total, Decimal("2.50"))
        self.assertEqual([line.quantity for line in totals.lines], [2, 0, 0, 2])

    def test_empty(self):
        totals = compute_totals([])
        self.assertEqual(totals.total, Decimal("0.00"))
        self.assertEqual(totals.lines, ())

    def test_cart_value_is_immutable(self):
        cart = Cart()
        bigger = cart.with_entry(CartEntry(1, "Milk", Decimal("3.50"), 1))
        self.assertTrue(cart.is_empty)
        self.assertEqual(len(bigger), 1)
        replaced = bigger.with_entry(CartEntry(1, "Milk", Decimal("3.50"), 4))
        self.assertEqual(len(replaced), 1)
        self.assertEqual(replaced.get(1).quantity, 4)
        self.assertEqual(bigger.get(1).quantity, 1)


class CartStoreTestCase(TempDatabaseCase):
    async def test_add_item_snapshots_product(self):
        store = CartStore()
        entry = await store.add_item(2003, 2)
        self.assertEqual(entry.name, "Fresh Milk 1L")
        self.assertEqual(entry.price, Decimal("3.50"))
        self.assertEqual(store.quantity_of(2003), 2)
        self.assertEqual(store.compute_totals().total, Decimal("7.00"))

    async def test_add_item_merges_quantities(self):
        store = CartStore()
        await store.add_item(2001, 2)
        await store.add_item(2001, 3)
        self.assertEqual(len(store.snapshot()), 1)
        self.assertEqual(store.quantity_of(2001), 5)

    async def test_merge_keeps_first_price_snapshot(self):
        store = CartStore()
        await store.add_item(2009, 1)
        # the price changes after the first add
        async with db_database.connect() as conn:
            await conn.execute("UPDATE products SET price = 30 WHERE pid = 2009;")
            await conn.commit()
        await store.add_item(2009, 1)
        self.assertEqual(store.snapshot().get(2009).price, Decimal("24.90"))

    async def test_add_item_rejects_bad_quantity(self):
        store = CartStore()
        for qty in (0, -1, "abc", None):
            with self.assertRaises(ValidationError):
                await store.add_item(2001, qty)
        self.assertTrue(store.is_empty)

    async def test_add_item_missing_product(self):
        store = CartStore()
        with self.assertRaises(NotFoundError):
            await store.add_item(999999, 1)

    async def test_add_item_out_of_stock(self):
        store = CartStore()
        with self.assertRaises(OutOfStockError):
            await store.add_item(2007, 1)
        self.assertTrue(store.is_empty)

    async def test_add_item_insufficient_stock_counts_cart(self):
        store = CartStore()
        # 2004 has 3 in stock
        await store.add_item(2004, 2)
        with self.assertRaises(InsufficientStockError) as ctx:
            await store.add_item(2004, 2)
        self.assertEqual(ctx.exception.available, 1)
        self.assertIn("Only 1 left", str(ctx.exception))
        self.assertEqual(store.quantity_of(2004), 2)

        await store.add_item(2004, 1)
        self.assertEqual(store.quantity_of(2004), 3)

    async def test_update_quantity_zero_removes(self):
        store = CartStore()
        await store.add_item(2001, 2)
        await store.add_item(2002, 1)
        self.assertIsNone(store.update_quantity(2001, 0))
        totals = store.compute_totals()
        self.assertEqual([line.entry.pid for line in totals.lines], [2002])
        self.assertEqual(totals.total, Decimal("2.10"))

        store.update_quantity(2002, -4)
        self.assertTrue(store.is_empty)

    async def test_update_quantity_sets_value(self):
        store = CartStore()
        await store.add_item(2001, 1)
        entry = store.update_quantity(2001, 4)
        self.assertEqual(entry.quantity, 4)
        self.assertEqual(store.compute_totals().total, Decimal("16.80"))

    def test_update_quantity_not_in_cart(self):
        store = CartStore()
        with self.assertRaises(NotFoundError):
            store.update_quantity(2001, 1)

    async def test_remove_and_clear(self):
        store = CartStore()
        await store.add_item(2001, 1)
        await store.add_item(2002, 1)
        store.remove_item(2001)
        store.remove_item(424242)
        self.assertEqual([e.pid for e in store.snapshot()], [2002])
        store.clear()
        self.assertTrue(store.is_empty)
        self.assertEqual(store.compute_totals().total, Decimal("0.00"))

    async def test_snapshot_is_detached(self):
        store = CartStore()
        await store.add_item(2001, 1)
        before = store.snapshot()
        await store.add_item(2002, 1)
        self.assertEqual(len(before), 1)
        self.assertEqual(len(store.snapshot()), 2)


if __name__ == "__main__":
    unittest.main()
