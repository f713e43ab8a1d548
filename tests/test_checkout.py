import asyncio
import sqlite3
import unittest
from datetime import datetime
from decimal import Decimal

from db_case import TempDatabaseCase

import db.crud as crud
from db import database as db_database
from shop.cart import Cart, CartEntry, CartStore
from shop.checkout import OrderMeta, order_lines, place_order, prepare
from shop.errors import (
    EmptyCartError,
    OrderItemPersistenceError,
    OrderPersistenceError,
    ValidationError,
)

WHEN = datetime(2025, 11, 10, 12, 0, 0)


class OrderLinesTestCase(unittest.TestCase):
    def test_zero_quantity_lines_are_dropped(self):
        cart = Cart(
            (
                CartEntry(1, "Milk", Decimal("3.50"), 2),
                CartEntry(2, "Bread", Decimal("2.00"), "oops"),
            )
        )
        entries, total = order_lines(cart)
        self.assertEqual([e.pid for e in entries], [1])
        self.assertEqual(total, Decimal("7.00"))

    def test_prices_are_normalized(self):
        cart = Cart((CartEntry(1, "Milk", "3.505", 1),))
        entries, total = order_lines(cart)
        self.assertEqual(entries[0].price, Decimal("3.51"))
        self.assertEqual(total, Decimal("3.51"))

    def test_prepare_rejects_empty_and_all_zero_carts(self):
        with self.assertRaises(EmptyCartError):
            prepare(Cart())
        with self.assertRaises(EmptyCartError):
            prepare(Cart((CartEntry(1, "Milk", Decimal("3.50"), 0),)))

    def test_prepare_validates_meta(self):
        cart = Cart((CartEntry(1, "Milk", Decimal("3.50"), 2),))
        with self.assertRaises(ValidationError):
            prepare(cart, OrderMeta(display_currency="XYZ"))
        # below the pay-later minimum
        with self.assertRaises(ValidationError):
            prepare(cart, OrderMeta(bnpl_months=3))
        _, _, meta = prepare(cart, OrderMeta(display_currency="USD"))
        self.assertEqual(meta.display_currency, "USD")


class PlaceOrderTestCase(TempDatabaseCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        await self.insert_product(7, "Test Milk", "3.50", 10)

    async def _cart(self, *items) -> CartStore:
        store = CartStore()
        for pid, qty in items:
            await store.add_item(pid, qty)
        return store

    async def test_single_line_order(self):
        store = await self._cart((7, 2))
        placed = await place_order(1001, store, when=WHEN)

        order, items = await crud.get_order(placed.oid)
        self.assertEqual(order.total, Decimal("7.00"))
        self.assertEqual(order.uid, 1001)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].pid, 7)
        self.assertEqual(items[0].price, Decimal("3.50"))
        self.assertEqual(items[0].quantity, 2)
        self.assertEqual(await crud.product_stock(7), 8)
        self.assertFalse(placed.inventory_warning)
        self.assertTrue(store.is_empty)

    async def test_stock_clamps_at_zero(self):
        store = CartStore(Cart((CartEntry(7, "Test Milk", Decimal("3.50"), 2),)))
        async with db_database.connect() as conn:
            await conn.execute("UPDATE products SET quantity = 1 WHERE pid = 7;")
            await conn.commit()

        placed = await place_order(1001, store, when=WHEN)
        self.assertEqual(placed.total, Decimal("7.00"))
        self.assertEqual(await crud.product_stock(7), 0)

    async def test_total_equals_sum_of_lines(self):
        store = await self._cart((2001, 3), (2005, 2), (2009, 1))
        placed = await place_order(1002, store, when=WHEN)
        order, items = await crud.get_order(placed.oid)
        self.assertEqual(order.total, sum(i.line_total for i in items))
        self.assertEqual(order.total, await crud.compute_order_total(placed.oid))
        self.assertEqual(order.total, Decimal("43.40"))

    async def test_client_total_is_ignored(self):
        store = await self._cart((7, 2))
        with self.assertLogs("shop.checkout", level="WARNING"):
            placed = await place_order(1001, store, when=WHEN, claimed_total="0.01")
        order, _ = await crud.get_order(placed.oid)
        self.assertEqual(order.total, Decimal("7.00"))

    async def test_meta_is_stored(self):
        store = await self._cart((2009, 3))
        placed = await place_order(
            1001, store, OrderMeta(display_currency="JPY", bnpl_months=6), when=WHEN
        )
        order, _ = await crud.get_order(placed.oid)
        self.assertEqual(order.display_currency, "JPY")
        self.assertEqual(order.bnpl_months, 6)
        self.assertIsNone(order.payment_ref)

    async def test_same_cart_twice_makes_two_orders(self):
        first = CartStore(Cart((CartEntry(7, "Test Milk", Decimal("3.50"), 1),)))
        second = CartStore(first.snapshot())
        a = await place_order(1001, first, when=WHEN)
        b = await place_order(1001, second, when=WHEN)
        self.assertNotEqual(a.oid, b.oid)

    async def test_empty_cart_makes_no_repository_calls(self):
        calls = []

        async def record(*args, **kwargs):
            calls.append(args)
            return 1

        orig = (crud.add_order, crud.add_order_items, crud.decrease_product_stock)
        orders_before = await self.count_rows("orders")
        try:
            crud.add_order = record
            crud.add_order_items = record
            crud.decrease_product_stock = record
            with self.assertRaises(EmptyCartError):
                await place_order(1001, CartStore(), when=WHEN)
        finally:
            crud.add_order, crud.add_order_items, crud.decrease_product_stock = orig
        self.assertEqual(calls, [])
        self.assertEqual(await self.count_rows("orders"), orders_before)

    async def test_order_insert_failure_keeps_cart(self):
        store = await self._cart((7, 2))
        orders_before = await self.count_rows("orders")

        async def failing_add_order(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        orig = crud.add_order
        try:
            crud.add_order = failing_add_order
            with self.assertRaises(OrderPersistenceError):
                await place_order(1001, store, when=WHEN)
        finally:
            crud.add_order = orig

        self.assertEqual(store.quantity_of(7), 2)
        self.assertEqual(await self.count_rows("orders"), orders_before)
        self.assertEqual(await crud.product_stock(7), 10)

    async def test_falsy_order_id_is_a_failure(self):
        store = await self._cart((7, 1))

        async def no_id(*args, **kwargs):
            return None

        orig = crud.add_order
        try:
            crud.add_order = no_id
            with self.assertRaises(OrderPersistenceError):
                await place_order(1001, store, when=WHEN)
        finally:
            crud.add_order = orig
        self.assertFalse(store.is_empty)

    async def test_item_insert_failure_leaves_orphan_order(self):
        store = await self._cart((7, 2))
        items_before = await self.count_rows("order_items")

        async def failing_items(*args, **kwargs):
            raise sqlite3.IntegrityError("constraint failed")

        orig = crud.add_order_items
        try:
            crud.add_order_items = failing_items
            with self.assertRaises(OrderItemPersistenceError) as ctx:
                await place_order(1001, store, when=WHEN)
        finally:
            crud.add_order_items = orig

        orphan, items = await crud.get_order(ctx.exception.oid)
        self.assertIsNotNone(orphan)
        self.assertEqual(items, [])
        self.assertEqual(await self.count_rows("order_items"), items_before)
        # no stock taken, cart kept for retry
        self.assertEqual(await crud.product_stock(7), 10)
        self.assertEqual(store.quantity_of(7), 2)

    async def test_stock_failure_is_not_fatal(self):
        store = await self._cart((7, 2), (2001, 1))
        real_decrease = crud.decrease_product_stock

        async def flaky_decrease(pid, qty):
            if pid == 7:
                raise sqlite3.OperationalError("disk I/O error")
            await real_decrease(pid, qty)

        try:
            crud.decrease_product_stock = flaky_decrease
            with self.assertLogs("shop.checkout", level="WARNING"):
                placed = await place_order(1001, store, when=WHEN)
        finally:
            crud.decrease_product_stock = real_decrease

        self.assertTrue(placed.inventory_warning)
        self.assertEqual(placed.stock_failures, (7,))
        _, items = await crud.get_order(placed.oid)
        self.assertEqual(len(items), 2)
        self.assertEqual(await crud.product_stock(7), 10)
        self.assertEqual(await crud.product_stock(2001), 49)
        self.assertTrue(store.is_empty)

    async def test_concurrent_orders_can_oversell(self):
        await self.insert_product(8, "Last Loaf", "2.00", 1)
        first = await self._cart((8, 1))
        second = await self._cart((8, 1))

        a, b = await asyncio.gather(
            place_order(1001, first, when=WHEN),
            place_order(1002, second, when=WHEN),
        )

        # both succeed; stock only clamps at zero
        self.assertNotEqual(a.oid, b.oid)
        self.assertEqual(await crud.product_stock(8), 0)
        self.assertTrue(first.is_empty)
        self.assertTrue(second.is_empty)


if __name__ == "__main__":
    unittest.main()
