import unittest

from db_case import TempDatabaseCase

import db.crud as crud
from shop.cart import CartStore
from shop.wishlist import move_wishlist_to_cart


class MoveWishlistTestCase(TempDatabaseCase):
    async def test_moves_one_of_each_in_stock_item(self):
        await crud.add_to_wishlist(1001, 2001)
        # out of stock
        await crud.add_to_wishlist(1001, 2007)
        store = CartStore()

        added = await move_wishlist_to_cart(1001, store)

        self.assertEqual(added, 2)
        self.assertEqual(store.quantity_of(2001), 1)
        self.assertEqual(store.quantity_of(2009), 1)
        self.assertEqual(store.quantity_of(2007), 0)
        # the wishlist is kept
        self.assertEqual(await crud.wishlist_count(1001), 3)

    async def test_existing_cart_entry_gets_one_more(self):
        store = CartStore()
        await store.add_item(2009, 2)
        added = await move_wishlist_to_cart(1001, store)
        self.assertEqual(added, 1)
        self.assertEqual(store.quantity_of(2009), 3)

    async def test_stock_limit_skips_item(self):
        store = CartStore()
        # 2009 has 4 in stock
        await store.add_item(2009, 4)
        added = await move_wishlist_to_cart(1001, store)
        self.assertEqual(added, 0)
        self.assertEqual(store.quantity_of(2009), 4)

    async def test_empty_wishlist(self):
        store = CartStore()
        self.assertEqual(await move_wishlist_to_cart(1002, store), 0)
        self.assertTrue(store.is_empty)


if __name__ == "__main__":
    unittest.main()
