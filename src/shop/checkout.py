"""
Order placement: turns a session cart into an order, its lines and stock
decrements, then empties the cart.

The writes are sequential and each commits on its own:

1. order header      -> failure aborts, nothing written, cart kept
2. order lines       -> failure aborts, header stays behind with no lines
3. stock decrements  -> per line, best effort, failures only reported
4. cart cleared      -> only once everything above has run

Nothing here deduplicates: placing the same cart twice makes two orders.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Tuple

import db.crud as crud
from shop import bnpl
from shop.cart import Cart, CartEntry, CartStore
from shop.currency import CURRENCIES
from shop.errors import (
    EmptyCartError,
    OrderItemPersistenceError,
    OrderPersistenceError,
    ValidationError,
)
from utils.logger import get_logger
from utils.pure import money

_logger = get_logger(__name__)

INVENTORY_NOTICE = "Order placed, but some stock levels may not have updated correctly."


@dataclass(frozen=True)
class OrderMeta:
    display_currency: Optional[str] = None
    bnpl_months: Optional[int] = None
    payment_ref: Optional[str] = None


@dataclass(frozen=True)
class PlacedOrder:
    oid: int
    total: Decimal
    items: Tuple[CartEntry, ...]
    stock_failures: Tuple[int, ...] = ()  # pids whose decrement failed
    duplicate: bool = False  # an earlier order for the same payment was returned

    @property
    def inventory_warning(self) -> bool:
        return bool(self.stock_failures)


def order_lines(cart: Cart) -> Tuple[Tuple[CartEntry, ...], Decimal]:
    """
    Recompute lines and grand total from the cart itself.
    Lines whose quantity coerces to 0 add nothing to the total and are dropped.
    """
    totals = cart.totals()
    entries = tuple(
        replace(line.entry, price=line.price, quantity=line.quantity)
        for line in totals.lines
        if line.quantity > 0
    )
    return entries, totals.total


def validate_meta(total: Decimal, meta: OrderMeta) -> OrderMeta:
    if meta.display_currency is not None and meta.display_currency not in CURRENCIES:
        raise ValidationError(f"Unsupported currency {meta.display_currency}.")
    bnpl.validate_choice(total, meta.bnpl_months)
    return meta


def prepare(
    cart: Cart, meta: Optional[OrderMeta] = None
) -> Tuple[Tuple[CartEntry, ...], Decimal, OrderMeta]:
    """Everything checked before the first write."""
    entries, total = order_lines(cart)
    if not entries:
        raise EmptyCartError()
    return entries, total, validate_meta(total, meta or OrderMeta())


async def place_order(
    uid: int,
    cart_store: CartStore,
    meta: Optional[OrderMeta] = None,
    when: Optional[datetime] = None,
    claimed_total=None,
) -> PlacedOrder:
    """
    Direct checkout. claimed_total, if the caller sends one, is never used;
    a mismatch is only logged.
    """
    entries, total, meta = prepare(cart_store.snapshot(), meta)
    if claimed_total is not None and money(claimed_total) != total:
        _logger.warning(
            f"Client total {claimed_total} ignored for user {uid}, recomputed {total}"
        )
    return await persist_order(uid, cart_store, entries, total, meta, when)


async def persist_order(
    uid: int,
    cart_store: CartStore,
    entries: Tuple[CartEntry, ...],
    total: Decimal,
    meta: OrderMeta,
    when: Optional[datetime] = None,
    on_step: Optional[Callable[[str], None]] = None,
) -> PlacedOrder:
    """
    Write header, lines, stock, then clear the cart. Shared by every payment path.
    on_step is told "order_persisted" once the lines are in and "stock_adjusted"
    after the decrements.
    """
    when = when or datetime.now()
    on_step = on_step or (lambda step: None)

    try:
        oid = await crud.add_order(
            uid,
            total,
            when,
            display_currency=meta.display_currency,
            bnpl_months=meta.bnpl_months,
            payment_ref=meta.payment_ref,
        )
    except sqlite3.Error as exc:
        _logger.error(f"Order insert failed for user {uid}: {exc}")
        raise OrderPersistenceError() from exc
    if not oid:
        raise OrderPersistenceError("Failed to create order.")
    _logger.info(f"Order #{oid} created for user {uid}, total {total}")

    try:
        await crud.add_order_items(oid, entries)
    except sqlite3.Error as exc:
        _logger.error(f"Order #{oid} has no items, item insert failed: {exc}")
        raise OrderItemPersistenceError(oid) from exc
    on_step("order_persisted")

    stock_failures = []
    for entry in entries:
        try:
            await crud.decrease_product_stock(entry.pid, entry.quantity)
        except sqlite3.Error:
            _logger.warning(
                f"Failed to decrease stock for product {entry.pid} (order #{oid})",
                exc_info=True,
            )
            stock_failures.append(entry.pid)
    if stock_failures:
        _logger.warning(f"Stock update errors for order #{oid}: {stock_failures}")
    on_step("stock_adjusted")

    cart_store.clear()
    _logger.info(f"Order #{oid} placed with {len(entries)} line(s)")
    return PlacedOrder(
        oid=oid, total=total, items=entries, stock_failures=tuple(stock_failures)
    )
