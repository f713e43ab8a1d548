from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterator, Optional, Tuple

import db.crud as crud
from shop.errors import (
    InsufficientStockError,
    NotFoundError,
    OutOfStockError,
    ValidationError,
)
from utils.logger import get_logger
from utils.pure import money, to_int

_logger = get_logger(__name__)


@dataclass(frozen=True)
class CartEntry:
    """
    One product in the cart. name, price and image are snapshots taken
    when the product was first added; they are not refreshed later.
    """

    pid: int
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None


@dataclass(frozen=True)
class CartLine:
    entry: CartEntry
    price: Decimal
    quantity: int
    line_total: Decimal


@dataclass(frozen=True)
class CartTotals:
    lines: Tuple[CartLine, ...]
    total: Decimal

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


def compute_totals(entries) -> CartTotals:
    """
    line_total = price x quantity per entry, total = sum of line totals.
    Malformed prices or quantities count as 0 instead of poisoning the sum.
    """
    lines = []
    total = Decimal("0.00")
    for entry in entries:
        price = money(entry.price)
        qty = max(to_int(entry.quantity), 0)
        line_total = price * qty
        lines.append(CartLine(entry=entry, price=price, quantity=qty, line_total=line_total))
        total += line_total
    return CartTotals(lines=tuple(lines), total=money(total))


@dataclass(frozen=True)
class Cart:
    """Immutable cart value; at most one entry per pid, insertion ordered."""

    entries: Tuple[CartEntry, ...] = ()

    def __iter__(self) -> Iterator[CartEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def get(self, pid: int) -> Optional[CartEntry]:
        for entry in self.entries:
            if entry.pid == pid:
                return entry
        return None

    def with_entry(self, new_entry: CartEntry) -> Cart:
        if self.get(new_entry.pid) is None:
            return Cart(self.entries + (new_entry,))
        return Cart(
            tuple(new_entry if e.pid == new_entry.pid else e for e in self.entries)
        )

    def without(self, pid: int) -> Cart:
        return Cart(tuple(e for e in self.entries if e.pid != pid))

    def totals(self) -> CartTotals:
        return compute_totals(self.entries)


class CartStore:
    """
    Owns one session's cart. All changes go through the methods below,
    each of which replaces the stored Cart value in one step.

    Stock is checked on add only; update_quantity trusts the caller and the
    final check happens at checkout.
    """

    def __init__(self, cart: Optional[Cart] = None) -> None:
        self._cart = cart or Cart()

    def snapshot(self) -> Cart:
        return self._cart

    @property
    def is_empty(self) -> bool:
        return self._cart.is_empty

    def quantity_of(self, pid: int) -> int:
        entry = self._cart.get(pid)
        return to_int(entry.quantity) if entry else 0

    async def add_item(self, pid: int, quantity: int) -> CartEntry:
        qty = to_int(quantity)
        if qty <= 0:
            raise ValidationError("Please enter a valid quantity (1 or more).")

        product = await crud.get_product(pid)
        if product is None:
            raise NotFoundError("Product not found.")
        if product.quantity <= 0:
            raise OutOfStockError(f"{product.name} is out of stock.")

        # read the cart after the await so a concurrent change is not lost
        existing = self._cart.get(pid)
        existing_qty = to_int(existing.quantity) if existing else 0
        if existing_qty + qty > product.quantity:
            raise InsufficientStockError(pid, product.quantity - existing_qty)

        if existing:
            entry = replace(existing, quantity=existing_qty + qty)
        else:
            entry = CartEntry(
                pid=product.pid,
                name=product.name,
                price=product.price,
                quantity=qty,
                image=product.image,
            )
        self._cart = self._cart.with_entry(entry)
        _logger.debug(f"cart: pid {pid} -> qty {entry.quantity}")
        return entry

    def update_quantity(self, pid: int, quantity: int) -> Optional[CartEntry]:
        """Set the quantity; 0 or below removes the entry. Returns the entry kept, if any."""
        existing = self._cart.get(pid)
        if existing is None:
            raise NotFoundError("Item not found in cart.")
        qty = max(to_int(quantity), 0)
        if qty == 0:
            self._cart = self._cart.without(pid)
            return None
        entry = replace(existing, quantity=qty)
        self._cart = self._cart.with_entry(entry)
        return entry

    def remove_item(self, pid: int) -> None:
        self._cart = self._cart.without(pid)

    def clear(self) -> None:
        self._cart = Cart()

    def compute_totals(self) -> CartTotals:
        return self._cart.totals()
