# provide dataclass models

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class User:
    uid: int
    username: str
    email: str
    role: str  # "customer" or "admin"
    address: str = ""
    contact: str = ""


@dataclass(frozen=True)
class Product:
    pid: int
    name: str
    category: str
    price: Decimal
    quantity: int  # units in stock, never negative
    description: str
    image: Optional[str] = None
    visible: bool = True


@dataclass(frozen=True)
class Order:
    oid: int
    uid: int
    total: Decimal
    created_at: datetime
    display_currency: Optional[str] = None
    bnpl_months: Optional[int] = None
    payment_ref: Optional[str] = None


@dataclass(frozen=True)
class OrderItem:
    oid: int
    line_no: int
    pid: int
    product_name: str
    price: Decimal  # unit price at time of order
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class WishlistItem:
    uid: int
    pid: int
    notes: Optional[str]
    added_at: datetime
    name: str
    price: Decimal
    quantity: int
    image: Optional[str]
    category: str
    visible: bool
