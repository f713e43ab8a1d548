"""
Errors raised by the cart, checkout and payment layers.

Every error carries a message fit to show the customer as-is.
"""

from typing import Optional


class ShopError(Exception):
    """Base class for everything the shop layer raises on purpose."""


class ValidationError(ShopError):
    pass


class NotFoundError(ShopError):
    pass


class OutOfStockError(ShopError):
    pass


class InsufficientStockError(ShopError):
    def __init__(self, pid: int, available: int):
        self.pid = pid
        self.available = max(available, 0)
        super().__init__(
            f"Requested quantity exceeds stock. Only {self.available} left available."
        )


class EmptyCartError(ShopError):
    def __init__(self, message: str = "Cart is empty."):
        super().__init__(message)


class OrderPersistenceError(ShopError):
    def __init__(self, message: str = "Unable to place order."):
        super().__init__(message)


class OrderItemPersistenceError(ShopError):
    """
    The order header was written but its lines were not.
    The header is left behind as an orphan with zero items.
    """

    def __init__(self, oid: int, message: str = "Unable to save order items."):
        self.oid = oid
        super().__init__(message)


class PaymentError(ShopError):
    def __init__(self, message: str, reference: Optional[str] = None):
        self.reference = reference
        super().__init__(message)


class PaymentTimeoutError(PaymentError):
    pass


class AccessDeniedError(ShopError):
    def __init__(self, message: str = "Access denied."):
        super().__init__(message)
