import db.crud as crud
from shop.cart import CartStore
from shop.errors import (
    InsufficientStockError,
    NotFoundError,
    OutOfStockError,
)
from utils.logger import get_logger

_logger = get_logger(__name__)


async def move_wishlist_to_cart(uid: int, cart_store: CartStore) -> int:
    """
    Put one of each wished-for product into the cart.

    Products already in the cart get one more unit if stock allows;
    out of stock products are skipped. The wishlist itself is kept.
    Returns how many units were added.
    """
    added = 0
    for item in await crud.list_wishlist(uid):
        if item.quantity <= 0:
            continue
        try:
            await cart_store.add_item(item.pid, 1)
        except (OutOfStockError, InsufficientStockError, NotFoundError) as exc:
            _logger.debug(f"wishlist pid {item.pid} skipped: {exc}")
            continue
        added += 1
    return added
