from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

import db.crud
from db.models import Product
from shop.cart import CartEntry
from shop.errors import ShopError
from utils.logger import get_logger
from utils.messages import CartChangedMessage, WishlistChangedMessage
from utils.pure import generate_markdown_table

_logger = get_logger(__name__)


class ProdDetailModal(ModalScreen[bool]):
    """
    prod detail, plus ordering
    Will return true of cart changed, false if not
    """

    order_qty = reactive(1)

    def __init__(self, pid: int) -> None:
        super().__init__()

        self._pid = pid

        self._prod: Product = None
        self._existing_cart_entry: CartEntry = None
        self._in_wishlist = False

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Order Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                yield Button("Save to Shopping List", id="btn-wishlist")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        self._prod = await db.crud.get_product(self._pid)
        if self._prod is None:
            self.notify("Product not found.", severity="error")
            self.dismiss(False)
            return

        table_rows = [
            ["ID", self._prod.pid],
            ["Category", self._prod.category],
            ["Price", f"${self._prod.price}"],
            ["In stock", self._prod.quantity],
        ]
        md_table_str = generate_markdown_table(
            ["Attribute", "Value"], table_rows, ["l", "l"]
        )
        md = f"### {self._prod.name}\n\n{md_table_str}\n\n{self._prod.description}\n"
        await self.query_one(MarkdownViewer).document.update(md)

        stock_cnt = self._prod.quantity
        if stock_cnt < 1:
            order_btn = self.query_one("#btn-addcart")
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"

        self.query_one("#input-order-qty").validators = [
            Number(minimum=1, maximum=max(stock_cnt, 1))
        ]

        self._existing_cart_entry = self.app.state.cart.snapshot().get(self._pid)
        if self._existing_cart_entry:
            self.order_qty = self._existing_cart_entry.quantity
            self.query_one("#btn-addcart").label = "Update Cart"

        self._in_wishlist = await db.crud.is_in_wishlist(
            self.app.state.uid, self._pid
        )
        self._sync_wishlist_btn()

        self.query_one("#input-order-qty").focus()

    def _sync_wishlist_btn(self) -> None:
        btn = self.query_one("#btn-wishlist", Button)
        btn.label = (
            "Remove from Shopping List" if self._in_wishlist else "Save to Shopping List"
        )

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    async def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    async def watch_order_qty(self, qty: int):
        if self._prod is None:
            return
        btn_sub_qty = self.query_one("#btn-sub-qty")
        btn_add_qty = self.query_one("#btn-add-qty")

        btn_sub_qty.disabled = qty <= 1
        btn_add_qty.disabled = qty >= self._prod.quantity

        self.query_one("#input-order-qty").value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-wishlist")
    @work(exclusive=True)
    async def handle_wishlist(self):
        uid = self.app.state.uid
        if self._in_wishlist:
            await db.crud.remove_from_wishlist(uid, self._pid)
            self.notify("Removed from your shopping list.")
        else:
            await db.crud.add_to_wishlist(uid, self._pid)
            self.notify("Saved to your shopping list.")
        self._in_wishlist = not self._in_wishlist
        self._sync_wishlist_btn()
        self.app.post_message(WishlistChangedMessage())

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        cart = self.app.state.cart
        try:
            if not self._existing_cart_entry:
                await cart.add_item(self._pid, self.order_qty)
                self.app.notify("Item added to cart successfully.")
            else:
                cart.update_quantity(self._pid, self.order_qty)
                self.app.notify("Updated cart item quantity.")
        except ShopError as e:
            _logger.debug(f"add to cart rejected: {e}")
            self.notify(str(e), severity="error")
            return

        self.app.post_message(CartChangedMessage())
        self.dismiss(True)
