from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from shop.cart import CartLine
from utils.messages import CartChangedMessage, ModeSwitchedMessage, NewOrderMessage
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal
from views.modal_invoice import InvoiceModal
from views.modal_prod_detail import ProdDetailModal


class CartItemActionEditMessage(Message):
    bubble = True


class CartItemActionRemoveMessage(Message):
    bubble = True


class CartItemActionLabel(Label):
    def action_edit(self):
        self.post_message(CartItemActionEditMessage())

    def action_remove(self):
        self.post_message(CartItemActionRemoveMessage())


class CartItemWidget(HorizontalGroup):
    def __init__(self, line: CartLine):
        super().__init__()
        self.line = line

    def compose(self):
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(self.line.entry.name, id="label-item-name")
                yield Label(f"x{self.line.quantity}", id="label-item-qty")
                yield Label(f"${self.line.price}", id="label-item-price")
                yield Label(f"${self.line.line_total}", id="label-item-total")
            with Container(id="div-actions"):
                yield CartItemActionLabel(
                    "[@click=edit()]Edit[/]", id="link-item-edit"
                )
                yield CartItemActionLabel(
                    "[@click=remove()]Remove[/]", id="link-item-remove"
                )

    @on(CartItemActionEditMessage)
    @work
    async def handle_edit_item(self):
        is_cart_changed = await self.app.push_screen_wait(
            ProdDetailModal(self.line.entry.pid)
        )
        if is_cart_changed:
            self.post_message(CartChangedMessage())

    @on(CartItemActionRemoveMessage)
    @work()
    async def handle_remove_item(self):
        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove this item from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        )

        if remove_confirmed:
            self.app.state.cart.remove_item(self.line.entry.pid)
            self.post_message(CartChangedMessage())
            self.notify("Item removed from cart.", severity="information")


class CartScreen(BaseScreen):
    """
    Session cart: edit and remove lines, clear, checkout.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Total Cart Value: $0.00", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    async def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @work(exclusive=True)  # must be exclusive, else duplicate rows can be mounted
    async def handle_cart_change(self):
        totals = self.app.state.cart.compute_totals()

        content = self.query_one("#vertscroll-content")
        if [c.line for c in content.children] == list(totals.lines):
            return

        await content.remove_children()
        await content.mount_all([CartItemWidget(line) for line in totals.lines])

        if not totals.lines:
            content.add_class("no-items")
        else:
            content.remove_class("no-items")

        self.query_one("#label-cart-total").update(
            f"Total Cart Value: ${totals.total} ({totals.item_count} items)"
        )

    @on(Button.Pressed, "#btn-clear-cart")
    @work
    async def handle_clear_cart(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        )
        if remove_confirmed:
            self.app.state.cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work
    async def handle_checkout(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        placed = await self.app.push_screen_wait(CheckoutModal())
        self.post_message(CartChangedMessage())
        if placed is None:
            return

        self.app.post_message(NewOrderMessage(placed.oid))
        await self.app.push_screen_wait(InvoiceModal(placed.oid))
