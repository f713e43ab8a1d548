from typing import List, Optional

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, MarkdownViewer

import db.crud
from db.models import Order, OrderItem, User
from shop import bnpl
from shop.currency import BASE_CURRENCY, CurrencyConverter, format_amount
from utils.pure import format_ts, generate_markdown_table


async def render_invoice_md(
    order: Order,
    items: List[OrderItem],
    converter: CurrencyConverter,
    customer: Optional[User] = None,
) -> str:
    """
    Markdown invoice for one order. Amounts are stored in the base currency;
    the display currency and installment plan chosen at checkout are shown
    underneath the total.
    """
    md = f"### Invoice #{order.oid}\n\n"
    md += f"**Date:** {format_ts(order.created_at)}\n\n"
    if customer is not None:
        md += f"**Customer:** {customer.username} ({customer.email})\n\n"

    headers = ["#", "Product", "Unit Price", "Quantity", "Line Total"]
    rows = [
        [
            item.line_no,
            item.product_name,
            format_amount(item.price, BASE_CURRENCY),
            item.quantity,
            format_amount(item.line_total, BASE_CURRENCY),
        ]
        for item in items
    ]
    md += generate_markdown_table(headers, rows, ["c", "l", "r", "c", "r"])
    md += f"\n\n**Total:** {format_amount(order.total, BASE_CURRENCY)}"

    if order.display_currency and order.display_currency != BASE_CURRENCY:
        converted = await converter.format_converted(
            order.total, order.display_currency
        )
        md += f"\n\n**Approx. in {order.display_currency}:** {converted}"

    if order.bnpl_months:
        plan = bnpl.installment(order.total, order.bnpl_months)
        md += (
            f"\n\n**Pay later:** {plan.months} monthly payments of "
            f"{format_amount(plan.monthly_payment, BASE_CURRENCY)} (0% interest)"
        )

    if order.payment_ref:
        md += f"\n\n**Payment reference:** `{order.payment_ref}`"

    return md


class InvoiceModal(ModalScreen[None]):
    """Shows the invoice of a single order."""

    def __init__(self, oid: int) -> None:
        super().__init__()
        self._oid = oid

    def compose(self) -> ComposeResult:
        with Vertical(id="div-invoice"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Horizontal():
                yield Button("Close", id="btn-close", variant="primary")

    async def on_mount(self):
        order, items = await db.crud.get_order(self._oid)
        if order is None:
            self.notify("Order not found.", severity="error")
            self.dismiss()
            return
        customer = None
        if self.app.state.role == "admin":
            customer = await db.crud.get_user(order.uid)
        md = await render_invoice_md(order, items, self.app.state.converter, customer)
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#btn-close").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss()

    @on(Button.Pressed, "#btn-close")
    def handle_close(self):
        self.dismiss()
