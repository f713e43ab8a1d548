from math import ceil
from typing import Dict, List, Tuple

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, MarkdownViewer

import db.crud
from db.models import Order, OrderItem
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_ts
from views.base_screen import BaseScreen
from views.modal_invoice import render_invoice_md

PAGE_SIZE = 5


class PastOrdersScreen(BaseScreen):
    """
    Customers can browse their past orders with pagination and view details.

    Layout:
    - Markdown invoice at the top, showing the selected order.
    - Orders table below (newest first), 5 per page with Prev/Next.
    """

    # Show some hints in footer
    BINDINGS = [
        Binding("enter", "noop", "View Order Detail", show=True, key_display="⏎"),
        Binding("escape", "noop", "Back", show=True),
    ]

    page_idx = reactive(1)
    page_cnt = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Tuple[Order, List[OrderItem]]] = []
        self._by_oid: Dict[int, Tuple[Order, List[OrderItem]]] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("<", id="btn-prev")
            yield Input("1", id="input-page", type="integer")
            yield Label(" / 1", id="label-total-page-cnt")
            yield Button(">", id="btn-next")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Date", "Items", "Total ($)", "Payment")

        self.handle_refresh()

    @on(Button.Pressed, "#btn-refresh")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(NewOrderMessage)
    @work(exclusive=True, group="orders")
    async def handle_refresh(self):
        self._orders = await db.crud.list_orders_by_user(self.app.state.uid)
        self._by_oid = {order.oid: (order, items) for order, items in self._orders}
        self.page_cnt = max(ceil(len(self._orders) / PAGE_SIZE), 1)
        self.query_one("#label-total-page-cnt", Label).update(f" / {self.page_cnt}")
        if self.page_idx == 1:
            self._show_page(1)
        else:
            self.page_idx = 1

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self) -> None:
        self._update_detail_for_cursor()

    def _update_detail_for_cursor(self) -> None:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            self._render_detail(None)
            return
        row_values = table.get_row_at(table.cursor_row)
        if row_values:
            self._render_detail(int(row_values[0]))

    def watch_page_idx(self, old: int, new: int) -> None:
        self.query_one("#input-page", Input).value = str(new)
        self._show_page(new)

    def _refresh_buttons(self) -> None:
        self.query_one("#btn-prev", Button).disabled = self.page_idx <= 1
        self.query_one("#btn-next", Button).disabled = self.page_idx >= self.page_cnt
        self.query_one("#input-page", Input).validators = [
            Number(minimum=1, maximum=self.page_cnt)
        ]

    @on(Button.Pressed, "#btn-prev")
    def handle_prev(self) -> None:
        if self.page_idx > 1:
            self.page_idx -= 1

    @on(Button.Pressed, "#btn-next")
    def handle_next(self) -> None:
        if self.page_idx < self.page_cnt:
            self.page_idx += 1

    @on(Input.Changed, "#input-page")
    def handle_page_input(self, ev: Input.Changed) -> None:
        if ev.value and ev.value.isdigit():
            new_idx = max(1, min(int(ev.value), self.page_cnt))
            if new_idx != self.page_idx:
                self.page_idx = new_idx

    def _show_page(self, page: int) -> None:
        start = (page - 1) * PAGE_SIZE
        table = self.query_one(DataTable)
        table.clear()
        for order, items in self._orders[start : start + PAGE_SIZE]:
            table.add_row(
                order.oid,
                format_ts(order.created_at),
                sum(i.quantity for i in items),
                f"{order.total:.2f}",
                "Paid online" if order.payment_ref else "On delivery",
            )
        self._refresh_buttons()
        if table.row_count:
            table.cursor_coordinate = (0, 0)
        self._update_detail_for_cursor()

    @work(exclusive=True, group="detail")
    async def _render_detail(self, oid: int | None) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if oid is None or oid not in self._by_oid:
            await viewer.document.update("### Select an order to view its details.")
            return
        order, items = self._by_oid[oid]
        md = await render_invoice_md(order, items, self.app.state.converter)
        await viewer.document.update(md)
