from typing import List, Optional, Tuple

from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import DataTable, MarkdownViewer

import db.crud as crud
from db.models import Order, OrderItem, User
from shop.errors import AccessDeniedError
from utils.logger import get_logger
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_ts, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_invoice import InvoiceModal

_logger = get_logger(__name__)

LOW_STOCK_THRESHOLD = 5


class AdminDashboardScreen(BaseScreen):
    """
    Admin overview: headline counts, products running low, and every
    order in the system. Enter on an order opens its invoice.
    """

    BINDINGS = [
        Binding("fn+shift+1", "abs(1)", "View Invoice", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Tuple[Order, Optional[User], List[OrderItem]]] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="hort-dashboard"):
                yield MarkdownViewer(id="md-stats", show_table_of_contents=False)
                yield MarkdownViewer(id="md-low-stock", show_table_of_contents=False)
            yield DataTable(id="table-all-orders")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Date", "Customer", "Items", "Total ($)")

        self.handle_reload()

    @on(NewOrderMessage)
    @on(ScreenResume)
    @on(ModeSwitchedMessage)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        try:
            self.app.state.require_role("admin")
        except AccessDeniedError as e:
            _logger.warning(f"dashboard refused for user {self.app.state.uid}")
            self.notify(str(e), severity="error")
            return

        stats = await crud.dashboard_stats(LOW_STOCK_THRESHOLD)
        products = await crud.list_products(include_hidden=True)
        self._orders = await crud.list_all_orders()

        revenue = sum((order.total for order, _, _ in self._orders), 0)
        stats_md = (
            "### Store Overview\n\n"
            f"- Products: {stats['total_products']}\n"
            f"- Low stock (under {LOW_STOCK_THRESHOLD}): {stats['low_stock_count']}\n"
            f"- Users: {stats['total_users']} ({stats['admin_count']} admin)\n"
            f"- Orders: {len(self._orders)}\n"
            f"- Revenue: ${revenue:.2f}\n"
        )
        await self.query_one("#md-stats", MarkdownViewer).document.update(stats_md)

        low = [p for p in products if p.quantity < LOW_STOCK_THRESHOLD]
        low_md = "### Low Stock\n\n"
        if low:
            low_md += generate_markdown_table(
                ["PID", "Name", "Stock"],
                [[p.pid, p.name, p.quantity] for p in low],
                ["r", "l", "r"],
            )
        else:
            low_md += "All products are well stocked."
        await self.query_one("#md-low-stock", MarkdownViewer).document.update(low_md)

        self._fill_orders_table()

    def _fill_orders_table(self) -> None:
        table = self.query_one(DataTable)
        table.clear()
        for order, user, items in self._orders:
            table.add_row(
                order.oid,
                format_ts(order.created_at),
                user.username if user else f"UID {order.uid}",
                sum(i.quantity for i in items),
                f"{order.total:.2f}",
            )

    @work
    async def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if event.key == "enter" and self.focused == table and table.row_count:
            oid = int(table.get_row_at(table.cursor_row)[0])
            await self.app.push_screen_wait(InvoiceModal(oid))
