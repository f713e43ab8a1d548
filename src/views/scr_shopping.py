from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.widgets import DataTable, Input, Label, Select

import db.crud
from utils.messages import CartChangedMessage
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

SORT_OPTIONS = [
    ("Default", "default"),
    ("Price: low to high", "price_asc"),
    ("Price: high to low", "price_desc"),
]


def stock_label(quantity: int) -> str:
    if quantity <= 0:
        return "Out of stock"
    if quantity <= 5:
        return f"Only {quantity} left"
    return str(quantity)


class ShoppingScreen(BaseScreen):
    """
    Product browsing for customers: text search, category filter,
    price range and sort order.
    """

    # bindings here are only displayed in footer
    BINDINGS = [
        Binding("fn+shift+1", "abs(1)", "View Product", show=True, key_display="⏎"),
        Binding("escape", "abs(2)", "Exit Prod View", show=True),
    ]

    query_str = reactive("")

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(
            id="input-search", placeholder="Search by product name or ID..."
        )
        with Horizontal(id="div-filters"):
            yield Select([], prompt="All categories", id="select-category")
            yield Select(
                SORT_OPTIONS, value="default", allow_blank=False, id="select-sort"
            )
            yield Input(placeholder="Min $", id="input-min-price", type="number")
            yield Input(placeholder="Max $", id="input-max-price", type="number")
        yield DataTable(id="table-products")
        yield Label("", id="label-result-cnt")

    async def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Category", "Price", "Stock")

        categories = await db.crud.list_categories()
        self.query_one("#select-category", Select).set_options(
            [(c, c) for c in categories]
        )

        self.query_one("#input-search").focus()
        self.update_search_result()

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.query_str = message.value
        self.update_search_result()

    @on(Select.Changed)
    def handle_filter_changed(self) -> None:
        self.update_search_result()

    @work
    async def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if event.key == "enter" and self.focused == table and table.row_count:
            pid = table.get_row_at(table.cursor_row)[0]
            if await self.app.push_screen_wait(ProdDetailModal(pid)):
                self.app.post_message(CartChangedMessage())

    @on(CartChangedMessage)
    def handle_cart_changed(self) -> None:
        # stock column is live, refresh it after checkout
        self.update_search_result()

    @work(exclusive=True)
    async def update_search_result(self) -> None:
        category = self.query_one("#select-category", Select).value
        products = await db.crud.search_products(
            self.query_str,
            category="" if category == Select.BLANK else category,
            sort=self.query_one("#select-sort", Select).value,
            min_price=self.query_one("#input-min-price", Input).value,
            max_price=self.query_one("#input-max-price", Input).value,
        )

        table = self.query_one(DataTable)
        table.clear()
        table.add_rows(
            [
                (p.pid, p.name, p.category, f"${p.price}", stock_label(p.quantity))
                for p in products
            ]
        )
        self.query_one("#label-result-cnt").update(f"{len(products)} product(s)")
