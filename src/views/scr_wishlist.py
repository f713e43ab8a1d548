from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label

import db.crud
from shop.wishlist import move_wishlist_to_cart
from utils.messages import CartChangedMessage, ModeSwitchedMessage, WishlistChangedMessage
from utils.pure import format_ts
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class WishlistScreen(BaseScreen):
    """
    Saved products ("shopping list") with a free-text note each.
    Items stay here after being moved to the cart.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield DataTable(id="table-wishlist")
        yield Label("", id="label-wishlist-cnt")
        with Horizontal(id="hort-wishlist-notes"):
            yield Input(placeholder="Note for the selected item", id="input-notes")
            yield Button("Save Note", id="btn-save-note")
        with Horizontal(id="hort-buttons"):
            yield Button("Remove", id="btn-remove")
            yield Button("Clear List", id="btn-clear", variant="error")
            yield Button("Move All to Cart", id="btn-move-all", variant="primary")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Name", "Price", "Stock", "Added", "Note")
        self.handle_reload()

    def _selected_pid(self) -> Optional[int]:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        return int(table.get_row_at(table.cursor_row)[0])

    @on(WishlistChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        items = await db.crud.list_wishlist(self.app.state.uid)

        table = self.query_one(DataTable)
        table.clear()
        for item in items:
            table.add_row(
                item.pid,
                item.name if item.visible else f"{item.name} (unavailable)",
                f"${item.price}",
                item.quantity if item.quantity > 0 else "Out of stock",
                format_ts(item.added_at) if item.added_at else "-",
                item.notes or "",
            )
        self.query_one("#label-wishlist-cnt", Label).update(f"{len(items)} item(s)")

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        row = event.data_table.get_row(event.row_key)
        self.query_one("#input-notes", Input).value = str(row[5])

    @on(Button.Pressed, "#btn-save-note")
    @work
    async def handle_save_note(self) -> None:
        pid = self._selected_pid()
        if pid is None:
            return
        notes = self.query_one("#input-notes", Input).value.strip()
        await db.crud.update_wishlist_notes(self.app.state.uid, pid, notes)
        self.notify("Note saved.")
        self.post_message(WishlistChangedMessage())

    @on(Button.Pressed, "#btn-remove")
    @work
    async def handle_remove(self) -> None:
        pid = self._selected_pid()
        if pid is None:
            self.notify("Your shopping list is empty.", severity="warning")
            return
        await db.crud.remove_from_wishlist(self.app.state.uid, pid)
        self.post_message(WishlistChangedMessage())

    @on(Button.Pressed, "#btn-clear")
    @work
    async def handle_clear(self) -> None:
        if not await db.crud.wishlist_count(self.app.state.uid):
            self.notify("Your shopping list is empty.", severity="warning")
            return
        if await self.app.push_screen_wait(
            DialogModal(
                "Remove everything from your shopping list?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            await db.crud.clear_wishlist(self.app.state.uid)
            self.post_message(WishlistChangedMessage())

    @on(Button.Pressed, "#btn-move-all")
    @work(exclusive=True, group="move")
    async def handle_move_all(self) -> None:
        added = await move_wishlist_to_cart(self.app.state.uid, self.app.state.cart)
        if added:
            self.notify(f"Added {added} item(s) to your cart.")
            self.app.post_message(CartChangedMessage())
        else:
            self.notify("Nothing could be added; items may be out of stock.",
                        severity="warning")
