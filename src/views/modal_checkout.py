from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, MarkdownViewer, Select

from shop import bnpl
from shop.checkout import INVENTORY_NOTICE, OrderMeta, PlacedOrder, place_order
from shop.currency import BASE_CURRENCY, available_currencies, format_amount
from shop.errors import OrderItemPersistenceError, ShopError
from shop.payments import PaymentCompletion
from utils.logger import get_logger
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal

_logger = get_logger(__name__)

PAYMENT_METHODS = [
    ("Pay on delivery", "direct"),
    ("Credit / debit card", "card"),
    ("Digital wallet", "wallet"),
]


class CheckoutModal(ModalScreen[Optional[PlacedOrder]]):
    """
    Order summary plus payment options.
    Returns the placed order on success, None if nothing was placed
    (the cart is left as it was).
    """

    def __init__(self):
        super().__init__()
        self._total = None

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            with Horizontal(id="div-checkout-options"):
                with Vertical():
                    yield Label("Payment Method")
                    yield Select(
                        PAYMENT_METHODS,
                        value="direct",
                        allow_blank=False,
                        id="select-payment",
                    )
                with Vertical():
                    yield Label("Display Currency")
                    yield Select(
                        [
                            (f"{code} ({symbol})", code)
                            for code, _, symbol in available_currencies()
                        ],
                        value=BASE_CURRENCY,
                        allow_blank=False,
                        id="select-currency",
                    )
                with Vertical():
                    yield Label("Pay Later")
                    yield Select(
                        [("Pay in full", 0)],
                        value=0,
                        allow_blank=False,
                        id="select-bnpl",
                    )
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        totals = self.app.state.cart.compute_totals()
        self._total = totals.total

        bnpl_select = self.query_one("#select-bnpl", Select)
        if bnpl.qualifies(self._total):
            recommended = bnpl.recommended_plan(self._total).months
            bnpl_select.set_options(
                [("Pay in full", 0)]
                + [
                    (
                        f"{p.months} x {format_amount(p.monthly_payment, BASE_CURRENCY)}"
                        + (" (recommended)" if p.months == recommended else ""),
                        p.months,
                    )
                    for p in bnpl.all_plans(self._total)
                ]
            )
            bnpl_select.value = 0
        else:
            bnpl_select.disabled = True

        headers = ["Product Name", "Unit Price", "Quantity", "Total Price"]
        rows = [
            [line.entry.name, line.price, line.quantity, line.line_total]
            for line in totals.lines
        ]
        md = "### Order Summary\n\n"
        md += generate_markdown_table(headers, rows, ["l", "c", "c", "c"])
        md += f"\n\n**Total:** {format_amount(self._total, BASE_CURRENCY)}"
        if not bnpl.qualifies(self._total):
            md += (
                f"\n\nPay later is available for orders of "
                f"{format_amount(bnpl.MIN_AMOUNT, BASE_CURRENCY)} and above."
            )
        await self.query_one(MarkdownViewer).document.update(md)
        self.query_one("#btn-submit").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _meta(self) -> OrderMeta:
        currency = self.query_one("#select-currency", Select).value
        months = self.query_one("#select-bnpl", Select).value
        return OrderMeta(display_currency=currency, bnpl_months=months or None)

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Place order? This cannot be undone.",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        method = self.query_one("#select-payment", Select).value
        state = self.app.state
        try:
            if method == "direct":
                placed = await place_order(state.uid, state.cart, self._meta())
            else:
                completion = (
                    state.card_checkout if method == "card" else state.wallet_checkout
                )
                placed = await self._pay_and_complete(completion)
                if placed is None:
                    return
        except OrderItemPersistenceError as e:
            _logger.error(f"order #{e.oid} left without lines")
            self.notify(str(e), severity="error")
            self.dismiss(None)
            return
        except ShopError as e:
            self.notify(str(e), severity="error")
            self.dismiss(None)
            return

        self.notify(f"Order placed. Your order number is {placed.oid}.")
        if placed.inventory_warning:
            self.notify(INVENTORY_NOTICE, severity="warning")
        self.dismiss(placed)

    async def _pay_and_complete(
        self, completion: PaymentCompletion
    ) -> Optional[PlacedOrder]:
        """
        Hands the total to the payment rail, then waits on the customer.
        The sandbox stands in for the processor's hosted page, so approving
        here is what the customer would do there.
        """
        meta = self._meta()
        session = await completion.begin(
            self.app.state.uid,
            self.app.state.cart,
            display_currency=meta.display_currency,
            bnpl_months=meta.bnpl_months,
        )
        approved = await self.app.push_screen_wait(
            DialogModal(
                f"Pay {format_amount(session.amount, session.currency)} "
                f"with {session.rail}?",
                primary_text="Pay",
                secondary_text="Cancel",
                tone="positive",
                detail=f"Reference: {session.reference}",
            )
        )
        if not approved:
            completion.cancel(session.reference)
            self.notify("Payment cancelled. Your cart was kept.", severity="warning")
            return None

        completion.gateway.approve(session.reference)
        return await completion.complete(session.reference)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
