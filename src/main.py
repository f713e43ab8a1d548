from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from utils.messages import ModeSwitchedMessage, QuitRequestedMessage, UserLogoutMessage
from utils.state import GlobalState
from views.scr_admin_dashboard import AdminDashboardScreen
from views.scr_cart import CartScreen
from views.scr_login import LoginScreen
from views.scr_past_orders import PastOrdersScreen
from views.scr_shopping import ShoppingScreen
from views.scr_wishlist import WishlistScreen


class SupermarketApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "shopping": ShoppingScreen,
        "cart": CartScreen,
        "wishlist": WishlistScreen,
        "past_orders": PastOrdersScreen,
        "admin_dash": AdminDashboardScreen,
    }

    ADMIN_MODES = {"admin_dash": "Dashboard & Orders"}
    CUSTOMER_MODES = {
        "shopping": "Shop",
        "cart": "Cart",
        "wishlist": "Shopping List",
        "past_orders": "My Orders",
    }

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/shopping.tcss",
        "styles/cart.tcss",
        "styles/orders.tcss",
    ]

    state: GlobalState

    def __init__(self):
        super().__init__()
        self.state = GlobalState()

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        self.state.end_session()
        self.notify("Logged out successfully.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        self.state.end_session()
        self.exit()

    @work
    async def main_flow(self):
        await self.push_screen_wait(LoginScreen())
        if self.state.role == "customer":
            self.app.post_message(ModeSwitchedMessage(self.app.current_mode, "shopping"))
            await self.switch_mode("shopping")
        elif self.state.role == "admin":
            self.app.post_message(
                ModeSwitchedMessage(self.app.current_mode, "admin_dash")
            )
            await self.switch_mode("admin_dash")


def run() -> None:
    SupermarketApp().run()


if __name__ == "__main__":
    run()
