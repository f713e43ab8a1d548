from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from db.models import User
from shop.cart import CartStore
from shop.currency import CurrencyConverter
from shop.errors import AccessDeniedError
from shop.payments import (
    IntentCheckout,
    RedirectCheckout,
    SandboxCardGateway,
    SandboxWalletGateway,
)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens; one instance is one
    shopping session.

    Fields:
      - uid: current logged-in user id (users.uid)
      - role: "customer" | "admin" | None if not logged in
      - cart: the session cart, only changed through CartStore methods
      - converter: display-currency converter with its rate cache
      - card_checkout / wallet_checkout: payment completion adapters
    """

    uid: Optional[int] = None
    role: Optional[Literal["customer", "admin"]] = None
    username: Optional[str] = None

    cart: CartStore = field(default_factory=CartStore)
    converter: CurrencyConverter = field(default_factory=CurrencyConverter)
    card_checkout: RedirectCheckout = field(
        default_factory=lambda: RedirectCheckout(SandboxCardGateway())
    )
    wallet_checkout: IntentCheckout = field(
        default_factory=lambda: IntentCheckout(SandboxWalletGateway())
    )

    def start_session(self, user: User) -> None:
        """Bind the logged-in user. The cart starts empty for every login."""
        self.uid = user.uid
        self.role = user.role
        self.username = user.username
        self.cart = CartStore()

    def end_session(self) -> None:
        """
        Forget the user and the cart.
        This is only called upon logging out
        """
        self.uid = None
        self.role = None
        self.username = None
        self.cart = CartStore()

    def require_role(self, role: str) -> None:
        if self.uid is None or self.role != role:
            raise AccessDeniedError()
