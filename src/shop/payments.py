"""
Payment rails and the checkout variants that finish an order after the
processor reports success.

    CART -> PAYMENT_PENDING -> PAYMENT_CONFIRMED -> ORDER_PERSISTED
         -> STOCK_ADJUSTED -> CART_CLEARED

Two rails are modelled at their interface only:

- card rail, redirect flow: the customer pays on the processor's page and
  comes back; ``RedirectCheckout`` confirms the status (polling while it is
  pending) and places the order.
- wallet rail, two-phase flow: ``IntentCheckout.begin`` registers an intent
  for the amount, the customer approves it in the wallet, and ``complete``
  captures it and places the order.

The sandbox gateways below stand in for the real processors.
"""

from __future__ import annotations

import asyncio
import enum
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, Optional

import db.crud as crud
from shop import checkout
from shop.cart import CartEntry, CartStore
from shop.checkout import OrderMeta, PlacedOrder
from shop.currency import BASE_CURRENCY
from shop.errors import (
    OrderItemPersistenceError,
    OrderPersistenceError,
    PaymentError,
    PaymentTimeoutError,
)
from utils.logger import get_logger
from utils.pure import money

_logger = get_logger(__name__)


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"


class CheckoutState(enum.Enum):
    CART = "cart"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ORDER_PERSISTED = "order_persisted"
    STOCK_ADJUSTED = "stock_adjusted"
    CART_CLEARED = "cart_cleared"


@dataclass(frozen=True)
class PaymentSession:
    reference: str
    rail: str
    amount: Decimal
    currency: str
    redirect_url: Optional[str] = None
    client_token: Optional[str] = None


@dataclass(frozen=True)
class PaymentConfirmation:
    reference: str
    status: PaymentStatus
    amount: Decimal


class PaymentGateway(ABC):
    rail: str = ""

    @abstractmethod
    async def create_payment_session(
        self, amount: Decimal, currency: str, metadata: Dict
    ) -> PaymentSession: ...

    @abstractmethod
    async def confirm_payment(self, reference: str) -> PaymentConfirmation: ...


class IntentGateway(PaymentGateway):
    @abstractmethod
    async def capture(self, reference: str) -> PaymentConfirmation:
        """Capture an approved intent. Capturing twice must not charge twice."""


# ---------------------------
# Sandbox processors
# ---------------------------


@dataclass
class _SandboxPayment:
    amount: Decimal
    currency: str
    metadata: Dict
    status: PaymentStatus = PaymentStatus.PENDING
    approved: bool = False
    charges: int = 0


class _SandboxGateway(PaymentGateway):
    """
    In-process processor. approve()/decline() play the customer's part on
    the processor side; approve(amount=...) can settle a different amount.
    """

    prefix = "PAY"

    def __init__(self) -> None:
        self._payments: Dict[str, _SandboxPayment] = {}

    def _get(self, reference: str) -> _SandboxPayment:
        payment = self._payments.get(reference)
        if payment is None:
            raise PaymentError("Unknown payment reference.", reference)
        return payment

    def _register(self, amount: Decimal, currency: str, metadata: Dict) -> str:
        reference = f"{self.prefix}-{uuid.uuid4().hex[:12].upper()}"
        self._payments[reference] = _SandboxPayment(
            amount=money(amount), currency=currency, metadata=dict(metadata)
        )
        return reference

    def approve(self, reference: str, amount: Optional[Decimal] = None) -> None:
        payment = self._get(reference)
        payment.approved = True
        if amount is not None:
            payment.amount = money(amount)

    def decline(self, reference: str) -> None:
        payment = self._get(reference)
        payment.approved = False
        payment.status = PaymentStatus.FAILED

    def charges(self, reference: str) -> int:
        return self._get(reference).charges

    async def confirm_payment(self, reference: str) -> PaymentConfirmation:
        payment = self._get(reference)
        return PaymentConfirmation(reference, payment.status, payment.amount)


class SandboxCardGateway(_SandboxGateway):
    """Card rail: approval on the hosted page captures immediately."""

    rail = "card"
    prefix = "CARD"

    async def create_payment_session(
        self, amount: Decimal, currency: str, metadata: Dict
    ) -> PaymentSession:
        reference = self._register(amount, currency, metadata)
        return PaymentSession(
            reference=reference,
            rail=self.rail,
            amount=money(amount),
            currency=currency,
            redirect_url=f"https://sandbox.pay.local/checkout/{reference}",
        )

    def approve(self, reference: str, amount: Optional[Decimal] = None) -> None:
        super().approve(reference, amount)
        payment = self._get(reference)
        payment.status = PaymentStatus.PAID
        payment.charges = 1


class SandboxWalletGateway(_SandboxGateway, IntentGateway):
    """Wallet rail: approval only authorizes; capture() moves the money."""

    rail = "wallet"
    prefix = "WALLET"

    async def create_payment_session(
        self, amount: Decimal, currency: str, metadata: Dict
    ) -> PaymentSession:
        reference = self._register(amount, currency, metadata)
        return PaymentSession(
            reference=reference,
            rail=self.rail,
            amount=money(amount),
            currency=currency,
            client_token=uuid.uuid4().hex,
        )

    async def capture(self, reference: str) -> PaymentConfirmation:
        payment = self._get(reference)
        if payment.status is PaymentStatus.PENDING and payment.approved:
            payment.status = PaymentStatus.PAID
            payment.charges += 1
        elif payment.status is PaymentStatus.PENDING:
            payment.status = PaymentStatus.FAILED
        return PaymentConfirmation(reference, payment.status, payment.amount)


# ---------------------------
# Completion adapters
# ---------------------------


@dataclass
class PendingPayment:
    reference: str
    uid: int
    cart_store: CartStore = field(repr=False)
    amount: Decimal
    meta: OrderMeta
    state: CheckoutState = CheckoutState.PAYMENT_PENDING


class PaymentCompletion(ABC):
    """
    Shared flow for both rails. A completed reference is remembered through
    orders.payment_ref, so a repeated callback returns the order that was
    already placed instead of placing a second one.
    """

    def __init__(self, gateway: PaymentGateway, currency: str = BASE_CURRENCY) -> None:
        self.gateway = gateway
        self.currency = currency
        self._pending: Dict[str, PendingPayment] = {}
        self._lock = asyncio.Lock()

    def state_of(self, reference: str) -> CheckoutState:
        """State of an open payment. Finished, declined and cancelled ones read as CART."""
        pending = self._pending.get(reference)
        return pending.state if pending else CheckoutState.CART

    async def begin(
        self,
        uid: int,
        cart_store: CartStore,
        display_currency: Optional[str] = None,
        bnpl_months: Optional[int] = None,
    ) -> PaymentSession:
        """Register the cart total with the processor. Nothing is written locally."""
        entries, total, meta = checkout.prepare(
            cart_store.snapshot(),
            OrderMeta(display_currency=display_currency, bnpl_months=bnpl_months),
        )
        session = await self.gateway.create_payment_session(
            total, self.currency, {"uid": uid, "lines": len(entries)}
        )
        self._pending[session.reference] = PendingPayment(
            reference=session.reference,
            uid=uid,
            cart_store=cart_store,
            amount=total,
            meta=meta,
        )
        _logger.info(
            f"{self.gateway.rail} payment {session.reference} started for user {uid}: "
            f"{total} {self.currency}"
        )
        return session

    def cancel(self, reference: str) -> None:
        """Customer backed out before paying; the cart is untouched."""
        if self._pending.pop(reference, None) is not None:
            _logger.info(f"Payment {reference} cancelled")

    async def complete(self, reference: str) -> PlacedOrder:
        async with self._lock:
            return await self._complete(reference)

    @abstractmethod
    async def _confirm(self, reference: str) -> PaymentConfirmation: ...

    async def _complete(self, reference: str) -> PlacedOrder:
        try:
            existing = await crud.get_order_by_payment_ref(reference)
            items = (await crud.get_order(existing.oid))[1] if existing else []
        except sqlite3.Error as exc:
            _logger.error(f"Order lookup for payment {reference} failed: {exc}")
            raise OrderPersistenceError() from exc
        if existing is not None:
            if not items:
                # header written by an earlier attempt whose lines failed
                _logger.error(
                    f"Payment {reference} belongs to order #{existing.oid}, which has no items"
                )
                raise OrderItemPersistenceError(existing.oid)
            _logger.warning(
                f"Payment {reference} already completed as order #{existing.oid}"
            )
            self._pending.pop(reference, None)
            return PlacedOrder(
                oid=existing.oid,
                total=existing.total,
                items=tuple(
                    CartEntry(i.pid, i.product_name, i.price, i.quantity) for i in items
                ),
                duplicate=True,
            )

        pending = self._pending.get(reference)
        if pending is None:
            raise PaymentError("Unknown payment reference.", reference)

        # checked before confirming so a capture never happens for a stale cart
        entries, total, meta = checkout.prepare(
            pending.cart_store.snapshot(), pending.meta
        )
        if total != pending.amount:
            raise PaymentError("Cart changed while payment was in progress.", reference)

        confirmation = await self._confirm(reference)
        _logger.info(f"Payment {reference} reported {confirmation.status.value}")
        if confirmation.status is PaymentStatus.FAILED:
            self._pending.pop(reference, None)
            raise PaymentError("Payment was declined.", reference)
        if money(confirmation.amount) != pending.amount:
            raise PaymentError(
                "Paid amount does not match the order total.", reference
            )
        self._advance(pending, CheckoutState.PAYMENT_CONFIRMED)

        # a persistence failure leaves the state at PAYMENT_CONFIRMED
        placed = await checkout.persist_order(
            pending.uid,
            pending.cart_store,
            entries,
            total,
            replace(meta, payment_ref=reference),
            on_step=lambda step: self._advance(pending, CheckoutState(step)),
        )
        self._advance(pending, CheckoutState.CART_CLEARED)
        # done; a repeat is answered from orders.payment_ref
        self._pending.pop(reference, None)
        return placed

    @staticmethod
    def _advance(pending: PendingPayment, state: CheckoutState) -> None:
        pending.state = state
        _logger.debug(f"Payment {pending.reference} -> {state.value}")


class RedirectCheckout(PaymentCompletion):
    """Direct-capture variant: confirm the status, polling a bounded number of times."""

    def __init__(
        self,
        gateway: PaymentGateway,
        currency: str = BASE_CURRENCY,
        poll_attempts: int = 5,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__(gateway, currency)
        self.poll_attempts = max(poll_attempts, 1)
        self.poll_interval = poll_interval

    async def _confirm(self, reference: str) -> PaymentConfirmation:
        for attempt in range(1, self.poll_attempts + 1):
            confirmation = await self.gateway.confirm_payment(reference)
            if confirmation.status is not PaymentStatus.PENDING:
                return confirmation
            _logger.debug(f"Payment {reference} pending ({attempt}/{self.poll_attempts})")
            if attempt < self.poll_attempts:
                await asyncio.sleep(self.poll_interval)
        _logger.warning(f"Payment {reference} still pending, giving up")
        raise PaymentTimeoutError("Payment confirmation timed out.", reference)


class IntentCheckout(PaymentCompletion):
    """Two-phase variant: begin() creates the intent, complete() captures it."""

    gateway: IntentGateway

    def __init__(self, gateway: IntentGateway, currency: str = BASE_CURRENCY) -> None:
        super().__init__(gateway, currency)

    async def _confirm(self, reference: str) -> PaymentConfirmation:
        return await self.gateway.capture(reference)
