"""
Buy now, pay later: display-only installment plans.

Plans are interest free, so the monthly amount is simply total / months.
Nothing here creates a ledger; the chosen month count is stored on the
order for the invoice.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from shop.errors import ValidationError
from utils.pure import money

PLAN_MONTHS = (3, 6, 12)
MIN_AMOUNT = Decimal("50")


@dataclass(frozen=True)
class InstallmentPlan:
    months: int
    monthly_payment: Decimal
    total: Decimal
    interest_rate: Decimal = Decimal("0")


def qualifies(total) -> bool:
    return money(total) >= MIN_AMOUNT


def installment(total, months: int) -> InstallmentPlan:
    if months not in PLAN_MONTHS:
        raise ValidationError(
            f"Installments are available over {', '.join(map(str, PLAN_MONTHS))} months."
        )
    amount = money(total)
    return InstallmentPlan(
        months=months, monthly_payment=money(amount / months), total=amount
    )


def all_plans(total) -> List[InstallmentPlan]:
    return [installment(total, months) for months in PLAN_MONTHS]


def recommended_plan(total) -> InstallmentPlan:
    amount = money(total)
    if amount < 100:
        return installment(amount, 3)
    if amount < 300:
        return installment(amount, 6)
    return installment(amount, 12)


def validate_choice(total, months: Optional[int]) -> Optional[int]:
    """Check a customer's BNPL choice at checkout; None means paying in full."""
    if months is None:
        return None
    if not qualifies(total):
        raise ValidationError(
            f"Buy Now, Pay Later is available for purchases of {MIN_AMOUNT} and above."
        )
    return installment(total, months).months
