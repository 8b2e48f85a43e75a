# hospital_billing/services/billing_math.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def D(x) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except Exception:
        return Decimal("0")


def money2(x) -> Decimal:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# per-unit rates keep four places, matching the unit_price column
def rate4(x) -> Decimal:
    return D(x).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price) -> Decimal:
    return D(quantity) * D(unit_price)


def sum_line_totals(totals: Iterable) -> Decimal:
    s = ZERO
    for t in totals:
        s += D(t)
    return s


def discount_amount(subtotal, discount_type: Optional[str],
                    discount_value) -> Decimal:
    """
    percentage -> subtotal * value / 100
    fixed      -> value, never more than the subtotal
    none/NULL  -> 0
    """
    subtotal = D(subtotal)
    value = D(discount_value)
    if value <= 0 or subtotal <= 0:
        return ZERO

    kind = (discount_type or "none").strip().lower()
    if kind == "percentage":
        return min(subtotal * value / HUNDRED, subtotal)
    if kind == "fixed":
        return min(value, subtotal)
    return ZERO


@dataclass(frozen=True)
class InvoiceFinancials:
    subtotal: Decimal
    discount: Decimal
    discounted_subtotal: Decimal
    tax: Decimal
    payable: Decimal
    paid: Decimal
    balance: Decimal

    def rounded(self) -> "InvoiceFinancials":
        return InvoiceFinancials(
            subtotal=money2(self.subtotal),
            discount=money2(self.discount),
            discounted_subtotal=money2(self.discounted_subtotal),
            tax=money2(self.tax),
            payable=money2(self.payable),
            paid=money2(self.paid),
            balance=money2(self.balance),
        )

    def as_dict(self) -> Dict[str, Decimal]:
        r = self.rounded()
        return {
            "subtotal": r.subtotal,
            "discount": r.discount,
            "discounted_subtotal": r.discounted_subtotal,
            "tax": r.tax,
            "payable": r.payable,
            "paid": r.paid,
            "balance": r.balance,
        }


def compute_financials(
    subtotal,
    *,
    discount_type: Optional[str] = None,
    discount_value=0,
    include_tax: bool = False,
    tax_rate=0,
    paid_amount=0,
) -> InvoiceFinancials:
    """
    Fixed order: discount -> discounted subtotal -> tax on the discounted
    subtotal -> payable -> balance.  Nothing is rounded here; call
    .rounded() when producing output.
    """
    subtotal = D(subtotal)
    disc = discount_amount(subtotal, discount_type, discount_value)
    discounted = subtotal - disc
    if discounted < 0:
        discounted = ZERO

    tax = ZERO
    rate = D(tax_rate)
    if include_tax and rate > 0:
        tax = discounted * rate / HUNDRED

    payable = discounted + tax
    paid = D(paid_amount)
    # negative balance = overpayment, reported as credit
    balance = payable - paid

    return InvoiceFinancials(
        subtotal=subtotal,
        discount=disc,
        discounted_subtotal=discounted,
        tax=tax,
        payable=payable,
        paid=paid,
        balance=balance,
    )


def invoice_financials(invoice) -> InvoiceFinancials:
    return compute_financials(
        invoice.total_amount,
        discount_type=invoice.discount_type,
        discount_value=invoice.discount_value,
        include_tax=bool(invoice.include_tax),
        tax_rate=invoice.tax_rate,
        paid_amount=invoice.paid_amount,
    )
