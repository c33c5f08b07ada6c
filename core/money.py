"""Currency arithmetic for the invoice ledger.

Amounts are two-decimal Decimals. Every arithmetic step is rounded half-up
to the paisa, and threshold comparisons allow EPSILON of slack so that
amounts entered as floats upstream still settle an invoice exactly.
"""

from decimal import Decimal, ROUND_HALF_UP

from core.models.invoice import InvoiceStatus

CENT = Decimal("0.01")
EPSILON = Decimal("0.01")
ZERO = Decimal("0.00")


def round2(value: Decimal | int | str) -> Decimal:
    """Quantize to two decimal places, rounding half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def derive_status(paid_amount: Decimal, amount: Decimal) -> InvoiceStatus:
    """
    Status implied by the paid-to-date total.

    Never returns CANCELLED; cancellation is an explicit owner action that
    callers must preserve themselves.
    """
    if paid_amount >= amount - EPSILON:
        return InvoiceStatus.PAID
    if paid_amount <= EPSILON:
        return InvoiceStatus.UNPAID
    return InvoiceStatus.PARTIALLY_PAID


def exceeds(candidate: Decimal, limit: Decimal) -> bool:
    """Whether candidate is over limit by more than the tolerance."""
    return candidate > limit + EPSILON


def format_inr(amount: Decimal) -> str:
    """Format an amount for display in emails and error messages."""
    return f"₹{round2(amount):,.2f}"
