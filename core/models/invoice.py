"""Invoice and invoice payment domain models.

Amounts are Decimals with two decimal places (rupees and paise). The invoice
carries a denormalized paid_amount that always equals the sum of its live
payments; see core.services.invoice_ledger for how that is maintained.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class InvoiceStatus(str, Enum):
    """Invoice settlement status."""

    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class PaymentMode(str, Enum):
    """How the client paid."""

    CASH = "cash"
    UPI = "upi"
    BANK = "bank"
    CHEQUE = "cheque"
    OTHERS = "others"


class InvoiceCreate(BaseModel):
    """Data required to raise an invoice against a client."""

    client_id: UUID
    amount: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    due_date: datetime | None = None
    comments: str | None = Field(None, max_length=2000)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    invoice_number: str
    client_id: UUID
    advocate_id: UUID
    amount: Decimal
    paid_amount: Decimal
    status: InvoiceStatus
    due_date: datetime | None
    comments: str | None
    cancellation_reason: str | None = None
    last_reminder_at: datetime | None = None
    reminder_count: int = 0
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def remaining_amount(self) -> Decimal:
        """Balance still owed."""
        return self.amount - self.paid_amount


class PaymentCreate(BaseModel):
    """Data required to record a payment against an invoice."""

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    mode: PaymentMode
    transaction_ref: str | None = Field(None, max_length=255)
    comment: str | None = Field(None, max_length=2000)
    payment_date: datetime | None = None


class PaymentUpdate(BaseModel):
    """Correction to a recorded payment. Unset fields keep their value."""

    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    mode: PaymentMode | None = None
    transaction_ref: str | None = Field(None, max_length=255)
    comment: str | None = Field(None, max_length=2000)
    payment_date: datetime | None = None


class InvoicePayment(BaseModel):
    """A payment recorded against an invoice."""

    id: UUID
    invoice_id: UUID
    amount: Decimal
    mode: PaymentMode
    transaction_ref: str | None
    comment: str | None
    payment_date: datetime
    recorded_by: UUID
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}


class LedgerSummary(BaseModel):
    """Totals of an invoice as shown next to its payments."""

    invoice_id: UUID
    total: Decimal
    paid: Decimal
    remaining: Decimal
    status: InvoiceStatus

    @classmethod
    def of(cls, invoice: Invoice) -> "LedgerSummary":
        return cls(
            invoice_id=invoice.id,
            total=invoice.amount,
            paid=invoice.paid_amount,
            remaining=invoice.remaining_amount,
            status=invoice.status,
        )


class PaymentResult(BaseModel):
    """A payment together with the invoice totals it produced."""

    payment: InvoicePayment
    summary: LedgerSummary


class PaymentLedger(BaseModel):
    """All live payments of an invoice with its totals."""

    payments: list[InvoicePayment]
    summary: LedgerSummary


class BillingContacts(BaseModel):
    """Who hears about an invoice: the client, with the owning advocate on cc."""

    client_name: str
    client_email: str | None
    advocate_name: str | None = None
    advocate_email: str | None = None
