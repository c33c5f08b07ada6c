"""
Invoice ledger: payments against an invoice and the totals they produce.

An invoice's paid_amount is the sum of its live payments. Every payment
mutation runs in one transaction that locks the invoice row, re-reads its
totals, validates, writes the payment and writes the recomputed totals, so
concurrent payments on the same invoice serialize and nothing partial is ever
committed. A failed check raises before commit and rolls the whole unit back.

Status follows paid_amount (see core.money.derive_status) except for
CANCELLED, which only an explicit cancellation sets and nothing here clears.
"""

import logging
from uuid import UUID

from core.audit import AuditAction, AuditLogger, compute_changes
from core.errors import (
    ForbiddenError,
    InvoiceAlreadyPaidError,
    InvoiceCancelledError,
    NotFoundError,
    PaymentExceedsBalanceError,
)
from core.event_bus import EventBus
from core.events import PaymentReceived
from core.ledger_database import LedgerDatabase, LedgerTransaction
from core.models import (
    Actor,
    Invoice,
    InvoiceStatus,
    LedgerSummary,
    PaymentCreate,
    PaymentLedger,
    PaymentResult,
    PaymentUpdate,
)
from core.money import ZERO, derive_status, exceeds, round2
from utils.timezone import Clock

logger = logging.getLogger(__name__)


def _next_status(invoice: Invoice, paid_amount) -> InvoiceStatus:
    if invoice.status is InvoiceStatus.CANCELLED:
        return InvoiceStatus.CANCELLED
    return derive_status(paid_amount, invoice.amount)


class InvoiceLedger:
    """Add, correct, remove and list payments on an invoice."""

    def __init__(
        self,
        ledger_db: LedgerDatabase,
        audit: AuditLogger,
        event_bus: EventBus,
        clock: Clock | None = None,
    ):
        self.ledger_db = ledger_db
        self.audit = audit
        self.event_bus = event_bus
        self.clock = clock or Clock()

    def add_payment(self, invoice_id: UUID, data: PaymentCreate, actor: Actor) -> PaymentResult:
        """
        Record a payment and update the invoice totals atomically.

        A payment may bring paid_amount up to the total plus the 0.01
        tolerance, no further.

        Raises:
            NotFoundError: Invoice does not exist
            ForbiddenError: Actor neither owns the invoice nor is a super-admin
            InvoiceAlreadyPaidError: Invoice is PAID
            InvoiceCancelledError: Invoice is CANCELLED
            PaymentExceedsBalanceError: Amount is more than what remains
        """
        amount = round2(data.amount)

        with self.ledger_db.transaction() as tx:
            invoice = self._lock_owned_invoice(tx, invoice_id, actor)

            if invoice.status is InvoiceStatus.PAID:
                raise InvoiceAlreadyPaidError(invoice.invoice_number)
            if invoice.status is InvoiceStatus.CANCELLED:
                raise InvoiceCancelledError(invoice.invoice_number)

            remaining = round2(invoice.amount - invoice.paid_amount)
            if exceeds(amount, remaining):
                raise PaymentExceedsBalanceError(amount, remaining, round2(amount - remaining))

            now = self.clock.now()
            payment = tx.insert_payment(
                invoice_id=invoice.id,
                amount=amount,
                mode=data.mode,
                transaction_ref=data.transaction_ref,
                comment=data.comment,
                payment_date=data.payment_date or now,
                recorded_by=actor.id,
                now=now,
            )

            new_paid = round2(invoice.paid_amount + amount)
            updated = tx.update_invoice_totals(invoice.id, new_paid, _next_status(invoice, new_paid), now)

        self.audit.log_change(
            entity_type="invoice_payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")},
            actor_id=actor.id,
        )
        self._audit_totals(invoice, updated, actor)

        logger.info(
            f"Payment {payment.id} of {amount} recorded on {updated.invoice_number}: "
            f"paid {updated.paid_amount}/{updated.amount} ({updated.status.value})"
        )

        self.event_bus.publish(PaymentReceived.create(invoice=updated, payment=payment))

        return PaymentResult(payment=payment, summary=LedgerSummary.of(updated))

    def update_payment(
        self,
        invoice_id: UUID,
        payment_id: UUID,
        data: PaymentUpdate,
        actor: Actor,
    ) -> PaymentResult:
        """
        Correct a recorded payment. Super-admin only.

        A changed amount shifts paid_amount by the difference; the result may
        not exceed the invoice total.

        Raises:
            ForbiddenError, NotFoundError, PaymentExceedsBalanceError
        """
        self._require_super_admin(actor, "update payments")

        fields = data.model_dump(exclude_unset=True)
        # Required columns cannot be cleared
        for column in ("amount", "mode", "payment_date"):
            if column in fields and fields[column] is None:
                del fields[column]

        with self.ledger_db.transaction() as tx:
            invoice = self._lock_owned_invoice(tx, invoice_id, actor)
            existing = tx.get_payment(invoice.id, payment_id)
            if existing is None:
                raise NotFoundError(f"Payment {payment_id} not found on invoice {invoice.invoice_number}")

            if "amount" in fields:
                fields["amount"] = round2(fields["amount"])
                new_paid = round2(invoice.paid_amount + (fields["amount"] - existing.amount))
                if exceeds(new_paid, invoice.amount):
                    remaining_for_payment = round2(invoice.amount - invoice.paid_amount + existing.amount)
                    raise PaymentExceedsBalanceError(
                        fields["amount"], remaining_for_payment, round2(new_paid - invoice.amount)
                    )
            else:
                new_paid = invoice.paid_amount

            now = self.clock.now()
            payment = tx.update_payment(existing.id, fields, now) if fields else existing
            updated = tx.update_invoice_totals(invoice.id, new_paid, _next_status(invoice, new_paid), now)

        changes = compute_changes(existing.model_dump(mode="json"), payment.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                entity_type="invoice_payment",
                entity_id=payment.id,
                action=AuditAction.UPDATE,
                changes=changes,
                actor_id=actor.id,
            )
        self._audit_totals(invoice, updated, actor)

        logger.info(f"Payment {payment.id} on {updated.invoice_number} updated")
        return PaymentResult(payment=payment, summary=LedgerSummary.of(updated))

    def delete_payment(self, invoice_id: UUID, payment_id: UUID, actor: Actor) -> LedgerSummary:
        """
        Remove a payment and take its amount off the invoice. Super-admin only.

        Status is re-derived, so a PAID invoice can fall back to
        PARTIALLY_PAID or UNPAID.

        Raises:
            ForbiddenError, NotFoundError
        """
        self._require_super_admin(actor, "delete payments")

        with self.ledger_db.transaction() as tx:
            invoice = self._lock_owned_invoice(tx, invoice_id, actor)
            existing = tx.get_payment(invoice.id, payment_id)
            if existing is None:
                raise NotFoundError(f"Payment {payment_id} not found on invoice {invoice.invoice_number}")

            now = self.clock.now()
            tx.soft_delete_payment(existing.id, now)
            new_paid = max(round2(invoice.paid_amount - existing.amount), ZERO)
            updated = tx.update_invoice_totals(invoice.id, new_paid, _next_status(invoice, new_paid), now)

        self.audit.log_change(
            entity_type="invoice_payment",
            entity_id=existing.id,
            action=AuditAction.DELETE,
            changes={"deleted": existing.model_dump(mode="json")},
            actor_id=actor.id,
        )
        self._audit_totals(invoice, updated, actor)

        logger.info(f"Payment {existing.id} removed from {updated.invoice_number}")
        return LedgerSummary.of(updated)

    def list_payments(self, invoice_id: UUID, actor: Actor) -> PaymentLedger:
        """Live payments of an invoice with its current totals. Read-only."""
        invoice = self.ledger_db.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        if not actor.can_access(invoice.advocate_id):
            raise ForbiddenError(f"You do not have access to invoice {invoice.invoice_number}")

        return PaymentLedger(
            payments=self.ledger_db.list_payments(invoice.id),
            summary=LedgerSummary.of(invoice),
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _lock_owned_invoice(self, tx: LedgerTransaction, invoice_id: UUID, actor: Actor) -> Invoice:
        invoice = tx.lock_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        if not actor.can_access(invoice.advocate_id):
            raise ForbiddenError(f"You do not have access to invoice {invoice.invoice_number}")
        return invoice

    @staticmethod
    def _require_super_admin(actor: Actor, action: str) -> None:
        if not actor.is_super_admin:
            raise ForbiddenError(f"Only super-admins can {action}")

    def _audit_totals(self, old: Invoice, new: Invoice, actor: Actor) -> None:
        changes = compute_changes(
            {"paid_amount": str(old.paid_amount), "status": old.status.value},
            {"paid_amount": str(new.paid_amount), "status": new.status.value},
        )
        if changes:
            self.audit.log_change(
                entity_type="invoice",
                entity_id=new.id,
                action=AuditAction.UPDATE,
                changes=changes,
                actor_id=actor.id,
            )
