"""
Invoice service: raising, reading, cancelling and deleting invoices.

Payments live in core.services.invoice_ledger. This service owns the rest of
the invoice lifecycle and the reminder bookkeeping used by the scheduler.
"""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from auth.config import LedgerConfig
from core.audit import AuditAction, AuditLogger
from core.errors import (
    ConflictError,
    ForbiddenError,
    InvoiceAlreadyPaidError,
    InvoiceHasPaymentsError,
    NotFoundError,
)
from core.ledger_database import LedgerDatabase
from core.models import Actor, Invoice, InvoiceCreate, InvoiceStatus
from core.money import ZERO, derive_status, round2
from utils.timezone import Clock

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice operations other than payments."""

    def __init__(
        self,
        ledger_db: LedgerDatabase,
        audit: AuditLogger,
        config: LedgerConfig,
        clock: Clock | None = None,
    ):
        self.ledger_db = ledger_db
        self.audit = audit
        self.config = config
        self.clock = clock or Clock()

    def create(self, data: InvoiceCreate, actor: Actor) -> Invoice:
        """
        Raise an invoice against a client.

        The invoice belongs to the client's advocate. It starts with nothing
        paid; a zero-amount invoice is therefore already PAID.

        Raises:
            NotFoundError: Client does not exist
            ForbiddenError: Client belongs to another advocate
        """
        client = self.ledger_db.get_client(data.client_id)
        if client is None:
            raise NotFoundError(f"Client {data.client_id} not found")
        if not actor.can_access(client.advocate_id):
            raise ForbiddenError(f"You do not have access to client {client.name}")

        amount = round2(data.amount)
        now = self.clock.now()
        prefix = f"{self.config.invoice_prefix}-{now.strftime('%Y%m%d')}-"

        with self.ledger_db.transaction() as tx:
            invoice = tx.insert_invoice(
                invoice_number=tx.next_invoice_number(prefix),
                client_id=client.id,
                advocate_id=client.advocate_id,
                amount=amount,
                status=derive_status(ZERO, amount),
                due_date=data.due_date,
                comments=data.comments,
                now=now,
            )

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")},
            actor_id=actor.id,
        )

        logger.info(f"Invoice {invoice.invoice_number} raised for {amount}")
        return invoice

    def get(self, invoice_id: UUID, actor: Actor) -> Invoice:
        """
        Get an invoice the actor may see.

        Raises:
            NotFoundError, ForbiddenError
        """
        invoice = self.ledger_db.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        if not actor.can_access(invoice.advocate_id):
            raise ForbiddenError(f"You do not have access to invoice {invoice.invoice_number}")
        return invoice

    def list_for_actor(
        self,
        actor: Actor,
        status: InvoiceStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Invoice], int]:
        """The actor's invoices (all invoices for a super-admin), newest first."""
        return self.ledger_db.list_invoices(
            advocate_id=None if actor.is_super_admin else actor.id,
            status=status,
            limit=limit,
            offset=offset,
        )

    def cancel(self, invoice_id: UUID, actor: Actor, reason: str | None = None) -> Invoice:
        """
        Cancel an invoice. CANCELLED is terminal and stops reminders.

        Raises:
            NotFoundError, ForbiddenError
            InvoiceAlreadyPaidError: PAID invoices cannot be cancelled
            ConflictError: Already cancelled
        """
        with self.ledger_db.transaction() as tx:
            invoice = tx.lock_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if not actor.can_access(invoice.advocate_id):
                raise ForbiddenError(f"You do not have access to invoice {invoice.invoice_number}")
            if invoice.status is InvoiceStatus.PAID:
                raise InvoiceAlreadyPaidError(invoice.invoice_number)
            if invoice.status is InvoiceStatus.CANCELLED:
                raise ConflictError(f"Invoice {invoice.invoice_number} is already cancelled")

            updated = tx.cancel_invoice(invoice.id, reason, self.clock.now())

        self.audit.log_change(
            entity_type="invoice",
            entity_id=updated.id,
            action=AuditAction.UPDATE,
            changes={
                "status": {"old": invoice.status.value, "new": InvoiceStatus.CANCELLED.value},
                "cancellation_reason": {"old": None, "new": reason},
            },
            actor_id=actor.id,
        )

        logger.info(f"Invoice {updated.invoice_number} cancelled")
        return updated

    def delete(self, invoice_id: UUID, actor: Actor, cascade: bool = False) -> None:
        """
        Soft-delete an invoice.

        An invoice with live payments is only deleted when cascade is set, in
        which case its payments are deleted in the same transaction.

        Raises:
            NotFoundError, ForbiddenError
            InvoiceHasPaymentsError: Payments exist and cascade is not set
        """
        with self.ledger_db.transaction() as tx:
            invoice = tx.lock_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if not actor.can_access(invoice.advocate_id):
                raise ForbiddenError(f"You do not have access to invoice {invoice.invoice_number}")

            payment_count = tx.count_live_payments(invoice.id)
            if payment_count and not cascade:
                raise InvoiceHasPaymentsError(invoice.invoice_number, payment_count)

            now = self.clock.now()
            if payment_count:
                tx.soft_delete_payments_for_invoice(invoice.id, now)
            tx.soft_delete_invoice(invoice.id, now)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.DELETE,
            changes={
                "deleted": invoice.model_dump(mode="json"),
                "payments_deleted": payment_count,
            },
            actor_id=actor.id,
        )

        logger.info(f"Invoice {invoice.invoice_number} deleted ({payment_count} payments)")

    def list_due_for_reminder(self, now: datetime | None = None) -> list[Invoice]:
        """Overdue unsettled invoices not reminded within the configured interval."""
        now = now or self.clock.now()
        return self.ledger_db.list_due_for_reminder(
            now=now,
            reminded_before=now - timedelta(days=self.config.reminder_interval_days),
            limit=self.config.reminder_batch_size,
        )

    def record_reminder_sent(self, invoice_id: UUID, now: datetime | None = None) -> Invoice | None:
        """Bump the reminder count and timestamp after a reminder went out."""
        return self.ledger_db.record_reminder(invoice_id, now or self.clock.now())
