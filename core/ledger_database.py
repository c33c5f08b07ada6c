"""Database operations for invoices and invoice payments.

Tables: invoices, invoice_payments, clients, admins.

Every write that touches invoice totals goes through LedgerTransaction, which
holds the invoice row lock (SELECT ... FOR UPDATE) from the read of the
current totals until commit. Payments and invoices are soft-deleted.
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, PostgresTransaction
from core.models import (
    BillingContacts,
    ClientRecord,
    Invoice,
    InvoicePayment,
    InvoiceStatus,
    PaymentMode,
)

_INVOICE_COLUMNS = """id, invoice_number, client_id, advocate_id, amount, paid_amount, status,
                      due_date, comments, cancellation_reason, last_reminder_at, reminder_count,
                      created_at, updated_at, deleted_at"""

_PAYMENT_COLUMNS = """id, invoice_id, amount, mode, transaction_ref, comment, payment_date,
                      recorded_by, created_at, updated_at, deleted_at"""


class LedgerTransaction:
    """Ledger statements that must commit together."""

    def __init__(self, tx: PostgresTransaction):
        self._tx = tx

    def lock_invoice(self, invoice_id: UUID) -> Invoice | None:
        """Read a live invoice and hold its row lock until commit."""
        row = self._tx.execute_single(
            f"""SELECT {_INVOICE_COLUMNS} FROM invoices
                WHERE id = %s AND deleted_at IS NULL
                FOR UPDATE""",
            (invoice_id,),
        )
        return Invoice.model_validate(row) if row else None

    def get_payment(self, invoice_id: UUID, payment_id: UUID) -> InvoicePayment | None:
        row = self._tx.execute_single(
            f"""SELECT {_PAYMENT_COLUMNS} FROM invoice_payments
                WHERE id = %s AND invoice_id = %s AND deleted_at IS NULL""",
            (payment_id, invoice_id),
        )
        return InvoicePayment.model_validate(row) if row else None

    def insert_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        mode: PaymentMode,
        transaction_ref: str | None,
        comment: str | None,
        payment_date: datetime,
        recorded_by: UUID,
        now: datetime,
    ) -> InvoicePayment:
        row = self._tx.execute_single(
            f"""INSERT INTO invoice_payments
                (id, invoice_id, amount, mode, transaction_ref, comment, payment_date,
                 recorded_by, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_PAYMENT_COLUMNS}""",
            (
                uuid4(), invoice_id, amount, mode.value, transaction_ref, comment,
                payment_date, recorded_by, now, now,
            ),
        )
        return InvoicePayment.model_validate(row)

    def update_payment(self, payment_id: UUID, fields: dict[str, Any], now: datetime) -> InvoicePayment:
        """Apply column updates to a payment. fields keys are column names."""
        assignments = ", ".join(f"{column} = %s" for column in fields)
        values = [value.value if isinstance(value, PaymentMode) else value for value in fields.values()]
        row = self._tx.execute_single(
            f"""UPDATE invoice_payments
                SET {assignments}, updated_at = %s
                WHERE id = %s
                RETURNING {_PAYMENT_COLUMNS}""",
            tuple(values + [now, payment_id]),
        )
        return InvoicePayment.model_validate(row)

    def soft_delete_payment(self, payment_id: UUID, now: datetime) -> None:
        self._tx.execute(
            "UPDATE invoice_payments SET deleted_at = %s, updated_at = %s WHERE id = %s",
            (now, now, payment_id),
        )

    def soft_delete_payments_for_invoice(self, invoice_id: UUID, now: datetime) -> int:
        rows = self._tx.execute(
            """UPDATE invoice_payments SET deleted_at = %s, updated_at = %s
               WHERE invoice_id = %s AND deleted_at IS NULL
               RETURNING id""",
            (now, now, invoice_id),
        )
        return len(rows)

    def count_live_payments(self, invoice_id: UUID) -> int:
        row = self._tx.execute_single(
            "SELECT COUNT(*) AS n FROM invoice_payments WHERE invoice_id = %s AND deleted_at IS NULL",
            (invoice_id,),
        )
        return int(row["n"])

    def update_invoice_totals(
        self,
        invoice_id: UUID,
        paid_amount: Decimal,
        status: InvoiceStatus,
        now: datetime,
    ) -> Invoice:
        row = self._tx.execute_single(
            f"""UPDATE invoices
                SET paid_amount = %s, status = %s, updated_at = %s
                WHERE id = %s
                RETURNING {_INVOICE_COLUMNS}""",
            (paid_amount, status.value, now, invoice_id),
        )
        return Invoice.model_validate(row)

    def cancel_invoice(self, invoice_id: UUID, reason: str | None, now: datetime) -> Invoice:
        row = self._tx.execute_single(
            f"""UPDATE invoices
                SET status = %s, cancellation_reason = %s, updated_at = %s
                WHERE id = %s
                RETURNING {_INVOICE_COLUMNS}""",
            (InvoiceStatus.CANCELLED.value, reason, now, invoice_id),
        )
        return Invoice.model_validate(row)

    def soft_delete_invoice(self, invoice_id: UUID, now: datetime) -> None:
        self._tx.execute(
            "UPDATE invoices SET deleted_at = %s, updated_at = %s WHERE id = %s",
            (now, now, invoice_id),
        )

    def next_invoice_number(self, prefix: str) -> str:
        """
        Next number in the day's sequence, e.g. INV-20250114-0003.

        Takes a transaction-scoped advisory lock on the prefix so two
        invoices created at the same moment cannot draw the same number.
        """
        self._tx.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (prefix,))
        row = self._tx.execute_single(
            """SELECT invoice_number FROM invoices
               WHERE invoice_number LIKE %s
               ORDER BY length(invoice_number) DESC, invoice_number DESC
               LIMIT 1""",
            (f"{prefix}%",),
        )

        if row is None:
            sequence = 1
        else:
            try:
                sequence = int(row["invoice_number"].split("-")[-1]) + 1
            except (ValueError, IndexError):
                sequence = 1

        return f"{prefix}{sequence:04d}"

    def insert_invoice(
        self,
        invoice_number: str,
        client_id: UUID,
        advocate_id: UUID,
        amount: Decimal,
        status: InvoiceStatus,
        due_date: datetime | None,
        comments: str | None,
        now: datetime,
    ) -> Invoice:
        row = self._tx.execute_single(
            f"""INSERT INTO invoices
                (id, invoice_number, client_id, advocate_id, amount, paid_amount, status,
                 due_date, comments, reminder_count, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, 0, %s, %s, %s, 0, %s, %s)
                RETURNING {_INVOICE_COLUMNS}""",
            (
                uuid4(), invoice_number, client_id, advocate_id, amount, status.value,
                due_date, comments, now, now,
            ),
        )
        return Invoice.model_validate(row)


class LedgerDatabase:
    """Database operations for invoices and payments."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    @contextmanager
    def transaction(self) -> Iterator[LedgerTransaction]:
        with self._db.transaction() as tx:
            yield LedgerTransaction(tx)

    def get_client(self, client_id: UUID) -> ClientRecord | None:
        row = self._db.execute_single(
            "SELECT id, advocate_id, name, email, phone FROM clients WHERE id = %s",
            (client_id,),
        )
        return ClientRecord.model_validate(row) if row else None

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        row = self._db.execute_single(
            f"SELECT {_INVOICE_COLUMNS} FROM invoices WHERE id = %s AND deleted_at IS NULL",
            (invoice_id,),
        )
        return Invoice.model_validate(row) if row else None

    def list_payments(self, invoice_id: UUID) -> list[InvoicePayment]:
        """Live payments of an invoice, oldest first."""
        rows = self._db.execute(
            f"""SELECT {_PAYMENT_COLUMNS} FROM invoice_payments
                WHERE invoice_id = %s AND deleted_at IS NULL
                ORDER BY payment_date ASC, created_at ASC""",
            (invoice_id,),
        )
        return [InvoicePayment.model_validate(row) for row in rows]

    def list_invoices(
        self,
        advocate_id: UUID | None = None,
        status: InvoiceStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Invoice], int]:
        """Page of live invoices, newest first, plus the total matching count."""
        conditions = ["deleted_at IS NULL"]
        params: list = []

        if advocate_id is not None:
            conditions.append("advocate_id = %s")
            params.append(advocate_id)
        if status is not None:
            conditions.append("status = %s")
            params.append(status.value)

        where_clause = " AND ".join(conditions)

        total = self._db.execute_scalar(
            f"SELECT COUNT(*) FROM invoices WHERE {where_clause}",
            tuple(params),
        )
        rows = self._db.execute(
            f"""SELECT {_INVOICE_COLUMNS} FROM invoices
                WHERE {where_clause}
                ORDER BY created_at DESC
                LIMIT %s OFFSET %s""",
            tuple(params + [limit, offset]),
        )
        return [Invoice.model_validate(row) for row in rows], int(total or 0)

    def get_billing_contacts(self, invoice_id: UUID) -> BillingContacts | None:
        row = self._db.execute_single(
            """SELECT cl.name AS client_name, cl.email AS client_email,
                      a.name AS advocate_name, a.email AS advocate_email
               FROM invoices i
               JOIN clients cl ON cl.id = i.client_id
               LEFT JOIN admins a ON a.id = i.advocate_id
               WHERE i.id = %s""",
            (invoice_id,),
        )
        return BillingContacts.model_validate(row) if row else None

    def list_due_for_reminder(self, now: datetime, reminded_before: datetime, limit: int) -> list[Invoice]:
        """Overdue, unsettled invoices not reminded since reminded_before."""
        rows = self._db.execute(
            f"""SELECT {_INVOICE_COLUMNS} FROM invoices
                WHERE deleted_at IS NULL
                  AND status IN ('UNPAID', 'PARTIALLY_PAID')
                  AND due_date IS NOT NULL AND due_date < %s
                  AND (last_reminder_at IS NULL OR last_reminder_at < %s)
                ORDER BY due_date ASC
                LIMIT %s""",
            (now, reminded_before, limit),
        )
        return [Invoice.model_validate(row) for row in rows]

    def record_reminder(self, invoice_id: UUID, now: datetime) -> Invoice | None:
        rows = self._db.execute_returning(
            f"""UPDATE invoices
                SET last_reminder_at = %s, reminder_count = reminder_count + 1, updated_at = %s
                WHERE id = %s AND deleted_at IS NULL
                RETURNING {_INVOICE_COLUMNS}""",
            (now, now, invoice_id),
        )
        return Invoice.model_validate(rows[0]) if rows else None
