"""
Handler for PaymentReceived events.

On a recorded payment, emails the client a receipt with the owning advocate
on cc.
"""

import logging
from typing import Callable

from core.events import PaymentReceived

logger = logging.getLogger(__name__)


def handle_payment_received(notifier, ledger_db) -> Callable:
    """
    Factory that returns a PaymentReceived handler.

    Args:
        notifier: Notifier instance
        ledger_db: LedgerDatabase, used to look up who to email

    Returns:
        Handler callable that sends the receipt
    """

    def handler(event: PaymentReceived):
        invoice = event.invoice

        contacts = ledger_db.get_billing_contacts(invoice.id)
        if contacts is None:
            logger.warning(f"No billing contacts for invoice {invoice.invoice_number}")
            return

        notifier.send_payment_received(invoice, event.payment, contacts)

    return handler
