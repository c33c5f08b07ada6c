"""
Outbound client emails.

Every send is fire-and-forget from the caller's point of view: gateway
failures are logged and reported as False, never raised, so a committed link
or payment is never undone by an unreachable mail server.
"""

import html
import logging
from datetime import datetime
from typing import Callable

from clients.email_client import EmailAttachment, EmailGatewayClient, EmailGatewayError
from core.models import AccessLink, BillingContacts, CaseRecord, Invoice, InvoicePayment, InvoiceStatus
from core.money import format_inr
from utils.timezone import format_local_date

logger = logging.getLogger(__name__)

# render(template_name, data) -> PDF bytes
PdfRenderer = Callable[[str, dict], bytes]

_STATUS_LABELS = {
    InvoiceStatus.PAID: "Fully Paid",
    InvoiceStatus.PARTIALLY_PAID: "Partially Paid",
    InvoiceStatus.UNPAID: "Unpaid",
    InvoiceStatus.CANCELLED: "Cancelled",
}


def _esc(value) -> str:
    return html.escape(str(value)) if value is not None else ""


def _wrap(heading: str, body: str, signature: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: auto;">'
        f'<h2 style="text-align: center;">{_esc(heading)}</h2>'
        f"{body}"
        f'<p style="margin-top: 30px;">Best regards,<br /><strong>{_esc(signature)}</strong></p>'
        "</div>"
    )


def render_link_invitation(
    link: AccessLink,
    case: CaseRecord,
    secret: str,
    link_url: str,
    expires_in_hours: int,
    app_name: str,
) -> tuple[str, str]:
    """Subject and HTML body of the email that carries a link's secret."""
    description = f"<p><strong>Description:</strong> {_esc(link.description)}</p>" if link.description else ""
    body = (
        "<p>Dear Client,</p>"
        f"<p>You are requested to upload documents related to case <strong>{_esc(case.case_number)}</strong>.</p>"
        f"<p><strong>Title:</strong> {_esc(link.title)}</p>"
        f"{description}"
        f'<p><strong>Upload link:</strong> <a href="{_esc(link_url)}">{_esc(link_url)}</a></p>'
        f'<p><strong>Code:</strong> <span style="font-size: 16px; font-weight: bold;">{_esc(secret)}</span></p>'
        f"<p>This link expires in {expires_in_hours} hour(s) and can be used once.</p>"
        "<p>If you have any questions, please contact your advocate.</p>"
    )
    return "Document Upload Request", _wrap("Document Upload Request", body, app_name)


def render_payment_received(
    invoice: Invoice,
    payment: InvoicePayment,
    contacts: BillingContacts,
    app_name: str,
) -> tuple[str, str]:
    """Subject and HTML body of a payment receipt."""
    reference = (
        f"<tr><td>Transaction ID</td><td>{_esc(payment.transaction_ref)}</td></tr>"
        if payment.transaction_ref else ""
    )
    body = (
        f"<p>Dear <strong>{_esc(contacts.client_name)}</strong>,</p>"
        f"<p>We have received your payment for invoice <strong>{_esc(invoice.invoice_number)}</strong>.</p>"
        '<table style="width: 100%;">'
        f"<tr><td>Payment amount</td><td>{format_inr(payment.amount)}</td></tr>"
        f"<tr><td>Payment mode</td><td>{_esc(payment.mode.value.upper())}</td></tr>"
        f"{reference}"
        f"<tr><td>Invoice total</td><td>{format_inr(invoice.amount)}</td></tr>"
        f"<tr><td>Total paid</td><td>{format_inr(invoice.paid_amount)}</td></tr>"
        f"<tr><td>Remaining</td><td>{format_inr(invoice.remaining_amount)}</td></tr>"
        "</table>"
        f"<p><strong>Status:</strong> {_STATUS_LABELS.get(invoice.status, invoice.status.value)}</p>"
        "<p>Thank you for your payment.</p>"
    )
    return f"Payment Received - Invoice {invoice.invoice_number}", _wrap("Payment Received", body, app_name)


def render_invoice_reminder(
    invoice: Invoice,
    contacts: BillingContacts,
    now: datetime,
    app_name: str,
) -> tuple[str, str]:
    """Subject and HTML body of an overdue reminder."""
    days_overdue = max((now - invoice.due_date).days, 1)
    body = (
        f"<p>Dear {_esc(contacts.client_name)},</p>"
        f"<p>Your invoice <strong>{_esc(invoice.invoice_number)}</strong> is "
        f"<strong>{days_overdue} day(s)</strong> overdue.</p>"
        f"<p>It was due on <strong>{format_local_date(invoice.due_date)}</strong>. "
        f"The outstanding balance is <strong>{format_inr(invoice.remaining_amount)}</strong>.</p>"
        "<p>If you have already made the payment, kindly ignore this message.</p>"
    )
    return f"Invoice Overdue Reminder - {invoice.invoice_number}", _wrap("Invoice Overdue Notice", body, app_name)


class Notifier:
    """
    Sends client emails through the email gateway.

    Usage:
        notifier = Notifier(email_client, app_name="Case Desk")
        notifier.send_link_invitation(link, case, secret, url, hours)
    """

    def __init__(
        self,
        email_client: EmailGatewayClient,
        app_name: str,
        pdf_renderer: PdfRenderer | None = None,
    ):
        self._email = email_client
        self._app_name = app_name
        self._pdf_renderer = pdf_renderer

    def _send(self, to: str | None, subject: str, html_body: str, **kwargs) -> bool:
        if not to:
            logger.warning(f"No recipient for email '{subject}', skipping")
            return False
        try:
            self._email.send_email(to=to, subject=subject, html_body=html_body, **kwargs)
            return True
        except (EmailGatewayError, ValueError) as e:
            logger.error(f"Email '{subject}' to {to} failed: {e}")
            return False

    def send_link_invitation(
        self,
        link: AccessLink,
        case: CaseRecord,
        secret: str,
        link_url: str,
        expires_in_hours: int,
        creator_email: str | None = None,
    ) -> bool:
        subject, body = render_link_invitation(
            link, case, secret, link_url, expires_in_hours, self._app_name
        )
        return self._send(link.contact_email, subject, body, cc=[creator_email] if creator_email else None)

    def send_payment_received(
        self,
        invoice: Invoice,
        payment: InvoicePayment,
        contacts: BillingContacts,
    ) -> bool:
        subject, body = render_payment_received(invoice, payment, contacts, self._app_name)
        return self._send(
            contacts.client_email, subject, body,
            cc=[contacts.advocate_email] if contacts.advocate_email else None,
            sender="billing",
        )

    def send_invoice_reminder(
        self,
        invoice: Invoice,
        contacts: BillingContacts,
        now: datetime,
    ) -> bool:
        subject, body = render_invoice_reminder(invoice, contacts, now, self._app_name)

        attachments = None
        if self._pdf_renderer is not None:
            try:
                pdf = self._pdf_renderer("invoice", {
                    "invoice": invoice.model_dump(mode="json"),
                    "client": contacts.model_dump(mode="json"),
                })
                attachments = [EmailAttachment(f"{invoice.invoice_number}.pdf", pdf, "application/pdf")]
            except Exception:
                logger.exception(f"PDF render failed for invoice {invoice.invoice_number}, sending without it")

        return self._send(contacts.client_email, subject, body, attachments=attachments, sender="billing")
