"""Tests for client email rendering and the Notifier."""

from decimal import Decimal
from unittest.mock import Mock
from uuid import uuid4

import pytest

from clients.email_client import EmailGatewayClient, EmailGatewayError
from core.models import AccessLink, AccessLinkStatus, BillingContacts, CaseRecord, CaseTarget
from core.notifications import (
    Notifier,
    render_invoice_reminder,
    render_link_invitation,
    render_payment_received,
)

from tests.fakes import START, make_invoice, make_payment


@pytest.fixture
def case():
    return CaseRecord(id=uuid4(), advocate_id=uuid4(), case_number="WP(C) 101/2025", client_email="ravi@example.com")


@pytest.fixture
def link(case):
    return AccessLink(
        id=uuid4(),
        target=CaseTarget(case_id=case.id),
        title="Upload <signed> affidavit",
        description=None,
        status=AccessLinkStatus.ACTIVE,
        secret_hash="$2b$10$unused",
        expires_at=START,
        created_by=case.advocate_id,
        contact_email="ravi@example.com",
        contact_phone=None,
        created_at=START,
        updated_at=START,
    )


@pytest.fixture
def contacts():
    return BillingContacts(
        client_name="Ravi Kumar",
        client_email="ravi@example.com",
        advocate_name="Adv. Meera Nair",
        advocate_email="meera@example.com",
    )


@pytest.fixture
def email_client():
    return Mock(spec=EmailGatewayClient)


class TestRendering:

    def test_invitation_carries_code_url_and_escaped_title(self, link, case):
        subject, body = render_link_invitation(
            link, case, "482913", "https://desk.example.com/links/x", 48, "Case Desk"
        )

        assert subject == "Document Upload Request"
        assert "482913" in body
        assert "https://desk.example.com/links/x" in body
        assert "48 hour(s)" in body
        assert "&lt;signed&gt;" in body
        assert "<signed>" not in body

    def test_receipt_shows_totals(self, contacts):
        invoice = make_invoice()
        payment = make_payment(invoice)

        subject, body = render_payment_received(invoice, payment, contacts, "Case Desk")

        assert subject == "Payment Received - Invoice INV-20250301-0001"
        assert "₹400.00" in body
        assert "₹600.00" in body
        assert "Partially Paid" in body
        assert "UPI-7781" in body

    def test_reminder_counts_days_overdue(self, contacts):
        invoice = make_invoice()

        subject, body = render_invoice_reminder(invoice, contacts, START, "Case Desk")

        assert subject == "Invoice Overdue Reminder - INV-20250301-0001"
        assert "5 day(s)" in body
        assert "05/03/2025" in body
        assert "₹600.00" in body


class TestNotifier:

    def test_invitation_copies_the_creator(self, email_client, link, case):
        notifier = Notifier(email_client, "Case Desk")

        assert notifier.send_link_invitation(link, case, "482913", "https://u", 24, creator_email="meera@example.com")

        kwargs = email_client.send_email.call_args.kwargs
        assert kwargs["to"] == "ravi@example.com"
        assert kwargs["cc"] == ["meera@example.com"]

    def test_gateway_failure_reports_false(self, email_client, link, case):
        email_client.send_email.side_effect = EmailGatewayError("down")
        notifier = Notifier(email_client, "Case Desk")

        assert notifier.send_link_invitation(link, case, "482913", "https://u", 24) is False

    def test_receipt_goes_from_billing_with_advocate_on_cc(self, email_client, contacts):
        invoice = make_invoice()
        notifier = Notifier(email_client, "Case Desk")

        assert notifier.send_payment_received(invoice, make_payment(invoice), contacts)

        kwargs = email_client.send_email.call_args.kwargs
        assert kwargs["sender"] == "billing"
        assert kwargs["cc"] == ["meera@example.com"]

    def test_missing_recipient_skips_send(self, email_client):
        invoice = make_invoice()
        contacts = BillingContacts(client_name="Ravi Kumar", client_email=None)

        assert Notifier(email_client, "Case Desk").send_invoice_reminder(invoice, contacts, START) is False
        email_client.send_email.assert_not_called()

    def test_reminder_attaches_rendered_pdf(self, email_client, contacts):
        renderer = Mock(return_value=b"%PDF-1.4")
        invoice = make_invoice()

        Notifier(email_client, "Case Desk", pdf_renderer=renderer).send_invoice_reminder(invoice, contacts, START)

        renderer.assert_called_once()
        assert renderer.call_args.args[0] == "invoice"
        attachment = email_client.send_email.call_args.kwargs["attachments"][0]
        assert attachment.filename == "INV-20250301-0001.pdf"
        assert attachment.content_type == "application/pdf"

    def test_reminder_still_sent_when_pdf_fails(self, email_client, contacts):
        renderer = Mock(side_effect=RuntimeError("renderer down"))

        sent = Notifier(email_client, "Case Desk", pdf_renderer=renderer).send_invoice_reminder(
            make_invoice(), contacts, START
        )

        assert sent is True
        assert email_client.send_email.call_args.kwargs["attachments"] is None
