"""Core domain models."""

from core.models.actor import Actor, Role
from core.models.case import CaseRecord, HearingRecord, ClientRecord, Comment, CommentAttachment
from core.models.access_link import (
    AccessLink, AccessLinkCreate, AccessLinkStatus, AccessLinkTarget,
    CaseTarget, HearingTarget, target_for,
    CreatedAccessLink, LinkSubmission, CapabilityGrant, SubmissionReceipt, PublicLinkView,
)
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceStatus,
    InvoicePayment, PaymentCreate, PaymentUpdate, PaymentMode,
    LedgerSummary, PaymentResult, PaymentLedger, BillingContacts,
)

__all__ = [
    # Actor
    "Actor", "Role",
    # Case
    "CaseRecord", "HearingRecord", "ClientRecord", "Comment", "CommentAttachment",
    # AccessLink
    "AccessLink", "AccessLinkCreate", "AccessLinkStatus", "AccessLinkTarget",
    "CaseTarget", "HearingTarget", "target_for",
    "CreatedAccessLink", "LinkSubmission", "CapabilityGrant", "SubmissionReceipt", "PublicLinkView",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceStatus",
    "InvoicePayment", "PaymentCreate", "PaymentUpdate", "PaymentMode",
    "LedgerSummary", "PaymentResult", "PaymentLedger", "BillingContacts",
]
