"""Typed domain errors.

Every rejected operation raises a DomainError subclass. The error's kind
decides the HTTP status, its code is the machine-readable string clients
switch on, and its message names the rule that was broken so a person can
correct the input.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID


class ErrorKind(Enum):
    """Coarse error category shared by all domain errors."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    EXTERNAL_SERVICE = "external_service"


class DomainError(Exception):
    """Base class for all domain errors."""

    kind: ErrorKind = ErrorKind.CONFLICT
    code: str = "CONFLICT"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    """Referenced entity does not exist (or is deleted)."""

    kind = ErrorKind.NOT_FOUND
    code = "NOT_FOUND"


class ForbiddenError(DomainError):
    """Actor is not the owner and not a super-admin, or lacks the role."""

    kind = ErrorKind.FORBIDDEN
    code = "AUTHORIZATION_DENIED"


class InvalidInputError(DomainError, ValueError):
    """Input is malformed or missing required content."""

    kind = ErrorKind.VALIDATION
    code = "VALIDATION_ERROR"


class ConflictError(DomainError):
    """Request is well-formed but the entity's state does not allow it."""

    kind = ErrorKind.CONFLICT
    code = "CONFLICT"


class ExternalServiceError(DomainError):
    """A downstream service (email gateway, secrets store) failed."""

    kind = ErrorKind.EXTERNAL_SERVICE
    code = "SERVICE_UNAVAILABLE"


# =============================================================================
# ACCESS LINKS
# =============================================================================


class LinkInactiveError(ConflictError):
    """Link has already been used."""

    code = "LINK_INACTIVE"

    def __init__(self, link_id: UUID):
        self.link_id = link_id
        super().__init__(f"Access link {link_id} is no longer active")


class LinkExpiredError(ConflictError):
    """Link's deadline has passed."""

    code = "LINK_EXPIRED"

    def __init__(self, link_id: UUID):
        self.link_id = link_id
        super().__init__(f"Access link {link_id} has expired")


class InvalidSecretError(ConflictError):
    """Presented secret does not match the link's hash."""

    code = "INVALID_SECRET"

    def __init__(self, link_id: UUID, remaining_attempts: int | None = None):
        self.link_id = link_id
        self.remaining_attempts = remaining_attempts
        super().__init__(f"The code entered for access link {link_id} is incorrect")


class InvalidCapabilityError(ForbiddenError):
    """Capability token is malformed, expired, or scoped to another link."""

    code = "INVALID_TOKEN"


# =============================================================================
# INVOICE LEDGER
# =============================================================================


class InvoiceAlreadyPaidError(ConflictError):
    code = "INVOICE_ALREADY_PAID"

    def __init__(self, invoice_number: str):
        super().__init__(f"Invoice {invoice_number} is already fully paid")


class InvoiceCancelledError(ConflictError):
    code = "INVOICE_CANCELLED"

    def __init__(self, invoice_number: str):
        super().__init__(f"Invoice {invoice_number} is cancelled and cannot take payments")


class InvoiceHasPaymentsError(ConflictError):
    code = "INVOICE_HAS_PAYMENTS"

    def __init__(self, invoice_number: str, payment_count: int):
        self.payment_count = payment_count
        super().__init__(
            f"Invoice {invoice_number} has {payment_count} recorded payment(s); "
            f"delete with cascade to remove them too"
        )


class PaymentExceedsBalanceError(ConflictError):
    """Payment would push paid-to-date past the invoice total."""

    code = "PAYMENT_EXCEEDS_BALANCE"

    def __init__(self, amount: Decimal, remaining: Decimal, excess: Decimal):
        self.amount = amount
        self.remaining = remaining
        self.excess = excess
        super().__init__(
            f"Payment amount ({amount:.2f}) exceeds remaining amount "
            f"({remaining:.2f}) by {excess:.2f}"
        )
