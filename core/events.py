"""
Domain events for the case desk.

Immutable event objects describing state changes that already committed.
A service publishes what happened, and handlers react without the publisher
knowing who's listening.

Events carry the full domain objects so handlers don't need to re-fetch
state. The plaintext secret of an access link is never put on an event.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class CaseDeskEvent:
    """Base class for all domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(CaseDeskEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class PaymentReceived(InvoiceEvent):
    """A payment was recorded and the invoice totals updated."""
    invoice: Any = None
    payment: Any = None

    @classmethod
    def create(cls, invoice: Any, payment: Any) -> "PaymentReceived":
        return cls(invoice=invoice, payment=payment)

