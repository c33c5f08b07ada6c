"""Access link domain models.

An access link lets a client who is not a user of the system submit one
comment (optionally with attachments) against a case or a hearing. The link
is gated by a six digit secret that only ever exists in plaintext inside the
invitation email; the stored record carries a bcrypt hash.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from core.models.case import CommentAttachment, Comment


class AccessLinkStatus(str, Enum):
    """Link lifecycle status. EXPIRED and USED are terminal."""

    ACTIVE = "active"
    EXPIRED = "expired"
    USED = "used"

    @property
    def is_terminal(self) -> bool:
        return self is not AccessLinkStatus.ACTIVE


class CaseTarget(BaseModel):
    """Submission lands on the case itself."""

    kind: Literal["case"] = "case"
    case_id: UUID

    model_config = {"frozen": True}


class HearingTarget(BaseModel):
    """Submission lands on one hearing of the case."""

    kind: Literal["hearing"] = "hearing"
    case_id: UUID
    hearing_id: UUID

    model_config = {"frozen": True}


AccessLinkTarget = Annotated[CaseTarget | HearingTarget, Field(discriminator="kind")]


def target_for(case_id: UUID, hearing_id: UUID | None) -> CaseTarget | HearingTarget:
    """Build the target variant from the two nullable columns it is stored as."""
    if hearing_id is None:
        return CaseTarget(case_id=case_id)
    return HearingTarget(case_id=case_id, hearing_id=hearing_id)


class AccessLinkCreate(BaseModel):
    """Data required to create an access link."""

    case_id: UUID
    hearing_id: UUID | None = None
    title: str = Field(..., max_length=255)
    description: str | None = Field(None, max_length=5000)
    expires_in_hours: int = Field(..., ge=1)
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(None, max_length=32)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class AccessLink(BaseModel):
    """Full access link entity as stored."""

    id: UUID
    target: AccessLinkTarget
    title: str
    description: str | None
    status: AccessLinkStatus
    secret_hash: str = Field(..., exclude=True, repr=False)
    expires_at: datetime
    created_by: UUID
    contact_email: str
    contact_phone: str | None
    created_at: datetime
    updated_at: datetime
    used_at: datetime | None = None

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def _target_from_columns(cls, data: Any) -> Any:
        """Rows carry case_id/hearing_id columns instead of a nested target."""
        if isinstance(data, dict) and "target" not in data and "case_id" in data:
            data = dict(data)
            data["target"] = target_for(data.pop("case_id"), data.pop("hearing_id", None))
        return data

    @property
    def case_id(self) -> UUID:
        return self.target.case_id

    @property
    def hearing_id(self) -> UUID | None:
        return self.target.hearing_id if isinstance(self.target, HearingTarget) else None

    def is_past_expiry(self, now: datetime) -> bool:
        return now > self.expires_at


class CreatedAccessLink(BaseModel):
    """
    A freshly created link together with its plaintext secret.

    This is the only place the plaintext exists after generation; it is
    never written to storage and cannot be recovered from the link.
    """

    link: AccessLink
    secret: str = Field(..., repr=False)


class LinkSubmission(BaseModel):
    """What a link holder submits: comment text and/or attachment references."""

    text: str | None = Field(None, max_length=50000)
    attachments: list[CommentAttachment] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and not self.attachments


class CapabilityGrant(BaseModel):
    """Short-lived credential handed to the link holder after verification."""

    link_id: UUID
    token: str
    expires_at: datetime


class SubmissionReceipt(BaseModel):
    """Result of a successful submission through a link."""

    link_id: UUID
    comment: Comment
    submitted_at: datetime


class PublicLinkView(BaseModel):
    """What an unauthenticated visitor may see about a link."""

    id: UUID
    title: str
    description: str | None
    case_number: str
    target_kind: Literal["case", "hearing"]
    status: AccessLinkStatus
    expires_at: datetime
