"""Case, hearing and comment models.

Cases and hearings are owned by the wider practice-management system; the
access-link flow only reads them and writes client comments against them.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field


class CaseRecord(BaseModel):
    """A case with the client contact details links are sent to."""

    id: UUID
    advocate_id: UUID
    case_number: str
    title: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None

    model_config = {"from_attributes": True}


class HearingRecord(BaseModel):
    """A hearing scheduled under a case."""

    id: UUID
    case_id: UUID
    hearing_date: date | None = None

    model_config = {"from_attributes": True}


class CommentAttachment(BaseModel):
    """Reference to a file already uploaded to storage."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=1024)
    file_type: str | None = Field(None, max_length=255)
    file_size: int | None = Field(None, ge=0)


class Comment(BaseModel):
    """A comment left on a case or a hearing."""

    id: UUID
    case_id: UUID | None
    hearing_id: UUID | None
    text: str
    client_name: str | None
    client_email: str | None
    access_link_id: UUID | None
    created_at: datetime
    attachments: list[CommentAttachment] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class ClientRecord(BaseModel):
    """A client of an advocate, the party invoices are raised against."""

    id: UUID
    advocate_id: UUID
    name: str
    email: str | None = None
    phone: str | None = None

    model_config = {"from_attributes": True}
