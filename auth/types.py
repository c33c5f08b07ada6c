"""Pydantic models for staff sessions."""

from datetime import datetime

from pydantic import BaseModel, Field

from core.models.actor import Actor


class Session(BaseModel):
    """An active staff session."""

    token: str = Field(..., description="Session token (opaque string)")
    actor: Actor
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime
