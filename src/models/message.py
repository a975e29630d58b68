"""Message models (replies and internal notes attached to a ticket)."""

from enum import Enum
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, Field, field_validator


class SenderRole(str, Enum):
    """Who authored a message."""

    CUSTOMER = "customer"
    AGENT = "agent"
    MANAGER = "manager"


STAFF_ROLES = (SenderRole.AGENT, SenderRole.MANAGER)


class Message(BaseModel):
    """Immutable once created, except for the read marker."""

    id: Optional[str] = None
    ticket_id: str
    sender_id: str
    sender_name: str
    sender_role: SenderRole
    content: str
    is_internal_note: bool = False
    attachments: List[str] = Field(default_factory=list)
    created_at: AwareDatetime
    read_at: Optional[AwareDatetime] = None

    @property
    def is_staff_reply(self) -> bool:
        """A customer-visible reply written by an agent or manager."""
        return self.sender_role in STAFF_ROLES and not self.is_internal_note


class MessageCreateRequest(BaseModel):
    """Inbound payload for POST /tickets/{id}/messages."""

    sender_id: str
    sender_name: str
    sender_role: SenderRole
    content: str
    is_internal_note: bool = False
    attachments: List[str] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def validate_content(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("content must be provided")
        return cleaned

    @field_validator("is_internal_note")
    @classmethod
    def customers_cannot_write_notes(cls, value: bool, info) -> bool:
        if value and info.data.get("sender_role") == SenderRole.CUSTOMER:
            raise ValueError("customers cannot write internal notes")
        return value
