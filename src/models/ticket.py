"""Ticket models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, EmailStr, Field, field_validator, model_validator


class TicketStatus(str, Enum):
    """Lifecycle states; `closed` is terminal."""

    NEW = "new"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    CLOSED = "closed"


# Statuses that count toward an agent's active load.
ACTIVE_STATUSES = (TicketStatus.NEW, TicketStatus.IN_PROGRESS, TicketStatus.WAITING)


class TicketPriority(str, Enum):
    """Priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PlanTier(str, Enum):
    """Customer plan tiers known to the default SLA table."""

    STANDARD = "standard"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class SlaStatus(str, Enum):
    """Outcome of evaluating a ticket against its response deadline."""

    OK = "ok"
    WARNING = "warning"
    BREACHED = "breached"


class Ticket(BaseModel):
    """A customer support request tracked through its lifecycle."""

    id: Optional[str] = None
    ticket_number: str
    subject: str
    description: str = ""
    priority: TicketPriority = TicketPriority.MEDIUM
    status: TicketStatus = TicketStatus.NEW
    plan_tier: str = PlanTier.STANDARD.value

    customer_id: str
    customer_email: str
    customer_name: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    agent_email: Optional[str] = None

    created_at: AwareDatetime
    updated_at: AwareDatetime
    resolved_at: Optional[AwareDatetime] = None
    first_response_at: Optional[AwareDatetime] = None
    sla_deadline: Optional[AwareDatetime] = None
    last_reminder_at: Optional[AwareDatetime] = None

    time_spent: int = Field(default=0, ge=0, description="accumulated seconds")
    satisfaction_rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)
    auto_closed: bool = False

    # Optimistic-concurrency token, bumped by the store on every write.
    version: int = 0

    @model_validator(mode="after")
    def check_resolution(self) -> "Ticket":
        """resolved_at is set if and only if the ticket is closed."""
        closed = self.status == TicketStatus.CLOSED
        if closed != (self.resolved_at is not None):
            raise ValueError("resolved_at must be set exactly when status is closed")
        return self

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED


class TicketCreateRequest(BaseModel):
    """Inbound payload for POST /tickets."""

    subject: str
    description: str = ""
    priority: TicketPriority = TicketPriority.MEDIUM
    plan_tier: str = PlanTier.STANDARD.value
    customer_id: str
    customer_email: EmailStr
    customer_name: str
    agent_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list)

    @field_validator("customer_email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("subject", "customer_id", "customer_name")
    @classmethod
    def validate_required(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("subject and customer identity must be provided")
        return cleaned

    @field_validator("plan_tier")
    @classmethod
    def normalize_tier(cls, value: str) -> str:
        return (value or PlanTier.STANDARD.value).strip().lower()


class CloseTicketRequest(BaseModel):
    """Payload for POST /tickets/{id}/close."""

    satisfaction_rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None


class RateTicketRequest(BaseModel):
    """Payload for POST /tickets/{id}/feedback."""

    satisfaction_rating: int = Field(ge=1, le=5)
    feedback: Optional[str] = None


class TicketQuery(BaseModel):
    """Store-agnostic ticket filter; every adapter honours all fields."""

    customer_id: Optional[str] = None
    agent_id: Optional[str] = None
    statuses: List[TicketStatus] = Field(default_factory=list)
    priorities: List[TicketPriority] = Field(default_factory=list)
    created_from: Optional[AwareDatetime] = None
    created_before: Optional[AwareDatetime] = None
    updated_before: Optional[AwareDatetime] = None
    resolved_from: Optional[AwareDatetime] = None
    resolved_before: Optional[AwareDatetime] = None
    sla_deadline_after: Optional[AwareDatetime] = None
    sla_deadline_before: Optional[AwareDatetime] = None
    newest_first: bool = True
    limit: Optional[int] = Field(default=None, gt=0)

    def matches(self, ticket: Ticket) -> bool:
        """Evaluate the filter in memory (bounds: `from` inclusive, others exclusive)."""
        if self.customer_id and ticket.customer_id != self.customer_id:
            return False
        if self.agent_id and ticket.agent_id != self.agent_id:
            return False
        if self.statuses and ticket.status not in self.statuses:
            return False
        if self.priorities and ticket.priority not in self.priorities:
            return False
        if not _within(ticket.created_at, lower=self.created_from, upper=self.created_before):
            return False
        if self.updated_before and not ticket.updated_at < self.updated_before:
            return False
        if (self.resolved_from or self.resolved_before) and not _within(
            ticket.resolved_at, lower=self.resolved_from, upper=self.resolved_before
        ):
            return False
        if self.sla_deadline_after or self.sla_deadline_before:
            deadline = ticket.sla_deadline
            if deadline is None:
                return False
            if self.sla_deadline_after and not deadline > self.sla_deadline_after:
                return False
            if self.sla_deadline_before and not deadline < self.sla_deadline_before:
                return False
        return True


def _within(
    value: Optional[datetime],
    lower: Optional[datetime] = None,
    upper: Optional[datetime] = None,
) -> bool:
    if lower is None and upper is None:
        return True
    if value is None:
        return False
    if lower is not None and value < lower:
        return False
    if upper is not None and not value < upper:
        return False
    return True


class AssignTicketRequest(BaseModel):
    """Payload for POST /tickets/{id}/assign and /claim."""

    agent_id: str
    expected_version: Optional[int] = None


class StatusChangeRequest(BaseModel):
    """Payload for POST /tickets/{id}/status."""

    status: TicketStatus
    expected_version: Optional[int] = None


class LogTimeRequest(BaseModel):
    """Payload for POST /tickets/{id}/time."""

    seconds: int = Field(gt=0)
