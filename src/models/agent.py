"""Agent directory entries and their accumulated performance counters."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import AwareDatetime, BaseModel, Field


class AgentRole(str, Enum):
    """Roles that can be assigned tickets."""

    AGENT = "agent"
    MANAGER = "manager"


class Agent(BaseModel):
    """
    A user with role agent|manager.

    The counters below are owned by the metrics accumulator; nothing else
    writes them. `version` guards each read-modify-write of the counters.
    """

    id: str
    name: str
    email: str
    role: AgentRole = AgentRole.AGENT
    is_active: bool = True
    skills: List[str] = Field(default_factory=list)
    created_at: Optional[AwareDatetime] = None

    tickets_closed: int = 0
    avg_response_time: float = 0.0  # minutes
    response_time_samples: int = 0
    csat_score: float = 0.0
    total_ratings: int = 0
    last_ticket_closed_at: Optional[AwareDatetime] = None
    version: int = 0


class AgentCounters(BaseModel):
    """The slice of Agent written by one closure."""

    tickets_closed: int
    avg_response_time: float
    response_time_samples: int
    csat_score: float
    total_ratings: int
    last_ticket_closed_at: AwareDatetime


class AgentTicketMetric(BaseModel):
    """Append-only audit record written once per closed ticket."""

    agent_id: str
    ticket_id: str
    ticket_number: str
    response_time_minutes: float
    satisfaction_rating: Optional[int] = None
    time_spent: int = 0
    closed_at: AwareDatetime
