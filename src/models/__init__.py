"""Pydantic models for tickets, messages, agents, metrics and API payloads."""

from models.agent import Agent, AgentCounters, AgentRole, AgentTicketMetric  # noqa: F401
from models.message import Message, MessageCreateRequest, SenderRole  # noqa: F401
from models.metrics import AgentDayMetrics, DailyMetric, SweepReport  # noqa: F401
from models.response import ApiResponse  # noqa: F401
from models.ticket import (  # noqa: F401
    SlaStatus,
    Ticket,
    TicketCreateRequest,
    TicketPriority,
    TicketQuery,
    TicketStatus,
)
