"""
SLA policy.

Pure functions of their inputs: the deadline is fixed at creation from the
plan tier's response window, and evaluation only compares instants.
"""

from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional

from models.ticket import SlaStatus, Ticket, TicketStatus
from utils.error_handling import ValidationError


class SlaPolicy:
    """Response-time SLA keyed by plan tier."""

    def __init__(self, response_hours: Mapping[str, float], warning_hours: float = 4.0):
        if not response_hours:
            raise ValueError("response_hours must define at least one plan tier")
        self.response_hours: Dict[str, float] = {
            tier.lower(): float(hours) for tier, hours in response_hours.items()
        }
        self.warning_window = timedelta(hours=warning_hours)

    def response_window(self, plan_tier: str) -> timedelta:
        hours = self.response_hours.get((plan_tier or "").lower())
        if hours is None:
            raise ValidationError(f"Unknown plan tier: {plan_tier}")
        return timedelta(hours=hours)

    def compute_deadline(self, created_at: datetime, plan_tier: str) -> datetime:
        return created_at + self.response_window(plan_tier)

    def evaluate(
        self,
        now: datetime,
        deadline: Optional[datetime],
        first_response_at: Optional[datetime],
        status: TicketStatus,
    ) -> SlaStatus:
        """
        Classify a ticket's first-response SLA at `now`.

        Closed tickets and tickets answered on time are always OK. An unmet SLA
        is BREACHED from the deadline onward and WARNING inside the window
        before it. Tickets without a deadline have nothing to breach.
        """
        if status == TicketStatus.CLOSED:
            return SlaStatus.OK
        if deadline is None:
            return SlaStatus.OK
        if first_response_at is not None and first_response_at <= deadline:
            return SlaStatus.OK
        if now >= deadline:
            return SlaStatus.BREACHED
        if deadline - now <= self.warning_window:
            return SlaStatus.WARNING
        return SlaStatus.OK

    def evaluate_ticket(self, ticket: Ticket, now: datetime) -> SlaStatus:
        return self.evaluate(now, ticket.sla_deadline, ticket.first_response_at, ticket.status)
