"""
Agent metrics accumulator.

The only writer of an agent's performance counters. Each closure contributes
once: the per-ticket audit record doubles as the idempotency key, and it is
committed together with the counter update.
"""

from __future__ import annotations

from typing import Optional

from models.agent import Agent, AgentCounters, AgentTicketMetric
from models.ticket import Ticket
from repositories.base import AgentDirectory
from utils.error_handling import ConcurrentUpdateConflictError
from utils.logging_config import get_logger

logger = get_logger(__name__)


def response_time_minutes(ticket: Ticket) -> float:
    """Minutes from creation to first response, 0 when nobody responded."""
    if ticket.first_response_at is None:
        return 0.0
    return (ticket.first_response_at - ticket.created_at).total_seconds() / 60


def accumulate(agent: Agent, response_minutes: float, rating: Optional[int], closed_at) -> AgentCounters:
    """Fold one closure into an agent's running counters."""
    avg = agent.avg_response_time
    samples = agent.response_time_samples
    if response_minutes > 0:
        avg = (avg * samples + response_minutes) / (samples + 1)
        samples += 1

    csat = agent.csat_score
    total_ratings = agent.total_ratings
    if rating is not None:
        total_ratings += 1
        csat = (csat * agent.total_ratings + rating) / total_ratings

    return AgentCounters(
        tickets_closed=agent.tickets_closed + 1,
        avg_response_time=avg,
        response_time_samples=samples,
        csat_score=csat,
        total_ratings=total_ratings,
        last_ticket_closed_at=closed_at,
    )


class AgentMetricsAccumulator:
    """Applies closures to agent counters with compare-and-swap retries."""

    def __init__(self, directory: AgentDirectory, max_retries: int = 3):
        self.directory = directory
        self.max_retries = max_retries

    def record_closure(self, ticket: Ticket) -> bool:
        """
        Account for a closed ticket. Returns False when there was nothing to do
        (unassigned ticket or a closure already recorded).
        """
        if not ticket.is_closed:
            raise ValueError(f"Ticket {ticket.ticket_number} is not closed")
        if not ticket.agent_id:
            logger.info("Closed ticket has no agent; skipping metrics", extra={"ticket_id": ticket.id})
            return False

        minutes = response_time_minutes(ticket)
        record = AgentTicketMetric(
            agent_id=ticket.agent_id,
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            response_time_minutes=minutes,
            satisfaction_rating=ticket.satisfaction_rating,
            time_spent=ticket.time_spent,
            closed_at=ticket.resolved_at,
        )

        for attempt in range(1, self.max_retries + 1):
            agent = self.directory.get(ticket.agent_id)
            if agent is None:
                logger.warning(
                    "Agent missing from directory; recording audit entry only",
                    extra={"ticket_id": ticket.id, "agent_id": ticket.agent_id},
                )
                return self.directory.commit_closure(record, None, None)

            counters = accumulate(agent, minutes, ticket.satisfaction_rating, ticket.resolved_at)
            try:
                committed = self.directory.commit_closure(record, counters, agent.version)
            except ConcurrentUpdateConflictError:
                logger.info(
                    "Agent counters changed concurrently; retrying",
                    extra={"agent_id": agent.id, "ticket_id": ticket.id, "attempt": attempt},
                )
                continue

            if committed:
                logger.info(
                    "Agent metrics updated",
                    extra={
                        "agent_id": agent.id,
                        "ticket_id": ticket.id,
                        "response_time_minutes": minutes,
                        "tickets_closed": counters.tickets_closed,
                        "avg_response_time": counters.avg_response_time,
                        "csat_score": counters.csat_score,
                    },
                )
            else:
                logger.info("Closure already recorded", extra={"agent_id": agent.id, "ticket_id": ticket.id})
            return committed

        raise ConcurrentUpdateConflictError(
            f"Could not update metrics for agent {ticket.agent_id} after {self.max_retries} attempts"
        )
