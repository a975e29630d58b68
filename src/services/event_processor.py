"""Reactions to ticket lifecycle events, independent of how they are delivered."""

from __future__ import annotations

from models.ticket import Ticket, TicketPriority, TicketStatus
from services.assignment_service import AssignmentService
from services.metrics_service import AgentMetricsAccumulator
from services.notification_service import NotificationService
from utils.error_handling import ConcurrentUpdateConflictError, InvalidTransitionError, NoEligibleAgentError
from utils.logging_config import get_logger

logger = get_logger(__name__)

_ALERT_PRIORITIES = (TicketPriority.HIGH, TicketPriority.URGENT)


class TicketEventProcessor:
    """Handles `ticket_created` and `ticket_updated(before, after)`."""

    def __init__(
        self,
        assignment: AssignmentService,
        accumulator: AgentMetricsAccumulator,
        notifications: NotificationService,
    ):
        self.assignment = assignment
        self.accumulator = accumulator
        self.notifications = notifications

    def ticket_created(self, ticket: Ticket) -> None:
        self.notifications.ticket_confirmation(ticket)
        if ticket.priority in _ALERT_PRIORITIES:
            self.notifications.high_priority_alert(ticket)

        if ticket.agent_id:
            return
        try:
            self.assignment.auto_assign(ticket.id, expected_version=ticket.version)
        except NoEligibleAgentError:
            logger.warning("No eligible agent; ticket stays unassigned", extra={"ticket_id": ticket.id})
        except (ConcurrentUpdateConflictError, InvalidTransitionError) as exc:
            # Someone claimed, assigned or closed it first.
            logger.info(
                "Auto-assignment skipped",
                extra={"ticket_id": ticket.id, "reason": exc.error_code},
            )

    def ticket_updated(self, before: Ticket, after: Ticket) -> None:
        if before.status != TicketStatus.CLOSED and after.status == TicketStatus.CLOSED:
            self.accumulator.record_closure(after)
