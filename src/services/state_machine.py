"""
Ticket state machine.

    new -> in_progress -> waiting <-> in_progress
    any non-terminal state -> closed (terminal)

`plan_transition` validates a move and returns the field changes to persist;
it never touches storage so the rules can be checked in isolation.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from models.ticket import Ticket, TicketStatus
from utils.error_handling import InvalidTransitionError

ALLOWED_TRANSITIONS = {
    TicketStatus.NEW: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.WAITING, TicketStatus.CLOSED}),
    TicketStatus.WAITING: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CLOSED}),
    TicketStatus.CLOSED: frozenset(),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_mutable(ticket: Ticket) -> None:
    """Closed tickets only accept rating/feedback."""
    if ticket.is_closed:
        raise InvalidTransitionError(f"Ticket {ticket.ticket_number} is closed")


def plan_transition(
    ticket: Ticket,
    target: TicketStatus,
    now: datetime,
    *,
    satisfaction_rating: Optional[int] = None,
    feedback: Optional[str] = None,
    auto_closed: bool = False,
) -> Dict[str, Any]:
    """Return the changes that move `ticket` into `target` at `now`."""
    if not can_transition(ticket.status, target):
        raise InvalidTransitionError(
            f"Cannot move ticket {ticket.ticket_number} from "
            f"{ticket.status.value} to {target.value}"
        )

    changes: Dict[str, Any] = {"status": target, "updated_at": now}

    if (
        ticket.status == TicketStatus.NEW
        and target == TicketStatus.IN_PROGRESS
        and ticket.first_response_at is None
    ):
        changes["first_response_at"] = now

    if target == TicketStatus.CLOSED:
        changes["resolved_at"] = now
        if satisfaction_rating is not None:
            changes["satisfaction_rating"] = satisfaction_rating
        if feedback is not None:
            changes["feedback"] = feedback
        if auto_closed:
            changes["auto_closed"] = True
    elif satisfaction_rating is not None or feedback is not None:
        raise InvalidTransitionError("Ratings can only be given when closing a ticket")

    return changes


def plan_first_response(ticket: Ticket, now: datetime) -> Dict[str, Any]:
    """Changes for a staff reply: capture first response, leave `new` behind."""
    if ticket.status == TicketStatus.NEW:
        return plan_transition(ticket, TicketStatus.IN_PROGRESS, now)
    changes: Dict[str, Any] = {"updated_at": now}
    if ticket.first_response_at is None:
        changes["first_response_at"] = now
    return changes


def apply_changes(ticket: Ticket, changes: Dict[str, Any]) -> Ticket:
    """Build the post-write view of a ticket, re-running model validation."""
    return Ticket.model_validate({**ticket.model_dump(), **changes})
