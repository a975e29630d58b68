"""
Ticket lifecycle commands.

TicketService is the only writer of lifecycle fields. Each command reads the
ticket, plans the change through the state machine and writes it with the
version it read, so a concurrent writer turns into a conflict rather than a
lost update. Listeners receive `ticket_created` / `ticket_updated` afterwards.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol

from models.agent import Agent
from models.ticket import Ticket, TicketCreateRequest, TicketQuery, TicketStatus
from repositories.base import AgentDirectory, TicketStore
from services.sla_policy import SlaPolicy
from services.state_machine import apply_changes, ensure_mutable, plan_transition
from utils.clock import Clock
from utils.error_handling import (
    AppError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from utils.identifiers import generate_ticket_number
from utils.logging_config import get_logger

logger = get_logger(__name__)


class TicketListener(Protocol):
    def ticket_created(self, ticket: Ticket) -> None:
        ...

    def ticket_updated(self, before: Ticket, after: Ticket) -> None:
        ...


class TicketService:
    """Create, assign, transition, close and rate tickets."""

    def __init__(
        self,
        store: TicketStore,
        directory: AgentDirectory,
        sla_policy: SlaPolicy,
        clock: Clock,
        rating_window: timedelta = timedelta(days=7),
    ):
        self.store = store
        self.directory = directory
        self.sla_policy = sla_policy
        self.clock = clock
        self.rating_window = rating_window
        self._listeners: List[TicketListener] = []

    def subscribe(self, listener: TicketListener) -> None:
        """Deliver events in-process (used when EVENT_DELIVERY=inline)."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------ reads

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.store.get(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    def list_tickets(self, query: Optional[TicketQuery] = None) -> List[Ticket]:
        return self.store.query(query or TicketQuery())

    # --------------------------------------------------------------- commands

    def create_ticket(self, request: TicketCreateRequest) -> Ticket:
        now = self.clock.now()
        ticket = Ticket(
            ticket_number=generate_ticket_number(now),
            subject=request.subject,
            description=request.description,
            priority=request.priority,
            status=TicketStatus.NEW,
            plan_tier=request.plan_tier,
            customer_id=request.customer_id,
            customer_email=request.customer_email,
            customer_name=request.customer_name,
            created_at=now,
            updated_at=now,
            sla_deadline=self.sla_policy.compute_deadline(now, request.plan_tier),
            tags=request.tags,
            attachments=request.attachments,
        )
        if request.agent_id:
            agent = self._active_agent(request.agent_id)
            ticket = ticket.model_copy(
                update={"agent_id": agent.id, "agent_name": agent.name, "agent_email": agent.email}
            )

        created = self.store.create(ticket)
        logger.info(
            "Ticket created",
            extra={
                "ticket_id": created.id,
                "ticket_number": created.ticket_number,
                "priority": created.priority.value,
                "plan_tier": created.plan_tier,
            },
        )
        self._publish_created(created)
        return created

    def assign_ticket(
        self,
        ticket_id: str,
        agent_id: str,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        """
        Assign (or reassign) a ticket to an active agent.

        A `new` ticket moves to `in_progress` and records its first response;
        active tickets keep their status. Claiming is assigning to yourself.
        """
        ticket = self.get_ticket(ticket_id)
        ensure_mutable(ticket)
        agent = self._active_agent(agent_id)
        now = self.clock.now()

        changes: Dict[str, Any] = {
            "agent_id": agent.id,
            "agent_name": agent.name,
            "agent_email": agent.email,
            "updated_at": now,
        }
        if ticket.status == TicketStatus.NEW:
            changes.update(plan_transition(ticket, TicketStatus.IN_PROGRESS, now))
        return self._write(ticket, changes, expected_version, "Ticket assigned")

    def change_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        if status == TicketStatus.CLOSED:
            return self.close_ticket(ticket_id, expected_version=expected_version)
        ticket = self.get_ticket(ticket_id)
        changes = plan_transition(ticket, status, self.clock.now())
        return self._write(ticket, changes, expected_version, "Ticket status changed")

    def close_ticket(
        self,
        ticket_id: str,
        satisfaction_rating: Optional[int] = None,
        feedback: Optional[str] = None,
        auto_closed: bool = False,
        expected_version: Optional[int] = None,
    ) -> Ticket:
        ticket = self.get_ticket(ticket_id)
        changes = plan_transition(
            ticket,
            TicketStatus.CLOSED,
            self.clock.now(),
            satisfaction_rating=satisfaction_rating,
            feedback=feedback,
            auto_closed=auto_closed,
        )
        return self._write(ticket, changes, expected_version, "Ticket closed")

    def rate_ticket(self, ticket_id: str, satisfaction_rating: int, feedback: Optional[str] = None) -> Ticket:
        """Attach a rating after closure (once, within the rating window)."""
        ticket = self.get_ticket(ticket_id)
        if not ticket.is_closed:
            raise InvalidTransitionError("Only closed tickets can be rated")
        if ticket.satisfaction_rating is not None:
            raise InvalidTransitionError(f"Ticket {ticket.ticket_number} is already rated")
        now = self.clock.now()
        if now - ticket.resolved_at > self.rating_window:
            raise InvalidTransitionError(f"Rating window for ticket {ticket.ticket_number} has passed")

        changes: Dict[str, Any] = {"satisfaction_rating": satisfaction_rating, "updated_at": now}
        if feedback is not None:
            changes["feedback"] = feedback
        return self._write(ticket, changes, None, "Ticket rated")

    def log_time(self, ticket_id: str, seconds: int) -> Ticket:
        if seconds <= 0:
            raise ValidationError("seconds must be positive")
        ticket = self.get_ticket(ticket_id)
        ensure_mutable(ticket)
        changes = {"time_spent": ticket.time_spent + seconds, "updated_at": self.clock.now()}
        return self._write(ticket, changes, None, "Time logged")

    def apply(self, ticket: Ticket, changes: Dict[str, Any], message: str) -> Ticket:
        """Write pre-planned changes for `ticket` (used by the message service)."""
        return self._write(ticket, changes, None, message)

    # ---------------------------------------------------------------- helpers

    def _active_agent(self, agent_id: str) -> Agent:
        agent = self.directory.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        if not agent.is_active:
            raise ValidationError(f"Agent {agent_id} is not active")
        return agent

    def _write(
        self,
        ticket: Ticket,
        changes: Dict[str, Any],
        expected_version: Optional[int],
        message: str,
    ) -> Ticket:
        # Validate the post-write view before touching the store.
        apply_changes(ticket, changes)
        version = ticket.version if expected_version is None else expected_version
        after = self.store.update(ticket.id, changes, expected_version=version)
        logger.info(
            message,
            extra={
                "ticket_id": ticket.id,
                "from_status": ticket.status.value,
                "to_status": after.status.value,
                "agent_id": after.agent_id,
                "version": after.version,
            },
        )
        self._publish_updated(ticket, after)
        return after

    def _publish_created(self, ticket: Ticket) -> None:
        for listener in self._listeners:
            try:
                listener.ticket_created(ticket)
            except AppError as exc:
                logger.warning(
                    "Listener failed on ticket_created",
                    extra={"ticket_id": ticket.id, "error": exc.error_code, "detail": str(exc)},
                )

    def _publish_updated(self, before: Ticket, after: Ticket) -> None:
        for listener in self._listeners:
            try:
                listener.ticket_updated(before, after)
            except AppError as exc:
                logger.warning(
                    "Listener failed on ticket_updated",
                    extra={"ticket_id": after.id, "error": exc.error_code, "detail": str(exc)},
                )
