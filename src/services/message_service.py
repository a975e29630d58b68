"""Ticket conversation: replies, internal notes and their effect on the ticket."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from models.message import Message, MessageCreateRequest, SenderRole
from models.ticket import Ticket, TicketStatus
from repositories.base import MessageStore
from services.state_machine import ensure_mutable, plan_first_response, plan_transition
from services.ticket_service import TicketService
from utils.clock import Clock
from utils.error_handling import ConcurrentUpdateConflictError
from utils.logging_config import get_logger

logger = get_logger(__name__)


class MessageService:
    """Appends messages and applies the status rules replies imply."""

    def __init__(self, store: MessageStore, tickets: TicketService, clock: Clock, max_retries: int = 3):
        self.store = store
        self.tickets = tickets
        self.clock = clock
        self.max_retries = max_retries

    def post_message(self, ticket_id: str, request: MessageCreateRequest) -> Message:
        """
        Append a message to an open ticket.

        - every message bumps the ticket's `updated_at`
        - the first customer-visible staff reply records the first response
          and moves a `new` ticket to `in_progress`
        - a customer reply on a `waiting` ticket moves it back to `in_progress`

        The ticket write goes first and is retried against a fresh read on a
        concurrent update; the message is stored only once it has succeeded.
        """
        for attempt in range(1, self.max_retries + 1):
            ticket = self.tickets.get_ticket(ticket_id)
            ensure_mutable(ticket)
            now = self.clock.now()
            message = Message(
                ticket_id=ticket.id,
                sender_id=request.sender_id,
                sender_name=request.sender_name,
                sender_role=request.sender_role,
                content=request.content,
                is_internal_note=request.is_internal_note,
                attachments=request.attachments,
                created_at=now,
            )
            try:
                changes = self._ticket_effects(ticket, message, now)
                self.tickets.apply(ticket, changes, "Ticket touched by message")
                break
            except ConcurrentUpdateConflictError:
                if attempt == self.max_retries:
                    raise
                logger.info(
                    "Ticket changed while posting message",
                    extra={"ticket_id": ticket_id, "attempt": attempt},
                )

        stored = self.store.append(message)
        logger.info(
            "Message posted",
            extra={
                "ticket_id": ticket.id,
                "message_id": stored.id,
                "sender_role": stored.sender_role.value,
                "internal": stored.is_internal_note,
            },
        )
        return stored

    @staticmethod
    def _ticket_effects(ticket: Ticket, message: Message, now: datetime) -> Dict[str, Any]:
        if message.is_staff_reply:
            return plan_first_response(ticket, now)
        if (
            message.sender_role == SenderRole.CUSTOMER
            and not message.is_internal_note
            and ticket.status == TicketStatus.WAITING
        ):
            return plan_transition(ticket, TicketStatus.IN_PROGRESS, now)
        return {"updated_at": now}

    def list_messages(self, ticket_id: str, viewer_role: Optional[SenderRole] = None) -> List[Message]:
        """Messages oldest first; customers never see internal notes."""
        self.tickets.get_ticket(ticket_id)
        messages = self.store.query(ticket_id)
        if viewer_role == SenderRole.CUSTOMER:
            messages = [m for m in messages if not m.is_internal_note]
        return messages

    def mark_read(self, ticket_id: str, message_id: str) -> Message:
        return self.store.mark_read(ticket_id, message_id, self.clock.now())
