"""Least-loaded agent assignment."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Tuple

from models.agent import Agent
from models.ticket import Ticket
from repositories.base import AgentDirectory, TicketStore
from services.notification_service import NotificationService
from services.state_machine import ensure_mutable
from services.ticket_service import TicketService
from utils.cache_service import LRUCache
from utils.error_handling import NoEligibleAgentError
from utils.logging_config import get_logger

logger = get_logger(__name__)

_ACTIVE_AGENTS_KEY = "active_agents"


def select_agent(candidates: Sequence[Agent], active_load: Mapping[str, int]) -> Optional[Agent]:
    """
    Pick the candidate with the smallest active load.

    Ties go to the earliest candidate in the given order; `min` keeps the first
    of equal keys, so the choice is deterministic. Returns None for no candidates.
    """
    if not candidates:
        return None
    return min(candidates, key=lambda agent: active_load.get(agent.id, 0))


class AssignmentService:
    """
    Assigns tickets to the least-loaded active agent.

    Loads are read at call time and not reserved, so two concurrent
    assignments may pick the same agent. That is accepted as best-effort
    balancing.
    """

    def __init__(
        self,
        tickets: TicketService,
        directory: AgentDirectory,
        store: TicketStore,
        notifications: NotificationService,
        cache: Optional[LRUCache] = None,
    ):
        self.tickets = tickets
        self.directory = directory
        self.store = store
        self.notifications = notifications
        self.cache = cache

    def candidates(self) -> list:
        if self.cache is not None:
            cached = self.cache.get(_ACTIVE_AGENTS_KEY)
            if cached is not None:
                return cached
        agents = self.directory.list_active()
        if self.cache is not None:
            self.cache.set(_ACTIVE_AGENTS_KEY, agents)
        return agents

    def auto_assign(self, ticket_id: str, expected_version: Optional[int] = None) -> Ticket:
        """
        Assign `ticket_id` to the least-loaded agent or raise NoEligibleAgentError.

        `expected_version` pins the ticket state the caller saw, so an event
        for a ticket that has since been claimed does not override the claim.
        """
        ticket = self.tickets.get_ticket(ticket_id)
        ensure_mutable(ticket)
        if expected_version is None:
            expected_version = ticket.version

        agent, loads = self._pick(self.candidates())
        if agent is not None and self.cache is not None and not self._still_active(agent):
            # The cached list is stale; pick again from the directory as it is now.
            logger.info("Cached agent no longer active", extra={"ticket_id": ticket_id, "agent_id": agent.id})
            self.cache.delete(_ACTIVE_AGENTS_KEY)
            agent, loads = self._pick(self.candidates())
        if agent is None:
            raise NoEligibleAgentError(f"No active agents to take ticket {ticket.ticket_number}")

        logger.info(
            "Agent selected",
            extra={"ticket_id": ticket_id, "agent_id": agent.id, "active_load": loads.get(agent.id, 0)},
        )
        assigned = self.tickets.assign_ticket(ticket_id, agent.id, expected_version=expected_version)
        self.notifications.ticket_assigned(assigned)
        return assigned

    def _pick(self, candidates: Sequence[Agent]) -> Tuple[Optional[Agent], Dict[str, int]]:
        loads = self.store.count_active_by_agent([agent.id for agent in candidates])
        return select_agent(candidates, loads), loads

    def _still_active(self, agent: Agent) -> bool:
        current = self.directory.get(agent.id)
        return current is not None and current.is_active
