"""Collaborator interfaces the engine depends on."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from models.agent import Agent, AgentCounters, AgentTicketMetric
from models.message import Message
from models.metrics import DailyMetric
from models.ticket import Ticket, TicketQuery


class TicketStore(Protocol):
    def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket and return it with its store id."""

    def get(self, ticket_id: str) -> Optional[Ticket]:
        ...

    def query(self, query: TicketQuery) -> List[Ticket]:
        ...

    def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Ticket:
        """
        Apply `changes` and bump the version.

        Raises NotFoundError for unknown ids and ConcurrentUpdateConflictError
        when `expected_version` no longer matches.
        """

    def count_active_by_agent(self, agent_ids: Iterable[str]) -> Dict[str, int]:
        ...


class MessageStore(Protocol):
    def append(self, message: Message) -> Message:
        ...

    def query(self, ticket_id: str) -> List[Message]:
        """Messages for a ticket, oldest first."""

    def mark_read(self, ticket_id: str, message_id: str, read_at: datetime) -> Message:
        ...


class AgentDirectory(Protocol):
    def list_active(self) -> List[Agent]:
        """Active agents and managers in a stable order."""

    def get(self, agent_id: str) -> Optional[Agent]:
        ...

    def put(self, agent: Agent) -> Agent:
        ...

    def commit_closure(
        self,
        record: AgentTicketMetric,
        counters: Optional[AgentCounters],
        expected_version: Optional[int],
    ) -> bool:
        """
        Atomically append the audit record and write the agent's counters.

        Returns False (and writes nothing) when the record already exists.
        Raises ConcurrentUpdateConflictError when the agent version moved.
        """

    def list_ticket_metrics(self, agent_id: str) -> List[AgentTicketMetric]:
        ...


class DailyMetricStore(Protocol):
    def upsert(self, metric: DailyMetric) -> DailyMetric:
        ...

    def get(self, date_key: str) -> Optional[DailyMetric]:
        ...
