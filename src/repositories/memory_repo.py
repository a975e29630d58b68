"""
In-memory stores.

Used for local runs without AWS and as the reference behaviour the DynamoDB
and PostgreSQL adapters are tested against. Each store serialises writes with
a lock, which stands in for the single-item atomicity the real stores give.
"""

from datetime import datetime
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models.agent import Agent, AgentCounters, AgentRole, AgentTicketMetric
from models.message import Message
from models.metrics import DailyMetric
from models.ticket import ACTIVE_STATUSES, Ticket, TicketQuery
from services.state_machine import apply_changes
from utils.error_handling import ConcurrentUpdateConflictError, NotFoundError
from utils.identifiers import new_id


class InMemoryTicketRepository:
    """Ticket store backed by a dict."""

    def __init__(self):
        self._items: Dict[str, Ticket] = {}
        self._lock = Lock()

    def create(self, ticket: Ticket) -> Ticket:
        with self._lock:
            stored = ticket.model_copy(update={"id": ticket.id or new_id(), "version": 0}, deep=True)
            self._items[stored.id] = stored
            return stored.model_copy(deep=True)

    def get(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            ticket = self._items.get(ticket_id)
            return ticket.model_copy(deep=True) if ticket else None

    def query(self, query: TicketQuery) -> List[Ticket]:
        with self._lock:
            found = [t.model_copy(deep=True) for t in self._items.values() if query.matches(t)]
        found.sort(key=lambda t: (t.created_at, t.id), reverse=query.newest_first)
        return found[: query.limit] if query.limit else found

    def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Ticket:
        with self._lock:
            current = self._items.get(ticket_id)
            if current is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            if expected_version is not None and current.version != expected_version:
                raise ConcurrentUpdateConflictError(
                    f"Ticket {ticket_id} is at version {current.version}, expected {expected_version}"
                )
            updated = apply_changes(current, {**changes, "version": current.version + 1})
            self._items[ticket_id] = updated
            return updated.model_copy(deep=True)

    def count_active_by_agent(self, agent_ids: Iterable[str]) -> Dict[str, int]:
        counts = {agent_id: 0 for agent_id in agent_ids}
        with self._lock:
            for ticket in self._items.values():
                if ticket.agent_id in counts and ticket.status in ACTIVE_STATUSES:
                    counts[ticket.agent_id] += 1
        return counts


class InMemoryMessageRepository:
    """Message store keyed by ticket id."""

    def __init__(self):
        self._items: Dict[str, List[Message]] = {}
        self._lock = Lock()

    def append(self, message: Message) -> Message:
        with self._lock:
            stored = message.model_copy(update={"id": message.id or new_id()}, deep=True)
            self._items.setdefault(stored.ticket_id, []).append(stored)
            return stored.model_copy(deep=True)

    def query(self, ticket_id: str) -> List[Message]:
        with self._lock:
            messages = [m.model_copy(deep=True) for m in self._items.get(ticket_id, [])]
        messages.sort(key=lambda m: m.created_at)
        return messages

    def mark_read(self, ticket_id: str, message_id: str, read_at: datetime) -> Message:
        with self._lock:
            for index, message in enumerate(self._items.get(ticket_id, [])):
                if message.id == message_id:
                    if message.read_at is None:
                        message = message.model_copy(update={"read_at": read_at})
                        self._items[ticket_id][index] = message
                    return message.model_copy(deep=True)
        raise NotFoundError(f"Message {message_id} not found on ticket {ticket_id}")


class InMemoryAgentRepository:
    """Agent directory plus the per-agent closure audit log."""

    def __init__(self):
        self._agents: Dict[str, Agent] = {}
        self._order: List[str] = []
        self._ticket_metrics: Dict[Tuple[str, str], AgentTicketMetric] = {}
        self._lock = Lock()

    def list_active(self) -> List[Agent]:
        with self._lock:
            return [
                self._agents[agent_id].model_copy(deep=True)
                for agent_id in self._order
                if self._agents[agent_id].is_active
                and self._agents[agent_id].role in (AgentRole.AGENT, AgentRole.MANAGER)
            ]

    def get(self, agent_id: str) -> Optional[Agent]:
        with self._lock:
            agent = self._agents.get(agent_id)
            return agent.model_copy(deep=True) if agent else None

    def put(self, agent: Agent) -> Agent:
        with self._lock:
            if agent.id not in self._agents:
                self._order.append(agent.id)
            self._agents[agent.id] = agent.model_copy(deep=True)
            return agent

    def commit_closure(
        self,
        record: AgentTicketMetric,
        counters: Optional[AgentCounters],
        expected_version: Optional[int],
    ) -> bool:
        key = (record.agent_id, record.ticket_id)
        with self._lock:
            if key in self._ticket_metrics:
                return False
            if counters is not None:
                agent = self._agents.get(record.agent_id)
                if agent is None:
                    raise NotFoundError(f"Agent {record.agent_id} not found")
                if expected_version is not None and agent.version != expected_version:
                    raise ConcurrentUpdateConflictError(
                        f"Agent {record.agent_id} is at version {agent.version}, expected {expected_version}"
                    )
                self._agents[record.agent_id] = agent.model_copy(
                    update={**counters.model_dump(), "version": agent.version + 1}
                )
            self._ticket_metrics[key] = record.model_copy(deep=True)
            return True

    def list_ticket_metrics(self, agent_id: str) -> List[AgentTicketMetric]:
        with self._lock:
            records = [m for (owner, _), m in self._ticket_metrics.items() if owner == agent_id]
        return sorted(records, key=lambda m: m.closed_at)


class InMemoryDailyMetricRepository:
    """DailyMetric store with merge-upsert semantics."""

    def __init__(self):
        self._items: Dict[str, DailyMetric] = {}
        self._lock = Lock()

    def upsert(self, metric: DailyMetric) -> DailyMetric:
        with self._lock:
            self._items[metric.date] = metric.model_copy(deep=True)
            return metric

    def get(self, date_key: str) -> Optional[DailyMetric]:
        with self._lock:
            metric = self._items.get(date_key)
            return metric.model_copy(deep=True) if metric else None
