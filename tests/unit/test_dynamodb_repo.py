"""
DynamoDB adapter tests against moto.

Run with: pytest tests/unit/test_dynamodb_repo.py -v
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import boto3
import pytest
from boto3.dynamodb.conditions import ConditionExpressionBuilder
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError, EndpointConnectionError
from moto import mock_aws

from models.agent import Agent, AgentCounters, AgentTicketMetric
from models.message import Message
from models.ticket import Ticket, TicketPriority, TicketQuery, TicketStatus
from repositories.dynamodb_repo import (
    DynamoDbAgentRepository,
    DynamoDbMessageRepository,
    DynamoDbTicketRepository,
    dynamo_errors,
    from_item,
    ticket_from_stream_image,
    to_item,
)
from utils.error_handling import (
    ConcurrentUpdateConflictError,
    ExternalDependencyUnavailableError,
    NotFoundError,
)

T = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def _table(dynamodb, name, hash_key, range_key=None):
    keys = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    attrs = [{"AttributeName": hash_key, "AttributeType": "S"}]
    if range_key:
        keys.append({"AttributeName": range_key, "KeyType": "RANGE"})
        attrs.append({"AttributeName": range_key, "AttributeType": "S"})
    dynamodb.create_table(
        TableName=name, KeySchema=keys, AttributeDefinitions=attrs, BillingMode="PAY_PER_REQUEST"
    )


@pytest.fixture
def dynamodb():
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name="eu-west-2")
        _table(resource, "tickets", "id")
        _table(resource, "ticket-messages", "ticket_id", "message_key")
        _table(resource, "agents", "id")
        _table(resource, "agent-ticket-metrics", "agent_id", "ticket_id")
        yield resource


@pytest.fixture
def tickets(dynamodb):
    return DynamoDbTicketRepository("tickets", dynamodb)


@pytest.fixture
def messages(dynamodb):
    return DynamoDbMessageRepository("ticket-messages", dynamodb)


@pytest.fixture
def agents(dynamodb):
    return DynamoDbAgentRepository("agents", "agent-ticket-metrics", dynamodb)


def make_ticket(minutes=0, **fields):
    created = T + timedelta(minutes=minutes)
    data = dict(
        ticket_number=f"TKT-{minutes}",
        subject="Printer on fire",
        customer_id="cust-1",
        customer_email="dana@example.com",
        customer_name="Dana",
        plan_tier="professional",
        created_at=created,
        updated_at=created,
        sla_deadline=created + timedelta(hours=4),
    )
    data.update(fields)
    return Ticket(**data)


class TestItemConversion:
    def test_round_trip_drops_none_and_converts_numbers(self):
        item = to_item({"a": None, "b": 1.5, "c": TicketStatus.WAITING, "d": T, "e": {"x": None, "y": 2}})
        assert item == {
            "b": Decimal("1.5"),
            "c": "waiting",
            "d": "2024-03-04T09:00:00.000000Z",
            "e": {"y": 2},
        }
        assert from_item({"n": Decimal("3"), "f": Decimal("2.5")}) == {"n": 3, "f": 2.5}

    def test_stream_image_decodes_to_ticket(self):
        ticket = make_ticket(agent_id="a1", time_spent=30)
        serializer = TypeSerializer()
        image = {k: serializer.serialize(v) for k, v in to_item({**ticket.model_dump(), "id": "t1"}).items()}

        decoded = ticket_from_stream_image(image)
        assert decoded.id == "t1"
        assert decoded.agent_id == "a1"
        assert decoded.time_spent == 30
        assert decoded.created_at == T

    def test_client_errors_are_classified(self):
        conditional = ClientError({"Error": {"Code": "ConditionalCheckFailedException"}}, "PutItem")
        throttled = ClientError({"Error": {"Code": "ProvisionedThroughputExceededException"}}, "PutItem")

        with pytest.raises(ConcurrentUpdateConflictError):
            with dynamo_errors("put_item"):
                raise conditional
        with pytest.raises(ExternalDependencyUnavailableError):
            with dynamo_errors("put_item"):
                raise throttled
        with pytest.raises(ExternalDependencyUnavailableError):
            with dynamo_errors("put_item"):
                raise EndpointConnectionError(endpoint_url="https://dynamodb")


class TestTicketRepository:
    def test_create_and_get(self, tickets):
        created = tickets.create(make_ticket(tags=["billing"]))
        assert created.id
        assert created.version == 0

        loaded = tickets.get(created.id)
        assert loaded == created
        assert tickets.get("missing") is None

    def test_query_filters_and_orders(self, tickets):
        first = tickets.create(make_ticket(0, priority=TicketPriority.HIGH))
        second = tickets.create(make_ticket(5, customer_id="cust-2"))
        third = tickets.create(make_ticket(10, agent_id="a1"))

        assert [t.id for t in tickets.query(TicketQuery())] == [third.id, second.id, first.id]
        assert [t.id for t in tickets.query(TicketQuery(newest_first=False, limit=2))] == [first.id, second.id]
        assert [t.id for t in tickets.query(TicketQuery(customer_id="cust-2"))] == [second.id]
        assert [t.id for t in tickets.query(TicketQuery(agent_id="a1"))] == [third.id]
        assert [t.id for t in tickets.query(TicketQuery(priorities=[TicketPriority.HIGH]))] == [first.id]

        window = TicketQuery(created_from=T + timedelta(minutes=5), created_before=T + timedelta(minutes=10))
        assert [t.id for t in tickets.query(window)] == [second.id]

        deadline = TicketQuery(
            sla_deadline_after=T + timedelta(hours=4),
            sla_deadline_before=T + timedelta(hours=4, minutes=10),
        )
        assert [t.id for t in tickets.query(deadline)] == [second.id]

    def test_versioned_update(self, tickets):
        created = tickets.create(make_ticket())
        updated = tickets.update(
            created.id,
            {"status": TicketStatus.IN_PROGRESS, "first_response_at": T, "updated_at": T},
            expected_version=0,
        )
        assert updated.version == 1
        assert updated.status == TicketStatus.IN_PROGRESS
        assert tickets.get(created.id).first_response_at == T

        with pytest.raises(ConcurrentUpdateConflictError):
            tickets.update(created.id, {"updated_at": T}, expected_version=0)

    def test_update_unknown_ticket(self, tickets):
        with pytest.raises(NotFoundError):
            tickets.update("missing", {"updated_at": T}, expected_version=0)

    def test_none_change_removes_attribute(self, tickets):
        created = tickets.create(make_ticket(agent_id="a1", agent_name="Ann"))
        updated = tickets.update(created.id, {"agent_id": None, "agent_name": None})
        assert updated.agent_id is None
        assert "agent_id" not in tickets.table.get_item(Key={"id": created.id})["Item"]

    def test_count_active_by_agent(self, tickets):
        tickets.create(make_ticket(0, agent_id="a1"))
        tickets.create(make_ticket(1, agent_id="a1", status=TicketStatus.WAITING))
        tickets.create(make_ticket(2, agent_id="a2", status=TicketStatus.CLOSED, resolved_at=T))
        tickets.create(make_ticket(3, agent_id="a3"))

        assert tickets.count_active_by_agent(["a1", "a2"]) == {"a1": 2, "a2": 0}
        assert tickets.count_active_by_agent([]) == {}

    def test_count_active_for_large_directory(self, tickets, monkeypatch):
        agent_ids = [f"agent-{n:03d}" for n in range(150)]
        tickets.create(make_ticket(0, agent_id="agent-000"))
        tickets.create(make_ticket(1, agent_id="agent-149"))

        filters = []
        real_scan = tickets.table.scan

        def recording_scan(**kwargs):
            filters.append(kwargs["FilterExpression"])
            return real_scan(**kwargs)

        monkeypatch.setattr(tickets.table, "scan", recording_scan)
        counts = tickets.count_active_by_agent(agent_ids)

        assert len(counts) == 150
        assert counts["agent-000"] == 1
        assert counts["agent-149"] == 1
        assert sum(counts.values()) == 2
        # DynamoDB rejects IN conditions with more than 100 operands.
        for condition in filters:
            built = ConditionExpressionBuilder().build_expression(condition)
            assert len(built.attribute_value_placeholders) <= 100

    def test_unreachable_table(self):
        table = MagicMock()
        table.get_item.side_effect = EndpointConnectionError(endpoint_url="https://dynamodb")
        resource = MagicMock()
        resource.Table.return_value = table

        with pytest.raises(ExternalDependencyUnavailableError):
            DynamoDbTicketRepository("tickets", resource).get("t1")


class TestMessageRepository:
    def _message(self, minutes, content, internal=False):
        return Message(
            ticket_id="t1",
            sender_id="a1",
            sender_name="Ann",
            sender_role="agent",
            content=content,
            is_internal_note=internal,
            created_at=T + timedelta(minutes=minutes),
        )

    def test_messages_come_back_oldest_first(self, messages):
        messages.append(self._message(10, "later"))
        messages.append(self._message(1, "earlier", internal=True))

        found = messages.query("t1")
        assert [m.content for m in found] == ["earlier", "later"]
        assert found[0].is_internal_note is True
        assert messages.query("t2") == []

    def test_mark_read_keeps_first_value(self, messages):
        stored = messages.append(self._message(0, "hello"))
        first = messages.mark_read("t1", stored.id, T + timedelta(hours=1))
        again = messages.mark_read("t1", stored.id, T + timedelta(hours=2))
        assert first.read_at == again.read_at == T + timedelta(hours=1)

        with pytest.raises(NotFoundError):
            messages.mark_read("t1", "nope", T)


class TestAgentRepository:
    def _record(self, ticket_id="t1"):
        return AgentTicketMetric(
            agent_id="a1",
            ticket_id=ticket_id,
            ticket_number="TKT-1",
            response_time_minutes=12.5,
            satisfaction_rating=4,
            closed_at=T,
        )

    def _counters(self):
        return AgentCounters(
            tickets_closed=1,
            avg_response_time=12.5,
            response_time_samples=1,
            csat_score=4.0,
            total_ratings=1,
            last_ticket_closed_at=T,
        )

    def test_list_active_in_creation_order(self, agents):
        agents.put(Agent(id="b", name="B", email="b@x", created_at=T + timedelta(days=1)))
        agents.put(Agent(id="a", name="A", email="a@x", created_at=T))
        agents.put(Agent(id="c", name="C", email="c@x", created_at=T, is_active=False))

        assert [a.id for a in agents.list_active()] == ["a", "b"]
        assert agents.get("c").is_active is False
        assert agents.get("zzz") is None

    def test_commit_closure_is_idempotent(self, agents):
        agents.put(Agent(id="a1", name="Ann", email="a1@x"))

        assert agents.commit_closure(self._record(), self._counters(), expected_version=0) is True
        stored = agents.get("a1")
        assert stored.tickets_closed == 1
        assert stored.avg_response_time == 12.5
        assert stored.version == 1

        assert agents.commit_closure(self._record(), self._counters(), expected_version=1) is False
        assert agents.get("a1").tickets_closed == 1
        assert [m.ticket_id for m in agents.list_ticket_metrics("a1")] == ["t1"]

    def test_commit_closure_detects_stale_version(self, agents):
        agents.put(Agent(id="a1", name="Ann", email="a1@x", version=3))

        with pytest.raises(ConcurrentUpdateConflictError):
            agents.commit_closure(self._record(), self._counters(), expected_version=2)
        assert agents.list_ticket_metrics("a1") == []

    def test_audit_only_commit(self, agents):
        assert agents.commit_closure(self._record(), None, None) is True
        assert agents.commit_closure(self._record(), None, None) is False
        assert len(agents.list_ticket_metrics("a1")) == 1
