"""
DynamoDB repositories for tickets, messages and agents.

Tickets carry a numeric `version`; every write is an UpdateItem conditioned on
it, which gives the single-item compare-and-swap the engine relies on.
Timestamps are stored as fixed-width UTC strings so range filters compare
lexicographically.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from functools import reduce
from operator import and_
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeDeserializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from models.agent import Agent, AgentCounters, AgentRole, AgentTicketMetric
from models.message import Message
from models.ticket import ACTIVE_STATUSES, Ticket, TicketQuery
from utils.error_handling import (
    ConcurrentUpdateConflictError,
    ExternalDependencyUnavailableError,
    NotFoundError,
)
from utils.identifiers import new_id
from utils.logging_config import get_logger

logger = get_logger(__name__)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_deserializer = TypeDeserializer()


def client_config(max_attempts: int = 5) -> Config:
    """botocore config with standard (backoff + jitter) retries."""
    return Config(retries={"max_attempts": max_attempts, "mode": "standard"})


def get_dynamodb(max_attempts: int = 5):
    """Create a DynamoDB resource with retry configuration."""
    return boto3.resource("dynamodb", config=client_config(max_attempts))


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def to_attribute(value: Any) -> Any:
    """Convert a python value into something boto3 can serialise."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_attribute(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [to_attribute(v) for v in value]
    return value


def to_item(data: Dict[str, Any]) -> Dict[str, Any]:
    """Top-level item: None values are omitted rather than stored as NULL."""
    return {key: to_attribute(value) for key, value in data.items() if value is not None}


def from_attribute(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_attribute(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [from_attribute(v) for v in value]
    return value


def from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {key: from_attribute(value) for key, value in item.items()}


def ticket_from_stream_image(image: Dict[str, Any]) -> Ticket:
    """Decode a DynamoDB Streams NewImage/OldImage into a Ticket."""
    plain = {key: _deserializer.deserialize(value) for key, value in image.items()}
    return Ticket.model_validate(from_item(plain))


@contextmanager
def dynamo_errors(operation: str):
    """Translate botocore failures into engine error kinds."""
    try:
        yield
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code", "Unknown")
        if code == "ConditionalCheckFailedException":
            raise ConcurrentUpdateConflictError(f"Conditional {operation} failed") from exc
        logger.error("DynamoDB call failed", extra={"operation": operation, "code": code})
        raise ExternalDependencyUnavailableError(f"DynamoDB {operation} failed: {code}") from exc
    except BotoCoreError as exc:
        logger.error("DynamoDB unreachable", extra={"operation": operation, "error": str(exc)})
        raise ExternalDependencyUnavailableError(f"DynamoDB {operation} failed") from exc


def _scan_all(table, **kwargs) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    while True:
        resp = table.scan(**kwargs)
        items.extend(resp.get("Items", []))
        if "LastEvaluatedKey" not in resp:
            return items
        kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]


def _query_all(table, **kwargs) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        if "LastEvaluatedKey" not in resp:
            return items
        kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]


def _filter_expression(query: TicketQuery):
    conditions = []
    if query.customer_id:
        conditions.append(Attr("customer_id").eq(query.customer_id))
    if query.agent_id:
        conditions.append(Attr("agent_id").eq(query.agent_id))
    if query.statuses:
        conditions.append(Attr("status").is_in([s.value for s in query.statuses]))
    if query.priorities:
        conditions.append(Attr("priority").is_in([p.value for p in query.priorities]))
    if query.created_from:
        conditions.append(Attr("created_at").gte(format_timestamp(query.created_from)))
    if query.created_before:
        conditions.append(Attr("created_at").lt(format_timestamp(query.created_before)))
    if query.updated_before:
        conditions.append(Attr("updated_at").lt(format_timestamp(query.updated_before)))
    if query.resolved_from:
        conditions.append(Attr("resolved_at").gte(format_timestamp(query.resolved_from)))
    if query.resolved_before:
        conditions.append(Attr("resolved_at").lt(format_timestamp(query.resolved_before)))
    if query.sla_deadline_after:
        conditions.append(Attr("sla_deadline").gt(format_timestamp(query.sla_deadline_after)))
    if query.sla_deadline_before:
        conditions.append(Attr("sla_deadline").lt(format_timestamp(query.sla_deadline_before)))
    return reduce(and_, conditions) if conditions else None


def _versioned_update(changes: Dict[str, Any], expected_version: Optional[int]) -> Dict[str, Any]:
    """Build UpdateItem arguments: SET/REMOVE the changes and bump `version`."""
    names = {"#pk": "id", "#version": "version"}
    values: Dict[str, Any] = {":one": 1}
    sets = ["#version = #version + :one"]
    removes = []
    for index, (field, value) in enumerate(changes.items()):
        if field in ("id", "version"):
            continue
        names[f"#f{index}"] = field
        if value is None:
            removes.append(f"#f{index}")
        else:
            values[f":v{index}"] = to_attribute(value)
            sets.append(f"#f{index} = :v{index}")

    expression = "SET " + ", ".join(sets)
    if removes:
        expression += " REMOVE " + ", ".join(removes)
    condition = "attribute_exists(#pk)"
    if expected_version is not None:
        condition += " AND #version = :expected"
        values[":expected"] = expected_version
    return {
        "UpdateExpression": expression,
        "ConditionExpression": condition,
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


class DynamoDbTicketRepository:
    """Ticket store on a table keyed by `id`."""

    def __init__(self, table_name: str, dynamodb=None):
        self.table = (dynamodb or get_dynamodb()).Table(table_name)

    def create(self, ticket: Ticket) -> Ticket:
        stored = ticket.model_copy(update={"id": ticket.id or new_id(), "version": 0})
        with dynamo_errors("put_item"):
            self.table.put_item(
                Item=to_item(stored.model_dump()),
                ConditionExpression=Attr("id").not_exists(),
            )
        return stored

    def get(self, ticket_id: str) -> Optional[Ticket]:
        with dynamo_errors("get_item"):
            item = self.table.get_item(Key={"id": ticket_id}).get("Item")
        return Ticket.model_validate(from_item(item)) if item else None

    def query(self, query: TicketQuery) -> List[Ticket]:
        kwargs: Dict[str, Any] = {}
        expression = _filter_expression(query)
        if expression is not None:
            kwargs["FilterExpression"] = expression
        with dynamo_errors("scan"):
            items = _scan_all(self.table, **kwargs)
        tickets = [Ticket.model_validate(from_item(item)) for item in items]
        tickets.sort(key=lambda t: (t.created_at, t.id), reverse=query.newest_first)
        return tickets[: query.limit] if query.limit else tickets

    def update(
        self,
        ticket_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Ticket:
        try:
            with dynamo_errors("update_item"):
                resp = self.table.update_item(
                    Key={"id": ticket_id},
                    ReturnValues="ALL_NEW",
                    **_versioned_update(changes, expected_version),
                )
        except ConcurrentUpdateConflictError:
            if self.get(ticket_id) is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            raise ConcurrentUpdateConflictError(
                f"Ticket {ticket_id} changed since version {expected_version}"
            )
        return Ticket.model_validate(from_item(resp["Attributes"]))

    def count_active_by_agent(self, agent_ids: Iterable[str]) -> Dict[str, int]:
        agent_ids = list(agent_ids)
        counts = {agent_id: 0 for agent_id in agent_ids}
        if not agent_ids:
            return counts
        # Agent ids are matched here rather than in an IN filter, which caps at 100 operands.
        expression = Attr("agent_id").exists() & Attr("status").is_in([s.value for s in ACTIVE_STATUSES])
        with dynamo_errors("scan"):
            items = _scan_all(
                self.table,
                FilterExpression=expression,
                ProjectionExpression="#a",
                ExpressionAttributeNames={"#a": "agent_id"},
            )
        for item in items:
            if item.get("agent_id") in counts:
                counts[item["agent_id"]] += 1
        return counts


class DynamoDbMessageRepository:
    """Messages keyed by (ticket_id, message_key) where the sort key orders by time."""

    def __init__(self, table_name: str, dynamodb=None):
        self.table = (dynamodb or get_dynamodb()).Table(table_name)

    @staticmethod
    def _to_message(item: Dict[str, Any]) -> Message:
        data = from_item(item)
        data.pop("message_key", None)
        return Message.model_validate(data)

    def append(self, message: Message) -> Message:
        stored = message.model_copy(update={"id": message.id or new_id()})
        item = to_item(stored.model_dump())
        item["message_key"] = f"{format_timestamp(stored.created_at)}#{stored.id}"
        with dynamo_errors("put_item"):
            self.table.put_item(Item=item)
        return stored

    def query(self, ticket_id: str) -> List[Message]:
        with dynamo_errors("query"):
            items = _query_all(
                self.table,
                KeyConditionExpression=Key("ticket_id").eq(ticket_id),
                ScanIndexForward=True,
            )
        return [self._to_message(item) for item in items]

    def mark_read(self, ticket_id: str, message_id: str, read_at: datetime) -> Message:
        target = next((m for m in self.query(ticket_id) if m.id == message_id), None)
        if target is None:
            raise NotFoundError(f"Message {message_id} not found on ticket {ticket_id}")
        with dynamo_errors("update_item"):
            resp = self.table.update_item(
                Key={
                    "ticket_id": ticket_id,
                    "message_key": f"{format_timestamp(target.created_at)}#{target.id}",
                },
                UpdateExpression="SET read_at = if_not_exists(read_at, :read_at)",
                ExpressionAttributeValues={":read_at": format_timestamp(read_at)},
                ReturnValues="ALL_NEW",
            )
        return self._to_message(resp["Attributes"])


class DynamoDbAgentRepository:
    """Agent directory (`id` key) and closure audit log (`agent_id`, `ticket_id`)."""

    def __init__(self, agents_table: str, metrics_table: str, dynamodb=None):
        dynamodb = dynamodb or get_dynamodb()
        self.agents_table = dynamodb.Table(agents_table)
        self.metrics_table = dynamodb.Table(metrics_table)
        # The resource-level client accepts native python values.
        self.client = dynamodb.meta.client

    def list_active(self) -> List[Agent]:
        expression = Attr("is_active").eq(True) & Attr("role").is_in(
            [AgentRole.AGENT.value, AgentRole.MANAGER.value]
        )
        with dynamo_errors("scan"):
            items = _scan_all(self.agents_table, FilterExpression=expression)
        agents = [Agent.model_validate(from_item(item)) for item in items]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        agents.sort(key=lambda a: (a.created_at or epoch, a.id))
        return agents

    def get(self, agent_id: str) -> Optional[Agent]:
        with dynamo_errors("get_item"):
            item = self.agents_table.get_item(Key={"id": agent_id}).get("Item")
        return Agent.model_validate(from_item(item)) if item else None

    def put(self, agent: Agent) -> Agent:
        with dynamo_errors("put_item"):
            self.agents_table.put_item(Item=to_item(agent.model_dump()))
        return agent

    def _record_exists(self, record: AgentTicketMetric) -> bool:
        with dynamo_errors("get_item"):
            resp = self.metrics_table.get_item(
                Key={"agent_id": record.agent_id, "ticket_id": record.ticket_id}
            )
        return "Item" in resp

    def commit_closure(
        self,
        record: AgentTicketMetric,
        counters: Optional[AgentCounters],
        expected_version: Optional[int],
    ) -> bool:
        audit_put = {
            "TableName": self.metrics_table.name,
            "Item": to_item(record.model_dump()),
            "ConditionExpression": "attribute_not_exists(ticket_id)",
        }

        if counters is None:
            try:
                with dynamo_errors("put_item"):
                    self.metrics_table.put_item(
                        Item=audit_put["Item"],
                        ConditionExpression=audit_put["ConditionExpression"],
                    )
            except ConcurrentUpdateConflictError:
                return False
            return True

        update = _versioned_update(counters.model_dump(), expected_version)
        agent_update = {
            "TableName": self.agents_table.name,
            "Key": {"id": record.agent_id},
            **update,
        }
        try:
            self.client.transact_write_items(
                TransactItems=[{"Put": audit_put}, {"Update": agent_update}]
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code != "TransactionCanceledException":
                raise ExternalDependencyUnavailableError(
                    f"DynamoDB transact_write_items failed: {code}"
                ) from exc
            if self._record_exists(record):
                return False
            raise ConcurrentUpdateConflictError(
                f"Agent {record.agent_id} changed since version {expected_version}"
            ) from exc
        except BotoCoreError as exc:
            raise ExternalDependencyUnavailableError("DynamoDB transact_write_items failed") from exc
        return True

    def list_ticket_metrics(self, agent_id: str) -> List[AgentTicketMetric]:
        with dynamo_errors("query"):
            items = _query_all(
                self.metrics_table,
                KeyConditionExpression=Key("agent_id").eq(agent_id),
            )
        records = [AgentTicketMetric.model_validate(from_item(item)) for item in items]
        return sorted(records, key=lambda m: m.closed_at)
