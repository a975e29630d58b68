"""
Notification fan-out.

Delivery is best-effort: `NotificationService.notify` never raises, so a failing
sink can never roll back the ticket mutation that triggered it.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from models.ticket import Ticket
from repositories.dynamodb_repo import client_config
from utils.error_handling import NotificationDeliveryFailedError
from utils.logging_config import get_logger

logger = get_logger(__name__)

EMAIL = "email"
CHAT = "chat"


class NotificationSink(Protocol):
    def send(self, channel: str, payload: Dict[str, Any]) -> None:
        """Deliver a structured payload; raise NotificationDeliveryFailedError on failure."""


class SnsNotificationSink:
    """Publishes payloads to an SNS topic; subscribers filter on `channel`."""

    def __init__(self, topic_arn: str, sns_client=None, max_attempts: int = 5):
        self.topic_arn = topic_arn
        self.sns = sns_client or boto3.client("sns", config=client_config(max_attempts))

    def send(self, channel: str, payload: Dict[str, Any]) -> None:
        try:
            self.sns.publish(
                TopicArn=self.topic_arn,
                Message=json.dumps(payload, default=str),
                MessageAttributes={
                    "channel": {"DataType": "String", "StringValue": channel},
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise NotificationDeliveryFailedError(f"SNS publish failed: {exc}") from exc


class LoggingNotificationSink:
    """Sink used when no topic is configured; records what would have been sent."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(self, channel: str, payload: Dict[str, Any]) -> None:
        self.sent.append({"channel": channel, "payload": payload})
        logger.info("Notification (log only)", extra={"channel": channel, "kind": payload.get("kind")})


def _ticket_summary(ticket: Ticket) -> Dict[str, Any]:
    return {
        "ticket_id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "subject": ticket.subject,
        "priority": ticket.priority.value,
        "status": ticket.status.value,
    }


class NotificationService:
    """Builds notification payloads and delivers them through a sink."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def notify(self, channel: str, payload: Dict[str, Any]) -> bool:
        """Send and report success; failures are logged and swallowed."""
        try:
            self.sink.send(channel, payload)
            return True
        except NotificationDeliveryFailedError as exc:
            logger.warning(
                "Notification delivery failed",
                extra={"channel": channel, "kind": payload.get("kind"), "error": str(exc)},
            )
        except Exception as exc:
            logger.warning(
                "Notification sink raised unexpectedly",
                extra={"channel": channel, "kind": payload.get("kind"), "error": repr(exc)},
            )
        return False

    def ticket_confirmation(self, ticket: Ticket) -> bool:
        return self.notify(
            EMAIL,
            {
                "kind": "ticket_confirmation",
                "to": ticket.customer_email,
                "customer_name": ticket.customer_name,
                **_ticket_summary(ticket),
            },
        )

    def high_priority_alert(self, ticket: Ticket) -> bool:
        return self.notify(
            CHAT,
            {
                "kind": "high_priority_ticket",
                "customer_name": ticket.customer_name,
                **_ticket_summary(ticket),
            },
        )

    def ticket_assigned(self, ticket: Ticket) -> bool:
        return self.notify(
            CHAT,
            {
                "kind": "ticket_assigned",
                "agent_id": ticket.agent_id,
                "agent_name": ticket.agent_name,
                **_ticket_summary(ticket),
            },
        )

    def sla_warning(self, ticket: Ticket) -> bool:
        """Per-ticket heads-up to the assigned agent."""
        return self.notify(
            EMAIL,
            {
                "kind": "sla_warning",
                "to": ticket.agent_email,
                "agent_name": ticket.agent_name,
                "sla_deadline": ticket.sla_deadline,
                **_ticket_summary(ticket),
            },
        )

    def sla_digest(self, tickets: List[Ticket]) -> bool:
        return self.notify(
            CHAT,
            {
                "kind": "sla_warning_digest",
                "count": len(tickets),
                "tickets": [
                    {**_ticket_summary(t), "sla_deadline": t.sla_deadline, "agent_name": t.agent_name}
                    for t in tickets
                ],
            },
        )

    def customer_reminder(self, ticket: Ticket) -> bool:
        return self.notify(
            EMAIL,
            {
                "kind": "customer_reminder",
                "to": ticket.customer_email,
                "customer_name": ticket.customer_name,
                **_ticket_summary(ticket),
            },
        )

    def auto_close_summary(self, tickets: List[Ticket], threshold_days: Optional[float] = None) -> bool:
        return self.notify(
            CHAT,
            {
                "kind": "auto_close_summary",
                "count": len(tickets),
                "threshold_days": threshold_days,
                "ticket_numbers": [t.ticket_number for t in tickets],
            },
        )
