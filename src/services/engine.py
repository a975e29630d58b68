"""
Wiring for the lifecycle engine.

`build_engine` assembles stores, policies and services from EngineSettings.
Handlers keep one Engine per warm Lambda container.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from config.settings import EngineSettings
from repositories.base import AgentDirectory, DailyMetricStore, MessageStore, TicketStore
from repositories.dynamodb_repo import (
    DynamoDbAgentRepository,
    DynamoDbMessageRepository,
    DynamoDbTicketRepository,
    get_dynamodb,
)
from repositories.memory_repo import (
    InMemoryAgentRepository,
    InMemoryDailyMetricRepository,
    InMemoryMessageRepository,
    InMemoryTicketRepository,
)
from repositories.postgres_repo import DailyMetricRepository, get_db_engine
from services.assignment_service import AssignmentService
from services.event_processor import TicketEventProcessor
from services.message_service import MessageService
from services.metrics_service import AgentMetricsAccumulator
from services.notification_service import (
    LoggingNotificationSink,
    NotificationService,
    NotificationSink,
    SnsNotificationSink,
)
from services.sla_policy import SlaPolicy
from services.sweep_service import SweepService
from services.ticket_service import TicketService
from utils.cache_service import LRUCache
from utils.clock import Clock, SystemClock
from utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Engine:
    """Everything a handler needs, built once per container."""

    settings: EngineSettings
    clock: Clock
    sla_policy: SlaPolicy
    tickets: TicketService
    messages: MessageService
    assignment: AssignmentService
    accumulator: AgentMetricsAccumulator
    events: TicketEventProcessor
    sweeps: SweepService
    notifications: NotificationService
    directory: AgentDirectory


def build_engine(
    settings: Optional[EngineSettings] = None,
    clock: Optional[Clock] = None,
    ticket_store: Optional[TicketStore] = None,
    message_store: Optional[MessageStore] = None,
    directory: Optional[AgentDirectory] = None,
    daily_metrics: Optional[DailyMetricStore] = None,
    sink: Optional[NotificationSink] = None,
) -> Engine:
    """Build an Engine; explicit collaborators override the configured ones."""
    settings = settings or EngineSettings.from_environment()
    clock = clock or SystemClock()

    if settings.storage_backend == "memory":
        ticket_store = ticket_store or InMemoryTicketRepository()
        message_store = message_store or InMemoryMessageRepository()
        directory = directory or InMemoryAgentRepository()
    elif not (ticket_store and message_store and directory):
        dynamodb = get_dynamodb(settings.aws_max_attempts)
        ticket_store = ticket_store or DynamoDbTicketRepository(settings.tickets_table, dynamodb)
        message_store = message_store or DynamoDbMessageRepository(settings.messages_table, dynamodb)
        directory = directory or DynamoDbAgentRepository(
            settings.agents_table, settings.agent_metrics_table, dynamodb
        )

    if daily_metrics is None:
        db_engine = get_db_engine(settings) if settings.storage_backend != "memory" else None
        daily_metrics = DailyMetricRepository(db_engine) if db_engine else InMemoryDailyMetricRepository()

    if sink is None:
        if settings.notification_topic_arn:
            sink = SnsNotificationSink(settings.notification_topic_arn, max_attempts=settings.aws_max_attempts)
        else:
            sink = LoggingNotificationSink()

    sla_policy = SlaPolicy(settings.sla_response_hours, settings.sla_warning_hours)
    notifications = NotificationService(sink)
    tickets = TicketService(
        ticket_store,
        directory,
        sla_policy,
        clock,
        rating_window=timedelta(days=settings.rating_window_days),
    )
    assignment = AssignmentService(
        tickets,
        directory,
        ticket_store,
        notifications,
        cache=LRUCache(max_size=4, ttl_seconds=settings.agent_cache_ttl_seconds, clock=clock),
    )
    accumulator = AgentMetricsAccumulator(directory, max_retries=settings.metrics_max_retries)
    events = TicketEventProcessor(assignment, accumulator, notifications)
    if settings.event_delivery == "inline":
        tickets.subscribe(events)

    sweeps = SweepService(
        tickets,
        ticket_store,
        daily_metrics,
        notifications,
        sla_policy,
        clock,
        auto_close_after=timedelta(days=settings.auto_close_after_days),
        reminder_after=timedelta(hours=settings.reminder_after_hours),
        reminder_throttle=timedelta(days=settings.reminder_throttle_days),
        metrics_timezone=settings.metrics_timezone,
        max_retries=settings.write_max_retries,
    )

    logger.info(
        "Engine built",
        extra={
            "environment": settings.environment,
            "storage_backend": settings.storage_backend,
            "event_delivery": settings.event_delivery,
            "sink": type(sink).__name__,
            "daily_metrics": type(daily_metrics).__name__,
        },
    )
    return Engine(
        settings=settings,
        clock=clock,
        sla_policy=sla_policy,
        tickets=tickets,
        messages=MessageService(message_store, tickets, clock, max_retries=settings.write_max_retries),
        assignment=assignment,
        accumulator=accumulator,
        events=events,
        sweeps=sweeps,
        notifications=notifications,
        directory=directory,
    )
