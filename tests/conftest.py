"""
Pytest configuration to ensure paths are set up correctly for tests.

This allows imports like `from handlers import health_check` to work
when running tests, simulating the Lambda environment where code
is deployed from the src/ directory.
"""

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import boto3
import pytest


def _ensure_paths_on_sys_path() -> None:
    """Add repository root AND src/ to sys.path if missing.

    The src/ directory is added to simulate Lambda's import behavior,
    where Code.from_asset("src") makes src/ the root of the package.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"

    # Add repo root first (for imports like infrastructure.*)
    root_str = str(repo_root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)

    # Add src/ for Lambda-style imports (from handlers import ...)
    src_str = str(src_root)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


_ensure_paths_on_sys_path()

# Ensure boto3 has offline-friendly defaults so tests do not require AWS access.
os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_SESSION_TOKEN", "test")
os.environ.setdefault("ENVIRONMENT", "dev")

# Lambda environment variables used by handlers
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("EVENT_DELIVERY", "inline")

# Create a default boto3 session so resources/clients do not error during import.
boto3.setup_default_session(region_name="eu-west-2")


from config.settings import EngineSettings  # noqa: E402
from models.agent import Agent  # noqa: E402
from models.ticket import TicketCreateRequest  # noqa: E402
from repositories.memory_repo import (  # noqa: E402
    InMemoryAgentRepository,
    InMemoryDailyMetricRepository,
    InMemoryMessageRepository,
    InMemoryTicketRepository,
)
from services.engine import build_engine  # noqa: E402
from services.notification_service import LoggingNotificationSink  # noqa: E402
from utils.clock import FrozenClock  # noqa: E402

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def sink():
    return LoggingNotificationSink()


@pytest.fixture
def directory():
    return InMemoryAgentRepository()


@pytest.fixture
def ticket_store():
    return InMemoryTicketRepository()


@pytest.fixture
def daily_store():
    return InMemoryDailyMetricRepository()


@pytest.fixture
def make_engine(clock, sink, directory, ticket_store, daily_store):
    """Engine over in-memory stores; `event_delivery` picks inline or stream wiring."""

    def _make(event_delivery="inline", **overrides):
        settings = EngineSettings(storage_backend="memory", event_delivery=event_delivery, **overrides)
        return build_engine(
            settings,
            clock=clock,
            ticket_store=ticket_store,
            message_store=InMemoryMessageRepository(),
            directory=directory,
            daily_metrics=daily_store,
            sink=sink,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def add_agent(directory, clock):
    """Register an agent; insertion order is the assignment tie-break order."""

    def _add(agent_id, **fields):
        agent = Agent(
            id=agent_id,
            name=fields.pop("name", agent_id.title()),
            email=fields.pop("email", f"{agent_id}@support.example.com"),
            created_at=fields.pop("created_at", clock.now()),
            **fields,
        )
        directory.put(agent)
        return agent

    return _add


@pytest.fixture
def ticket_request():
    def _request(**fields):
        payload = {
            "subject": "Cannot export invoices",
            "description": "The export button spins forever.",
            "customer_id": "cust-1",
            "customer_email": "dana@example.com",
            "customer_name": "Dana",
            "plan_tier": "professional",
        }
        payload.update(fields)
        return TicketCreateRequest(**payload)

    return _request


@pytest.fixture
def api_engine(make_engine):
    """Install an in-memory engine for the Lambda handlers, then drop it."""
    from handlers import runtime

    engine = make_engine("stream")
    runtime.set_engine(engine)
    yield engine
    runtime.set_engine(None)


@pytest.fixture
def http_event():
    def _event(method, path, body=None, query=None, headers=None):
        event = {"requestContext": {"http": {"method": method, "path": path}}, "headers": headers or {}}
        if body is not None:
            event["body"] = json.dumps(body)
        if query is not None:
            event["queryStringParameters"] = query
        return event

    return _event
