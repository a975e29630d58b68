"""
Pydantic model validation tests.

Ensures all models validate correctly and reject invalid data.
No AWS connection required.

Run with: pytest tests/unit/test_models.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

# Add src to path to simulate Lambda environment
SRC_PATH = Path(__file__).parent.parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def _ticket(**fields):
    from models.ticket import Ticket

    data = {
        "ticket_number": "TKT-ABC-123",
        "subject": "Login broken",
        "customer_id": "cust-1",
        "customer_email": "dana@example.com",
        "customer_name": "Dana",
        "created_at": NOW,
        "updated_at": NOW,
    }
    data.update(fields)
    return Ticket(**data)


class TestTicket:
    """Test the Ticket model invariants."""

    def test_defaults(self):
        """New tickets start in `new` with no time spent."""
        from models.ticket import TicketPriority, TicketStatus

        ticket = _ticket()
        assert ticket.status == TicketStatus.NEW
        assert ticket.priority == TicketPriority.MEDIUM
        assert ticket.time_spent == 0
        assert ticket.version == 0
        assert ticket.is_closed is False

    def test_closed_requires_resolved_at(self):
        """A closed ticket without resolved_at is rejected."""
        with pytest.raises(ValidationError):
            _ticket(status="closed")

    def test_resolved_at_requires_closed(self):
        """resolved_at on an open ticket is rejected."""
        with pytest.raises(ValidationError):
            _ticket(status="in_progress", resolved_at=NOW)

    def test_closed_with_resolved_at(self):
        ticket = _ticket(status="closed", resolved_at=NOW + timedelta(hours=1))
        assert ticket.is_closed

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_bounds(self, rating):
        """Satisfaction ratings are 1-5."""
        with pytest.raises(ValidationError):
            _ticket(status="closed", resolved_at=NOW, satisfaction_rating=rating)

    def test_naive_timestamps_rejected(self):
        """Timestamps must carry a timezone."""
        with pytest.raises(ValidationError):
            _ticket(created_at=datetime(2024, 3, 4, 9, 0))

    def test_negative_time_spent_rejected(self):
        with pytest.raises(ValidationError):
            _ticket(time_spent=-1)


class TestTicketCreateRequest:
    """Test inbound ticket payload validation."""

    def test_plan_tier_is_normalised(self):
        from models.ticket import TicketCreateRequest

        request = TicketCreateRequest(
            subject="  Refund  ",
            customer_id="c",
            customer_email="c@example.com",
            customer_name="C",
            plan_tier=" Enterprise ",
        )
        assert request.plan_tier == "enterprise"
        assert request.subject == "Refund"

    def test_blank_subject_rejected(self):
        from models.ticket import TicketCreateRequest

        with pytest.raises(ValidationError):
            TicketCreateRequest(
                subject="   ",
                customer_id="c",
                customer_email="c@example.com",
                customer_name="C",
            )

    def test_unknown_priority_rejected(self):
        from models.ticket import TicketCreateRequest

        with pytest.raises(ValidationError):
            TicketCreateRequest(
                subject="Refund",
                customer_id="c",
                customer_email="c@example.com",
                customer_name="C",
                priority="critical",
            )

    @pytest.mark.parametrize("email", ["", "   ", "dana", "dana@", "@example.com", "dana @example.com"])
    def test_malformed_email_rejected(self, email):
        from models.ticket import TicketCreateRequest

        with pytest.raises(ValidationError):
            TicketCreateRequest(subject="Refund", customer_id="c", customer_email=email, customer_name="C")

    def test_email_is_trimmed(self):
        from models.ticket import TicketCreateRequest

        request = TicketCreateRequest(
            subject="Refund", customer_id="c", customer_email="  dana@example.com ", customer_name="C"
        )
        assert request.customer_email == "dana@example.com"


class TestTicketQuery:
    """In-memory evaluation of the store-agnostic filter."""

    def test_status_and_priority_sets(self):
        from models.ticket import TicketPriority, TicketQuery, TicketStatus

        query = TicketQuery(statuses=[TicketStatus.NEW], priorities=[TicketPriority.HIGH])
        assert query.matches(_ticket(priority="high"))
        assert not query.matches(_ticket(priority="low"))
        assert not query.matches(_ticket(status="waiting", priority="high"))

    def test_created_window_is_half_open(self):
        from models.ticket import TicketQuery

        query = TicketQuery(created_from=NOW, created_before=NOW + timedelta(days=1))
        assert query.matches(_ticket())
        assert not query.matches(
            _ticket(created_at=NOW + timedelta(days=1), updated_at=NOW + timedelta(days=1))
        )

    def test_deadline_bounds_are_strict_and_require_deadline(self):
        from models.ticket import TicketQuery

        query = TicketQuery(sla_deadline_after=NOW, sla_deadline_before=NOW + timedelta(hours=4))
        assert query.matches(_ticket(sla_deadline=NOW + timedelta(hours=1)))
        assert not query.matches(_ticket(sla_deadline=NOW))
        assert not query.matches(_ticket(sla_deadline=NOW + timedelta(hours=4)))
        assert not query.matches(_ticket())

    def test_resolved_bounds_skip_open_tickets(self):
        from models.ticket import TicketQuery

        query = TicketQuery(resolved_from=NOW)
        assert not query.matches(_ticket())
        assert query.matches(_ticket(status="closed", resolved_at=NOW))


class TestMessageCreateRequest:
    """Test message payload validation."""

    def test_customer_cannot_write_internal_note(self):
        from models.message import MessageCreateRequest

        with pytest.raises(ValidationError):
            MessageCreateRequest(
                sender_id="cust-1",
                sender_name="Dana",
                sender_role="customer",
                content="secret",
                is_internal_note=True,
            )

    def test_agent_internal_note_allowed(self):
        from models.message import MessageCreateRequest

        request = MessageCreateRequest(
            sender_id="a1",
            sender_name="Ann",
            sender_role="agent",
            content="Check billing logs",
            is_internal_note=True,
        )
        assert request.is_internal_note is True

    def test_empty_content_rejected(self):
        from models.message import MessageCreateRequest

        with pytest.raises(ValidationError):
            MessageCreateRequest(sender_id="a1", sender_name="Ann", sender_role="agent", content=" ")

    def test_staff_reply_property(self):
        from models.message import Message

        reply = Message(
            ticket_id="t1", sender_id="a1", sender_name="Ann", sender_role="manager",
            content="Hi", created_at=NOW,
        )
        note = reply.model_copy(update={"is_internal_note": True})
        assert reply.is_staff_reply is True
        assert note.is_staff_reply is False


class TestMetricsModels:
    """Test agent and daily metric models."""

    def test_new_agent_counters_start_at_zero(self):
        from models.agent import Agent

        agent = Agent(id="a1", name="Ann", email="ann@example.com")
        assert (agent.tickets_closed, agent.avg_response_time, agent.csat_score, agent.total_ratings) == (0, 0.0, 0.0, 0)
        assert agent.is_active is True

    def test_day_metrics_average(self):
        from models.metrics import AgentDayMetrics

        assert AgentDayMetrics().avg_response_minutes == 0.0
        assert AgentDayMetrics(total_response_minutes=30, response_count=2).avg_response_minutes == 15

    def test_sla_compliance_is_a_percentage(self):
        from models.metrics import DailyMetric

        with pytest.raises(ValidationError):
            DailyMetric(date="2024-03-04", tickets_opened=0, tickets_closed=0, sla_compliance=101)


class TestApiResponse:
    """Test response envelopes."""

    def test_api_response(self):
        from models.response import ApiResponse

        response = ApiResponse(message="Ticket created", data={"id": "t1"}, correlation_id="c")
        assert response.model_dump()["data"] == {"id": "t1"}

    def test_error_response_omits_empty_fields(self):
        from models.response import ErrorResponse

        body = ErrorResponse(error="not_found", message="Ticket t1 not found")
        assert body.status == "error"
        assert "details" not in body.model_dump(exclude_none=True)
