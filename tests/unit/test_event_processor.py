"""Ticket lifecycle reactions delivered in-process."""

from unittest.mock import MagicMock

from models.ticket import TicketPriority, TicketStatus
from services.event_processor import TicketEventProcessor
from utils.error_handling import ConcurrentUpdateConflictError


def _kinds(sink, channel=None):
    return [s["payload"]["kind"] for s in sink.sent if channel is None or s["channel"] == channel]


class TestTicketCreated:
    def test_new_ticket_is_confirmed_and_auto_assigned(self, engine, add_agent, ticket_request, sink, clock):
        add_agent("a1")
        created = engine.tickets.create_ticket(ticket_request())

        current = engine.tickets.get_ticket(created.id)
        assert current.agent_id == "a1"
        assert current.status == TicketStatus.IN_PROGRESS
        assert current.first_response_at == clock.now()
        assert _kinds(sink) == ["ticket_confirmation", "ticket_assigned"]
        assert sink.sent[0]["payload"]["to"] == "dana@example.com"

    def test_urgent_ticket_alerts_the_team(self, engine, add_agent, ticket_request, sink):
        add_agent("a1")
        engine.tickets.create_ticket(ticket_request(priority="urgent"))
        assert _kinds(sink, "chat") == ["high_priority_ticket", "ticket_assigned"]

    def test_no_agents_leaves_ticket_unassigned(self, engine, ticket_request, sink):
        created = engine.tickets.create_ticket(ticket_request(priority="high"))

        current = engine.tickets.get_ticket(created.id)
        assert current.agent_id is None
        assert current.status == TicketStatus.NEW
        assert _kinds(sink) == ["ticket_confirmation", "high_priority_ticket"]

    def test_preassigned_ticket_is_not_reassigned(self, engine, add_agent, ticket_request, sink):
        add_agent("a1")
        add_agent("a2")
        created = engine.tickets.create_ticket(ticket_request(agent_id="a2"))

        current = engine.tickets.get_ticket(created.id)
        assert current.agent_id == "a2"
        assert current.status == TicketStatus.NEW
        assert "ticket_assigned" not in _kinds(sink)

    def test_stale_event_does_not_override_claim(self, make_engine, add_agent, ticket_request):
        engine = make_engine("stream")
        add_agent("a1")
        add_agent("a2")
        created = engine.tickets.create_ticket(ticket_request())
        engine.tickets.assign_ticket(created.id, "a2")

        # The created event arrives after the claim.
        engine.events.ticket_created(created)
        assert engine.tickets.get_ticket(created.id).agent_id == "a2"

    def test_inline_assignment_skips_agent_deactivated_after_caching(
        self, engine, add_agent, ticket_request, clock
    ):
        add_agent("a1")
        add_agent("a2")
        first = engine.tickets.create_ticket(ticket_request())
        assert engine.tickets.get_ticket(first.id).agent_id == "a1"
        engine.tickets.close_ticket(first.id)

        add_agent("a1", is_active=False)
        clock.advance(seconds=5)
        second = engine.tickets.create_ticket(ticket_request())

        current = engine.tickets.get_ticket(second.id)
        assert current.agent_id == "a2"
        assert current.status == TicketStatus.IN_PROGRESS

    def test_conflict_during_auto_assign_is_logged(self, ticket_request):
        assignment = MagicMock()
        assignment.auto_assign.side_effect = ConcurrentUpdateConflictError()
        notifications = MagicMock()
        processor = TicketEventProcessor(assignment, MagicMock(), notifications)

        ticket = MagicMock(id="t1", agent_id=None, version=0, priority=TicketPriority.LOW)
        processor.ticket_created(ticket)

        assignment.auto_assign.assert_called_once_with("t1", expected_version=0)
        notifications.ticket_confirmation.assert_called_once_with(ticket)
        notifications.high_priority_alert.assert_not_called()


class TestTicketUpdated:
    def test_close_records_metrics_once(self, engine, add_agent, ticket_request, directory, clock):
        add_agent("a1")
        created = engine.tickets.create_ticket(ticket_request())
        clock.advance(hours=1)
        engine.tickets.close_ticket(created.id, satisfaction_rating=5)

        agent = directory.get("a1")
        assert agent.tickets_closed == 1
        assert agent.csat_score == 5
        assert [m.ticket_id for m in directory.list_ticket_metrics("a1")] == [created.id]

        # closed -> closed (e.g. a rating) is not a closure.
        closed = engine.tickets.get_ticket(created.id)
        engine.events.ticket_updated(closed, closed)
        assert directory.get("a1").tickets_closed == 1

    def test_redelivered_close_event_is_ignored(self, engine, add_agent, ticket_request, directory):
        add_agent("a1")
        created = engine.tickets.create_ticket(ticket_request())
        before = engine.tickets.get_ticket(created.id)
        after = engine.tickets.close_ticket(created.id)

        engine.events.ticket_updated(before, after)
        engine.events.ticket_updated(before, after)
        assert directory.get("a1").tickets_closed == 1

    def test_non_closing_update_does_nothing(self):
        accumulator = MagicMock()
        processor = TicketEventProcessor(MagicMock(), accumulator, MagicMock())
        before = MagicMock(status=TicketStatus.NEW)
        after = MagicMock(status=TicketStatus.IN_PROGRESS)
        processor.ticket_updated(before, after)
        accumulator.record_closure.assert_not_called()

    def test_unassigned_close_skips_metrics(self, engine, ticket_request, directory):
        created = engine.tickets.create_ticket(ticket_request())
        closed = engine.tickets.close_ticket(created.id)
        assert closed.agent_id is None
        assert directory.list_ticket_metrics("a1") == []
