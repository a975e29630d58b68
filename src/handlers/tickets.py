"""HTTP handlers for ticket commands and queries."""

from __future__ import annotations

from models.ticket import (
    AssignTicketRequest,
    CloseTicketRequest,
    LogTimeRequest,
    RateTicketRequest,
    StatusChangeRequest,
    TicketCreateRequest,
    TicketPriority,
    TicketQuery,
    TicketStatus,
)
from handlers.runtime import http_endpoint, ok, parse_body
from utils.logging_config import get_logger
from utils.validators import csv_param, path_param, query_param

logger = get_logger(__name__)


@http_endpoint
def create_ticket(event, engine, correlation_id):
    """Handle POST /tickets."""
    request = TicketCreateRequest.model_validate(parse_body(event))
    ticket = engine.tickets.create_ticket(request)
    logger.info(
        "Ticket accepted",
        extra={"correlation_id": correlation_id, "ticket_id": ticket.id, "ticket_number": ticket.ticket_number},
    )
    return ok("Ticket created", ticket, correlation_id, status=201)


@http_endpoint
def list_tickets(event, engine, correlation_id):
    """Handle GET /tickets?customer_id=&agent_id=&status=a,b&priority=a,b&limit=."""
    limit = query_param(event, "limit")
    query = TicketQuery(
        customer_id=query_param(event, "customer_id"),
        agent_id=query_param(event, "agent_id"),
        statuses=[TicketStatus(s) for s in csv_param(event, "status")],
        priorities=[TicketPriority(p) for p in csv_param(event, "priority")],
        newest_first=query_param(event, "order") != "asc",
        limit=int(limit) if limit else None,
    )
    tickets = engine.tickets.list_tickets(query)
    return ok("Tickets", tickets, correlation_id)


@http_endpoint
def get_ticket(event, engine, correlation_id):
    """Handle GET /tickets/{id}; includes the current SLA status."""
    ticket = engine.tickets.get_ticket(path_param(event, "id"))
    sla_status = engine.sla_policy.evaluate_ticket(ticket, engine.clock.now())
    data = {**ticket.model_dump(mode="json"), "sla_status": sla_status.value}
    return ok("Ticket", data, correlation_id)


@http_endpoint
def assign_ticket(event, engine, correlation_id):
    """Handle POST /tickets/{id}/assign (manager assigns an agent)."""
    request = AssignTicketRequest.model_validate(parse_body(event))
    ticket = engine.tickets.assign_ticket(
        path_param(event, "id"), request.agent_id, expected_version=request.expected_version
    )
    engine.notifications.ticket_assigned(ticket)
    return ok("Ticket assigned", ticket, correlation_id)


@http_endpoint
def claim_ticket(event, engine, correlation_id):
    """Handle POST /tickets/{id}/claim (an agent takes the ticket)."""
    request = AssignTicketRequest.model_validate(parse_body(event))
    ticket = engine.tickets.assign_ticket(
        path_param(event, "id"), request.agent_id, expected_version=request.expected_version
    )
    return ok("Ticket claimed", ticket, correlation_id)


@http_endpoint
def auto_assign_ticket(event, engine, correlation_id):
    """Handle POST /tickets/{id}/auto-assign."""
    ticket = engine.assignment.auto_assign(path_param(event, "id"))
    return ok("Ticket assigned", ticket, correlation_id)


@http_endpoint
def change_status(event, engine, correlation_id):
    """Handle POST /tickets/{id}/status."""
    request = StatusChangeRequest.model_validate(parse_body(event))
    ticket = engine.tickets.change_status(
        path_param(event, "id"), request.status, expected_version=request.expected_version
    )
    return ok("Status updated", ticket, correlation_id)


@http_endpoint
def close_ticket(event, engine, correlation_id):
    """Handle POST /tickets/{id}/close."""
    request = CloseTicketRequest.model_validate(parse_body(event))
    ticket = engine.tickets.close_ticket(
        path_param(event, "id"),
        satisfaction_rating=request.satisfaction_rating,
        feedback=request.feedback,
    )
    return ok("Ticket closed", ticket, correlation_id)


@http_endpoint
def rate_ticket(event, engine, correlation_id):
    """Handle POST /tickets/{id}/feedback."""
    request = RateTicketRequest.model_validate(parse_body(event))
    ticket = engine.tickets.rate_ticket(
        path_param(event, "id"), request.satisfaction_rating, request.feedback
    )
    return ok("Feedback recorded", ticket, correlation_id)


@http_endpoint
def log_time(event, engine, correlation_id):
    """Handle POST /tickets/{id}/time."""
    request = LogTimeRequest.model_validate(parse_body(event))
    ticket = engine.tickets.log_time(path_param(event, "id"), request.seconds)
    return ok("Time logged", ticket, correlation_id)
