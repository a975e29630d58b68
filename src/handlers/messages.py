"""HTTP handlers for a ticket's conversation."""

from models.message import MessageCreateRequest, SenderRole
from handlers.runtime import http_endpoint, ok, parse_body
from utils.validators import path_param, query_param


@http_endpoint
def post_message(event, engine, correlation_id):
    """Handle POST /tickets/{id}/messages."""
    request = MessageCreateRequest.model_validate(parse_body(event))
    message = engine.messages.post_message(path_param(event, "id"), request)
    return ok("Message posted", message, correlation_id, status=201)


@http_endpoint
def list_messages(event, engine, correlation_id):
    """Handle GET /tickets/{id}/messages?viewer_role=customer|agent|manager."""
    role = query_param(event, "viewer_role")
    messages = engine.messages.list_messages(
        path_param(event, "id"), SenderRole(role) if role else None
    )
    return ok("Messages", messages, correlation_id)


@http_endpoint
def mark_read(event, engine, correlation_id):
    """Handle POST /tickets/{id}/messages/{message_id}/read."""
    message = engine.messages.mark_read(path_param(event, "id"), path_param(event, "message_id"))
    return ok("Message read", message, correlation_id)
