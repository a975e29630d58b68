"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

Routes are matched in order against `METHOD /path`; named groups become
`pathParameters` so handlers read them the same way whether the API uses a
catch-all proxy route or explicit ones.
"""

import re
from typing import Callable, Pattern, Tuple

from . import health_check, messages, tickets
from utils.error_handling import json_response

_ID = r"(?P<id>[^/]+)"

ROUTES: Tuple[Tuple[Pattern, Callable], ...] = tuple(
    (re.compile(pattern + "$"), handler)
    for pattern, handler in (
        (r"GET /health", health_check.lambda_handler),
        (r"POST /tickets", tickets.create_ticket),
        (r"GET /tickets", tickets.list_tickets),
        (rf"GET /tickets/{_ID}", tickets.get_ticket),
        (rf"POST /tickets/{_ID}/assign", tickets.assign_ticket),
        (rf"POST /tickets/{_ID}/claim", tickets.claim_ticket),
        (rf"POST /tickets/{_ID}/auto-assign", tickets.auto_assign_ticket),
        (rf"POST /tickets/{_ID}/status", tickets.change_status),
        (rf"POST /tickets/{_ID}/close", tickets.close_ticket),
        (rf"POST /tickets/{_ID}/feedback", tickets.rate_ticket),
        (rf"POST /tickets/{_ID}/time", tickets.log_time),
        (rf"GET /tickets/{_ID}/messages", messages.list_messages),
        (rf"POST /tickets/{_ID}/messages", messages.post_message),
        (rf"POST /tickets/{_ID}/messages/(?P<message_id>[^/]+)/read", messages.mark_read),
    )
)


def lambda_handler(event, context):
    """
    Entry point invoked by API Gateway HTTP API.

    The event contains the HTTP method and path; we route it to the correct
    handler while keeping shared setup (logging, error handling) centralized.
    """
    method = event.get("requestContext", {}).get("http", {}).get("method", "")
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    route_key = f"{method.upper()} {path.rstrip('/') or '/'}"

    for pattern, handler in ROUTES:
        match = pattern.match(route_key)
        if match:
            if match.groupdict():
                event = {
                    **event,
                    "pathParameters": {**(event.get("pathParameters") or {}), **match.groupdict()},
                }
            return handler(event, context)

    return json_response(404, {"message": "Route not found", "route": route_key, "status": "error"})
