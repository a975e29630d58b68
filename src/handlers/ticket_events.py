"""
DynamoDB Streams consumer for the tickets table.

INSERT records become `ticket_created`, MODIFY records `ticket_updated(before,
after)`. Processing is idempotent, so infrastructure failures are re-raised
and Lambda retries the batch.
"""

from handlers.runtime import get_engine
from repositories.dynamodb_repo import ticket_from_stream_image
from utils.logging_config import get_logger

logger = get_logger(__name__)


def lambda_handler(event, context):
    engine = get_engine()
    handled = 0
    for record in event.get("Records", []):
        name = record.get("eventName")
        images = record.get("dynamodb", {})
        event_id = record.get("eventID")

        try:
            if name == "INSERT" and "NewImage" in images:
                engine.events.ticket_created(ticket_from_stream_image(images["NewImage"]))
            elif name == "MODIFY" and "NewImage" in images and "OldImage" in images:
                engine.events.ticket_updated(
                    ticket_from_stream_image(images["OldImage"]),
                    ticket_from_stream_image(images["NewImage"]),
                )
            else:
                continue
        except Exception:
            logger.exception("Ticket event failed", extra={"event_id": event_id, "event_name": name})
            raise
        handled += 1

    logger.info("Ticket events processed", extra={"records": len(event.get("Records", [])), "handled": handled})
    return {"handled": handled}
