"""
Shared handler plumbing.

The Engine is built lazily on first use so importing a handler never opens
connections, and it is reused across warm invocations.
"""

from __future__ import annotations

import functools
import json
import uuid
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from models.response import ApiResponse, ErrorResponse
from utils.error_handling import AppError, error_response, json_response, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)

# Lazy-loaded engine to avoid import-time AWS/DB clients
_engine: Optional["Engine"] = None


def get_engine():
    """Lazy-load the Engine."""
    global _engine
    if _engine is None:
        from services.engine import build_engine
        _engine = build_engine()
    return _engine


def set_engine(engine) -> None:
    """Replace the cached Engine (tests, local runs)."""
    global _engine
    _engine = engine


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    raw = event.get("body") or "{}"
    payload = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_dump(item) for item in data]
    if isinstance(data, dict):
        return {key: _dump(value) for key, value in data.items()}
    return data


def ok(message: str, data: Any = None, correlation_id: Optional[str] = None, status: int = 200) -> Dict:
    body = ApiResponse(message=message, data=_dump(data), correlation_id=correlation_id)
    return json_response(status, body.model_dump_json(), correlation_id)


def http_endpoint(func: Callable) -> Callable:
    """
    Wrap an HTTP handler: assign a correlation id and map errors to responses.

    The wrapped function receives (event, engine, correlation_id).
    """

    @functools.wraps(func)
    def wrapper(event, context):
        headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}
        correlation_id = headers.get("x-correlation-id") or str(uuid.uuid4())
        try:
            return func(event, get_engine(), correlation_id)
        except AppError as exc:
            logger.info(
                "Request rejected",
                extra={"correlation_id": correlation_id, "error": exc.error_code, "detail": str(exc)},
            )
            return to_response(exc, correlation_id)
        except PydanticValidationError as exc:
            return error_response(
                422,
                ErrorResponse(
                    error="validation_error",
                    message="Invalid request",
                    details=json.loads(exc.json(include_url=False)),
                    correlation_id=correlation_id,
                ),
            )
        except (ValueError, json.JSONDecodeError) as exc:
            return error_response(
                400,
                ErrorResponse(
                    error="bad_request",
                    message="Malformed request",
                    details=str(exc),
                    correlation_id=correlation_id,
                ),
            )
        except Exception:
            logger.exception("Unhandled error", extra={"correlation_id": correlation_id})
            return error_response(
                500,
                ErrorResponse(error="internal_error", message="Internal error", correlation_id=correlation_id),
            )

    return wrapper
