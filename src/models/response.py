"""Response envelopes returned by the HTTP handlers."""

from typing import Any, Literal, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """Successful API response; `data` holds the ticket, message or list."""

    message: str
    data: Optional[Any] = None
    correlation_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body; `error` is the stable machine-readable code."""

    status: Literal["error"] = "error"
    error: str
    message: str
    details: Optional[Any] = None
    correlation_id: Optional[str] = None
