"""Lightweight validation helpers for handler inputs."""

from typing import Any, Dict, Optional

from utils.error_handling import ValidationError


def ensure_present(value: Any, field: str) -> None:
    """Raise ValidationError if value is falsy."""
    if value in (None, "", []):
        raise ValidationError(f"{field} is required")


def path_param(event: Dict[str, Any], name: str) -> str:
    """Return a required API Gateway path parameter."""
    value = (event.get("pathParameters") or {}).get(name)
    ensure_present(value, name)
    return value


def query_param(event: Dict[str, Any], name: str) -> Optional[str]:
    """Return an optional query string parameter (None when blank)."""
    value = (event.get("queryStringParameters") or {}).get(name)
    return value or None


def csv_param(event: Dict[str, Any], name: str) -> list:
    """Split a comma-separated query parameter into a list."""
    raw = query_param(event, name)
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]
