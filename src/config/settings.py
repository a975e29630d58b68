"""
Runtime settings for the lifecycle engine.

Policy knobs (SLA windows, sweep thresholds) are configuration, not code: the
SLA table can gain a tier through SLA_RESPONSE_HOURS without a deploy.
"""

from dataclasses import dataclass, field
import json
import os
from typing import Dict, Optional

DEFAULT_SLA_RESPONSE_HOURS = {
    "standard": 24.0,
    "professional": 4.0,
    "enterprise": 1.0,
}


def _parse_sla_hours(raw: Optional[str]) -> Dict[str, float]:
    if not raw:
        return dict(DEFAULT_SLA_RESPONSE_HOURS)
    try:
        table = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"SLA_RESPONSE_HOURS is not valid JSON: {exc}") from exc
    if not isinstance(table, dict) or not table:
        raise ValueError("SLA_RESPONSE_HOURS must be a non-empty JSON object")
    parsed = {}
    for tier, hours in table.items():
        hours = float(hours)
        if hours <= 0:
            raise ValueError(f"SLA window for {tier!r} must be positive")
        parsed[str(tier).lower()] = hours
    return parsed


def _positive(name: str, default: float) -> float:
    value = float(os.environ.get(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


@dataclass
class EngineSettings:
    """Engine settings with production defaults."""

    environment: str = "dev"

    # SLA policy
    sla_response_hours: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_SLA_RESPONSE_HOURS)
    )
    sla_warning_hours: float = 4.0

    # Sweeps
    auto_close_after_days: float = 7.0
    reminder_after_hours: float = 24.0
    reminder_throttle_days: float = 2.0
    metrics_timezone: str = "UTC"

    # Closed tickets accept a rating for this long after resolution
    rating_window_days: float = 7.0

    # "stream" (DynamoDB Streams) or "inline" (in-process listeners)
    event_delivery: str = "stream"

    # Storage: "dynamodb" or "memory" (local runs)
    storage_backend: str = "dynamodb"
    tickets_table: str = "tickets"
    messages_table: str = "ticket-messages"
    agents_table: str = "agents"
    agent_metrics_table: str = "agent-ticket-metrics"
    database_url: Optional[str] = None
    db_secret_arn: Optional[str] = None

    # Notifications
    notification_topic_arn: Optional[str] = None

    # Resilience
    aws_max_attempts: int = 5
    metrics_max_retries: int = 3
    write_max_retries: int = 3
    agent_cache_ttl_seconds: int = 30

    @classmethod
    def from_environment(cls) -> "EngineSettings":
        """Load settings from environment variables."""
        env = os.environ
        backend = env.get("STORAGE_BACKEND", "dynamodb").lower()
        if backend not in ("dynamodb", "memory"):
            raise ValueError("STORAGE_BACKEND must be 'dynamodb' or 'memory'")

        # In-memory stores have no change stream, so events default to inline there.
        default_delivery = "inline" if backend == "memory" else "stream"
        delivery = env.get("EVENT_DELIVERY", default_delivery).lower()
        if delivery not in ("stream", "inline"):
            raise ValueError("EVENT_DELIVERY must be 'stream' or 'inline'")

        return cls(
            environment=env.get("ENVIRONMENT", "dev"),
            sla_response_hours=_parse_sla_hours(env.get("SLA_RESPONSE_HOURS")),
            sla_warning_hours=_positive("SLA_WARNING_HOURS", 4),
            auto_close_after_days=_positive("AUTO_CLOSE_AFTER_DAYS", 7),
            reminder_after_hours=_positive("REMINDER_AFTER_HOURS", 24),
            reminder_throttle_days=_positive("REMINDER_THROTTLE_DAYS", 2),
            metrics_timezone=env.get("METRICS_TIMEZONE", "UTC"),
            rating_window_days=_positive("RATING_WINDOW_DAYS", 7),
            event_delivery=delivery,
            storage_backend=backend,
            tickets_table=env.get("TICKETS_TABLE", "tickets"),
            messages_table=env.get("MESSAGES_TABLE", "ticket-messages"),
            agents_table=env.get("AGENTS_TABLE", "agents"),
            agent_metrics_table=env.get("AGENT_METRICS_TABLE", "agent-ticket-metrics"),
            database_url=env.get("DATABASE_URL") or None,
            db_secret_arn=env.get("DB_SECRET_ARN") or None,
            notification_topic_arn=env.get("NOTIFICATION_TOPIC_ARN") or None,
            aws_max_attempts=int(env.get("AWS_MAX_ATTEMPTS", 5)),
            metrics_max_retries=int(env.get("METRICS_MAX_RETRIES", 3)),
            write_max_retries=int(env.get("WRITE_MAX_RETRIES", 3)),
            agent_cache_ttl_seconds=int(env.get("AGENT_CACHE_TTL_SECONDS", 30)),
        )
