"""
Environment-specific configuration settings.

Cost-optimized defaults for development/testing.
"""

from dataclasses import dataclass, field
import os
from typing import Dict


@dataclass
class Settings:
    """Deployment settings with cost-optimized defaults."""

    # Environment
    environment: str = "dev"
    aws_region: str = "eu-west-2"  # Default AWS region

    # Database Configuration (Cost-optimized)
    db_instance_class: str = "t3.micro"  # Free tier eligible
    db_allocated_storage: int = 20  # Minimum GB

    # Lambda Configuration
    lambda_memory_mb: int = 512
    lambda_timeout_seconds: int = 30
    sweep_timeout_seconds: int = 300

    # Engine policy passed to every Lambda as environment variables
    sla_response_hours: str = '{"standard": 24, "professional": 4, "enterprise": 1}'
    auto_close_after_days: int = 7
    metrics_timezone: str = "America/New_York"

    # Schedules (EventBridge cron fields, UTC)
    schedules: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {
            "auto_close": {"minute": "0", "hour": "7"},
            "sla_warning": {"minute": "0/30"},
            "customer_reminder": {"minute": "0", "hour": "14"},
            "daily_rollup": {"minute": "59", "hour": "4"},
        }
    )
    sweep_retry_attempts: int = 2

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get("ENVIRONMENT", "dev")
        region = os.environ.get("AWS_REGION", "eu-west-2")

        # Production overrides
        if env == "prod":
            return cls(
                environment="prod",
                aws_region=region,
                db_instance_class="t3.small",  # Upgrade for prod
                db_allocated_storage=50,
                lambda_memory_mb=1024,
                lambda_timeout_seconds=60,
            )

        return cls(environment=env, aws_region=region)
