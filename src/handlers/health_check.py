"""Lightweight health check handler."""

import os
from datetime import datetime, timezone

from config.settings import EngineSettings
from utils.error_handling import json_response


def lambda_handler(event, context):
    """Report the effective engine configuration without touching any store."""
    settings = EngineSettings.from_environment()
    return json_response(
        200,
        {
            "status": "ok",
            "service": "helpdesk-lifecycle-engine",
            "environment": os.environ.get("ENVIRONMENT", "dev"),
            "storage_backend": settings.storage_backend,
            "event_delivery": settings.event_delivery,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
