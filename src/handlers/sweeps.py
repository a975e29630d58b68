"""
EventBridge scheduled entrypoints, one per sweep.

Failures propagate so the schedule's retry policy re-runs the job; every
sweep is safe to run twice.
"""

from datetime import date

from handlers.runtime import get_engine
from utils.logging_config import get_logger

logger = get_logger(__name__)


def _run(job: str, func):
    try:
        report = func()
    except Exception:
        logger.exception("Sweep failed", extra={"job": job})
        raise
    return report.model_dump(mode="json")


def auto_close_handler(event, context):
    return _run("auto_close", get_engine().sweeps.auto_close_inactive)


def sla_warning_handler(event, context):
    return _run("sla_warning", get_engine().sweeps.sla_warnings)


def customer_reminder_handler(event, context):
    return _run("customer_reminder", get_engine().sweeps.customer_reminders)


def daily_rollup_handler(event, context):
    """Roll up `event["date"]` (YYYY-MM-DD) or today in the metrics timezone."""
    raw = (event or {}).get("date")
    day = date.fromisoformat(raw) if raw else None
    return _run("daily_rollup", lambda: get_engine().sweeps.daily_rollup(day))
