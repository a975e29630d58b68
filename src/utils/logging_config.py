"""Structured logger setup shared across the engine Lambdas."""

import logging
import os

from pythonjsonlogger.json import JsonFormatter


def get_logger(name: str) -> logging.Logger:
    """
    Configure a JSON logger once and reuse it.

    Every lifecycle decision is logged with `extra` context (ticket_id,
    agent_id, statuses, sweep counters) so CloudWatch Insights can filter on it.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = JsonFormatter(
        "%(levelname)s %(name)s %(message)s %(asctime)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    logger.propagate = False
    return logger
