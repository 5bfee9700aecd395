"""Logging and metrics shared by the resolution engine and its callers."""

from .logging import (
    JsonLogFormatter,
    configure_from_settings,
    configure_logging,
    get_run_id,
    run_context,
)
from .metrics import render_metrics

__all__ = [
    "JsonLogFormatter",
    "configure_from_settings",
    "configure_logging",
    "get_run_id",
    "render_metrics",
    "run_context",
]
