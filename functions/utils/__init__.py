"""Utility modules for the budget engine functions."""

from utils.agent_logger import (
    log_generation_start,
    log_generation_complete,
    log_generation_failed,
    log_triage_decision,
    log_item_resolved,
    log_validation_report,
)

__all__ = [
    "log_generation_start",
    "log_generation_complete",
    "log_generation_failed",
    "log_triage_decision",
    "log_item_resolved",
    "log_validation_report",
]
