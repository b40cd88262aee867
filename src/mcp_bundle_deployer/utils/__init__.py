"""Utility modules for logging, auditing and session retries."""
from .audit_log import ChangeRecord, ChangeTracker, get_recent_changes, setup_audit_logging
from .connection import with_retry
from .logging_config import (
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)

__all__ = [
    "ChangeRecord",
    "ChangeTracker",
    "get_recent_changes",
    "setup_audit_logging",
    "with_retry",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
