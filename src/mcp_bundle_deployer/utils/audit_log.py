"""Audit trail for bundle deployments.

Every change the engine applies (or fails to apply) is written as one JSON
line to a dedicated audit log, so a partially applied bundle can be inspected
after the fact:
- Timestamped entries per change
- Change id, kind and resolved parameters
- Result recorded for the change, or the error that aborted the run
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

audit_logger = logging.getLogger("bundlecraft.audit")

DEFAULT_AUDIT_DIR = "~/.bundlecraft"


def default_audit_file() -> str:
    return os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")


def setup_audit_logging(log_dir: Optional[str] = None) -> str:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.bundlecraft/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = os.path.join(log_dir, "audit.log")

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    # One JSON document per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False

    return audit_file


@dataclass
class ChangeRecord:
    """Record of one applied bundle change."""
    timestamp: str
    environment: str
    change_id: str
    operation: str  # addCharm, addService, addRelation, ...
    user: str
    success: bool
    parameters: dict = field(default_factory=dict)
    result: str = ""
    context: str = ""
    error: Optional[str] = None

    def to_json(self) -> str:
        """Convert to JSON string."""
        # Bundle options may hold YAML scalars such as dates
        return json.dumps(asdict(self), indent=None, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Write change records for one deployment run."""

    def __init__(self, environment: str, user: str = "system", context: str = ""):
        self.environment = environment
        self.user = user
        self.context = context
        self.records: list[ChangeRecord] = []

    def log_change(
        self,
        change_id: str,
        operation: str,
        parameters: dict[str, Any],
        success: bool,
        result: str = "",
        error: Optional[str] = None,
    ) -> ChangeRecord:
        """Log a bundle change.

        Args:
            change_id: Identifier of the change within the bundle run
            operation: The change kind (e.g., "addService")
            parameters: Resolved parameters of the change
            success: Whether the change was applied
            result: Value recorded for the change
            error: Error message if the change failed

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=self.environment,
            change_id=change_id,
            operation=operation,
            user=self.user,
            success=success,
            parameters=parameters,
            result=result,
            context=self.context,
            error=error[:1000] if error else None,
        )

        audit_logger.info(record.to_json())
        self.records.append(record)

        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    environment: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.bundlecraft/audit.log
        environment: Filter by environment name
        operation: Filter by change kind
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = default_audit_file()

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if environment and record.environment != environment:
                continue
            if operation and record.operation != operation:
                continue

            records.append(record)

    return list(reversed(records[-limit:]))
