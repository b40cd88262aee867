"""Per-run state shared by the change handlers."""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from ..client.base import ControlPlaneClient
from ..utils.audit_log import ChangeTracker
from .errors import UnresolvedPlaceholderError
from .resolver import resolve, resolve_endpoint
from .schema import Change

logger = logging.getLogger(__name__)


@runtime_checkable
class DeploymentLogger(Protocol):
    """Receives human-readable progress messages about a deployment."""

    def infof(self, fmt: str, *args: Any) -> None:
        """Format (printf style) and report a message."""
        ...


class LoggingDeploymentLogger:
    """DeploymentLogger writing to a standard library logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logging.getLogger("bundlecraft.deploy")
        self.messages: list[str] = []

    def infof(self, fmt: str, *args: Any) -> None:
        self.messages.append(fmt % args if args else fmt)
        self._log.info(fmt, *args)


@dataclass
class RunContext:
    """Mutable state owned by exactly one engine run."""
    client: ControlPlaneClient
    log: DeploymentLogger
    tracker: Optional[ChangeTracker] = None
    results: dict[str, str] = field(default_factory=dict)
    # Machine and unit ids already matched to a change during this run
    claimed: set[str] = field(default_factory=set)
    applied: list[str] = field(default_factory=list)
    # Description of the step being attempted, used to annotate failures
    operation: str = ""

    def infof(self, fmt: str, *args: Any) -> None:
        """Report progress; a failing logger never aborts the run."""
        try:
            self.log.infof(fmt, *args)
        except Exception:
            logger.warning("Deployment logger failed for message %r", fmt, exc_info=True)

    def value(self, change: Change, placeholder: str) -> str:
        """Resolve a placeholder that must have a result."""
        resolved = resolve(placeholder, self.results)
        if not resolved:
            raise UnresolvedPlaceholderError(change.id, placeholder)
        return resolved

    def endpoint(self, change: Change, endpoint: str) -> str:
        """Resolve a relation endpoint whose service must have a result."""
        resolved = resolve_endpoint(endpoint, self.results)
        if not resolved or resolved.startswith(":"):
            raise UnresolvedPlaceholderError(change.id, endpoint)
        return resolved

    def claim(self, kind: str, entity_id: str) -> bool:
        """Mark a machine or unit as used by this run; False if it already was."""
        key = f"{kind}:{entity_id}"
        if key in self.claimed:
            return False
        self.claimed.add(key)
        return True

    def is_claimed(self, kind: str, entity_id: str) -> bool:
        return f"{kind}:{entity_id}" in self.claimed
