"""Change execution engine.

Applies an ordered list of bundle changes against the control plane, one at
a time and in the given order. The order is trusted: every change must come
after the changes its placeholders refer to.

The deployment is not transactional. When a change fails the run stops
there; changes applied before it stay applied and can be picked up again by
a later run thanks to the idempotency policies.
"""
import logging
from typing import Optional, Sequence

from ..client.base import ControlPlaneClient
from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from .context import DeploymentLogger, LoggingDeploymentLogger, RunContext
from .errors import ChangeFailedError, InvariantViolation, UnknownChangeKindError
from .handlers import HandlerRegistry, register_default_handlers
from .schema import Change

logger = logging.getLogger(__name__)


class ChangeExecutionEngine:
    """
    Apply bundle changes sequentially.

    Usage:
        engine = ChangeExecutionEngine()
        results = await engine.execute(changes, client, log)
    """

    def __init__(self, registry: Optional[HandlerRegistry] = None):
        """
        Initialize the engine.

        Args:
            registry: Handler registry (defaults to the handlers of every known kind)
        """
        self.registry = registry or register_default_handlers(HandlerRegistry())

    async def execute(
        self,
        changes: Sequence[Change],
        client: ControlPlaneClient,
        log: Optional[DeploymentLogger] = None,
        tracker: Optional[ChangeTracker] = None,
    ) -> dict[str, str]:
        """
        Apply every change in order.

        Args:
            changes: Non-empty, topologically ordered changes
            client: Connected control-plane client
            log: Progress sink (defaults to the standard logger)
            tracker: Optional audit tracker receiving one record per change

        Returns:
            The result table: change id to recorded result

        Raises:
            UnknownChangeKindError: On a change kind without a handler
            ChangeFailedError: When a change fails; earlier changes stay applied
            InvariantViolation: On a malformed placeholder (programming error)
        """
        if not changes:
            raise ValueError("no changes to apply")

        ctx = RunContext(client=client, log=log or LoggingDeploymentLogger(), tracker=tracker)
        total = len(changes)

        for step, change in enumerate(changes, 1):
            handler = self.registry.get(change.kind)
            if handler is None:
                self._audit(ctx, change, success=False, error=f"unknown change type {change.kind!r}")
                raise UnknownChangeKindError(change.id, change.kind)

            kind = change.kind.value
            logger.debug(f"[{step}/{total}] {change.id}: {change.describe()}")
            ctx.operation = f"cannot apply change {change.id}"

            try:
                async with timed_section(f"change:{change.id}", client.environment, kind=kind):
                    result = await handler(ctx, change)
            except InvariantViolation:
                raise
            except Exception as e:
                self._audit(ctx, change, success=False, error=str(e))
                logger.error(f"Change {change.id} ({kind}) failed: {e}")
                raise ChangeFailedError(change.id, kind, ctx.operation, e) from e

            ctx.results[change.id] = result
            ctx.applied.append(change.describe())
            self._audit(ctx, change, success=True, result=result)

        logger.info(f"Applied {total} changes to {client.environment}")
        return dict(ctx.results)

    @staticmethod
    def _audit(
        ctx: RunContext,
        change: Change,
        success: bool,
        result: str = "",
        error: Optional[str] = None,
    ) -> None:
        if ctx.tracker is None:
            return
        kind = getattr(change.kind, "value", str(change.kind))
        ctx.tracker.log_change(
            change_id=change.id,
            operation=kind,
            parameters=change.params(),
            success=success,
            result=result,
            error=error,
        )
