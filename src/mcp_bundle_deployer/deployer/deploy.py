"""Bundle deployer - orchestrates the full deploy_bundle workflow.

Provides a single entry point for:
1. Parsing the bundle document
2. Verifying it before touching the environment
3. Building the ordered change list
4. Applying the changes (or previewing them on a dry run)
"""
import logging
from typing import Any, Optional

from ..client.base import ControlPlaneError
from ..config.inventory import EnvironmentInventory
from ..utils.audit_log import ChangeTracker
from .changes import ChangeGraphBuilder
from .context import DeploymentLogger
from .engine import ChangeExecutionEngine
from .errors import BundleVerificationError, ChangeFailedError, DeployError, UnknownChangeKindError
from .parser import BundleParser, compute_checksum
from .schema import BundleData, Change, DeployOptions, DeployResult, ValidationResult
from .validator import BundleValidator

logger = logging.getLogger(__name__)


class BundleDeployer:
    """
    Deploy bundles to the environments of an inventory.

    Usage:
        deployer = BundleDeployer(inventory)
        result = await deployer.deploy(bundle_dict, "staging", DeployOptions(dry_run=True))
    """

    def __init__(
        self,
        inventory: Optional[EnvironmentInventory] = None,
        engine: Optional[ChangeExecutionEngine] = None,
        validator: Optional[BundleValidator] = None,
    ):
        """
        Initialize the deployer.

        Args:
            inventory: Environment inventory for looking up controllers (not
                needed for verification and dry runs)
            engine: Change execution engine (defaults to the standard handlers)
            validator: Bundle validator (defaults to the standard constraint checker)
        """
        self.inventory = inventory
        self.parser = BundleParser()
        self.validator = validator or BundleValidator()
        self.engine = engine or ChangeExecutionEngine()

    async def deploy(
        self,
        bundle: dict[str, Any],
        environment: str,
        options: Optional[DeployOptions] = None,
        log: Optional[DeploymentLogger] = None,
        name: Optional[str] = None,
    ) -> DeployResult:
        """
        Deploy a bundle document to an environment.

        Verification failures are reported before any controller call. When a
        change fails, the changes applied before it are kept and listed in the
        result.

        Args:
            bundle: Decoded bundle document
            environment: Environment name from the inventory
            options: Dry-run flag and audit details
            log: Progress sink for the deployment messages
            name: Bundle to select in a multi-bundle document

        Returns:
            DeployResult with success/failure and details
        """
        options = options or DeployOptions()
        result = DeployResult(dry_run=options.dry_run, checksum=compute_checksum(bundle))

        # Step 1: Parse
        logger.info("Parsing bundle")
        try:
            data = self.parser.parse(bundle, name=name)
        except ValueError as e:
            result.error = f"Parse error: {e}"
            return result

        # Step 2: Verify
        logger.info(f"Verifying bundle for environment {environment}")
        validation = self.validator.verify(data)
        result.warnings = list(validation.warnings)
        if not validation.valid:
            error = BundleVerificationError(validation.errors)
            result.error = str(error)
            result.error_context = "\n".join(validation.errors)
            return result

        # Step 3: Build changes
        changes = ChangeGraphBuilder().build(data)
        logger.info(f"Built {len(changes)} changes")

        if options.dry_run:
            result.success = True
            result.changes_applied = [
                f"[DRY RUN] {change.id}: {change.describe()}" for change in changes
            ]
            return result

        # Step 4: Execute
        if self.inventory is None:
            result.error = "no environment inventory configured"
            return result
        try:
            client = self.inventory.get_client(environment)
        except (KeyError, TypeError, ValueError) as e:
            result.error = str(e)
            return result

        tracker = ChangeTracker(
            environment=environment,
            user=options.user or "system",
            context=f"{options.audit_context} [{result.checksum}]".strip(),
        )

        try:
            async with client:
                result.results = await self.engine.execute(changes, client, log, tracker)
            result.success = True
        except (ChangeFailedError, UnknownChangeKindError) as e:
            result.error = str(e)
            result.failed_change = e.change_id
            result.failed_kind = getattr(e.kind, "value", str(e.kind))
        except DeployError as e:
            result.error = str(e)
        except ControlPlaneError as e:
            result.error = f"cannot deploy bundle: {e}"
        except Exception as e:
            logger.exception(f"Deployment to {environment} failed")
            result.error = f"cannot deploy bundle: {e}"

        applied = [r for r in tracker.records if r.success]
        result.changes_applied = [f"{r.change_id}: {r.operation}" for r in applied]
        if not result.success:
            result.results = {r.change_id: r.result for r in applied}

        return result

    def parse(self, bundle: dict[str, Any], name: Optional[str] = None) -> BundleData:
        """Parse a bundle document (for external use)."""
        return self.parser.parse(bundle, name=name)

    def verify(self, bundle: dict[str, Any], name: Optional[str] = None) -> ValidationResult:
        """Parse and verify a bundle document without deploying it."""
        try:
            data = self.parser.parse(bundle, name=name)
        except ValueError as e:
            return ValidationResult(valid=False, errors=[f"Parse error: {e}"])
        return self.validator.verify(data)

    def plan(self, bundle: dict[str, Any], name: Optional[str] = None) -> list[Change]:
        """
        Build the change list for a bundle.

        Raises:
            ParseError: If the document is structurally invalid
            BundleVerificationError: If the bundle fails verification
        """
        data = self.parser.parse(bundle, name=name)
        validation = self.validator.verify(data)
        if not validation.valid:
            raise BundleVerificationError(validation.errors)
        return ChangeGraphBuilder().build(data)

    def preview(self, bundle: dict[str, Any], name: Optional[str] = None) -> str:
        """
        Preview the changes of a bundle without applying them.

        Returns human-readable change list.
        """
        try:
            changes = self.plan(bundle, name=name)
        except BundleVerificationError as e:
            return "Verification failed:\n" + "\n".join(e.errors)
        except ValueError as e:
            return f"Parse error: {e}"

        lines = [f"{len(changes)} changes:"]
        lines.extend(f"  {change.id}: {change.describe()}" for change in changes)
        return "\n".join(lines)
