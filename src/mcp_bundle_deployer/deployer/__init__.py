"""Bundle deployer - declarative Juju bundle deployment.

The deployer turns a bundle into an ordered list of changes and applies them
one at a time against a controller:
- Verify the bundle before touching the environment
- Build changes whose placeholders refer to earlier results
- Reuse existing services, relations, machines and units
- Stop at the first failing change, keeping what was applied

Usage:
    from mcp_bundle_deployer.deployer import BundleDeployer, DeployOptions

    deployer = BundleDeployer(inventory)
    result = await deployer.deploy({
        "services": {
            "wordpress": {"charm": "cs:trusty/wordpress-3", "num_units": 1},
            "mysql": {"charm": "cs:trusty/mysql-10", "num_units": 1},
        },
        "relations": [["wordpress:db", "mysql:db"]],
    }, "staging", DeployOptions(dry_run=True))
"""

from .deploy import BundleDeployer
from .schema import (
    ChangeKind,
    Change,
    AddCharmChange,
    AddMachineChange,
    AddServiceChange,
    AddUnitChange,
    AddRelationChange,
    SetAnnotationsChange,
    BundleData,
    ServiceSpec,
    MachineSpec,
    ValidationResult,
    DeployOptions,
    DeployResult,
)
from .errors import (
    DeployError,
    InvariantViolation,
    ParseError,
    BundleVerificationError,
    ChangeFailedError,
    UnknownChangeKindError,
    IncompatibleCharmError,
    UnresolvedPlaceholderError,
)
from .parser import BundleParser, compute_checksum
from .validator import BundleValidator
from .changes import ChangeGraphBuilder
from .context import DeploymentLogger, LoggingDeploymentLogger
from .engine import ChangeExecutionEngine
from .handlers import HandlerRegistry, register_default_handlers
from .resolver import resolve, resolve_endpoint

__all__ = [
    # Main entry point
    "BundleDeployer",
    # Schema classes
    "ChangeKind",
    "Change",
    "AddCharmChange",
    "AddMachineChange",
    "AddServiceChange",
    "AddUnitChange",
    "AddRelationChange",
    "SetAnnotationsChange",
    "BundleData",
    "ServiceSpec",
    "MachineSpec",
    "ValidationResult",
    "DeployOptions",
    "DeployResult",
    # Errors
    "DeployError",
    "InvariantViolation",
    "ParseError",
    "BundleVerificationError",
    "ChangeFailedError",
    "UnknownChangeKindError",
    "IncompatibleCharmError",
    "UnresolvedPlaceholderError",
    # Parser
    "BundleParser",
    "compute_checksum",
    # Components (for advanced use)
    "BundleValidator",
    "ChangeGraphBuilder",
    "DeploymentLogger",
    "LoggingDeploymentLogger",
    "ChangeExecutionEngine",
    "HandlerRegistry",
    "register_default_handlers",
    "resolve",
    "resolve_endpoint",
]
