"""Schema definitions for bundle deployment.

Defines the bundle model, the change types consumed by the engine and the
options/results exchanged with callers.
"""
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Optional


class ChangeKind(str, Enum):
    """Kind of a bundle change."""
    ADD_CHARM = "addCharm"
    ADD_MACHINE = "addMachines"
    ADD_SERVICE = "addService"
    ADD_UNIT = "addUnit"
    ADD_RELATION = "addRelation"
    SET_ANNOTATIONS = "setAnnotations"


PLACEHOLDER_PREFIX = "$"


def _check_placeholder(change_id: str, name: str, value: Optional[str], optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, str) or not value.startswith(PLACEHOLDER_PREFIX):
        raise ValueError(
            f"change {change_id}: {name} must be a placeholder starting with "
            f"{PLACEHOLDER_PREFIX!r}, got {value!r}"
        )


def placeholder_id(token: str) -> str:
    """Change id referenced by a placeholder or endpoint ("$deploy-1:db" -> "deploy-1")."""
    return token[len(PLACEHOLDER_PREFIX):].split(":", 1)[0]


# --- Changes ---

@dataclass(frozen=True)
class Change:
    """One step toward realizing a bundle.

    Fields listed in ``placeholders`` reference results of earlier changes and
    are checked at construction.
    """
    id: str

    kind: ClassVar[Any] = None
    placeholders: ClassVar[tuple[str, ...]] = ()
    optional_placeholders: ClassVar[tuple[str, ...]] = ()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("change id must not be empty")
        for name in self.placeholders:
            _check_placeholder(self.id, name, getattr(self, name))
        for name in self.optional_placeholders:
            _check_placeholder(self.id, name, getattr(self, name), optional=True)

    @property
    def requires(self) -> list[str]:
        """Ids of the changes this one depends on."""
        required = []
        for name in self.placeholders + self.optional_placeholders:
            value = getattr(self, name)
            if value:
                required.append(placeholder_id(value))
        return required

    def params(self) -> dict[str, Any]:
        """Parameters of the change, without its id."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "id"}

    def describe(self) -> str:
        return f"{self.kind} {self.params()}"


@dataclass(frozen=True)
class AddCharmChange(Change):
    charm: str = ""

    kind = ChangeKind.ADD_CHARM

    def describe(self) -> str:
        return f"upload charm {self.charm}"


@dataclass(frozen=True)
class AddMachineChange(Change):
    constraints: str = ""
    container_type: Optional[str] = None
    parent_id: Optional[str] = None
    series: str = ""

    kind = ChangeKind.ADD_MACHINE
    optional_placeholders = ("parent_id",)

    def describe(self) -> str:
        if self.container_type:
            parent = self.parent_id or "a new machine"
            return f"add {self.container_type} container to {parent}"
        return "add new machine"


@dataclass(frozen=True)
class AddServiceChange(Change):
    charm: str = ""
    service: str = ""
    options: dict[str, Any] = field(default_factory=dict)
    constraints: str = ""

    kind = ChangeKind.ADD_SERVICE
    placeholders = ("charm",)

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.service:
            raise ValueError(f"change {self.id}: service name must not be empty")

    def describe(self) -> str:
        return f"deploy service {self.service} using {self.charm}"


@dataclass(frozen=True)
class AddUnitChange(Change):
    service: str = ""
    placement: Optional[str] = None

    kind = ChangeKind.ADD_UNIT
    placeholders = ("service",)
    optional_placeholders = ("placement",)

    def describe(self) -> str:
        if self.placement:
            return f"add unit of {self.service} to {self.placement}"
        return f"add unit of {self.service}"


@dataclass(frozen=True)
class AddRelationChange(Change):
    endpoint1: str = ""
    endpoint2: str = ""

    kind = ChangeKind.ADD_RELATION
    placeholders = ("endpoint1", "endpoint2")

    def describe(self) -> str:
        return f"add relation {self.endpoint1} - {self.endpoint2}"


@dataclass(frozen=True)
class SetAnnotationsChange(Change):
    target: str = ""
    target_kind: str = "service"
    annotations: dict[str, Any] = field(default_factory=dict)

    kind = ChangeKind.SET_ANNOTATIONS
    placeholders = ("target",)

    ENTITY_KINDS: ClassVar[tuple[str, ...]] = ("service", "machine")

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.target_kind not in self.ENTITY_KINDS:
            raise ValueError(
                f"change {self.id}: annotations target must be a service or machine, "
                f"got {self.target_kind!r}"
            )

    def describe(self) -> str:
        return f"set annotations for {self.target_kind} {self.target}"


# --- Bundle model ---

@dataclass
class ServiceSpec:
    """A service declared in a bundle."""
    charm: str
    num_units: int = 0
    to: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    annotations: dict[str, Any] = field(default_factory=dict)
    constraints: str = ""


@dataclass
class MachineSpec:
    """A machine declared in a bundle."""
    series: str = ""
    constraints: str = ""
    annotations: dict[str, Any] = field(default_factory=dict)


@dataclass
class BundleData:
    """A parsed bundle."""
    services: dict[str, ServiceSpec] = field(default_factory=dict)
    machines: dict[str, MachineSpec] = field(default_factory=dict)
    relations: list[tuple[str, str]] = field(default_factory=list)
    series: str = ""


# --- Validation Results ---

@dataclass
class ValidationResult:
    """Result of bundle verification."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --- Deployment ---

@dataclass
class DeployOptions:
    """Options for a bundle deployment."""
    dry_run: bool = False
    audit_context: str = ""
    user: Optional[str] = None


@dataclass
class DeployResult:
    """Result of a bundle deployment."""
    success: bool = False
    dry_run: bool = False
    changes_applied: list[str] = field(default_factory=list)
    results: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None
    error_context: Optional[str] = None
    failed_change: Optional[str] = None
    failed_kind: Optional[str] = None
    checksum: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "changes_applied": self.changes_applied,
            "results": self.results,
            "warnings": self.warnings,
            "error": self.error,
            "error_context": self.error_context,
            "failed_change": self.failed_change,
            "failed_kind": self.failed_kind,
            "checksum": self.checksum,
        }
