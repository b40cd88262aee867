"""Pre-flight verification of bundles.

Catches structural and logical errors before any controller communication,
so an invalid bundle never leaves a partial deployment behind.
"""
import re
from typing import Callable, Optional

from .charmurl import CharmURL
from .constraints import CONTAINER_TYPES, check_constraints
from .errors import CharmURLError
from .schema import BundleData, ValidationResult

ConstraintChecker = Callable[[str], None]

_SERVICE_NAME_RE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]*[a-z][a-z0-9]*)*$")
_RELATION_NAME_RE = re.compile(r"^[a-z][a-z0-9]*([_-][a-z0-9]+)*$")
_MACHINE_KEY_RE = re.compile(r"^\d+$")

PLACEMENT_NEW = "new"


class BundleValidator:
    """Verify a bundle before deployment."""

    def __init__(self, constraint_checker: Optional[ConstraintChecker] = None):
        """
        Initialize validator.

        Args:
            constraint_checker: Called with every constraints string; raises on
                invalid input. Defaults to the constraints parser.
        """
        self.constraint_checker = constraint_checker or check_constraints

    def verify(self, bundle: BundleData) -> ValidationResult:
        """
        Verify a bundle.

        Performs pre-flight checks:
        - At least one service, valid names and charm URLs
        - Unit counts and constraints
        - Placement directives against declared machines
        - Relation endpoints against declared services
        - Machine keys and constraints

        Returns:
            ValidationResult with valid flag, errors, and warnings
        """
        errors: list[str] = []
        warnings: list[str] = []

        self._verify_services(bundle, errors)
        self._verify_machines(bundle, errors)
        self._verify_placement(bundle, errors, warnings)
        self._verify_relations(bundle, errors)

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def _check_constraints(self, owner: str, constraints: str, errors: list[str]) -> None:
        if not constraints:
            return
        try:
            self.constraint_checker(constraints)
        except ValueError as e:
            errors.append(f"invalid constraints {constraints!r} in {owner}: {e}")

    def _verify_services(self, bundle: BundleData, errors: list[str]) -> None:
        if not bundle.services:
            errors.append("bundle has no services")

        for name, service in sorted(bundle.services.items()):
            if not _SERVICE_NAME_RE.match(name):
                errors.append(f"invalid service name {name!r}")

            if not service.charm:
                errors.append(f"empty charm path in service {name!r}")
            else:
                try:
                    url = CharmURL.parse(service.charm)
                except CharmURLError as e:
                    errors.append(f"invalid charm URL in service {name!r}: {e}")
                else:
                    if url.series == "bundle":
                        errors.append(f"service {name!r} refers to a bundle, not a charm: {service.charm!r}")

            if service.num_units < 0:
                errors.append(f"negative number of units specified on service {name!r}")

            self._check_constraints(f"service {name!r}", service.constraints, errors)

    def _verify_machines(self, bundle: BundleData, errors: list[str]) -> None:
        for key, machine in sorted(bundle.machines.items()):
            if not _MACHINE_KEY_RE.match(key):
                errors.append(f"invalid machine id {key!r} found in machines")
            self._check_constraints(f"machine {key!r}", machine.constraints, errors)

    def _verify_placement(self, bundle: BundleData, errors: list[str], warnings: list[str]) -> None:
        used_machines: set[str] = set()

        for name, service in sorted(bundle.services.items()):
            if len(service.to) > max(service.num_units, 0):
                errors.append(
                    f"too many units specified in unit placement for service {name!r}"
                )

            for directive in service.to:
                machine = self._placement_machine(directive)
                if machine is None:
                    errors.append(f"invalid placement syntax {directive!r} in service {name!r}")
                elif machine != PLACEMENT_NEW:
                    if machine not in bundle.machines:
                        errors.append(
                            f"placement {directive!r} in service {name!r} refers to undeclared machine {machine!r}"
                        )
                    used_machines.add(machine)

        for key in sorted(bundle.machines):
            if key not in used_machines:
                warnings.append(f"machine {key!r} is not referred to by a placement directive")

    @staticmethod
    def _placement_machine(directive: str) -> Optional[str]:
        """Machine key of a placement directive, "new", or None when unsupported.

        Supported forms: "<machine>", "<container>:<machine>", "new",
        "<container>:new".
        """
        container, sep, machine = directive.rpartition(":")
        if sep and container not in CONTAINER_TYPES:
            return None
        if machine == PLACEMENT_NEW or _MACHINE_KEY_RE.match(machine):
            return machine
        return None

    def _verify_relations(self, bundle: BundleData, errors: list[str]) -> None:
        seen: set[frozenset[str]] = set()

        for ep1, ep2 in bundle.relations:
            valid = True
            for endpoint in (ep1, ep2):
                service, sep, relation = endpoint.partition(":")
                if service not in bundle.services:
                    errors.append(f"relation [{ep1!r}, {ep2!r}] refers to service {service!r} not defined in this bundle")
                    valid = False
                elif sep and not _RELATION_NAME_RE.match(relation):
                    errors.append(f"invalid relation syntax {endpoint!r}")
                    valid = False
            if not valid:
                continue

            if ep1.partition(":")[0] == ep2.partition(":")[0]:
                errors.append(f"relation [{ep1!r}, {ep2!r}] relates a service to itself")
                continue

            key = frozenset((ep1, ep2))
            if key in seen:
                errors.append(f"relation [{ep1!r}, {ep2!r}] is defined more than once")
            seen.add(key)
