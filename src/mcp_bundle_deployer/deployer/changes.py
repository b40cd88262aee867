"""Build the ordered change list for a verified bundle.

Changes are emitted in an order the engine can apply as-is: every change
comes after the changes its placeholders refer to.
"""
import logging
from typing import Optional

from .schema import (
    PLACEHOLDER_PREFIX,
    AddCharmChange,
    AddMachineChange,
    AddRelationChange,
    AddServiceChange,
    AddUnitChange,
    BundleData,
    Change,
    SetAnnotationsChange,
)

logger = logging.getLogger(__name__)


def _ref(change: Change, suffix: str = "") -> str:
    placeholder = f"{PLACEHOLDER_PREFIX}{change.id}"
    return f"{placeholder}:{suffix}" if suffix else placeholder


class ChangeGraphBuilder:
    """
    Turn a bundle into a topologically ordered list of changes.

    Usage:
        changes = ChangeGraphBuilder().build(bundle)
    """

    def __init__(self) -> None:
        self._counter = 0
        self._changes: list[Change] = []

    def _next_id(self, prefix: str) -> str:
        change_id = f"{prefix}-{self._counter}"
        self._counter += 1
        return change_id

    def _emit(self, change: Change) -> Change:
        self._changes.append(change)
        return change

    def build(self, bundle: BundleData) -> list[Change]:
        """
        Build the changes realizing a bundle.

        The bundle is expected to have passed verification; unknown services
        in relations or undeclared machines in placements raise KeyError.
        """
        self._counter = 0
        self._changes = []

        services = self._add_services(bundle)
        machines = self._add_machines(bundle)
        self._add_relations(bundle, services)
        self._add_units(bundle, services, machines)

        logger.debug(f"Built {len(self._changes)} changes for {len(bundle.services)} services")
        return self._changes

    def _add_services(self, bundle: BundleData) -> dict[str, Change]:
        charms: dict[str, Change] = {}
        for name in sorted(bundle.services):
            charm = bundle.services[name].charm
            if charm not in charms:
                charms[charm] = self._emit(AddCharmChange(id=self._next_id("addCharm"), charm=charm))

        services: dict[str, Change] = {}
        for name in sorted(bundle.services):
            spec = bundle.services[name]
            services[name] = self._emit(AddServiceChange(
                id=self._next_id("deploy"),
                charm=_ref(charms[spec.charm]),
                service=name,
                options=dict(spec.options),
                constraints=spec.constraints,
            ))
            if spec.annotations:
                self._emit(SetAnnotationsChange(
                    id=self._next_id("setAnnotations"),
                    target=_ref(services[name]),
                    target_kind="service",
                    annotations=dict(spec.annotations),
                ))
        return services

    def _add_machines(self, bundle: BundleData) -> dict[str, Change]:
        machines: dict[str, Change] = {}
        for key in sorted(bundle.machines, key=_machine_sort_key):
            spec = bundle.machines[key]
            machines[key] = self._emit(AddMachineChange(
                id=self._next_id("addMachines"),
                constraints=spec.constraints,
                series=spec.series or bundle.series,
            ))
            if spec.annotations:
                self._emit(SetAnnotationsChange(
                    id=self._next_id("setAnnotations"),
                    target=_ref(machines[key]),
                    target_kind="machine",
                    annotations=dict(spec.annotations),
                ))
        return machines

    def _add_relations(self, bundle: BundleData, services: dict[str, Change]) -> None:
        for ep1, ep2 in bundle.relations:
            self._emit(AddRelationChange(
                id=self._next_id("addRelation"),
                endpoint1=self._endpoint(ep1, services),
                endpoint2=self._endpoint(ep2, services),
            ))

    @staticmethod
    def _endpoint(endpoint: str, services: dict[str, Change]) -> str:
        service, _, relation = endpoint.partition(":")
        return _ref(services[service], relation)

    def _add_units(
        self,
        bundle: BundleData,
        services: dict[str, Change],
        machines: dict[str, Change],
    ) -> None:
        for name in sorted(bundle.services):
            spec = bundle.services[name]
            for index in range(spec.num_units):
                directive = spec.to[index] if index < len(spec.to) else None
                placement = self._placement(directive, bundle, machines)
                self._emit(AddUnitChange(
                    id=self._next_id("addUnit"),
                    service=_ref(services[name]),
                    placement=placement,
                ))

    def _placement(
        self,
        directive: Optional[str],
        bundle: BundleData,
        machines: dict[str, Change],
    ) -> Optional[str]:
        """
        Placeholder of the machine a unit goes to, or None for a new machine.

        Examples:
            "1"       -> "$addMachines-4"
            "lxc:1"   -> "$addMachines-7" (a container change parented to machine 1)
            "new"     -> None
            "kvm:new" -> "$addMachines-8" (a container on a new machine)
        """
        if not directive:
            return None

        container, _, machine = directive.rpartition(":")
        parent = None if machine == "new" else _ref(machines[machine])
        if not container:
            return parent

        change = self._emit(AddMachineChange(
            id=self._next_id("addMachines"),
            container_type=container,
            parent_id=parent,
            series=bundle.machines[machine].series if parent else "",
        ))
        return _ref(change)


def _machine_sort_key(key: str) -> tuple[int, str]:
    return (int(key), key) if key.isdigit() else (-1, key)
