"""Shared fixtures: an in-memory controller standing in for a real environment."""
import itertools
from typing import Any, Optional

import pytest

from mcp_bundle_deployer.client.base import (
    ControlPlaneClient,
    ControlPlaneError,
    MachineInfo,
    RelationExistsError,
    ServiceExistsError,
    UnitInfo,
)


class FakeControlPlane(ControlPlaneClient):
    """Controller kept in memory. Records every call in ``calls``.

    Failures are injected with ``failures``, keyed by method name or by
    ``(method, first_argument)``.
    """

    def __init__(self, environment: str = "test-env"):
        super().__init__(environment)
        self.calls: list[tuple[str, tuple]] = []
        self.failures: dict[Any, Exception] = {}
        # Charm references as typed in bundles to the URLs the store resolves them to
        self.resolutions: dict[str, str] = {}
        self.charms: set[str] = set()
        self.services: dict[str, str] = {}
        self.config: dict[str, str] = {}
        self.relations: set[frozenset[str]] = set()
        self.machines: dict[str, MachineInfo] = {}
        self.units: dict[str, list[UnitInfo]] = {}
        self.annotations: dict[str, dict[str, Any]] = {}
        self._machine_ids = itertools.count(0)
        self._container_ids: dict[tuple[str, str], itertools.count] = {}
        self._unit_ids: dict[str, itertools.count] = {}

    def _new_machine_id(self) -> str:
        machine_id = str(next(self._machine_ids))
        while machine_id in self.machines:
            machine_id = str(next(self._machine_ids))
        return machine_id

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        error = self.failures.get((method, args[0] if args else None)) or self.failures.get(method)
        if error is not None:
            raise error

    def called(self, method: str) -> list[tuple]:
        """Arguments of every call to one method."""
        return [args for name, args in self.calls if name == method]

    @property
    def mutations(self) -> list[tuple[str, tuple]]:
        """Calls other than the read-only queries."""
        queries = ("get_service_charm_url", "list_machines", "list_units")
        return [call for call in self.calls if call[0] not in queries]

    # === Seeding ===

    def seed_service(self, service: str, charm: str) -> None:
        self.services[service] = charm

    def seed_machine(self, machine: MachineInfo) -> None:
        self.machines[machine.id] = machine

    def seed_unit(self, service: str, machine: Optional[str]) -> str:
        counter = self._unit_ids.setdefault(service, itertools.count(0))
        name = f"{service}/{next(counter)}"
        self.units.setdefault(service, []).append(UnitInfo(name=name, machine=machine))
        return name

    # === ControlPlaneClient ===

    async def add_charm(self, charm: str) -> str:
        self._record("add_charm", charm)
        url = self.resolutions.get(charm, charm)
        self.charms.add(url)
        return url

    async def deploy_service(
        self,
        charm: str,
        service: str,
        num_units: int,
        config_yaml: str,
        constraints: str,
        placement: str,
    ) -> None:
        self._record("deploy_service", charm, service, num_units, config_yaml, constraints, placement)
        if service in self.services:
            raise ServiceExistsError(f'cannot add service "{service}": service already exists')
        self.services[service] = charm

    async def get_service_charm_url(self, service: str) -> str:
        self._record("get_service_charm_url", service)
        if service not in self.services:
            raise ControlPlaneError(f'service "{service}" not found', code="not found")
        return self.services[service]

    async def set_service_charm_url(self, service: str, charm: str, force_units: bool) -> None:
        self._record("set_service_charm_url", service, charm, force_units)
        self.services[service] = charm

    async def set_service_config(self, service: str, config_yaml: str) -> None:
        self._record("set_service_config", service, config_yaml)
        self.config[service] = config_yaml

    async def add_relation(self, endpoint1: str, endpoint2: str) -> None:
        self._record("add_relation", endpoint1, endpoint2)
        key = frozenset((endpoint1, endpoint2))
        if key in self.relations:
            raise RelationExistsError(f"relation {endpoint1} {endpoint2} already exists")
        self.relations.add(key)

    async def add_machine(
        self,
        constraints: str,
        container_type: Optional[str],
        parent_id: Optional[str],
        series: str,
    ) -> str:
        self._record("add_machine", constraints, container_type, parent_id, series)
        if container_type:
            if parent_id is None:
                parent_id = self._new_machine_id()
                self.machines[parent_id] = MachineInfo(id=parent_id, series=series)
            counter = self._container_ids.setdefault((parent_id, container_type), itertools.count(0))
            machine_id = f"{parent_id}/{container_type}/{next(counter)}"
        else:
            machine_id = self._new_machine_id()
        self.machines[machine_id] = MachineInfo(
            id=machine_id,
            container_type=container_type,
            parent_id=parent_id,
            constraints=constraints,
            series=series,
        )
        return machine_id

    async def list_machines(self) -> list[MachineInfo]:
        self._record("list_machines")
        return list(self.machines.values())

    async def add_unit(self, service: str, machine_id: Optional[str]) -> str:
        self._record("add_unit", service, machine_id)
        if machine_id is None:
            machine_id = self._new_machine_id()
            self.machines[machine_id] = MachineInfo(id=machine_id)
        return self.seed_unit(service, machine_id)

    async def list_units(self, service: str) -> list[UnitInfo]:
        self._record("list_units", service)
        return list(self.units.get(service, []))

    async def set_annotations(self, kind: str, entity_id: str, annotations: dict[str, Any]) -> None:
        self._record("set_annotations", kind, entity_id, annotations)
        self.annotations.setdefault(f"{kind}-{entity_id}", {}).update(annotations)


class FakeInventory:
    """Inventory handing out fixed clients."""

    def __init__(self, clients: dict[str, ControlPlaneClient]):
        self.clients = clients

    def get_client(self, name: str) -> ControlPlaneClient:
        if name not in self.clients:
            raise KeyError(f"Unknown environment: {name}")
        return self.clients[name]

    async def close_all(self) -> None:
        for client in self.clients.values():
            if client.is_connected:
                await client.disconnect()


@pytest.fixture
def fake_client():
    """A fresh in-memory controller."""
    return FakeControlPlane()


@pytest.fixture
def fake_inventory(fake_client):
    """Inventory holding the fake controller as "test-env"."""
    return FakeInventory({"test-env": fake_client})


@pytest.fixture
def wordpress_bundle():
    """Two related services, one placed on a declared machine."""
    return {
        "series": "trusty",
        "services": {
            "wordpress": {
                "charm": "cs:trusty/wordpress-3",
                "num_units": 1,
                "to": ["0"],
                "options": {"debug": "yes"},
                "annotations": {"gui-x": "100", "gui-y": "200"},
            },
            "mysql": {
                "charm": "cs:trusty/mysql-10",
                "num_units": 1,
                "constraints": "mem=4G",
            },
        },
        "machines": {
            0: {"constraints": "cpu-cores=2"},
        },
        "relations": [
            ["wordpress:db", "mysql:db"],
        ],
    }
