"""Base control-plane client abstraction."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Error code reported by the controller when the entity being created is already there
CODE_ALREADY_EXISTS = "already exists"

MANAGER_JOBS = ("JobManageEnviron", "JobManageModel")


class ControlPlaneError(Exception):
    """An operation against the controller failed."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message)


class AlreadyExistsError(ControlPlaneError):
    """The entity an operation would create already exists."""

    def __init__(self, message: str):
        super().__init__(message, code=CODE_ALREADY_EXISTS)


class ServiceExistsError(AlreadyExistsError):
    """A service with the requested name is already deployed."""


class RelationExistsError(AlreadyExistsError):
    """The requested relation is already established."""


@dataclass
class EnvironmentConfig:
    """Connection settings for one controller environment."""
    name: str
    api_url: str
    username: str = "admin"
    password: Optional[str] = None
    password_env: str = "JUJU_PASSWORD"
    model: Optional[str] = None
    timeout: int = 30
    retries: int = 3
    retry_delay: float = 2
    verify_ssl: bool = True
    headers: dict[str, str] = field(default_factory=dict)

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")


@dataclass
class MachineInfo:
    """A machine or container known to the controller."""
    id: str
    container_type: Optional[str] = None
    parent_id: Optional[str] = None
    constraints: str = ""
    series: str = ""
    jobs: list[str] = field(default_factory=list)

    @property
    def manages_environment(self) -> bool:
        """Controller machines never host bundle units."""
        return any(job in MANAGER_JOBS for job in self.jobs)


@dataclass
class UnitInfo:
    """A unit of a deployed service."""
    name: str
    machine: Optional[str] = None


class ControlPlaneClient(ABC):
    """Abstract base class for controller API clients.

    Operations that create an entity raise a subclass of AlreadyExistsError
    when the entity is already there; any other failure is a ControlPlaneError.
    """

    def __init__(self, environment: str):
        self.environment = environment
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    # Connection management
    async def connect(self) -> bool:
        """Open a session with the controller."""
        self._connected = True
        return True

    async def disconnect(self) -> None:
        """Close the controller session."""
        self._connected = False

    # Charms
    @abstractmethod
    async def add_charm(self, charm: str) -> str:
        """Resolve a charm reference and add it to the environment.

        Returns:
            The fully qualified charm URL that was added
        """

    # Services
    @abstractmethod
    async def deploy_service(
        self,
        charm: str,
        service: str,
        num_units: int,
        config_yaml: str,
        constraints: str,
        placement: str,
    ) -> None:
        """Deploy a service.

        Raises:
            ServiceExistsError: If a service with this name already exists
        """

    @abstractmethod
    async def get_service_charm_url(self, service: str) -> str:
        """Get the charm URL a service is currently running."""

    @abstractmethod
    async def set_service_charm_url(self, service: str, charm: str, force_units: bool) -> None:
        """Switch a service to another charm (upgrade-charm)."""

    @abstractmethod
    async def set_service_config(self, service: str, config_yaml: str) -> None:
        """Set service options from a YAML document keyed by service name."""

    # Relations
    @abstractmethod
    async def add_relation(self, endpoint1: str, endpoint2: str) -> None:
        """Relate two endpoints.

        Raises:
            RelationExistsError: If the relation is already established
        """

    # Machines and units
    @abstractmethod
    async def add_machine(
        self,
        constraints: str,
        container_type: Optional[str],
        parent_id: Optional[str],
        series: str,
    ) -> str:
        """Provision a machine, or a container when container_type is set.

        Returns:
            The new machine id (e.g. "3" or "3/lxc/0")
        """

    @abstractmethod
    async def list_machines(self) -> list[MachineInfo]:
        """List machines and containers in the environment."""

    @abstractmethod
    async def add_unit(self, service: str, machine_id: Optional[str]) -> str:
        """Add one unit to a service, optionally on the given machine.

        Returns:
            The new unit name (e.g. "wordpress/2")
        """

    @abstractmethod
    async def list_units(self, service: str) -> list[UnitInfo]:
        """List units of a service."""

    # Annotations
    @abstractmethod
    async def set_annotations(self, kind: str, entity_id: str, annotations: dict[str, Any]) -> None:
        """Set annotations on a service or machine, overwriting existing keys."""

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
