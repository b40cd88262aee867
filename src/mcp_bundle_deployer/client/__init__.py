"""Control-plane clients."""
from .base import (
    ControlPlaneClient,
    ControlPlaneError,
    AlreadyExistsError,
    ServiceExistsError,
    RelationExistsError,
    EnvironmentConfig,
    MachineInfo,
    UnitInfo,
)
from .http import JujuAPIClient

__all__ = [
    "ControlPlaneClient",
    "ControlPlaneError",
    "AlreadyExistsError",
    "ServiceExistsError",
    "RelationExistsError",
    "EnvironmentConfig",
    "MachineInfo",
    "UnitInfo",
    "JujuAPIClient",
]

# Client type registry
CLIENT_TYPES = {
    "juju": JujuAPIClient,
}


def create_client(name: str, config: dict) -> ControlPlaneClient:
    """Factory function to create client instances from inventory entries."""
    client_type = config.get("type", "juju").lower()
    if client_type not in CLIENT_TYPES:
        raise ValueError(f"Unknown environment type: {client_type}")

    # Display-only keys are not connection settings
    settings = {k: v for k, v in config.items() if k not in ("type", "name", "description")}
    client_class = CLIENT_TYPES[client_type]
    return client_class(EnvironmentConfig(name=name, **settings))
