"""Environment inventory management from YAML configuration."""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..client import create_client, ControlPlaneClient

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BUNDLECRAFT_CONFIG"


class EnvironmentInventory:
    """Manages the controller environments loaded from YAML config.

    ```yaml
    defaults:
      username: admin
      password_env: JUJU_PASSWORD
      timeout: 30

    environments:
      staging:
        type: juju
        description: "Staging controller"
        api_url: https://10.0.0.10:17070
        model: staging
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._clients: dict[str, ControlPlaneClient] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the environments.yaml config file."""
        override = os.environ.get(CONFIG_ENV_VAR)
        if override:
            return override

        search_paths = [
            Path.cwd() / "configs" / "environments.yaml",
            Path.cwd() / "environments.yaml",
            Path.home() / ".config" / "bundlecraft" / "environments.yaml",
            Path("/etc/bundlecraft/environments.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find environments.yaml. Create one in ./configs/environments.yaml "
            f"or point {CONFIG_ENV_VAR} at it"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        environments = self._config.get("environments") or {}
        if not isinstance(environments, dict):
            raise ValueError(f"{self.config_path}: 'environments' must be a mapping")
        self._config["environments"] = environments

        # Apply defaults
        defaults = self._config.get("defaults", {})
        for env_name, env_config in environments.items():
            if env_config is None:
                env_config = environments[env_name] = {}
            for key, value in defaults.items():
                if key not in env_config:
                    env_config[key] = value

        logger.debug(f"Loaded {len(environments)} environments from {self.config_path}")

    def get_environment_ids(self) -> list[str]:
        """Get all environment names."""
        return list(self._config["environments"].keys())

    def get_environment_config(self, name: str) -> dict:
        """Get raw config for an environment."""
        environments = self._config["environments"]
        if name not in environments:
            raise KeyError(f"Unknown environment: {name}")
        return environments[name]

    def get_client(self, name: str) -> ControlPlaneClient:
        """Get or create the client of an environment."""
        if name not in self._clients:
            config = self.get_environment_config(name)
            self._clients[name] = create_client(name, config)
        return self._clients[name]

    async def close_all(self) -> None:
        """Close all controller connections."""
        for client in self._clients.values():
            if client.is_connected:
                await client.disconnect()
        self._clients.clear()
