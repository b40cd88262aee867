"""Environment inventory."""
from .inventory import EnvironmentInventory

__all__ = ["EnvironmentInventory"]
