"""
Pool adapter registry for configuration-driven adapter selection.

Adapters are registered as factories under a name. A factory receives
(chain_client, keypair, config) and returns an object implementing
PoolAdapter. Configuration may also name a factory by dotted path
("package.module:factory"), which is imported on demand.
"""
from __future__ import annotations

import importlib
from typing import Any, Callable, Dict, List, Optional

from .protocol import PoolAdapter

AdapterFactory = Callable[[Any, Any, Any], PoolAdapter]


class AdapterNotFoundError(Exception):
    """Raised when a requested pool adapter cannot be found."""

    pass


class DuplicateAdapterError(Exception):
    """Raised when attempting to register an adapter name that already exists."""

    pass


class AdapterRegistry:
    """
    Registry for pool adapter factories.

    Usage:
        registry = AdapterRegistry()
        registry.register("paper", make_paper_adapter)

        factory = registry.resolve("paper")
        factory = registry.resolve("my_bridge.adapter:create")

        adapter = factory(chain_client, keypair, config)
    """

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, name: str, factory: AdapterFactory) -> None:
        """
        Register an adapter factory.

        Raises:
            DuplicateAdapterError: If the name is already registered
        """
        if name in self._factories:
            raise DuplicateAdapterError(
                f"Pool adapter '{name}' is already registered. "
                f"Use a different name or unregister first."
            )
        self._factories[name] = factory

    def unregister(self, name: str) -> bool:
        """Remove an adapter factory. Returns True if it was registered."""
        return self._factories.pop(name, None) is not None

    def get(self, name: str) -> AdapterFactory:
        """
        Get a registered factory by name.

        Raises:
            AdapterNotFoundError: If no adapter with this name exists
        """
        if name not in self._factories:
            available = ", ".join(self.list_all()) or "(none)"
            raise AdapterNotFoundError(
                f"Pool adapter '{name}' not found. Available: {available}"
            )
        return self._factories[name]

    def resolve(self, target: str) -> AdapterFactory:
        """
        Resolve a registered name or a "module:attribute" path to a factory.

        Raises:
            AdapterNotFoundError: If the name is unknown or the path cannot be imported
        """
        if ":" not in target:
            return self.get(target)

        module_name, _, attr = target.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise AdapterNotFoundError(
                f"Cannot import pool adapter module '{module_name}': {e}"
            ) from e

        factory = getattr(module, attr, None)
        if factory is None or not callable(factory):
            raise AdapterNotFoundError(
                f"Module '{module_name}' has no callable '{attr}'"
            )
        return factory

    def list_all(self) -> List[str]:
        """Sorted list of registered adapter names."""
        return sorted(self._factories.keys())

    def __len__(self) -> int:
        return len(self._factories)

    def __contains__(self, name: str) -> bool:
        return name in self._factories


# Global default registry
_default_registry: Optional[AdapterRegistry] = None


def get_default_registry() -> AdapterRegistry:
    """Get the default global adapter registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = AdapterRegistry()
    return _default_registry


def register_adapter(name: str, factory: AdapterFactory) -> None:
    """Register an adapter factory in the default registry."""
    get_default_registry().register(name, factory)
