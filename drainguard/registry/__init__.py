"""
Entity registry — known drainers, known-safe programs, labelled addresses.

The engine only reads the registry through the EntityRegistry protocol;
storage and refresh are the integrator's concern. RegistryView adds the
per-run fail-open and memoization behavior the detectors rely on.
"""

from drainguard.registry.base import (
    DEFAULT_SAFE_PROGRAMS,
    EntityRegistry,
    StaticEntityRegistry,
)
from drainguard.registry.loader import load_registry, registry_from_dict
from drainguard.registry.view import RegistryView, as_registry_view

__all__ = [
    "DEFAULT_SAFE_PROGRAMS",
    "EntityRegistry",
    "RegistryView",
    "StaticEntityRegistry",
    "as_registry_view",
    "load_registry",
    "registry_from_dict",
]
