from __future__ import annotations

from .base import SiteDescriptor

# Global in-process registry: site name -> descriptor
_REGISTRY: dict[str, SiteDescriptor] = {}


def register(descriptor: SiteDescriptor) -> SiteDescriptor:
    """
    Register a site descriptor under its (lowercased) name.
    Re-registering the same descriptor is allowed; a different one is rejected.
    """
    name = (descriptor.name or "").strip().lower()
    if not name:
        raise ValueError(f"Cannot register site {descriptor!r}: missing/empty 'name'.")
    if name in _REGISTRY and _REGISTRY[name] is not descriptor:
        raise ValueError(f"Site {name!r} already registered to {_REGISTRY[name]!r}.")
    _REGISTRY[name] = descriptor
    return descriptor


def get(name: str) -> SiteDescriptor:
    """
    Look up a site descriptor by name (case-insensitive).
    Raises KeyError if not found.
    """
    key = (name or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No site registered under {name!r}.")
    return _REGISTRY[key]


def all_sites() -> dict[str, SiteDescriptor]:
    """Return a shallow copy of the registry (name -> descriptor)."""
    return dict(_REGISTRY)
