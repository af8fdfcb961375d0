"""
Driver registry.

Each driver module (or package) calls ``register()`` at import time.
``main.py`` discovers them via ``pkgutil.iter_modules`` so adding a driver
means dropping a module into ``drivers/``.
"""

from __future__ import annotations

_REGISTRY: dict[str, tuple[type, type]] = {}


def register(name: str, config_cls: type, driver_cls: type) -> None:
    """Register a driver under *name*.

    Args:
        name:       Config section the instances live under (e.g. ``"slack"``).
        config_cls: Pydantic model class for per-instance config validation.
        driver_cls: ``BaseDriver`` subclass to instantiate.
    """
    _REGISTRY[name] = (config_cls, driver_cls)


def all_drivers() -> dict[str, tuple[type, type]]:
    """Return a snapshot of ``{name: (config_cls, driver_cls)}``."""
    return dict(_REGISTRY)
