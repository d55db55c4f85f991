"""ORM models package initialiser.

- Exposes the shared SQLAlchemy `Base`.
- Lazily exposes every domain model through `notification_core.models.registry`
  so importing `Base` from the database layer does not pull in the domains.
"""

from .base import Base

__all__ = ["Base"]


def __getattr__(name: str):
    import importlib

    _registry = importlib.import_module("notification_core.models.registry")

    if hasattr(_registry, name):
        return getattr(_registry, name)
    raise AttributeError(f"module 'notification_core.models' has no attribute {name!r}")


def __dir__():
    import importlib

    _registry = importlib.import_module("notification_core.models.registry")

    return sorted(set(list(globals().keys()) + list(_registry.__all__)))
