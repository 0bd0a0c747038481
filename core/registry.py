from __future__ import annotations

import importlib
from collections.abc import MutableMapping
from typing import TypeVar

T = TypeVar("T")


def register_named(registry: MutableMapping[str, T], name: str):
    """Class decorator adding `obj` to `registry` under `name`.

    Re-registering the same object is allowed (module reloads); a different
    object under a taken name is a ValueError.
    """

    def decorator(obj: T) -> T:
        existing = registry.get(name)
        if existing is not None and getattr(existing, "__qualname__", None) != getattr(
            obj, "__qualname__", None
        ):
            raise ValueError(f"'{name}' is already registered to {existing!r}")
        registry[name] = obj
        return obj

    return decorator


def registered_names(registry: MutableMapping[str, T]) -> list[str]:
    return sorted(registry)


def resolve_registered(
    registry: MutableMapping[str, T],
    name: str,
    *,
    package: str,
    unknown_label: str,
) -> T:
    """Look up `name`, importing `<package>.<name>` first so plugins self-register."""
    import_err: ImportError | None = None
    if name not in registry:
        try:
            importlib.import_module(f"{package}.{name}")
        except ImportError as e:
            import_err = e
    if name not in registry:
        hint = f" (import failed: {import_err})" if import_err else ""
        raise ValueError(
            f"Unknown {unknown_label} '{name}'. "
            f"Available: {', '.join(registered_names(registry)) or 'none'}{hint}"
        )
    return registry[name]


__all__ = ["register_named", "registered_names", "resolve_registered"]
