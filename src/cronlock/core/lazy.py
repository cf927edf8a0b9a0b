"""Small helper for lazy attribute resolution to keep package import light."""

from __future__ import annotations

import importlib
from collections.abc import Callable, Mapping


def make_getattr(module_name: str, mapping: Mapping[str, str]) -> Callable[[str], object]:
    """
    Create a __getattr__ that resolves exports from their modules on first use.

    Args:
        module_name: Name of the current module (for error messages).
        mapping: Export name -> module path that defines it.
    """

    def __getattr__(name: str) -> object:
        target = mapping.get(name)
        if target is None:
            raise AttributeError(f"module {module_name!r} has no attribute {name!r}")
        return getattr(importlib.import_module(target), name)

    return __getattr__
