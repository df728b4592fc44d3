"""Named registries with fail-fast duplicate detection."""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from waypoint.types import WaypointError

T = TypeVar("T")


class RegistryError(WaypointError):
    """Raised when a name is registered twice or looked up but absent."""


class Registry(Generic[T]):
    """Maps unique names to items of one kind.

    Args:
        name: Label used in error messages.
    """

    def __init__(self, name: str = "registry") -> None:
        self._name = name
        self._items: dict[str, T] = {}

    def register(self, name: str, item: T) -> T:
        """Store *item* under *name* and return it.

        Raises:
            RegistryError: If *name* is taken.
        """
        if name in self._items:
            raise RegistryError(f"'{name}' is already registered in {self._name}")
        self._items[name] = item
        return item

    def decorator(self, name: str) -> Callable[[T], T]:
        """Decorator form of :meth:`register`."""

        def wrap(item: T) -> T:
            return self.register(name, item)

        return wrap

    def get(self, name: str) -> T:
        """Look up *name*.

        Raises:
            RegistryError: If nothing is registered under *name*.
        """
        try:
            return self._items[name]
        except KeyError:
            raise RegistryError(
                f"'{name}' not found in {self._name} (known: {', '.join(self._items) or 'none'})"
            ) from None

    def unregister(self, name: str) -> None:
        self._items.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def names(self) -> list[str]:
        """Registered names in insertion order."""
        return list(self._items)
