"""Session state store.

Session state is a key-value store split into namespaces. Auth flow data
lives in the ``TEMP`` namespace, so it never collides with session keys of
the same name. ``to_dict``/``from_dict`` convert to and from the flat
``"temp:key"`` layout used by flat key-value stores.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Protocol


class StateNamespace(str, Enum):
    SESSION = "session"
    APP = "app"
    USER = "user"
    TEMP = "temp"

    @property
    def prefix(self) -> str:
        """Key prefix used by the flat layout; session keys have none."""
        if self is StateNamespace.SESSION:
            return ""
        return f"{self.value}:"


class StateStore(Protocol):
    """What the auth components need from a session state store."""

    def get(
        self,
        key: str,
        default: Any = None,
        *,
        namespace: StateNamespace = StateNamespace.SESSION,
    ) -> Any: ...

    def set(
        self,
        key: str,
        value: Any,
        *,
        namespace: StateNamespace = StateNamespace.SESSION,
    ) -> None: ...

    def lock(self, key: str) -> asyncio.Lock: ...


class State:
    """In-memory namespaced state for one session."""

    def __init__(self) -> None:
        self._values: dict[StateNamespace, dict[str, Any]] = {
            namespace: {} for namespace in StateNamespace
        }
        self._locks: dict[str, asyncio.Lock] = {}

    def get(
        self,
        key: str,
        default: Any = None,
        *,
        namespace: StateNamespace = StateNamespace.SESSION,
    ) -> Any:
        return self._values[namespace].get(key, default)

    def set(
        self,
        key: str,
        value: Any,
        *,
        namespace: StateNamespace = StateNamespace.SESSION,
    ) -> None:
        self._values[namespace][key] = value

    def has(
        self, key: str, *, namespace: StateNamespace = StateNamespace.SESSION
    ) -> bool:
        return key in self._values[namespace]

    def delete(
        self, key: str, *, namespace: StateNamespace = StateNamespace.SESSION
    ) -> None:
        self._values[namespace].pop(key, None)

    def lock(self, key: str) -> asyncio.Lock:
        """Return the lock serializing work on ``key`` within this session.

        The same key always yields the same lock for the life of the state.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a single mapping with namespace prefixes on the keys."""
        return {
            f"{namespace.prefix}{key}": value
            for namespace, values in self._values.items()
            for key, value in values.items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> State:
        """Build a state from the flat prefixed layout produced by ``to_dict``."""
        state = cls()
        for flat_key, value in data.items():
            namespace, key = _split_key(flat_key)
            state.set(key, value, namespace=namespace)
        return state


def _split_key(flat_key: str) -> tuple[StateNamespace, str]:
    for namespace in StateNamespace:
        if namespace.prefix and flat_key.startswith(namespace.prefix):
            return namespace, flat_key[len(namespace.prefix) :]
    return StateNamespace.SESSION, flat_key
