"""
Contract storage — named keyed stores with snapshot/restore.

All mutable token state (balances, allowances, roles, freeze flags, lifecycle
slots) lives in `KeyedStore`s registered on one `ContractStorage`. Keys may be
composite tuples, e.g. `(owner, spender)` or `(role, account)`. The whole
storage can be snapshotted before a call and restored if the call fails.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Hashable, Iterator, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedStore(Generic[K, V]):
    """A map that returns a default for keys never written."""

    def __init__(self, name: str, default: V) -> None:
        self.name = name
        self.default = default
        self._data: dict[K, V] = {}

    def get(self, key: K) -> V:
        return self._data.get(key, self.default)

    def set(self, key: K, value: V) -> None:
        self._data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def items(self) -> Iterator[tuple[K, V]]:
        return iter(list(self._data.items()))

    def snapshot(self) -> dict[K, V]:
        # values are immutable (ints, strs, bools, enums, handles)
        return dict(self._data)

    def restore(self, data: dict[K, V]) -> None:
        self._data = dict(data)

    def __repr__(self) -> str:
        return f"<KeyedStore {self.name} entries={len(self._data)}>"


class ContractStorage:
    """
    Registry of every keyed store owned by one token.

    Components request their stores by name at construction time; two
    components asking for the same name share the store.
    """

    def __init__(self) -> None:
        self._stores: dict[str, KeyedStore[Any, Any]] = {}
        self.slots: KeyedStore[str, Any] = self.map("slots", None)

    def map(self, name: str, default: Any) -> KeyedStore[Any, Any]:
        store = self._stores.get(name)
        if store is None:
            store = KeyedStore(name, default)
            self._stores[name] = store
        return store

    # ── BalanceQuery ───────────────────────────────────────────

    def balance_of(self, account: str) -> int:
        return self.map("balances", 0).get(account)

    # ── Snapshots ──────────────────────────────────────────────

    def snapshot(self) -> dict[str, dict[Any, Any]]:
        return {name: store.snapshot() for name, store in self._stores.items()}

    def restore(self, snapshot: dict[str, dict[Any, Any]]) -> None:
        for name, store in self._stores.items():
            store.restore(snapshot.get(name, {}))
        logger.debug("Storage restored: stores=%d", len(snapshot))
