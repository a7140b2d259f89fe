"""
arena.py - Generation-checked slot map holding the states of an MDP.

States reference each other only through `StateKey` handles, never through
object references, so cyclic transition graphs need no ownership cycles.
A key carries the generation of its slot; removing a value bumps that
generation, so an old key can never read whatever reuses the slot later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterator, List, Optional, Tuple, TypeVar

from .errors import StateNotFoundError

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class StateKey:
    """
    Opaque, hashable handle into a SlotMap.

    Parameters
    ----------
    index : int
        Slot position.
    generation : int
        Slot generation at insertion time.
    """
    index: int
    generation: int

    def __repr__(self) -> str:
        return f"StateKey({self.index}v{self.generation})"


class _Slot(Generic[T]):
    __slots__ = ("generation", "value", "occupied")

    def __init__(self) -> None:
        self.generation = 0
        self.value: Optional[T] = None
        self.occupied = False


class SlotMap(Generic[T]):
    """
    Arena with stable keys and O(1) insert / lookup / remove.

    Iteration follows slot order, which is insertion order as long as no
    value has been removed (the most recently freed slot is reused first).
    """

    def __init__(self) -> None:
        self._slots: List[_Slot[T]] = []
        self._free: List[int] = []
        self._len = 0

    def insert(self, value: T) -> StateKey:
        """
        Store `value` and return its key.
        """
        if self._free:
            idx = self._free.pop()
            slot = self._slots[idx]
        else:
            idx = len(self._slots)
            slot = _Slot()
            self._slots.append(slot)

        slot.value = value
        slot.occupied = True
        self._len += 1
        return StateKey(idx, slot.generation)

    def get(self, key: StateKey) -> T:
        """
        Look up a value.

        Raises
        ------
        StateNotFoundError
            If the key was never issued by this arena or its value was removed.
        """
        return self._slot(key).value

    def remove(self, key: StateKey) -> T:
        """
        Remove and return the value behind `key`; the key becomes stale.
        """
        slot = self._slot(key)
        value = slot.value
        slot.value = None
        slot.occupied = False
        slot.generation += 1
        self._free.append(key.index)
        self._len -= 1
        return value

    def _slot(self, key: StateKey) -> _Slot[T]:
        if not isinstance(key, StateKey):
            raise StateNotFoundError(f"not a state key: {key!r}")
        if not (0 <= key.index < len(self._slots)):
            raise StateNotFoundError(f"unknown state {key!r}")
        slot = self._slots[key.index]
        if not slot.occupied or slot.generation != key.generation:
            raise StateNotFoundError(f"stale state {key!r}")
        return slot

    # -----------------------------
    # Container protocol
    # -----------------------------

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, StateKey):
            return False
        if not (0 <= key.index < len(self._slots)):
            return False
        slot = self._slots[key.index]
        return slot.occupied and slot.generation == key.generation

    def __len__(self) -> int:
        return self._len

    def keys(self) -> Iterator[StateKey]:
        for idx, slot in enumerate(self._slots):
            if slot.occupied:
                yield StateKey(idx, slot.generation)

    def values(self) -> Iterator[T]:
        for slot in self._slots:
            if slot.occupied:
                yield slot.value

    def items(self) -> Iterator[Tuple[StateKey, T]]:
        for idx, slot in enumerate(self._slots):
            if slot.occupied:
                yield StateKey(idx, slot.generation), slot.value

    def __iter__(self) -> Iterator[StateKey]:
        return self.keys()
