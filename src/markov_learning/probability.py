"""
probability.py - Weighted sampling primitive used for every stochastic transition.

A WeightedSampler turns a list of (item, weight) pairs into a normalised
cumulative table and draws items in proportion to their weights. The random
source is always passed in, so draws are reproducible under a fixed seed.
"""

from __future__ import annotations

import math
from typing import Generic, Iterable, List, Sequence, Tuple, TypeVar

import numpy as np

from .errors import (
    EmptyDistributionError,
    NonPositiveError,
    NotFiniteError,
    SizeMismatchError,
)

V = TypeVar("V")


class WeightedSampler(Generic[V]):
    """
    Immutable discrete distribution over arbitrary items.

    Parameters
    ----------
    items : Sequence[V]
        Values to draw from. Order is preserved.
    weights : Sequence[float]
        Relative, strictly positive, finite weights (same length as `items`).

    Raises
    ------
    SizeMismatchError
        If `items` and `weights` differ in length.
    NotFiniteError
        If any weight is NaN or infinite.
    NonPositiveError
        If any weight is <= 0.
    EmptyDistributionError
        If no items are given.

    Notes
    -----
    The cumulative table is strictly increasing and its last entry is
    pinned to exactly 1.0, so every u in [0, 1) falls into some interval.
    """

    def __init__(self, items: Sequence[V], weights: Sequence[float]) -> None:
        items = list(items)
        weights = [float(w) for w in weights]

        if len(items) != len(weights):
            raise SizeMismatchError(
                f"got {len(items)} items but {len(weights)} weights"
            )
        for w in weights:
            if not math.isfinite(w):
                raise NotFiniteError(f"weight {w!r} is not finite")
            if w <= 0.0:
                raise NonPositiveError(f"weight {w!r} is not strictly positive")
        if not items:
            raise EmptyDistributionError("cannot sample from an empty distribution")

        # scaled by the largest weight so the running sum cannot overflow
        w = np.asarray(weights, dtype=np.float64)
        prefix = np.cumsum(w / w.max())
        cumulative = prefix / prefix[-1]
        cumulative[-1] = 1.0
        cumulative.setflags(write=False)

        self._items: List[V] = items
        self._cumulative: np.ndarray = cumulative

    # -----------------------------
    # Alternative constructors
    # -----------------------------

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[V, float]]) -> "WeightedSampler[V]":
        """Build from (item, weight) pairs."""
        pairs = list(pairs)
        return cls([item for item, _ in pairs], [w for _, w in pairs])

    @classmethod
    def uniform(cls, items: Iterable[V]) -> "WeightedSampler[V]":
        """Equal weight on every item."""
        items = list(items)
        return cls(items, [1.0] * len(items))

    # -----------------------------
    # Sampling
    # -----------------------------

    def sample(self, rng: np.random.Generator) -> V:
        """
        Draw one item.

        Draws u ~ U[0, 1) and returns the item of the first interval that
        contains u: the lowest index whose cumulative weight exceeds u.

        Parameters
        ----------
        rng : np.random.Generator

        Returns
        -------
        V
        """
        u = rng.random()
        idx = int(np.searchsorted(self._cumulative, u, side="right"))
        return self._items[idx]

    def sample_many(self, rng: np.random.Generator, size: int) -> List[V]:
        """
        Draw `size` items at once (vectorised binary search).
        """
        u = rng.random(size)
        idx = np.searchsorted(self._cumulative, u, side="right")
        return [self._items[i] for i in idx]

    def sample_indices(self, rng: np.random.Generator, size: int) -> np.ndarray:
        """Like `sample_many` but returns item positions as an int array."""
        u = rng.random(size)
        return np.searchsorted(self._cumulative, u, side="right")

    # -----------------------------
    # Read-only views
    # -----------------------------

    @property
    def items(self) -> Tuple[V, ...]:
        return tuple(self._items)

    @property
    def cumulative(self) -> np.ndarray:
        return self._cumulative

    @property
    def probabilities(self) -> np.ndarray:
        """Normalised per-item probabilities (differences of the cumulative table)."""
        return np.diff(self._cumulative, prepend=0.0)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"WeightedSampler(n={len(self._items)})"
