"""
errors.py - Exception types raised by the MDP model and the learners.

Every exception derives from `MarkovError` and from the closest built-in,
so callers can catch either the specific type or a plain ValueError /
KeyError / IndexError / RuntimeError.
"""

from __future__ import annotations


class MarkovError(Exception):
    """Base class for all markov_learning errors."""


# -----------------------------
# Distribution construction
# -----------------------------

class DistributionError(MarkovError, ValueError):
    """A WeightedSampler could not be built from the given items/weights."""


class SizeMismatchError(DistributionError):
    """Items and weights have different lengths."""


class NotFiniteError(DistributionError):
    """A weight or reward is NaN or infinite."""


class NonPositiveError(DistributionError):
    """A weight is zero or negative."""


class EmptyDistributionError(DistributionError):
    """No items were given."""


# -----------------------------
# Model construction / lookup
# -----------------------------

class InvalidDiscountError(MarkovError, ValueError):
    """Discount factor is not finite or lies outside (0, 1)."""


class StateNotFoundError(MarkovError, KeyError):
    """A state key is unknown to the arena or refers to a removed state."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class ActionDoesNotExistError(MarkovError, IndexError):
    """An action index is outside the state's action range."""


# -----------------------------
# Helpers and learners
# -----------------------------

class EmptySequenceError(MarkovError, ValueError):
    """An arg-ordering helper was given an empty sequence."""


class EmptyActionSetError(MarkovError, ValueError):
    """A learner needs at least one action in every state."""


class InconsistentPolicyError(MarkovError, RuntimeError):
    """
    A run tried to take an action (or reach a state) the model does not have.

    This aborts the run: continuing would corrupt the value / Q estimates.
    """
