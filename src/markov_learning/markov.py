"""
markov.py - Finite MDP model and the cursor that simulates it.

- MarkovDecisionProcess : arena of States plus a discount factor
- State                 : ordered per-action samplers over (next_state, reward)
- SimulationCursor      : current position inside a model, moved by actions

Action indices are assigned by registration order: the first transition
added to a state is action 0, the next one action 1, and so on.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Iterator, List, NamedTuple, Sequence, Tuple

import numpy as np

from .arena import SlotMap, StateKey
from .errors import (
    ActionDoesNotExistError,
    InconsistentPolicyError,
    InvalidDiscountError,
    NotFiniteError,
    StateNotFoundError,
)
from .probability import WeightedSampler

logger = logging.getLogger(__name__)


class Outcome(NamedTuple):
    """One sampled transition result."""
    next_state: StateKey
    reward: float


class Step(NamedTuple):
    """One recorded cursor move (see `SimulationCursor.rollout`)."""
    state: StateKey
    action: int
    reward: float
    next_state: StateKey


def _as_outcome(item) -> Outcome:
    try:
        next_state, reward = item
        reward = float(reward)
    except (TypeError, ValueError) as e:
        raise TypeError(f"expected a (next_state, reward) pair, got {item!r}") from e
    if not math.isfinite(reward):
        raise NotFiniteError(f"reward {reward!r} is not finite")
    return Outcome(next_state, reward)


class State:
    """
    A state owns only its outgoing distributions, one per action.
    """

    __slots__ = ("transitions",)

    def __init__(self) -> None:
        self.transitions: List[WeightedSampler[Outcome]] = []

    @property
    def num_actions(self) -> int:
        return len(self.transitions)

    def action(self, action: int) -> WeightedSampler[Outcome]:
        """
        Sampler for `action`.

        Raises
        ------
        ActionDoesNotExistError
            If `action` is outside [0, num_actions).
        """
        if not (0 <= action < len(self.transitions)):
            raise ActionDoesNotExistError(
                f"action {action} does not exist (state has {len(self.transitions)})"
            )
        return self.transitions[action]


# =====================================================================
# Model
# =====================================================================

class MarkovDecisionProcess:
    """
    Finite MDP stored as an arena of states.

    Parameters
    ----------
    gamma : float
        Discount factor, finite and strictly inside (0, 1).

    Raises
    ------
    InvalidDiscountError
        If gamma is NaN/inf or outside (0, 1). The value is never clamped.
    """

    def __init__(self, gamma: float) -> None:
        gamma = float(gamma)
        if not math.isfinite(gamma) or not (0.0 < gamma < 1.0):
            raise InvalidDiscountError(f"gamma must be in (0, 1), got {gamma!r}")
        self._gamma = gamma
        self._states: SlotMap[State] = SlotMap()

    @property
    def gamma(self) -> float:
        return self._gamma

    # -----------------------------
    # Construction
    # -----------------------------

    def add_state(self) -> StateKey:
        """Insert an empty state (no actions yet) and return its key."""
        key = self._states.insert(State())
        logger.debug("added state %r", key)
        return key

    def add_transition(self, state: StateKey, sampler: WeightedSampler) -> int:
        """
        Append a new action slot to `state`.

        Parameters
        ----------
        state : StateKey
        sampler : WeightedSampler
            Distribution over (next_state, reward) pairs. Plain tuples are
            accepted and stored as `Outcome`.

        Returns
        -------
        int
            Index of the new action (equal to the number of actions the
            state had before the call).

        Raises
        ------
        StateNotFoundError
            If `state` is unknown or stale.
        TypeError
            If an item is not a (next_state, reward) pair.
        NotFiniteError
            If any outcome reward is NaN or infinite.
        """
        target = self._states.get(state)
        outcomes = [_as_outcome(item) for item in sampler.items]
        if not all(type(item) is Outcome for item in sampler.items):
            sampler = WeightedSampler(outcomes, sampler.probabilities)
        target.transitions.append(sampler)
        action = target.num_actions - 1
        logger.debug("state %r: action %d with %d outcomes", state, action, len(sampler))
        return action

    def add_action(self, state: StateKey,
                   outcomes: Iterable[Tuple[StateKey, float, float]]) -> int:
        """
        Convenience wrapper: build the sampler from (next_state, reward, weight)
        triples and register it with `add_transition`.
        """
        outcomes = list(outcomes)
        sampler = WeightedSampler(
            [Outcome(s, float(r)) for s, r, _ in outcomes],
            [w for _, _, w in outcomes],
        )
        return self.add_transition(state, sampler)

    def remove_state(self, state: StateKey) -> None:
        """
        Remove a state. Transitions elsewhere that still lead to it are kept;
        following one surfaces StateNotFoundError at the next lookup.
        """
        self._states.remove(state)
        logger.debug("removed state %r", state)

    # -----------------------------
    # Queries
    # -----------------------------

    def sample_transition(self, state: StateKey, action: int,
                          rng: np.random.Generator) -> Outcome:
        """
        Sample one (next_state, reward) outcome. Does not modify the model.

        Raises
        ------
        StateNotFoundError
            If `state` is unknown or stale.
        ActionDoesNotExistError
            If `action` is out of range for that state.
        """
        return self._states.get(state).action(action).sample(rng)

    def state(self, key: StateKey) -> State:
        return self._states.get(key)

    def states(self) -> List[StateKey]:
        """All state keys in arena order."""
        return list(self._states.keys())

    def num_actions(self, state: StateKey) -> int:
        return self._states.get(state).num_actions

    def __contains__(self, key: object) -> bool:
        return key in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[StateKey]:
        return self._states.keys()

    def __repr__(self) -> str:
        return f"MarkovDecisionProcess(states={len(self)}, gamma={self._gamma})"


# =====================================================================
# Simulation
# =====================================================================

class SimulationCursor:
    """
    Current position inside a read-only model.

    Parameters
    ----------
    model : MarkovDecisionProcess
    start : StateKey
        Initial state; must exist in `model`.
    rng : np.random.Generator
        Source of randomness for every transition draw.
    """

    def __init__(self, model: MarkovDecisionProcess, start: StateKey,
                 rng: np.random.Generator) -> None:
        self._model = model
        self._rng = rng
        self._state = start
        self.reset(start)

    @property
    def model(self) -> MarkovDecisionProcess:
        return self._model

    @property
    def current_state(self) -> StateKey:
        return self._state

    def reset(self, state: StateKey) -> None:
        """
        Move to `state` without touching the model.

        Raises
        ------
        StateNotFoundError
            If `state` is not in the model.
        """
        if state not in self._model:
            raise StateNotFoundError(f"cannot reset to unknown state {state!r}")
        self._state = state

    def advance(self, action: int) -> float:
        """
        Take `action` from the current state, move, and return the reward.

        Raises
        ------
        InconsistentPolicyError
            If the action (or the current state) does not exist. The caller
            is expected to pass only actions it knows exist, so this is fatal.
        """
        try:
            next_state, reward = self._model.sample_transition(self._state, action, self._rng)
        except (ActionDoesNotExistError, StateNotFoundError) as e:
            raise InconsistentPolicyError(
                f"cannot take action {action} in state {self._state!r}"
            ) from e
        self._state = next_state
        return reward

    def rollout(self, actions: Sequence[int]) -> List[Step]:
        """
        Advance through `actions` in order and record each move.
        """
        steps: List[Step] = []
        for a in actions:
            s = self._state
            r = self.advance(a)
            steps.append(Step(s, int(a), r, self._state))
        return steps
