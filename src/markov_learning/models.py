"""
models.py - Small reference MDPs with known closed-form values.

- ring_mdp        : N states in a cycle, action 0 steps forward with a fixed reward
- self_loop_mdp   : one state looping onto itself with a random reward
- constant_policy : same action index in every state
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Tuple

from .arena import StateKey
from .markov import MarkovDecisionProcess, Outcome
from .probability import WeightedSampler


def ring_mdp(n: int, reward: float = 1.0,
             gamma: float = 0.9) -> Tuple[MarkovDecisionProcess, List[StateKey]]:
    """
    Deterministic cycle s_0 -> s_1 -> ... -> s_{n-1} -> s_0.

    Under action 0 every state has value reward / (1 - gamma).

    Returns
    -------
    model : MarkovDecisionProcess
    keys : list[StateKey]
        Ring states in order.
    """
    if n < 1:
        raise ValueError(f"ring needs at least one state, got {n}")
    model = MarkovDecisionProcess(gamma)
    keys = [model.add_state() for _ in range(n)]
    for i, key in enumerate(keys):
        model.add_action(key, [(keys[(i + 1) % n], reward, 1.0)])
    return model, keys


def self_loop_mdp(rewards: Sequence[float], weights: Sequence[float],
                  gamma: float = 0.9) -> Tuple[MarkovDecisionProcess, StateKey]:
    """
    A single state with one action that always returns to itself; the
    reward is drawn from `rewards` with the given `weights`.

    Its value is E[reward] / (1 - gamma).
    """
    model = MarkovDecisionProcess(gamma)
    key = model.add_state()
    sampler = WeightedSampler([Outcome(key, float(r)) for r in rewards], weights)
    model.add_transition(key, sampler)
    return model, key


def constant_policy(keys: Iterable[StateKey], action: int = 0) -> Dict[StateKey, int]:
    """Policy taking `action` in every state of `keys`."""
    return {k: action for k in keys}
