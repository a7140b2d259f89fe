"""
utils.py - Small, reusable helpers for tabular learning on a MarkovDecisionProcess.

Includes:
- Seeding and RNG utilities
- Arg ordering (arg_max / arg_min / max_val / min_val)
- Q-table and policy helpers
- Evaluation harness (discounted return of a fixed policy)
- Moving average & plotting for value functions and learning curves
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import matplotlib.pyplot as plt

from .arena import StateKey
from .errors import EmptySequenceError, InconsistentPolicyError
from .markov import MarkovDecisionProcess, SimulationCursor


# -----------------------------
# Reproducibility / RNG
# -----------------------------

def set_seed(seed: Optional[int] = None) -> np.random.Generator:
    """
    Generator that drives every transition draw of a run.

    Learners, cursors and `evaluate_policy` never touch the global NumPy
    state; passing the same `seed` replays the same trajectories.

    Parameters
    ----------
    seed : int or None
        None draws fresh OS entropy.
    """
    return np.random.default_rng(seed)


# -----------------------------
# Arg ordering
# -----------------------------

def _as_vector(x: Sequence[float]) -> np.ndarray:
    arr = np.asarray(x, dtype=float)
    if arr.ndim != 1:
        raise ValueError(f"expected a 1-D sequence, got shape {arr.shape}")
    if arr.size == 0:
        raise EmptySequenceError("sequence is empty")
    if np.isnan(arr).any():
        raise ValueError("sequence contains NaN")
    return arr


def arg_max(x: Sequence[float]) -> int:
    """
    Index of the largest element; the first one wins on ties.

    Raises
    ------
    EmptySequenceError
        If `x` is empty.
    """
    return int(np.argmax(_as_vector(x)))


def arg_min(x: Sequence[float]) -> int:
    """
    Index of the smallest element; the first one wins on ties.
    """
    return int(np.argmin(_as_vector(x)))


def max_val(x: Sequence[float]) -> float:
    return float(np.max(_as_vector(x)))


def min_val(x: Sequence[float]) -> float:
    return float(np.min(_as_vector(x)))


# -----------------------------
# Q-table & policy helpers
# -----------------------------

def init_q_table(model: MarkovDecisionProcess,
                 init_value: float = 0.0) -> Dict[StateKey, np.ndarray]:
    """
    One row per state, one entry per action of that state, filled with `init_value`.
    """
    return {
        s: np.full(model.num_actions(s), init_value, dtype=float)
        for s in model.states()
    }


def greedy_policy_from_q(Q: Mapping[StateKey, np.ndarray]) -> Dict[StateKey, int]:
    """
    Greedy policy pi(s) = argmax_a Q(s, a), lowest index on ties.
    States without actions are left out.
    """
    return {s: arg_max(row) for s, row in Q.items() if len(row) > 0}


def policy_action(policy: Mapping[StateKey, int], state: StateKey) -> int:
    """
    Action the policy takes in `state`.

    Raises
    ------
    InconsistentPolicyError
        If the policy has no entry for `state`.
    """
    try:
        return int(policy[state])
    except KeyError as e:
        raise InconsistentPolicyError(f"policy has no action for state {state!r}") from e


def values_to_array(model: MarkovDecisionProcess,
                    values: Mapping[StateKey, float]) -> np.ndarray:
    """
    Value table as an array in the model's state order.
    """
    return np.array([values[s] for s in model.states()], dtype=float)


# -----------------------------
# Evaluation harness
# -----------------------------

def evaluate_policy(model: MarkovDecisionProcess,
                    policy: Mapping[StateKey, int],
                    start: StateKey,
                    rollouts: int = 20,
                    horizon: int = 100,
                    seed: Optional[int] = 123) -> Tuple[float, float]:
    """
    Monte-Carlo estimate of the discounted return of `policy` from `start`.

    Each rollout is truncated after `horizon` steps, so the estimate is
    biased low by at most gamma**horizon * max|V|.

    Parameters
    ----------
    model : MarkovDecisionProcess
    policy : Mapping[StateKey, int]
        Action index per state.
    start : StateKey
        Start state of every rollout.
    rollouts : int
        Number of independent rollouts.
    horizon : int
        Steps per rollout.
    seed : int or None
        Seed for the rollout RNG.

    Returns
    -------
    mean_return : float
    std_return : float

    Raises
    ------
    InconsistentPolicyError
        If a rollout reaches a state the policy does not cover, or an
        action the model lacks.
    """
    rng = set_seed(seed)
    cursor = SimulationCursor(model, start, rng)
    gamma = model.gamma
    returns = []
    for _ in range(rollouts):
        cursor.reset(start)
        G, discount = 0.0, 1.0
        for _ in range(horizon):
            G += discount * cursor.advance(policy_action(policy, cursor.current_state))
            discount *= gamma
        returns.append(G)
    if not returns:
        return 0.0, 0.0
    return float(np.mean(returns)), float(np.std(returns))


# -----------------------------
# Smoothing / plotting
# -----------------------------

def rolling(x, k: int = 25) -> np.ndarray:
    """
    Trailing mean over the last `k` epochs, computed from a running sum.

    The first k-1 entries repeat the first full-window mean, so the result
    has len(x) entries and lines up with the raw per-epoch series.
    """
    x = np.asarray(x, dtype=float)
    if x.size == 0:
        return x
    k = max(1, min(k, x.size))
    csum = np.cumsum(np.insert(x, 0, 0.0))
    window_means = (csum[k:] - csum[:-k]) / k
    return np.concatenate([np.full(k - 1, window_means[0]), window_means])


def plot_value_function(model: MarkovDecisionProcess,
                        values: Mapping[StateKey, float],
                        title: str = "State values") -> None:
    """
    Bar chart of V(s) in the model's state order.
    """
    keys = model.states()
    V = values_to_array(model, values)

    plt.figure(figsize=(7.5, 4))
    plt.bar(np.arange(len(keys)), V, color="#66bb6a", edgecolor="black")
    plt.xticks(np.arange(len(keys)), [str(k.index) for k in keys])
    plt.xlabel("State")
    plt.ylabel("V(s)")
    plt.title(title)
    plt.tight_layout()
    plt.show()


def plot_learning_curve(rewards: Sequence[float], window: int = 5,
                        title: str = "Mean reward per start state") -> None:
    """
    Mean reward of every start-state epoch (the "rewards" entry of a
    `*_train_with_logs` result), with its trailing average.

    Epochs are numbered from 1 in arena order of their start state.
    """
    r = np.asarray(rewards, dtype=float)
    epochs = np.arange(1, r.size + 1)

    fig, ax = plt.subplots(figsize=(7.5, 4))
    ax.plot(epochs, r, marker="o", markersize=3, alpha=0.4, label="Epoch mean")
    ax.plot(epochs, rolling(r, window), linewidth=2.0,
            label=f"Trailing mean ({window} epochs)")
    ax.set_xlabel("Epoch (start state)")
    ax.set_ylabel("Mean reward per step")
    ax.set_title(title)
    ax.legend()
    fig.tight_layout()
    plt.show()
