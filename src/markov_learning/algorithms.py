"""
algorithms.py - Tabular learning algorithms driven through a SimulationCursor.

Implements:

- td_zero     : TD(0) evaluation of a fixed policy, harmonic or constant step size
- q_learning  : Q-learning with least-visited-first action selection

Both visit every state of the model in arena order, root a cursor there
and run `epoch_size` online updates from it. The "train_with_logs"
variants run the same updates and additionally:
    - record the mean reward of every start-state epoch
    - keep per-state visit counts
    - periodically store snapshots of the table for later inspection
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .arena import StateKey
from .errors import EmptyActionSetError, InconsistentPolicyError
from .markov import MarkovDecisionProcess, SimulationCursor
from .probability import WeightedSampler
from .utils import (
    set_seed,
    arg_min,
    policy_action,
    max_val,
    init_q_table,
    greedy_policy_from_q,
    evaluate_policy,
)

logger = logging.getLogger(__name__)

SCHEDULES = ("harmonic", "constant")


# =====================================================================
# Configuration dataclasses
# =====================================================================

@dataclass
class TDConfig:
    """
    Hyperparameters for TD(0) evaluation.

    Parameters
    ----------
    epoch_size : int
        Number of updates performed from every start state.
    learning_rate : float
        Initial (harmonic) or fixed (constant) step size in (0, 1].
    schedule : str
        "harmonic": after each update of a state its rate becomes
        1 / (1/lr + 1). "constant": the rate never changes.
    seed : int or None
        Seed for the NumPy Generator driving every transition draw.
    """
    epoch_size: int = 10_000
    learning_rate: float = 0.1
    schedule: str = "harmonic"
    seed: Optional[int] = 0


@dataclass
class QLearningConfig:
    """
    Hyperparameters for Q-learning.

    Parameters
    ----------
    epoch_size : int
        Number of updates performed from every start state.
    learning_rate : float
        Fixed step size in (0, 1].
    epsilon : float
        Probability in [0, 1] that the bootstrap value is a uniformly random
        entry of Q[s'] instead of max Q[s'].
    seed : int or None
        Seed for the NumPy Generator.
    """
    epoch_size: int = 10_000
    learning_rate: float = 0.1
    epsilon: float = 0.1
    seed: Optional[int] = 0


@dataclass
class LogConfig:
    """
    Snapshot / evaluation settings for the `*_train_with_logs` variants.

    Parameters
    ----------
    snapshot_every : int
        Take a snapshot every `snapshot_every` start states. Snapshots are
        also taken after the first and the last start state.
    eval_rollouts : int
        Monte-Carlo rollouts per snapshot used to estimate the return of the
        current policy from the start state. 0 disables evaluation.
    eval_horizon : int
        Length of every evaluation rollout.
    seed : int or None
        Seed for evaluation rollouts.
    """
    snapshot_every: int = 1
    eval_rollouts: int = 0
    eval_horizon: int = 100
    seed: Optional[int] = 0


def _check_common(epoch_size: int, learning_rate: float) -> None:
    if epoch_size < 0:
        raise ValueError(f"epoch_size must be >= 0, got {epoch_size}")
    if not (0.0 < learning_rate <= 1.0):
        raise ValueError(f"learning_rate must be in (0, 1], got {learning_rate}")


def _check_td(cfg: TDConfig) -> None:
    _check_common(cfg.epoch_size, cfg.learning_rate)
    if cfg.schedule not in SCHEDULES:
        raise ValueError(f"schedule must be one of {SCHEDULES}, got {cfg.schedule!r}")


def _check_q(model: MarkovDecisionProcess, cfg: QLearningConfig) -> None:
    _check_common(cfg.epoch_size, cfg.learning_rate)
    if not (0.0 <= cfg.epsilon <= 1.0):
        raise ValueError(f"epsilon must be in [0, 1], got {cfg.epsilon}")
    for s in model.states():
        if model.num_actions(s) == 0:
            raise EmptyActionSetError(f"state {s!r} has no actions")


def _check_log(logcfg: LogConfig) -> None:
    if logcfg.snapshot_every < 1:
        raise ValueError(f"snapshot_every must be >= 1, got {logcfg.snapshot_every}")


def _take_snapshot(i: int, n: int, logcfg: LogConfig) -> bool:
    return (i == 0) or ((i + 1) % logcfg.snapshot_every == 0) or (i == n - 1)


# =====================================================================
# TD(0)
# =====================================================================

def next_learning_rate(lr: float, schedule: str = "harmonic") -> float:
    """
    Step size after one more visit.

    Parameters
    ----------
    lr : float
        Current rate.
    schedule : str
        "harmonic" -> 1 / (1/lr + 1); "constant" -> lr.
    """
    if schedule == "harmonic":
        return 1.0 / (1.0 / lr + 1.0)
    return lr


def _td_update(model: MarkovDecisionProcess,
               policy: Mapping[StateKey, int],
               cursor: SimulationCursor,
               V: Dict[StateKey, float],
               lr: Dict[StateKey, float],
               schedule: str) -> float:
    """One online TD(0) update at the cursor's current state; returns the reward."""
    s = cursor.current_state
    r = cursor.advance(policy_action(policy, s))
    s2 = cursor.current_state
    if s2 not in V:
        raise InconsistentPolicyError(f"transition from {s!r} leads to unknown state {s2!r}")

    rate = lr[s]
    target = r + model.gamma * V[s2]
    V[s] = (1.0 - rate) * V[s] + rate * target
    lr[s] = next_learning_rate(rate, schedule)
    return r


def _td_tables(model: MarkovDecisionProcess,
               cfg: TDConfig) -> Tuple[Dict[StateKey, float], Dict[StateKey, float]]:
    V = {s: 0.0 for s in model.states()}
    lr = {s: cfg.learning_rate for s in V}
    return V, lr


def td_zero(model: MarkovDecisionProcess,
            policy: Mapping[StateKey, int],
            cfg: Optional[TDConfig] = None) -> Dict[StateKey, float]:
    """
    TD(0) estimate of the value function of a fixed policy.

    For every state (arena order) a cursor is rooted there and
    `cfg.epoch_size` updates are applied along the simulated trajectory:

        V(s) <- (1 - lr_s) V(s) + lr_s [r + gamma V(s')]

    Parameters
    ----------
    model : MarkovDecisionProcess
    policy : Mapping[StateKey, int]
        Action index for every state.
    cfg : TDConfig or None
        Defaults to `TDConfig()`.

    Returns
    -------
    dict[StateKey, float]
        Value estimate for every state.

    Raises
    ------
    InconsistentPolicyError
        If the policy misses a state or names an action the model lacks.
        The run is aborted.
    """
    cfg = cfg or TDConfig()
    _check_td(cfg)
    rng = set_seed(cfg.seed)
    V, lr = _td_tables(model, cfg)

    logger.info("td_zero: %d states, epoch_size=%d, schedule=%s",
                len(V), cfg.epoch_size, cfg.schedule)

    for start in model.states():
        cursor = SimulationCursor(model, start, rng)
        for _ in range(cfg.epoch_size):
            _td_update(model, policy, cursor, V, lr, cfg.schedule)
        logger.debug("td_zero: epoch from %r done", start)

    logger.info("td_zero: finished")
    return V


def td_zero_train_with_logs(model: MarkovDecisionProcess,
                            policy: Mapping[StateKey, int],
                            cfg: TDConfig,
                            logcfg: LogConfig) -> Tuple[Dict[StateKey, float], Dict[str, Any]]:
    """
    TD(0) that also records per-epoch statistics and value snapshots.

    Returns
    -------
    V : dict[StateKey, float]
        Same estimate `td_zero` returns for the same seed.
    logs : dict
        - "rewards":   np.ndarray, mean reward of each start-state epoch
        - "visits":    dict[StateKey, int], number of updates per state
        - "snapshots": list of dicts with
              {"start_state", "epoch", "table" (copy of V), "avg_return"}
    """
    _check_td(cfg)
    _check_log(logcfg)
    rng = set_seed(cfg.seed)
    V, lr = _td_tables(model, cfg)
    visits: Dict[StateKey, int] = {s: 0 for s in V}

    rewards: List[float] = []
    snapshots: List[Dict[str, Any]] = []
    starts = model.states()

    for i, start in enumerate(starts):
        cursor = SimulationCursor(model, start, rng)
        total = 0.0
        for _ in range(cfg.epoch_size):
            visits[cursor.current_state] += 1
            total += _td_update(model, policy, cursor, V, lr, cfg.schedule)
        rewards.append(total / cfg.epoch_size if cfg.epoch_size else 0.0)

        if _take_snapshot(i, len(starts), logcfg):
            avg_return = None
            if logcfg.eval_rollouts > 0:
                avg_return, _ = evaluate_policy(model, policy, start,
                                                rollouts=logcfg.eval_rollouts,
                                                horizon=logcfg.eval_horizon,
                                                seed=logcfg.seed)
            snapshots.append({
                "start_state": start,
                "epoch": i + 1,
                "table": dict(V),
                "avg_return": avg_return,
            })

    logs = {
        "rewards": np.array(rewards),
        "visits": visits,
        "snapshots": snapshots,
    }
    return V, logs


# =====================================================================
# Q-learning
# =====================================================================

def least_visited_action(visits) -> int:
    """
    Action with the fewest prior visits; the lowest index wins on ties.
    """
    return arg_min(visits)


def _q_update(model: MarkovDecisionProcess,
              cursor: SimulationCursor,
              Q: Dict[StateKey, np.ndarray],
              N: Dict[StateKey, np.ndarray],
              cfg: QLearningConfig,
              rng: np.random.Generator) -> float:
    """One Q-learning update at the cursor's current state; returns the reward."""
    s = cursor.current_state
    a = least_visited_action(N[s])
    r = cursor.advance(a)
    s2 = cursor.current_state
    if s2 not in Q:
        raise InconsistentPolicyError(f"transition from {s!r} leads to unknown state {s2!r}")

    q_next = Q[s2]
    if rng.random() < cfg.epsilon:
        # bootstrap from a uniformly random Q-entry of s', not a random action's outcome
        future = q_next[WeightedSampler.uniform(range(len(q_next))).sample(rng)]
    else:
        future = max_val(q_next)

    target = r + model.gamma * future
    Q[s][a] = (1.0 - cfg.learning_rate) * Q[s][a] + cfg.learning_rate * target
    N[s][a] += 1
    return r


def q_learning(model: MarkovDecisionProcess,
               cfg: Optional[QLearningConfig] = None) -> Dict[StateKey, np.ndarray]:
    """
    Tabular Q-learning with least-visited-first exploration.

    At every step the action taken is the one tried least often at the
    current state, so every action of a state is tried once before any is
    repeated. The bootstrap term is

        max_a' Q(s', a')                     with probability 1 - epsilon
        Q(s', a') for a' ~ Uniform(actions)  with probability epsilon

    and the update is Q(s,a) <- (1 - lr) Q(s,a) + lr [r + gamma * future].

    Parameters
    ----------
    model : MarkovDecisionProcess
    cfg : QLearningConfig or None
        Defaults to `QLearningConfig()`.

    Returns
    -------
    dict[StateKey, np.ndarray]
        Per-state Q-values in action registration order.

    Raises
    ------
    EmptyActionSetError
        If any state has no actions (checked before learning starts).
    """
    cfg = cfg or QLearningConfig()
    _check_q(model, cfg)
    rng = set_seed(cfg.seed)
    Q = init_q_table(model)
    N = {s: np.zeros(len(row), dtype=np.int64) for s, row in Q.items()}

    logger.info("q_learning: %d states, epoch_size=%d, epsilon=%.3f",
                len(Q), cfg.epoch_size, cfg.epsilon)

    for start in model.states():
        cursor = SimulationCursor(model, start, rng)
        for _ in range(cfg.epoch_size):
            _q_update(model, cursor, Q, N, cfg, rng)
        logger.debug("q_learning: epoch from %r done", start)

    logger.info("q_learning: finished")
    return Q


def q_learning_train_with_logs(model: MarkovDecisionProcess,
                               cfg: QLearningConfig,
                               logcfg: LogConfig) -> Tuple[Dict[StateKey, np.ndarray], Dict[str, Any]]:
    """
    Q-learning that also records per-epoch statistics and Q snapshots.

    Returns
    -------
    Q : dict[StateKey, np.ndarray]
    logs : dict
        - "rewards":   np.ndarray, mean reward of each start-state epoch
        - "visits":    dict[StateKey, np.ndarray], per-action visit counts
        - "snapshots": list of dicts with
              {"start_state", "epoch", "table" (copy of Q), "avg_return"}
          where "avg_return" evaluates the greedy policy of the snapshot.
    """
    _check_q(model, cfg)
    _check_log(logcfg)
    rng = set_seed(cfg.seed)
    Q = init_q_table(model)
    N = {s: np.zeros(len(row), dtype=np.int64) for s, row in Q.items()}

    rewards: List[float] = []
    snapshots: List[Dict[str, Any]] = []
    starts = model.states()

    for i, start in enumerate(starts):
        cursor = SimulationCursor(model, start, rng)
        total = 0.0
        for _ in range(cfg.epoch_size):
            total += _q_update(model, cursor, Q, N, cfg, rng)
        rewards.append(total / cfg.epoch_size if cfg.epoch_size else 0.0)

        if _take_snapshot(i, len(starts), logcfg):
            avg_return = None
            if logcfg.eval_rollouts > 0:
                avg_return, _ = evaluate_policy(model, greedy_policy_from_q(Q), start,
                                                rollouts=logcfg.eval_rollouts,
                                                horizon=logcfg.eval_horizon,
                                                seed=logcfg.seed)
            snapshots.append({
                "start_state": start,
                "epoch": i + 1,
                "table": {s: row.copy() for s, row in Q.items()},
                "avg_return": avg_return,
            })

    logs = {
        "rewards": np.array(rewards),
        "visits": {s: n.copy() for s, n in N.items()},
        "snapshots": snapshots,
    }
    return Q, logs
