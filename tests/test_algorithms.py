"""
tests/test_algorithms.py

Unit tests for the learning algorithms defined in `algorithms.py`.

The goals of this test suite are to verify that:

- The harmonic learning-rate schedule decays as 1 / (1/lr + 1).
- TD(0) converges to the closed-form value r / (1 - gamma) on a ring and
  to E[r] / (1 - gamma) on a stochastic self-loop.
- An inconsistent policy aborts the run.
- Q-learning tries every action once before repeating one, bootstraps
  from max Q(s') or from a random Q-entry of s' depending on epsilon,
  and rejects states without actions.
- The `*_train_with_logs` variants return consistent log dictionaries.

Runs are seeded and kept short so the suite stays fast.
"""

import numpy as np
import pytest

from markov_learning.algorithms import (
    LogConfig,
    QLearningConfig,
    TDConfig,
    least_visited_action,
    next_learning_rate,
    q_learning,
    q_learning_train_with_logs,
    td_zero,
    td_zero_train_with_logs,
)
from markov_learning.errors import EmptyActionSetError, InconsistentPolicyError
from markov_learning.markov import MarkovDecisionProcess
from markov_learning.models import constant_policy, ring_mdp, self_loop_mdp


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def two_action_loop():
    """
    One state, two self-loop actions: a0 pays 1.0, a1 pays 0.0. gamma = 0.5.

    Optimal values: Q(a0) = 1 + 0.5 * 2 = 2, Q(a1) = 0 + 0.5 * 2 = 1.
    """
    model = MarkovDecisionProcess(0.5)
    s = model.add_state()
    model.add_action(s, [(s, 1.0, 1.0)])
    model.add_action(s, [(s, 0.0, 1.0)])
    return model, s


@pytest.fixture
def small_stochastic_model():
    """
    Five states on a ring; action 0 moves forward (r=1) or stays (r=0)
    with equal chance, action 1 jumps back to state 0 with r=0.5.
    """
    model = MarkovDecisionProcess(0.8)
    keys = [model.add_state() for _ in range(5)]
    for i, k in enumerate(keys):
        model.add_action(k, [(keys[(i + 1) % 5], 1.0, 1.0), (k, 0.0, 1.0)])
        model.add_action(k, [(keys[0], 0.5, 1.0)])
    return model, keys


# ---------------------------------------------------------------------
# Learning-rate schedule
# ---------------------------------------------------------------------

def test_harmonic_schedule():
    lr = 1.0
    seen = []
    for _ in range(4):
        lr = next_learning_rate(lr, "harmonic")
        seen.append(lr)
    assert seen == pytest.approx([1 / 2, 1 / 3, 1 / 4, 1 / 5])


def test_constant_schedule():
    assert next_learning_rate(0.3, "constant") == 0.3


# ---------------------------------------------------------------------
# TD(0)
# ---------------------------------------------------------------------

def test_td_zero_ring_converges_to_closed_form():
    """
    13-state ring, reward 1 per step, gamma 0.9 -> V = 10 everywhere.
    """
    model, keys = ring_mdp(13, reward=1.0, gamma=0.9)
    cfg = TDConfig(epoch_size=2_000, learning_rate=0.5, schedule="constant", seed=0)

    V = td_zero(model, constant_policy(keys), cfg)

    assert set(V) == set(keys)
    for k in keys:
        assert V[k] == pytest.approx(10.0, abs=0.01)


def test_td_zero_harmonic_first_updates():
    """
    Self-loop with reward 1, gamma 0.5, lr starting at 1:
    after one update V = 1, after two V = 0.5*1 + 0.5*(1 + 0.5*1) = 1.25.
    """
    model, s = self_loop_mdp([1.0], [1.0], gamma=0.5)
    policy = {s: 0}

    V1 = td_zero(model, policy, TDConfig(epoch_size=1, learning_rate=1.0))
    V2 = td_zero(model, policy, TDConfig(epoch_size=2, learning_rate=1.0))

    assert V1[s] == pytest.approx(1.0)
    assert V2[s] == pytest.approx(1.25)


def test_td_zero_harmonic_converges():
    model, s = self_loop_mdp([1.0], [1.0], gamma=0.5)
    V = td_zero(model, {s: 0}, TDConfig(epoch_size=20_000, learning_rate=1.0))
    assert V[s] == pytest.approx(2.0, abs=0.02)


def _harmonic_ring_values(n, gamma, epoch_size):
    """Hand-rolled TD(0) on a reward-1 ring: start states in order, lr_0 = 1."""
    V = [0.0] * n
    lr = [1.0] * n
    for start in range(n):
        s = start
        for _ in range(epoch_size):
            s2 = (s + 1) % n
            V[s] = (1.0 - lr[s]) * V[s] + lr[s] * (1.0 + gamma * V[s2])
            lr[s] = 1.0 / (1.0 / lr[s] + 1.0)
            s = s2
    return V


def test_td_zero_harmonic_ring_gamma_09():
    """
    13-state ring at gamma 0.9 under the harmonic schedule.

    Every state gets `epoch_size` updates in total. With step 1/k the gap to
    the fixed point 10 shrinks by (1 - 0.1/k) per update, so after n updates
    V is about 10 - 9 * prod_{k=2..n}(1 - 0.1/k), roughly 5.3 at n = 1000:
    far from 10, but rising towards it.
    """
    model, keys = ring_mdp(13, reward=1.0, gamma=0.9)
    policy = constant_policy(keys)

    V_short = td_zero(model, policy, TDConfig(epoch_size=260, learning_rate=1.0))
    V_long = td_zero(model, policy, TDConfig(epoch_size=1_000, learning_rate=1.0))

    expected = _harmonic_ring_values(13, 0.9, 1_000)
    assert [V_long[k] for k in keys] == pytest.approx(expected, abs=1e-9)

    approx_gap = 9.0 * np.prod(1.0 - 0.1 / np.arange(2, 1_001))
    for k in keys:
        assert V_short[k] < V_long[k] < 10.0
        assert V_long[k] == pytest.approx(10.0 - approx_gap, abs=1.0)


def test_td_zero_stochastic_reward():
    """
    Reward 1 w.p. 0.75, 2 w.p. 0.25 -> E[r] = 1.25; gamma 0.5 -> V = 2.5.
    """
    model, s = self_loop_mdp([1.0, 2.0], [0.75, 0.25], gamma=0.5)
    cfg = TDConfig(epoch_size=20_000, learning_rate=0.002, schedule="constant", seed=0)
    V = td_zero(model, {s: 0}, cfg)
    assert V[s] == pytest.approx(2.5, abs=0.1)


def test_td_zero_zero_epoch_returns_zeros(small_stochastic_model):
    model, keys = small_stochastic_model
    V = td_zero(model, constant_policy(keys), TDConfig(epoch_size=0))
    assert all(V[k] == 0.0 for k in keys)


def test_td_zero_policy_missing_state_aborts(small_stochastic_model):
    model, keys = small_stochastic_model
    policy = constant_policy(keys[:-1])
    with pytest.raises(InconsistentPolicyError):
        td_zero(model, policy, TDConfig(epoch_size=100))


def test_td_zero_policy_with_unknown_action_aborts(small_stochastic_model):
    model, keys = small_stochastic_model
    policy = constant_policy(keys, action=7)
    with pytest.raises(InconsistentPolicyError):
        td_zero(model, policy, TDConfig(epoch_size=1))


@pytest.mark.parametrize("cfg", [
    TDConfig(schedule="exponential"),
    TDConfig(learning_rate=0.0),
    TDConfig(learning_rate=1.5),
    TDConfig(epoch_size=-1),
])
def test_td_zero_rejects_bad_config(small_stochastic_model, cfg):
    model, keys = small_stochastic_model
    with pytest.raises(ValueError):
        td_zero(model, constant_policy(keys), cfg)


def test_td_zero_is_reproducible(small_stochastic_model):
    model, keys = small_stochastic_model
    cfg = TDConfig(epoch_size=300, seed=4)
    V1 = td_zero(model, constant_policy(keys), cfg)
    V2 = td_zero(model, constant_policy(keys), cfg)
    assert V1 == V2


# ---------------------------------------------------------------------
# Q-learning
# ---------------------------------------------------------------------

def test_least_visited_action_ties_break_low():
    assert least_visited_action([0, 0, 0]) == 0
    assert least_visited_action([2, 1, 1]) == 1
    assert least_visited_action(np.array([3, 4, 2])) == 2


def test_q_learning_tries_each_action_once_first():
    """
    With k actions at a state, the first k visits cover every action.
    """
    model = MarkovDecisionProcess(0.9)
    s = model.add_state()
    for r in (0.0, 5.0, 1.0):
        model.add_action(s, [(s, r, 1.0)])

    _, logs = q_learning_train_with_logs(model, QLearningConfig(epoch_size=3), LogConfig())
    assert logs["visits"][s].tolist() == [1, 1, 1]

    _, logs = q_learning_train_with_logs(model, QLearningConfig(epoch_size=7), LogConfig())
    assert logs["visits"][s].tolist() == [3, 2, 2]


def test_q_learning_greedy_bootstrap_converges(two_action_loop):
    model, s = two_action_loop
    cfg = QLearningConfig(epoch_size=2_000, learning_rate=0.5, epsilon=0.0, seed=0)
    Q = q_learning(model, cfg)
    assert Q[s] == pytest.approx([2.0, 1.0], abs=1e-3)


def test_q_learning_random_entry_bootstrap(two_action_loop):
    """
    With epsilon = 1 the bootstrap is a uniformly random Q-entry of s', so
    the fixed point is Q(a0) = 1.5, Q(a1) = 0.5 instead of 2 and 1.
    """
    model, s = two_action_loop
    cfg = QLearningConfig(epoch_size=20_000, learning_rate=0.1, epsilon=1.0, seed=0)
    Q = q_learning(model, cfg)
    assert Q[s][0] == pytest.approx(1.5, abs=0.25)
    assert Q[s][1] == pytest.approx(0.5, abs=0.25)
    assert Q[s][0] > Q[s][1]


def test_q_learning_table_shape_and_order(small_stochastic_model):
    model, keys = small_stochastic_model
    Q = q_learning(model, QLearningConfig(epoch_size=500, seed=1))

    assert list(Q) == keys
    for k in keys:
        assert Q[k].shape == (2,)
        assert np.all(np.isfinite(Q[k]))
    assert not all(np.allclose(Q[k], 0.0) for k in keys)


def test_q_learning_rejects_state_without_actions():
    model = MarkovDecisionProcess(0.9)
    s = model.add_state()
    model.add_action(s, [(s, 1.0, 1.0)])
    model.add_state()
    with pytest.raises(EmptyActionSetError):
        q_learning(model, QLearningConfig(epoch_size=10))


@pytest.mark.parametrize("cfg", [
    QLearningConfig(epsilon=-0.1),
    QLearningConfig(epsilon=1.1),
    QLearningConfig(learning_rate=0.0),
])
def test_q_learning_rejects_bad_config(two_action_loop, cfg):
    model, _ = two_action_loop
    with pytest.raises(ValueError):
        q_learning(model, cfg)


# ---------------------------------------------------------------------
# Training-with-logs variants
# ---------------------------------------------------------------------

def test_td_zero_with_logs_matches_plain_run(small_stochastic_model):
    model, keys = small_stochastic_model
    policy = constant_policy(keys)
    cfg = TDConfig(epoch_size=200, seed=3)

    V_plain = td_zero(model, policy, cfg)
    V_logged, logs = td_zero_train_with_logs(model, policy, cfg, LogConfig(snapshot_every=2))

    assert V_logged == V_plain
    assert len(logs["rewards"]) == len(keys)
    assert sum(logs["visits"].values()) == len(keys) * cfg.epoch_size
    # snapshots after start states 1, 2, 4 and the last one (5)
    assert [snap["epoch"] for snap in logs["snapshots"]] == [1, 2, 4, 5]
    assert logs["snapshots"][-1]["table"] == V_plain
    assert all(snap["avg_return"] is None for snap in logs["snapshots"])


def test_td_zero_with_logs_evaluates_snapshots():
    model, keys = ring_mdp(4, reward=1.0, gamma=0.5)
    cfg = TDConfig(epoch_size=50, learning_rate=0.5, schedule="constant")
    logcfg = LogConfig(snapshot_every=1, eval_rollouts=3, eval_horizon=40)

    _, logs = td_zero_train_with_logs(model, constant_policy(keys), cfg, logcfg)

    assert len(logs["snapshots"]) == 4
    for snap in logs["snapshots"]:
        assert snap["avg_return"] == pytest.approx(2.0, abs=1e-6)
    assert np.allclose(logs["rewards"], 1.0)


def test_td_zero_with_logs_evaluation_needs_full_policy():
    """
    With no learning steps the only policy lookups happen in the snapshot
    evaluation; a missing state must still abort with the typed error.
    """
    model, keys = ring_mdp(3, reward=1.0, gamma=0.5)
    policy = constant_policy(keys[:2])
    cfg = TDConfig(epoch_size=0)
    logcfg = LogConfig(eval_rollouts=1, eval_horizon=5)

    with pytest.raises(InconsistentPolicyError):
        td_zero_train_with_logs(model, policy, cfg, logcfg)


def test_q_learning_with_logs(small_stochastic_model):
    model, keys = small_stochastic_model
    cfg = QLearningConfig(epoch_size=100, seed=2)
    logcfg = LogConfig(snapshot_every=10, eval_rollouts=2, eval_horizon=20)

    Q_plain = q_learning(model, cfg)
    Q, logs = q_learning_train_with_logs(model, cfg, logcfg)

    for k in keys:
        assert np.array_equal(Q[k], Q_plain[k])
    assert "rewards" in logs and "visits" in logs and "snapshots" in logs
    assert len(logs["rewards"]) == len(keys)
    assert sum(int(v.sum()) for v in logs["visits"].values()) == len(keys) * cfg.epoch_size
    assert [snap["epoch"] for snap in logs["snapshots"]] == [1, 5]
    assert all(isinstance(snap["avg_return"], float) for snap in logs["snapshots"])


def test_logs_reject_zero_snapshot_interval(two_action_loop):
    model, _ = two_action_loop
    with pytest.raises(ValueError):
        q_learning_train_with_logs(model, QLearningConfig(epoch_size=1), LogConfig(snapshot_every=0))
