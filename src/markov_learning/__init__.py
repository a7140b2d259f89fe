"""
Package init - expose a clean, minimal API for end users.

Usage
-----
from markov_learning import MarkovDecisionProcess, WeightedSampler, SimulationCursor
from markov_learning import td_zero, q_learning, TDConfig, QLearningConfig
from markov_learning import utils    # Optional: arg ordering, evaluation, plotting
"""

from .arena import SlotMap, StateKey
from .probability import WeightedSampler
from .markov import MarkovDecisionProcess, Outcome, SimulationCursor, State, Step
from .algorithms import (
    TDConfig,
    QLearningConfig,
    LogConfig,
    td_zero,
    q_learning,
    td_zero_train_with_logs,
    q_learning_train_with_logs,
)
from .gridworld import GridWorldMDP, WorldSettings
from .models import ring_mdp, self_loop_mdp, constant_policy
from . import errors

# Expose utils as a module so users can do: from markov_learning import utils
from . import utils

__all__ = [
    "SlotMap",
    "StateKey",
    "WeightedSampler",
    "MarkovDecisionProcess",
    "Outcome",
    "SimulationCursor",
    "State",
    "Step",
    "TDConfig",
    "QLearningConfig",
    "LogConfig",
    "td_zero",
    "q_learning",
    "td_zero_train_with_logs",
    "q_learning_train_with_logs",
    "GridWorldMDP",
    "WorldSettings",
    "ring_mdp",
    "self_loop_mdp",
    "constant_policy",
    "errors",
    "utils",
]

__version__ = "0.1.0"
