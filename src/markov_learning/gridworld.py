"""
GridWorld: a compact, wind-affected 2D layout compiled into a MarkovDecisionProcess.

- Deterministic layout (walls, pits, start, goal)
- Stochastic "wind" that can rotate the intended action left/right
- Every non-wall cell becomes one state with four actions
- Coordinates are (row, col) with (0, 0) at the top-left cell.

This file exposes:
    - WorldSettings: dataclass with layout configuration
    - GridWorldMDP: the compiled model plus cell <-> state lookups
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Dict, List, Mapping, Optional

import numpy as np
import matplotlib.pyplot as plt

from .arena import StateKey
from .markov import MarkovDecisionProcess

Cell = Tuple[int, int]

# Actions (↑→↓←), encoded as: 0=Up, 1=Right, 2=Down, 3=Left
MOVES: Dict[int, Cell] = {
    0: (-1, 0),  # Up
    1: (0, 1),   # Right
    2: (1, 0),   # Down
    3: (0, -1)   # Left
}


@dataclass(frozen=True)
class WorldSettings:
    """
    WorldSettings
    -------------
    Immutable layout of a GridWorld.

    Parameters
    ----------
    width : int
        Number of columns in the grid.
    height : int
        Number of rows in the grid.
    start : tuple[int, int]
        Start cell (row, col).
    goal : tuple[int, int]
        Goal cell (row, col). Absorbing.
    pits : tuple[tuple[int, int]], optional
        Absorbing cells entered with `pit_penalty`.
    walls : tuple[tuple[int, int]], optional
        Impassable cells; they are not states.
    wind_chance : float
        Probability that an action is rotated left/right (each half of it).
    step_penalty : float
        Reward for every ordinary move (usually negative).
    goal_reward : float
        Reward for entering the goal.
    pit_penalty : float
        Reward (negative) for entering a pit.
    """
    width: int = 5
    height: int = 5
    start: Cell = (4, 0)
    goal: Cell = (0, 4)
    pits: Tuple[Cell, ...] = ((2, 2),)
    walls: Tuple[Cell, ...] = ((1, 1), (3, 3))
    wind_chance: float = 0.1
    step_penalty: float = -0.01
    goal_reward: float = 1.0
    pit_penalty: float = -1.0


class GridWorldMDP:
    """
    A GridWorld layout compiled into a MarkovDecisionProcess.

    For a non-terminal cell and intended action a, the move a happens with
    probability 1 - wind_chance and each perpendicular move with
    wind_chance / 2. Moves into a wall or off the grid leave the agent in
    place. Goal and pit cells are absorbing: all four actions loop back
    with reward 0.

    Parameters
    ----------
    settings : WorldSettings
    gamma : float
        Discount factor of the compiled model.

    Attributes
    ----------
    model : MarkovDecisionProcess
    rows, cols : int
    start_key : StateKey
    """

    def __init__(self, settings: WorldSettings, gamma: float = 0.95) -> None:
        self.settings: WorldSettings = settings
        self.rows: int = settings.height
        self.cols: int = settings.width

        for cell in (settings.start, settings.goal):
            self._ensure_in_bounds(cell)
        if settings.start in settings.walls:
            raise ValueError("Start cannot be a wall.")
        if settings.goal in settings.walls:
            raise ValueError("Goal cannot be a wall.")
        if not (0.0 <= settings.wind_chance <= 1.0):
            raise ValueError(f"wind_chance must be in [0, 1], got {settings.wind_chance}")

        self.model = MarkovDecisionProcess(gamma)
        self._keys: Dict[Cell, StateKey] = {}
        self._cells: Dict[StateKey, Cell] = {}

        for r in range(self.rows):
            for c in range(self.cols):
                if (r, c) in settings.walls:
                    continue
                key = self.model.add_state()
                self._keys[(r, c)] = key
                self._cells[key] = (r, c)

        for cell, key in self._keys.items():
            for a in range(4):
                self.model.add_action(key, self._outcomes(cell, a))

        self.start_key: StateKey = self._keys[settings.start]

    # --------------------------------------------------------
    # Layout helpers
    # --------------------------------------------------------

    def _in_bounds(self, pos: Cell) -> bool:
        r, c = pos
        return 0 <= r < self.rows and 0 <= c < self.cols

    def _ensure_in_bounds(self, pos: Cell) -> None:
        if not self._in_bounds(pos):
            raise ValueError(f"Out-of-bounds position: {pos}")

    def _is_wall(self, pos: Cell) -> bool:
        return pos in self.settings.walls

    def is_terminal(self, cell: Cell) -> bool:
        """True iff `cell` is the goal or a pit."""
        return (cell == self.settings.goal) or (cell in self.settings.pits)

    def _move(self, pos: Cell, action: int) -> Cell:
        dr, dc = MOVES[action]
        candidate = (pos[0] + dr, pos[1] + dc)
        if (not self._in_bounds(candidate)) or self._is_wall(candidate):
            return pos
        return candidate

    def _reward(self, next_pos: Cell) -> float:
        if next_pos == self.settings.goal:
            return self.settings.goal_reward
        if next_pos in self.settings.pits:
            return self.settings.pit_penalty
        return self.settings.step_penalty

    def _outcomes(self, cell: Cell, action: int) -> List[Tuple[StateKey, float, float]]:
        """
        (next_state, reward, weight) triples for `action` taken in `cell`.
        Outcomes landing on the same cell are merged.
        """
        if self.is_terminal(cell):
            return [(self._keys[cell], 0.0, 1.0)]

        wind = self.settings.wind_chance
        candidates = [(action, 1.0 - wind),
                      ((action + 1) % 4, wind / 2),
                      ((action - 1) % 4, wind / 2)]

        merged: Dict[Cell, float] = {}
        for a, p in candidates:
            if p <= 0.0:
                continue
            nxt = self._move(cell, a)
            merged[nxt] = merged.get(nxt, 0.0) + p
        return [(self._keys[nxt], self._reward(nxt), p) for nxt, p in merged.items()]

    # --------------------------------------------------------
    # Lookups
    # --------------------------------------------------------

    def key_of(self, cell: Cell) -> StateKey:
        """State key of a non-wall cell."""
        if cell not in self._keys:
            raise ValueError(f"{cell} is a wall or out of bounds")
        return self._keys[cell]

    def cell_of(self, key: StateKey) -> Cell:
        return self._cells[key]

    def neighbors(self, pos: Cell) -> Tuple[Cell, ...]:
        """
        Cells reachable by one unwinded primitive move from `pos`
        (blocked moves are excluded).
        """
        nbs = []
        for a in range(4):
            q = self._move(pos, a)
            if q != pos:
                nbs.append(q)
        return tuple(nbs)

    def value_grid(self, values: Mapping[StateKey, float]) -> np.ndarray:
        """
        Map V(s) onto a (rows x cols) grid; walls are NaN.
        """
        G = np.full((self.rows, self.cols), np.nan)
        for key, (r, c) in self._cells.items():
            G[r, c] = values[key]
        return G

    # ---------------------------------------------------------------------
    # Rendering (matplotlib)
    # ---------------------------------------------------------------------

    def render_values(self, values: Mapping[StateKey, float],
                      policy: Optional[Mapping[StateKey, int]] = None,
                      title: str = "GridWorld values") -> None:
        """
        Heatmap of V(s) with optional policy arrows.

        Parameters
        ----------
        values : Mapping[StateKey, float]
        policy : Mapping[StateKey, int] or None
            If given, draws an arrow per non-terminal cell.
        title : str
        """
        Vg = self.value_grid(values)

        fig, ax = plt.subplots(figsize=(6.6, 6.6))
        im = ax.imshow(Vg, origin='upper')
        fig.colorbar(im, ax=ax, label="V(s)")
        ax.set_xticks(range(self.cols))
        ax.set_yticks(range(self.rows))

        if policy is not None:
            X, Y, U, V = [], [], [], []
            for key, (r, c) in self._cells.items():
                if self.is_terminal((r, c)) or key not in policy:
                    continue
                dr, dc = MOVES[int(policy[key])]
                X.append(c)
                Y.append(r)
                U.append(dc)
                V.append(dr)
            ax.quiver(X, Y, U, V, scale=1, angles='xy', scale_units='xy', width=0.004)

        sr, sc = self.settings.start
        ax.scatter(sc, sr, s=180, marker='D', facecolors='#4fc3f7',
                   edgecolors='black', label='Start', zorder=5)
        gr, gc = self.settings.goal
        ax.scatter(gc, gr, s=180, marker='*', facecolors="#66bb6a",
                   edgecolors='black', label="Goal", zorder=6)

        ax.set_title(title)
        ax.legend(bbox_to_anchor=(1.25, 1), loc='upper left', frameon=True)
        plt.tight_layout()
        plt.show()
