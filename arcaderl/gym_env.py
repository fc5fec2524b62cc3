"""Gymnasium adapter over the headless arcade simulation."""

from __future__ import annotations

import random
from typing import Dict, Optional

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from .constants import TARGETING_ACTION_COUNT
from .curriculum import CurriculumScheduler, DifficultyConfig
from .featurize import encode_state, get_layout
from .rewards import RewardWeights, next_idle_seconds, reward_breakdown
from .simulation import ArcadeSimulation, SimulationConfig

OBSERVATION_BOUND = 2.0


class ArcadeEnv(gym.Env):
    """Single-agent arcade env with shaped rewards.

    When a `CurriculumScheduler` is given, each reset asks it for the current
    difficulty and each finished episode reports its performance back.
    """

    metadata = {"name": "ArcadeRL-v0", "render_modes": []}

    def __init__(
        self,
        config: SimulationConfig | None = None,
        scheduler: CurriculumScheduler | None = None,
        weights: RewardWeights | None = None,
        layout: str = "full",
    ) -> None:
        super().__init__()
        self.config = config or SimulationConfig()
        self.scheduler = scheduler or CurriculumScheduler()
        self.weights = weights or RewardWeights()
        self.layout = get_layout(layout)
        self.sim = ArcadeSimulation(self.config, random.Random(0))
        self.observation_space = spaces.Box(
            low=-OBSERVATION_BOUND,
            high=OBSERVATION_BOUND,
            shape=(self.layout.dimension,),
            dtype=np.float32,
        )
        self.action_space = spaces.Discrete(TARGETING_ACTION_COUNT)
        self._idle_seconds = 0.0
        self._episode_reported = False
        self.difficulty: Optional[DifficultyConfig] = None

    def _observe(self) -> np.ndarray:
        vec = np.asarray(encode_state(self.sim.snapshot(), self.layout), dtype=np.float32)
        return np.clip(vec, -OBSERVATION_BOUND, OBSERVATION_BOUND)

    def reset(self, *, seed=None, options=None):
        super().reset(seed=seed)
        if seed is not None:
            self.sim.rng.seed(seed)
        self.difficulty = self.scheduler.start_new_episode()
        self.sim.reset(self.difficulty)
        self._idle_seconds = 0.0
        self._episode_reported = False
        return self._observe(), {"phase": self.difficulty.phase}

    def step(self, action):
        if not self.action_space.contains(int(action)):
            raise ValueError(f"Invalid action {action!r}")
        before = self.sim.snapshot()
        result = self.sim.step(int(action))
        self._idle_seconds = next_idle_seconds(
            self._idle_seconds, before, result.snapshot, self.config.step_seconds, self.weights
        )
        breakdown = reward_breakdown(
            before,
            result.snapshot,
            self.weights,
            idle_seconds=self._idle_seconds,
            done=result.done,
        )
        terminated = bool(result.snapshot.game_over)
        truncated = bool(result.done and not terminated)
        info: Dict[str, object] = {
            "events": list(result.events),
            "reward_terms": breakdown,
        }
        if result.done and not self._episode_reported:
            performance = self.sim.performance_snapshot()
            info["advanced"] = self.scheduler.record_performance(performance)
            info["phase"] = self.scheduler.current_phase.name
            self._episode_reported = True
        return self._observe(), float(sum(breakdown.values())), terminated, truncated, info
