"""Curriculum phases, JSON loading and the phase-advancing scheduler."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .models import PerformanceSnapshot


@dataclass(frozen=True)
class PhaseConfig:
    name: str
    min_episodes: int
    max_episodes: Optional[int]
    performance_threshold: float
    enemy_count: int
    enemy_speed: float
    boss_spawn_rate: float
    hazard_count: int
    companion_count: int
    learning_rate: float
    description: str = ""

    @property
    def boss_spawn_interval(self) -> Optional[int]:
        if self.boss_spawn_rate <= 0:
            return None
        return int(self.boss_spawn_rate)


@dataclass(frozen=True)
class DifficultyConfig:
    phase: str
    phase_index: int
    enemy_count: int
    enemy_speed: float
    boss_spawn_interval: Optional[int]
    hazard_count: int
    companion_count: int
    learning_rate: float


DEFAULT_PHASES = (
    PhaseConfig(
        name="BasicMovement",
        min_episodes=100,
        max_episodes=500,
        performance_threshold=0.6,
        enemy_count=0,
        enemy_speed=0.0,
        boss_spawn_rate=0.0,
        hazard_count=0,
        companion_count=1,
        learning_rate=0.01,
        description="Learn to move and stay off the walls with no opposition",
    ),
    PhaseConfig(
        name="SlowEnemies",
        min_episodes=200,
        max_episodes=800,
        performance_threshold=0.7,
        enemy_count=2,
        enemy_speed=2.0,
        boss_spawn_rate=0.0,
        hazard_count=1,
        companion_count=2,
        learning_rate=0.008,
        description="A few slow enemies and a single hazard",
    ),
    PhaseConfig(
        name="NormalDifficulty",
        min_episodes=500,
        max_episodes=2000,
        performance_threshold=0.75,
        enemy_count=4,
        enemy_speed=5.0,
        boss_spawn_rate=20.0,
        hazard_count=3,
        companion_count=3,
        learning_rate=0.005,
        description="Regular game pace with occasional bosses",
    ),
    PhaseConfig(
        name="AdvancedTactics",
        min_episodes=1000,
        max_episodes=5000,
        performance_threshold=0.8,
        enemy_count=6,
        enemy_speed=6.0,
        boss_spawn_rate=15.0,
        hazard_count=4,
        companion_count=3,
        learning_rate=0.003,
        description="Dense waves and frequent bosses, formation play matters",
    ),
    PhaseConfig(
        name="MasterLevel",
        min_episodes=0,
        max_episodes=None,
        performance_threshold=1.0,
        enemy_count=8,
        enemy_speed=7.5,
        boss_spawn_rate=10.0,
        hazard_count=6,
        companion_count=3,
        learning_rate=0.001,
        description="Full difficulty, final phase",
    ),
)


REQUIRED_PHASE_FIELDS = {
    "name",
    "min_episodes",
    "performance_threshold",
    "enemy_count",
    "enemy_speed",
    "hazard_count",
}

OPTIONAL_PHASE_FIELDS = {
    "boss_spawn_rate": float,
    "companion_count": int,
    "learning_rate": float,
    "description": str,
}

OPTIONAL_DEFAULTS = {
    "boss_spawn_rate": 0.0,
    "companion_count": 0,
    "learning_rate": 0.001,
    "description": "",
}


def load_curriculum_phases(path: str | Path) -> List[PhaseConfig]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Curriculum JSON must be an object")
    if "schema_version" not in raw or not isinstance(raw["schema_version"], int):
        raise ValueError("Curriculum JSON requires integer schema_version")
    if "phases" not in raw or not isinstance(raw["phases"], list):
        raise ValueError("Curriculum JSON requires array 'phases'")

    out: List[PhaseConfig] = []
    for idx, row in enumerate(raw["phases"]):
        if not isinstance(row, dict):
            raise ValueError(f"phases[{idx}] must be an object")
        missing = REQUIRED_PHASE_FIELDS - set(row.keys())
        if missing:
            miss = ", ".join(sorted(missing))
            raise ValueError(f"phases[{idx}] missing required field(s): {miss}")
        extra: Dict[str, object] = dict(OPTIONAL_DEFAULTS)
        for key, caster in OPTIONAL_PHASE_FIELDS.items():
            if key in row:
                extra[key] = caster(row[key])
        max_episodes = row.get("max_episodes")
        phase = PhaseConfig(
            name=str(row["name"]),
            min_episodes=int(row["min_episodes"]),
            max_episodes=None if max_episodes is None else int(max_episodes),
            performance_threshold=float(row["performance_threshold"]),
            enemy_count=int(row["enemy_count"]),
            enemy_speed=float(row["enemy_speed"]),
            hazard_count=int(row["hazard_count"]),
            **extra,
        )
        if phase.max_episodes is not None and phase.max_episodes < phase.min_episodes:
            raise ValueError(f"phases[{idx}] max_episodes must be >= min_episodes")
        out.append(phase)

    if not out:
        raise ValueError("At least one curriculum phase is required")
    return out


def phase_difficulty(phase: PhaseConfig, index: int) -> DifficultyConfig:
    return DifficultyConfig(
        phase=phase.name,
        phase_index=index,
        enemy_count=phase.enemy_count,
        enemy_speed=phase.enemy_speed,
        boss_spawn_interval=phase.boss_spawn_interval,
        hazard_count=phase.hazard_count,
        companion_count=phase.companion_count,
        learning_rate=phase.learning_rate,
    )


def score_performance(snapshot: PerformanceSnapshot) -> float:
    """Composite episode score in [0, 1]."""
    survival = snapshot.player_health / float(max(1, snapshot.max_health))
    if snapshot.alive_companions > 0:
        survival += (snapshot.alive_companions / 3.0) * 0.5

    combat = 0.0
    if snapshot.enemies_destroyed > 0:
        combat = min(1.0, snapshot.enemies_destroyed / 10.0) + snapshot.bosses_defeated * 0.3

    efficiency = snapshot.bullet_efficiency * 0.7 + snapshot.spatial_coverage * 0.3

    score = survival * 0.4 + combat * 0.3 + efficiency * 0.2
    if snapshot.perfect_run:
        score += 0.1
    return max(0.0, min(1.0, score))


class CurriculumScheduler:
    """Walks an ordered list of phases as the moving performance average improves.

    The last phase is absorbing. Advancing resets the per-phase episode count
    and the performance window.
    """

    def __init__(self, phases: Sequence[PhaseConfig] = DEFAULT_PHASES, window: int = 50) -> None:
        if not phases:
            raise ValueError("At least one curriculum phase is required")
        self.phases = tuple(phases)
        self.window = int(window)
        self.reset()

    def reset(self) -> None:
        self._phase_index = 0
        self._episodes_in_phase = 0
        self._recorded_in_phase = 0
        self._total_episodes = 0
        self._scores: deque[float] = deque(maxlen=self.window)
        self._moving_average = 0.0
        self.advancements: List[Dict[str, object]] = []

    @property
    def phase_index(self) -> int:
        return self._phase_index

    @property
    def current_phase(self) -> PhaseConfig:
        return self.phases[self._phase_index]

    @property
    def episodes_in_phase(self) -> int:
        return self._episodes_in_phase

    @property
    def total_episodes(self) -> int:
        return self._total_episodes

    @property
    def moving_average(self) -> float:
        return self._moving_average

    @property
    def is_terminal(self) -> bool:
        return self._phase_index >= len(self.phases) - 1

    def difficulty(self) -> DifficultyConfig:
        return phase_difficulty(self.current_phase, self._phase_index)

    def start_new_episode(self) -> DifficultyConfig:
        self._episodes_in_phase += 1
        self._total_episodes += 1
        return self.difficulty()

    def record_performance(self, snapshot: PerformanceSnapshot) -> bool:
        return self.record_score(score_performance(snapshot))

    def record_score(self, score: float) -> bool:
        """Push one episode score; returns True when the phase advanced."""
        self._recorded_in_phase += 1
        # An episode scored without start_new_episode() still counts.
        if self._recorded_in_phase > self._episodes_in_phase:
            self._total_episodes += self._recorded_in_phase - self._episodes_in_phase
            self._episodes_in_phase = self._recorded_in_phase
        self._scores.append(max(0.0, min(1.0, float(score))))
        self._moving_average = sum(self._scores) / len(self._scores)
        if self._should_advance():
            self._advance()
            return True
        return False

    def _should_advance(self) -> bool:
        if self.is_terminal:
            return False
        phase = self.current_phase
        if self._episodes_in_phase >= phase.min_episodes and self._moving_average >= phase.performance_threshold:
            return True
        return phase.max_episodes is not None and self._episodes_in_phase >= phase.max_episodes

    def _advance(self) -> None:
        previous = self.current_phase
        self.advancements.append(
            {
                "from": previous.name,
                "to": self.phases[self._phase_index + 1].name,
                "episodes_in_phase": self._episodes_in_phase,
                "total_episodes": self._total_episodes,
                "moving_average": self._moving_average,
            }
        )
        self._phase_index += 1
        self._episodes_in_phase = 0
        self._recorded_in_phase = 0
        self._scores.clear()
        self._moving_average = 0.0

    def stats(self) -> Dict[str, object]:
        phase = self.current_phase
        return {
            "current_phase": phase.name,
            "phase_index": self._phase_index,
            "episodes_in_phase": self._episodes_in_phase,
            "total_episodes": self._total_episodes,
            "current_performance": self._moving_average,
            "phase_description": phase.description,
            "required_performance": phase.performance_threshold,
            "min_episodes_required": phase.min_episodes,
            "advancements": len(self.advancements),
        }
