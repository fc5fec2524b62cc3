"""arcaderl package."""

from .analysis import action_reward_analysis, analyze_episodes, learning_curve, write_report
from .curriculum import (
    DEFAULT_PHASES,
    CurriculumScheduler,
    DifficultyConfig,
    PhaseConfig,
    load_curriculum_phases,
    score_performance,
)
from .errors import ArcadeRLError, CorruptRecordError, EncodingError, PersistenceError
from .experience import Episode, Experience, ExperienceStore
from .featurize import BASE_LAYOUT, FULL_LAYOUT, StateLayout, action_to_velocity, encode_state, state_dimension
from .models import (
    CompanionState,
    EnemyState,
    Obstacle,
    PerformanceSnapshot,
    PlayerState,
    Projectile,
    TickSnapshot,
)
from .ranges import RangeSettings, TrainingRange, make_range, range_bounds
from .replay import PrioritizedReplayBuffer
from .rewards import RewardWeights, load_reward_weights, reward_breakdown, shape_reward
from .simulation import ArcadeSimulation, SimulationConfig
from .training_logger import TrainingLogger

__all__ = [
    "TickSnapshot",
    "PlayerState",
    "EnemyState",
    "Projectile",
    "Obstacle",
    "CompanionState",
    "PerformanceSnapshot",
    "StateLayout",
    "BASE_LAYOUT",
    "FULL_LAYOUT",
    "encode_state",
    "state_dimension",
    "action_to_velocity",
    "RewardWeights",
    "reward_breakdown",
    "shape_reward",
    "load_reward_weights",
    "Experience",
    "Episode",
    "ExperienceStore",
    "PrioritizedReplayBuffer",
    "PhaseConfig",
    "DifficultyConfig",
    "DEFAULT_PHASES",
    "CurriculumScheduler",
    "load_curriculum_phases",
    "score_performance",
    "ArcadeSimulation",
    "SimulationConfig",
    "RangeSettings",
    "TrainingRange",
    "make_range",
    "range_bounds",
    "TrainingLogger",
    "analyze_episodes",
    "learning_curve",
    "action_reward_analysis",
    "write_report",
    "ArcadeRLError",
    "EncodingError",
    "PersistenceError",
    "CorruptRecordError",
]
