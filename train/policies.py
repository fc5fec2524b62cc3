"""Linear action-value learner used by every trainable agent."""

from __future__ import annotations

import json
import logging
import random
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from arcaderl.constants import action_name
from arcaderl.errors import EncodingError, PersistenceError
from arcaderl.experience import Episode, Experience

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1


@dataclass
class ModelConfig:
    learning_rate: float = 0.001
    discount_factor: float = 0.99
    exploration_rate: float = 0.1
    batch_size: int = 32
    action_space_size: int = 12
    state_space_size: int = 42
    min_learning_rate: float = 0.0001
    max_learning_rate: float = 0.01
    min_exploration_rate: float = 0.05
    max_exploration_rate: float = 0.3
    performance_threshold: float = 0.7
    reward_scale: float = 100.0
    performance_window: int = 100
    adaptive: bool = True
    # Clamp on the TD error used in each step; None keeps the plain update.
    gradient_clip: Optional[float] = None
    init_scale: float = 0.0


REQUIRED_MODEL_FIELDS = {
    "learning_rate",
    "discount_factor",
    "exploration_rate",
    "batch_size",
    "action_space_size",
    "state_space_size",
}

OPTIONAL_MODEL_FIELDS = {
    "min_learning_rate": float,
    "max_learning_rate": float,
    "min_exploration_rate": float,
    "max_exploration_rate": float,
    "performance_threshold": float,
    "reward_scale": float,
    "performance_window": int,
    "adaptive": bool,
    "init_scale": float,
}


def model_config_from_dict(row: Dict[str, object], where: str = "config") -> ModelConfig:
    missing = REQUIRED_MODEL_FIELDS - set(row.keys())
    if missing:
        miss = ", ".join(sorted(missing))
        raise ValueError(f"{where} missing required field(s): {miss}")
    cfg = ModelConfig(
        learning_rate=float(row["learning_rate"]),
        discount_factor=float(row["discount_factor"]),
        exploration_rate=float(row["exploration_rate"]),
        batch_size=int(row["batch_size"]),
        action_space_size=int(row["action_space_size"]),
        state_space_size=int(row["state_space_size"]),
    )
    for key, caster in OPTIONAL_MODEL_FIELDS.items():
        if key in row:
            setattr(cfg, key, caster(row[key]))
    if row.get("gradient_clip") is not None:
        cfg.gradient_clip = float(row["gradient_clip"])
    if cfg.action_space_size <= 0 or cfg.state_space_size <= 0:
        raise ValueError(f"{where} requires positive action_space_size and state_space_size")
    return cfg


def load_model_config(path: str | Path) -> ModelConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Model config JSON must be an object")
    if "schema_version" not in raw or not isinstance(raw["schema_version"], int):
        raise ValueError("Model config JSON requires integer schema_version")
    if "model" not in raw or not isinstance(raw["model"], dict):
        raise ValueError("Model config JSON requires object 'model'")
    return model_config_from_dict(raw["model"], where="model")


@dataclass
class TrainingMetrics:
    episodes_processed: int = 0
    experiences_processed: int = 0
    average_episode_reward: float = 0.0
    average_value_loss: float = 0.0
    performance_score: float = 0.0


@dataclass
class ValueApproximator:
    """Q(s, a) = dot(w_a, s) with one weight row per action."""

    config: ModelConfig = field(default_factory=ModelConfig)
    rng: random.Random = field(default_factory=lambda: random.Random(0))

    def __post_init__(self) -> None:
        self.learning_rate = float(self.config.learning_rate)
        self.exploration_rate = float(self.config.exploration_rate)
        self.metrics = TrainingMetrics()
        self._recent_rewards: deque[float] = deque(maxlen=max(1, int(self.config.performance_window)))
        self.weights = self._fresh_weights()

    def _fresh_weights(self) -> np.ndarray:
        shape = (self.config.action_space_size, self.config.state_space_size)
        scale = float(self.config.init_scale)
        if scale <= 0.0:
            return np.zeros(shape, dtype=np.float64)
        values = [self.rng.uniform(-scale, scale) for _ in range(shape[0] * shape[1])]
        return np.asarray(values, dtype=np.float64).reshape(shape)

    def reset_weights(self) -> None:
        self.weights = self._fresh_weights()
        self.metrics = TrainingMetrics()
        self._recent_rewards.clear()

    @property
    def action_space_size(self) -> int:
        return self.config.action_space_size

    @property
    def state_space_size(self) -> int:
        return self.config.state_space_size

    def _as_state(self, state: Sequence[float], what: str = "state") -> np.ndarray:
        if len(state) != self.config.state_space_size:
            raise EncodingError(self.config.state_space_size, len(state), what=what)
        return np.asarray(state, dtype=np.float64)

    def q_values(self, state: Sequence[float]) -> List[float]:
        return [float(v) for v in self.weights @ self._as_state(state)]

    def greedy_action(self, state: Sequence[float]) -> int:
        q = self.q_values(state)
        # max() keeps the first index among ties.
        return max(range(len(q)), key=lambda i: q[i])

    def select_action(self, state: Sequence[float], training: bool = True) -> int:
        if training and self.rng.random() < self.exploration_rate:
            self._as_state(state)
            return self.rng.randrange(self.config.action_space_size)
        return self.greedy_action(state)

    def debug_values(self, state: Sequence[float]) -> Dict[str, float]:
        return {
            action_name(i, self.config.action_space_size): q
            for i, q in enumerate(self.q_values(state))
        }

    def td_target(self, experience: Experience) -> float:
        if experience.done:
            return float(experience.reward)
        next_q = self.weights @ self._as_state(experience.next_state, what="next_state")
        return float(experience.reward) + self.config.discount_factor * float(np.max(next_q))

    def update(self, experience: Experience) -> float:
        """Apply one TD step for `experience` and return the TD error before it."""
        action = int(experience.action)
        if not 0 <= action < self.config.action_space_size:
            raise ValueError(f"action {action} outside [0, {self.config.action_space_size})")
        s = self._as_state(experience.state)
        target = self.td_target(experience)
        td_error = target - float(self.weights[action] @ s)
        step = td_error
        clip = self.config.gradient_clip
        if clip is not None:
            step = max(-clip, min(clip, step))
        self.weights[action] += self.learning_rate * step * s
        return td_error

    def train_batch(self, experiences: Iterable[Experience]) -> float:
        """Update on each experience in order; return the mean squared TD error."""
        squared: List[float] = []
        for experience in experiences:
            err = self.update(experience)
            squared.append(err * err)
        if not squared:
            return 0.0
        loss = sum(squared) / len(squared)
        processed = self.metrics.experiences_processed
        total = processed + len(squared)
        self.metrics.average_value_loss = (
            self.metrics.average_value_loss * processed + loss * len(squared)
        ) / total
        self.metrics.experiences_processed = total
        return loss

    def train_on_episodes(self, episodes: Iterable[Episode]) -> float:
        losses: List[float] = []
        for episode in episodes:
            if not episode.experiences:
                continue
            losses.append(self.train_batch(episode.experiences))
            self.record_episode_reward(episode.total_reward)
        return sum(losses) / len(losses) if losses else 0.0

    def record_episode_reward(self, total_reward: float) -> None:
        n = self.metrics.episodes_processed
        self.metrics.average_episode_reward = (
            self.metrics.average_episode_reward * n + float(total_reward)
        ) / (n + 1)
        self.metrics.episodes_processed = n + 1
        self._recent_rewards.append(float(total_reward))
        performance = (sum(self._recent_rewards) / len(self._recent_rewards)) / self.config.reward_scale
        self.metrics.performance_score = performance
        if self.config.adaptive:
            self._adapt(performance)

    def _adapt(self, performance: float) -> None:
        cfg = self.config
        if performance < cfg.performance_threshold:
            self.learning_rate = min(self.learning_rate * 1.02, cfg.max_learning_rate)
            self.exploration_rate = min(self.exploration_rate * 1.01, cfg.max_exploration_rate)
        else:
            self.learning_rate = max(self.learning_rate * 0.95, cfg.min_learning_rate)
            self.exploration_rate = max(self.exploration_rate * 0.98, cfg.min_exploration_rate)

    def set_learning_rate(self, value: float) -> None:
        cfg = self.config
        self.learning_rate = max(cfg.min_learning_rate, min(cfg.max_learning_rate, float(value)))

    def parameter_count(self) -> int:
        return int(self.weights.size)

    def to_dict(self) -> Dict[str, object]:
        config = asdict(self.config)
        config["learning_rate"] = self.learning_rate
        config["exploration_rate"] = self.exploration_rate
        return {
            "schema_version": SNAPSHOT_SCHEMA_VERSION,
            "config": config,
            "weights": self.weights.tolist(),
            "export_date": datetime.now().isoformat(timespec="seconds"),
            "metrics": asdict(self.metrics),
        }

    def load_dict(self, payload: object) -> None:
        """Replace weights and metrics from a snapshot; raises ValueError when unusable."""
        if not isinstance(payload, dict):
            raise ValueError("snapshot must be an object")
        if payload.get("schema_version") != SNAPSHOT_SCHEMA_VERSION:
            raise ValueError(f"unsupported snapshot schema_version {payload.get('schema_version')!r}")
        weights = np.asarray(payload.get("weights"), dtype=np.float64)
        expected = (self.config.action_space_size, self.config.state_space_size)
        if weights.shape != expected:
            raise ValueError(f"snapshot weights have shape {weights.shape}, expected {expected}")
        if not np.all(np.isfinite(weights)):
            raise ValueError("snapshot weights contain non-finite values")
        config = payload.get("config", {})
        metrics = payload.get("metrics", {})
        if not isinstance(config, dict) or not isinstance(metrics, dict):
            raise ValueError("snapshot config and metrics must be objects")
        self.weights = weights
        self.learning_rate = float(config.get("learning_rate", self.learning_rate))
        self.exploration_rate = float(config.get("exploration_rate", self.exploration_rate))
        self.metrics = TrainingMetrics(
            episodes_processed=int(metrics.get("episodes_processed", 0)),
            experiences_processed=int(metrics.get("experiences_processed", 0)),
            average_episode_reward=float(metrics.get("average_episode_reward", 0.0)),
            average_value_loss=float(metrics.get("average_value_loss", 0.0)),
            performance_score=float(metrics.get("performance_score", 0.0)),
        )

    @classmethod
    def from_dict(
        cls,
        payload: Dict[str, object],
        rng: random.Random | None = None,
    ) -> "ValueApproximator":
        raw_cfg = payload.get("config") if isinstance(payload, dict) else None
        if not isinstance(raw_cfg, dict):
            raise ValueError("snapshot requires object 'config'")
        model = cls(config=model_config_from_dict(raw_cfg), rng=rng or random.Random(0))
        model.load_dict(payload)
        return model

    def save(self, path: str | Path) -> Path:
        out = Path(path)
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"failed to save model to {out}: {exc}") from exc
        return out

    def load_model(self, path: str | Path) -> bool:
        """Load a snapshot in place; on any problem keep fresh weights and return False."""
        p = Path(path)
        if not p.exists():
            logger.info("No model snapshot at %s, starting fresh", p)
            self.reset_weights()
            return False
        try:
            payload = json.loads(p.read_text(encoding="utf-8"))
            self.load_dict(payload)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unusable model snapshot %s: %s", p, exc)
            self.reset_weights()
            return False
        logger.info(
            "Loaded model %s (%d episodes processed)", p, self.metrics.episodes_processed
        )
        return True

    @classmethod
    def load(
        cls,
        path: str | Path,
        config: ModelConfig | None = None,
        rng: random.Random | None = None,
    ) -> "ValueApproximator":
        model = cls(config=config or ModelConfig(), rng=rng or random.Random(0))
        model.load_model(path)
        return model
