"""Offline trainer: replays persisted episodes into a value learner."""

from __future__ import annotations

import json
import logging
import random
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional

from arcaderl.curriculum import DEFAULT_PHASES, phase_difficulty, score_performance
from arcaderl.experience import ExperienceStore
from arcaderl.featurize import encode_state, get_layout
from arcaderl.replay import PrioritizedReplayBuffer
from arcaderl.simulation import ArcadeSimulation, SimulationConfig

from .aim_logger import AimLogger
from .checkpoints import ModelCheckpoints
from .policies import ModelConfig, load_model_config

logger = logging.getLogger(__name__)


@dataclass
class TrainConfig:
    data_dir: str = "training_data"
    model_dir: str = "models"
    model_name: str = "player"
    model_config_path: str = ""
    layout: str = "full"
    action_space_size: int = 12
    epochs: int = 10
    batch_size: int = 32
    buffer_capacity: int = 100_000
    prioritized: bool = True
    eval_episodes: int = 5
    eval_max_steps: int = 500
    eval_phase: int = 0
    seed: int = 0
    output_dir: Optional[str] = None
    show_progress: bool = True
    aim_enabled: bool = False
    aim_experiment: str = "arcaderl_offline"
    aim_repo_path: str = ".aim"


class OfflineTrainer:
    def __init__(self, config: TrainConfig) -> None:
        self.config = config
        self.layout = get_layout(config.layout)
        self.rng = random.Random(config.seed)
        if config.model_config_path:
            model_config = load_model_config(config.model_config_path)
        else:
            model_config = ModelConfig(batch_size=config.batch_size)
        model_config.action_space_size = config.action_space_size
        model_config.state_space_size = self.layout.dimension
        self.model_config = model_config
        self.store = ExperienceStore(config.data_dir, state_dim=self.layout.dimension)
        self.buffer = PrioritizedReplayBuffer(capacity=config.buffer_capacity, rng=random.Random(config.seed + 1))
        self.checkpoints = ModelCheckpoints(config.model_dir)
        self.model = self.checkpoints.load_best_model(config.model_name, model_config, rng=self.rng)
        self.aim = AimLogger(
            enabled=config.aim_enabled,
            experiment=config.aim_experiment,
            repo_path=config.aim_repo_path,
            run_name=f"offline_{config.model_name}",
        )
        self.aim.set_params(asdict(config))

    def _sample(self, batch_size: int):
        if self.config.prioritized:
            return self.buffer.sample(batch_size)
        return self.buffer.sample_uniform(batch_size)

    def train_epoch(self) -> float:
        batch_size = max(1, int(self.model_config.batch_size))
        batches = max(1, len(self.buffer) // batch_size)
        losses = []
        updated = 0
        squared_total = 0.0
        for _ in range(batches):
            indices, batch = self._sample(batch_size)
            if not batch:
                break
            errors = [self.model.update(exp) for exp in batch]
            self.buffer.update_priorities(indices, errors)
            squared = sum(e * e for e in errors)
            losses.append(squared / len(errors))
            squared_total += squared
            updated += len(errors)
        loss = sum(losses) / len(losses) if losses else 0.0
        if updated:
            processed = self.model.metrics.experiences_processed
            self.model.metrics.average_value_loss = (
                self.model.metrics.average_value_loss * processed + squared_total
            ) / (processed + updated)
            self.model.metrics.experiences_processed = processed + updated
        return loss

    def evaluate(self) -> float:
        """Mean performance score of greedy play in the simulation."""
        phases = DEFAULT_PHASES
        index = max(0, min(int(self.config.eval_phase), len(phases) - 1))
        difficulty = phase_difficulty(phases[index], index)
        sim = ArcadeSimulation(
            SimulationConfig(max_steps=self.config.eval_max_steps),
            random.Random(self.config.seed + 2),
        )
        scores = []
        for _ in range(max(1, int(self.config.eval_episodes))):
            snapshot = sim.reset(difficulty)
            while not sim.done:
                action = self.model.select_action(encode_state(snapshot, self.layout), training=False)
                snapshot = sim.step(action).snapshot
            scores.append(score_performance(sim.performance_snapshot()))
        return sum(scores) / len(scores)

    def train(self) -> Dict[str, object]:
        episodes = self.store.load_all_episodes()
        if not episodes:
            logger.warning("No training episodes found in %s", self.config.data_dir)
            return {"episodes": 0, "experiences": 0, "losses": [], "performance": None, "saved": False}

        for episode in episodes:
            self.buffer.extend(episode.experiences)
            self.model.record_episode_reward(episode.total_reward)
        logger.info(
            "Offline training on %d experiences from %d episodes", len(self.buffer), len(episodes)
        )

        losses = []
        for epoch in range(1, self.config.epochs + 1):
            loss = self.train_epoch()
            losses.append(loss)
            self.aim.track_many({"loss": loss}, step=epoch, prefix="offline")
            if self.config.show_progress:
                sys.stdout.write(f"\repoch {epoch}/{self.config.epochs} loss={loss:.4f}")
                sys.stdout.flush()
            logger.debug("epoch %d loss %.4f", epoch, loss)
        if self.config.show_progress:
            sys.stdout.write("\n")
            sys.stdout.flush()

        performance = self.evaluate()
        self.aim.track_many({"performance": performance}, step=self.config.epochs, prefix="offline")
        saved = self.checkpoints.save_best_model(self.model, self.config.model_name, performance)
        self.aim.close()

        summary = {
            "episodes": len(episodes),
            "experiences": len(self.buffer),
            "losses": losses,
            "performance": performance,
            "saved": saved,
            "replay": self.buffer.stats(),
            "model_path": str(self.checkpoints.model_path(self.config.model_name)),
        }
        if self.config.output_dir:
            out = Path(self.config.output_dir)
            out.mkdir(parents=True, exist_ok=True)
            (out / "offline_summary.json").write_text(json.dumps(summary, indent=2), encoding="utf-8")
        return summary
