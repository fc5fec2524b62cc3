"""Concurrent training across independent simulated environments."""

from __future__ import annotations

import logging
import random
import sys
import threading
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Optional, Sequence

from arcaderl.curriculum import DEFAULT_PHASES, CurriculumScheduler, PhaseConfig, score_performance
from arcaderl.errors import EncodingError
from arcaderl.experience import ExperienceStore
from arcaderl.featurize import encode_state, get_layout
from arcaderl.rewards import RewardWeights, next_idle_seconds, reward_breakdown
from arcaderl.simulation import ArcadeSimulation, SimulationConfig
from arcaderl.training_logger import TrainingLogger

from .aim_logger import AimLogger
from .policies import ModelConfig, ValueApproximator

logger = logging.getLogger(__name__)


@dataclass
class ParallelConfig:
    environments: int = 4
    max_concurrency: int = 4
    max_steps: int = 1000
    seed: int = 0
    layout: str = "full"
    action_space_size: int = 12
    persist_episodes: bool = False
    progress_every: int = 100
    output_dir: Optional[str] = None
    show_progress: bool = False
    aim_enabled: bool = False
    aim_experiment: str = "arcaderl_parallel"
    aim_repo_path: str = ".aim"


@dataclass
class AggregateResults:
    total_episodes: int = 0
    total_steps: int = 0
    total_reward: float = 0.0
    average_reward: float = 0.0
    best_performance: float = 0.0
    perfect_runs: int = 0
    failed_episodes: int = 0


@dataclass
class EnvironmentStats:
    env_id: int
    episodes: int = 0
    total_reward: float = 0.0
    best_reward: Optional[float] = None
    best_performance: float = 0.0
    phase: str = ""
    phase_index: int = 0
    advancements: int = 0

    @property
    def average_reward(self) -> float:
        return self.total_reward / self.episodes if self.episodes else 0.0


@dataclass
class ParallelTrainingResults:
    aggregate: AggregateResults
    environments: List[EnvironmentStats] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "aggregate": asdict(self.aggregate),
            "environments": [dict(asdict(s), average_reward=s.average_reward) for s in self.environments],
            "cancelled": self.cancelled,
        }


def split_episodes(total: int, environments: int) -> List[int]:
    """Per-environment episode counts summing to `total`; lower ids take the remainder."""
    if environments <= 0:
        raise ValueError("environments must be positive")
    if total < 0:
        raise ValueError("total episodes must be non-negative")
    base, extra = divmod(int(total), int(environments))
    return [base + (1 if i < extra else 0) for i in range(environments)]


@dataclass
class EpisodeOutcome:
    episode_number: int
    total_reward: float
    steps: int
    performance: float
    perfect: bool
    advanced: bool


class TrainingEnvironment:
    """One environment with exclusively owned simulation, learner and curriculum."""

    def __init__(
        self,
        env_id: int,
        config: ParallelConfig,
        model_config: ModelConfig,
        phases: Sequence[PhaseConfig],
        weights: RewardWeights,
    ) -> None:
        self.env_id = env_id
        self.config = config
        self.layout = get_layout(config.layout)
        self.rng = random.Random(config.seed + env_id)
        self.sim = ArcadeSimulation(
            SimulationConfig(max_steps=config.max_steps),
            random.Random(config.seed + 1000 + env_id),
        )
        self.scheduler = CurriculumScheduler(phases)
        self.weights = weights
        self.model = ValueApproximator(config=model_config, rng=self.rng)
        self.episode_log = TrainingLogger(action_space_size=model_config.action_space_size)
        self.stats = EnvironmentStats(env_id=env_id, phase=self.scheduler.current_phase.name)

    def run_episode(self, store: ExperienceStore) -> EpisodeOutcome:
        difficulty = self.scheduler.start_new_episode()
        snapshot = self.sim.reset(difficulty)
        state = encode_state(snapshot, self.layout)
        idle = 0.0
        steps = 0
        self.episode_log.start_episode(agent=f"env_{self.env_id}", phase=difficulty.phase)

        done = False
        while not done:
            action = self.model.select_action(state)
            result = self.sim.step(action)
            idle = next_idle_seconds(idle, snapshot, result.snapshot, self.sim.config.step_seconds, self.weights)
            done = result.done
            terms = reward_breakdown(snapshot, result.snapshot, self.weights, idle_seconds=idle, done=done)
            reward = float(sum(terms.values()))
            next_state = encode_state(result.snapshot, self.layout)
            experience = store.record_experience(
                state, action, reward, next_state, done, stream=self.env_id
            )
            self.model.update(experience)
            self.episode_log.log_step(action, reward, terms)
            snapshot = result.snapshot
            state = next_state
            steps += 1

        episode, number, total = store.end_episode(stream=self.env_id)
        if self.config.persist_episodes:
            store.persist_episode(episode)

        outcome_snapshot = self.sim.performance_snapshot()
        performance = score_performance(outcome_snapshot)
        advanced = self.scheduler.record_score(performance)
        self.model.record_episode_reward(total)
        if advanced:
            # The new phase's learning-rate hint overrides the adapted rate.
            self.model.set_learning_rate(self.scheduler.current_phase.learning_rate)
            logger.info(
                "env %d advanced to phase %s after %d episodes",
                self.env_id,
                self.scheduler.current_phase.name,
                self.stats.episodes + 1,
            )
        self.episode_log.end_episode("game_over" if snapshot.game_over else "survived", performance)

        self.stats.episodes += 1
        self.stats.total_reward += total
        if self.stats.best_reward is None or total > self.stats.best_reward:
            self.stats.best_reward = total
        self.stats.best_performance = max(self.stats.best_performance, performance)
        self.stats.phase = self.scheduler.current_phase.name
        self.stats.phase_index = self.scheduler.phase_index
        self.stats.advancements = len(self.scheduler.advancements)
        return EpisodeOutcome(
            episode_number=number,
            total_reward=total,
            steps=steps,
            performance=performance,
            perfect=bool(outcome_snapshot.perfect_run),
            advanced=advanced,
        )


class ParallelTrainingCoordinator:
    """Runs K environments concurrently, sharing only the store and the aggregate."""

    def __init__(
        self,
        config: ParallelConfig | None = None,
        store: ExperienceStore | None = None,
        model_config: ModelConfig | None = None,
        phases: Sequence[PhaseConfig] = DEFAULT_PHASES,
        weights: RewardWeights | None = None,
    ) -> None:
        self.config = config or ParallelConfig()
        if self.config.environments <= 0:
            raise ValueError("environments must be positive")
        if self.config.max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        dim = get_layout(self.config.layout).dimension
        self.store = store or ExperienceStore(state_dim=dim)
        model_config = replace(
            model_config or ModelConfig(),
            action_space_size=self.config.action_space_size,
            state_space_size=dim,
        )
        weights = weights or RewardWeights()
        self.environments = [
            TrainingEnvironment(i, self.config, replace(model_config), phases, weights)
            for i in range(self.config.environments)
        ]
        self.aggregate = AggregateResults()
        self._aggregate_lock = threading.Lock()
        self._gate = threading.Semaphore(self.config.max_concurrency)
        self.aim = AimLogger(
            enabled=self.config.aim_enabled,
            experiment=self.config.aim_experiment,
            repo_path=self.config.aim_repo_path,
            run_name="parallel",
        )
        self.aim.set_params(asdict(self.config))

    def _record(self, outcome: EpisodeOutcome, target: int) -> None:
        with self._aggregate_lock:
            agg = self.aggregate
            agg.total_episodes += 1
            agg.total_steps += outcome.steps
            agg.total_reward += outcome.total_reward
            agg.average_reward = agg.total_reward / agg.total_episodes
            agg.best_performance = max(agg.best_performance, outcome.performance)
            if outcome.perfect:
                agg.perfect_runs += 1
            completed = agg.total_episodes
            average = agg.average_reward
            best = agg.best_performance
            self.aim.track_many(
                {
                    "total_reward": outcome.total_reward,
                    "average_reward": average,
                    "performance": outcome.performance,
                },
                step=completed,
                prefix="parallel",
            )
            if self.config.show_progress:
                sys.stdout.write(f"\r{completed}/{target} avg_reward={average:.3f} best_perf={best:.3f}")
                sys.stdout.flush()
        every = max(1, int(self.config.progress_every))
        if completed % every == 0 or completed == target:
            logger.info(
                "Progress %d/%d episodes, avg reward %.2f, best performance %.3f",
                completed,
                target,
                average,
                best,
            )

    def _record_failure(self) -> None:
        with self._aggregate_lock:
            self.aggregate.failed_episodes += 1

    def _run_environment(
        self,
        env: TrainingEnvironment,
        episodes: int,
        target: int,
        cancel: threading.Event,
        abort: threading.Event,
        errors: List[BaseException],
    ) -> None:
        with self._gate:
            for _ in range(episodes):
                if cancel.is_set():
                    logger.info("env %d stopping: cancellation requested", env.env_id)
                    return
                if abort.is_set():
                    return
                try:
                    outcome = env.run_episode(self.store)
                except EncodingError as exc:
                    logger.error("env %d stopping: %s", env.env_id, exc)
                    errors.append(exc)
                    abort.set()
                    return
                except Exception:
                    logger.exception("env %d episode failed; continuing with the next one", env.env_id)
                    self.store.discard_episode(stream=env.env_id)
                    self._record_failure()
                    continue
                self._record(outcome, target)

    def run(self, total_episodes: int, cancel: threading.Event | None = None) -> ParallelTrainingResults:
        """Train `total_episodes` episodes split across the environments.

        Returns early (with `cancelled=True`) once `cancel` is set; episodes
        already running finish first. A failing episode is logged, counted in
        `failed_episodes` and skipped. An `EncodingError` stops every
        environment and is raised.
        """
        cancel = cancel or threading.Event()
        abort = threading.Event()
        plan = split_episodes(total_episodes, len(self.environments))
        errors: List[BaseException] = []
        threads = [
            threading.Thread(
                target=self._run_environment,
                args=(env, count, total_episodes, cancel, abort, errors),
                name=f"arcade-env-{env.env_id}",
                daemon=True,
            )
            for env, count in zip(self.environments, plan)
        ]
        logger.info(
            "Training %d episodes across %d environments (max %d concurrent)",
            total_episodes,
            len(self.environments),
            self.config.max_concurrency,
        )
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        if self.config.show_progress:
            sys.stdout.write("\n")
            sys.stdout.flush()
        if errors:
            raise errors[0]

        if self.config.output_dir:
            self.write_episode_log(self.config.output_dir)

        with self._aggregate_lock:
            aggregate = replace(self.aggregate)
        if aggregate.failed_episodes:
            logger.warning("%d episodes failed and were skipped", aggregate.failed_episodes)
        return ParallelTrainingResults(
            aggregate=aggregate,
            environments=[env.stats for env in self.environments],
            cancelled=cancel.is_set(),
        )

    def close(self) -> None:
        """Finish the Aim run; call once after the last `run()`."""
        self.aim.close()

    def write_episode_log(self, output_dir: str) -> Dict[str, str]:
        merged = TrainingLogger(output_dir=output_dir, action_space_size=self.config.action_space_size)
        for env in self.environments:
            merged.episode_summaries.extend(env.episode_log.episode_summaries)
        paths = merged.write_outputs()
        logger.info("Wrote episode summaries to %s", output_dir)
        return paths

    def best_model(self) -> ValueApproximator:
        best = max(self.environments, key=lambda e: (e.stats.best_performance, -e.env_id))
        return best.model
