"""Round-robin training of independently learned agents, one range each."""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from arcaderl.errors import PersistenceError
from arcaderl.experience import Experience
from arcaderl.ranges import TrainingRange, make_range

from .aim_logger import AimLogger
from .policies import ValueApproximator
from .roster import DEFAULT_ROSTER, AgentSpec

logger = logging.getLogger(__name__)

LOG_EVERY = 10


class TrainableAgent(Protocol):
    """Contract every agent in the cyclic roster implements."""

    name: str

    def train_episode(self) -> float:
        ...

    def save_model(self, path: str | Path) -> Path:
        ...

    def load_model(self, path: str | Path) -> bool:
        ...


class RangeAgent:
    """A value learner bound to its dedicated training range."""

    def __init__(self, spec: AgentSpec, rng: random.Random) -> None:
        self.spec = spec
        self.name = spec.name
        self.range: TrainingRange = make_range(spec.name, spec.range_settings(), rng, layout=spec.layout)
        if self.range.action_space_size != spec.action_space_size:
            raise ValueError(
                f"agent '{spec.name}' declares {spec.action_space_size} actions but "
                f"range kind '{spec.kind}' takes {self.range.action_space_size}"
            )
        self.model = ValueApproximator(config=spec.model_config(), rng=rng)
        self.episodes_trained = 0

    def train_episode(self) -> float:
        state = self.range.reset()
        total = 0.0
        done = False
        while not done:
            action = self.model.select_action(state)
            next_state, reward, done = self.range.step(action)
            self.model.update(
                Experience(
                    state=tuple(state),
                    action=action,
                    reward=reward,
                    next_state=tuple(next_state),
                    done=done,
                )
            )
            total += reward
            state = next_state
        self.model.record_episode_reward(total)
        self.episodes_trained += 1
        return total

    def save_model(self, path: str | Path) -> Path:
        return self.model.save(path)

    def load_model(self, path: str | Path) -> bool:
        return self.model.load_model(path)


@dataclass
class CyclicTrainingReport:
    cycles: int = 0
    episodes: Dict[str, int] = field(default_factory=dict)
    mean_rewards: Dict[str, float] = field(default_factory=dict)
    persist_failures: int = 0
    cancelled: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "cycles": self.cycles,
            "episodes": dict(self.episodes),
            "mean_rewards": dict(self.mean_rewards),
            "persist_failures": self.persist_failures,
            "cancelled": self.cancelled,
        }


class MultiAgentCyclicOrchestrator:
    """Trains each roster agent in turn, persisting all of them after every cycle.

    Cancellation is checked before each agent's block of episodes; a block in
    progress always completes. Cancelling triggers one final persist-all.
    """

    def __init__(
        self,
        agents: Sequence[TrainableAgent] | None = None,
        model_dir: str | Path = "models",
        seed: int = 0,
        roster: Sequence[AgentSpec] = DEFAULT_ROSTER,
        aim: AimLogger | None = None,
    ) -> None:
        self.model_dir = Path(model_dir)
        if agents is None:
            agents = [RangeAgent(spec, random.Random(seed + i)) for i, spec in enumerate(roster)]
        names = [a.name for a in agents]
        if len(set(names)) != len(names):
            raise ValueError("agent names must be unique")
        self.agents: List[TrainableAgent] = list(agents)
        self.aim = aim or AimLogger(enabled=False, experiment="arcaderl_cyclic", repo_path=".aim")
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.report: Optional[CyclicTrainingReport] = None
        self.loaded: Dict[str, bool] = {}
        for agent in self.agents:
            self.loaded[agent.name] = agent.load_model(self.model_path(agent.name))
        fresh = sorted(name for name, ok in self.loaded.items() if not ok)
        if fresh:
            logger.info("Starting fresh models for: %s", ", ".join(fresh))

    def model_path(self, name: str) -> Path:
        return self.model_dir / f"{name}_model.json"

    def persist_all(self) -> int:
        """Save every agent; returns how many saves failed."""
        failures = 0
        for agent in self.agents:
            try:
                agent.save_model(self.model_path(agent.name))
            except PersistenceError as exc:
                failures += 1
                logger.warning("Could not persist %s: %s", agent.name, exc)
        logger.info("Persisted %d/%d agent models", len(self.agents) - failures, len(self.agents))
        return failures

    def _train_block(self, agent: TrainableAgent, episodes: int, report: CyclicTrainingReport) -> None:
        total = 0.0
        for i in range(1, episodes + 1):
            reward = agent.train_episode()
            total += reward
            count = report.episodes.get(agent.name, 0) + 1
            previous = report.mean_rewards.get(agent.name, 0.0)
            report.episodes[agent.name] = count
            report.mean_rewards[agent.name] = previous + (reward - previous) / count
            if i % LOG_EVERY == 0:
                logger.info(
                    "%s: episode %d/%d, mean reward %.2f",
                    agent.name,
                    i,
                    episodes,
                    total / i,
                )
        self.aim.track_many(
            {"block_mean_reward": total / episodes if episodes else 0.0},
            step=report.episodes.get(agent.name, 0),
            prefix=agent.name,
        )

    def run_cyclic_training(
        self,
        cancel: threading.Event | None = None,
        episodes_per_cycle: int = 100,
        max_cycles: int | None = None,
    ) -> CyclicTrainingReport:
        """Loop over the roster until `cancel` is set or `max_cycles` cycles complete."""
        if episodes_per_cycle <= 0:
            raise ValueError("episodes_per_cycle must be positive")
        cancel = cancel or self._stop
        report = CyclicTrainingReport()
        self.report = report
        logger.info(
            "Cyclic training of %d agents, %d episodes per agent per cycle",
            len(self.agents),
            episodes_per_cycle,
        )
        while max_cycles is None or report.cycles < max_cycles:
            for agent in self.agents:
                if cancel.is_set():
                    break
                self._train_block(agent, episodes_per_cycle, report)
            if cancel.is_set():
                break
            report.cycles += 1
            report.persist_failures += self.persist_all()
            logger.info("Completed cycle %d", report.cycles)

        if cancel.is_set():
            report.cancelled = True
            logger.info("Cancellation requested, saving all agents")
            report.persist_failures += self.persist_all()
        return report

    def start(self, episodes_per_cycle: int = 100, max_cycles: int | None = None) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Cyclic training is already running")
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_cyclic_training,
            kwargs={"cancel": self._stop, "episodes_per_cycle": episodes_per_cycle, "max_cycles": max_cycles},
            name="arcade-cyclic-training",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> Optional[CyclicTrainingReport]:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        return self.report
