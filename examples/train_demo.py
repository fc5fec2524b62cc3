"""Run a short in-repo training demo using the train module."""

from __future__ import annotations

import logging
import threading

from train.orchestrator import MultiAgentCyclicOrchestrator
from train.parallel import ParallelConfig, ParallelTrainingCoordinator


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    coordinator = ParallelTrainingCoordinator(
        ParallelConfig(environments=2, max_concurrency=2, max_steps=120, seed=7, output_dir="outputs/train_demo")
    )
    results = coordinator.run(total_episodes=10)
    coordinator.close()
    print("Parallel training complete")
    print("Aggregate:", results.to_dict()["aggregate"])

    orchestrator = MultiAgentCyclicOrchestrator(model_dir="outputs/train_demo/models", seed=7)
    report = orchestrator.run_cyclic_training(threading.Event(), episodes_per_cycle=2, max_cycles=1)
    print("Cyclic training complete")
    print("Report:", report.to_dict())


if __name__ == "__main__":
    main()
