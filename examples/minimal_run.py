"""Minimal running example: one simulated episode driven by a fresh learner."""

from __future__ import annotations

import random

from arcaderl import ArcadeSimulation, CurriculumScheduler, FULL_LAYOUT, encode_state, reward_breakdown
from arcaderl.constants import action_name
from arcaderl.rewards import next_idle_seconds
from train.policies import ModelConfig, ValueApproximator


def main() -> None:
    rng = random.Random(7)
    scheduler = CurriculumScheduler()
    sim = ArcadeSimulation(rng=rng)
    model = ValueApproximator(ModelConfig(exploration_rate=0.3), rng=rng)

    snapshot = sim.reset(scheduler.start_new_episode())
    state = encode_state(snapshot, FULL_LAYOUT)
    print("Reset complete, state dimension:", len(state))

    idle = 0.0
    for t in range(8):
        action = model.select_action(state)
        result = sim.step(action)
        idle = next_idle_seconds(idle, snapshot, result.snapshot, sim.config.step_seconds)
        terms = reward_breakdown(snapshot, result.snapshot, idle_seconds=idle, done=result.done)
        print(f"\nStep {t + 1}")
        print("Action:", action_name(action))
        print("Reward terms:", {k: round(v, 3) for k, v in terms.items() if v})
        print("Events:", list(result.events))
        snapshot = result.snapshot
        state = encode_state(snapshot, FULL_LAYOUT)

    print("\nValue estimates:", model.debug_values(state))
    print("Performance:", sim.performance_snapshot())


if __name__ == "__main__":
    main()
