"""Reward shaping: weighted terms over before/after tick snapshots."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, FrozenSet

from .models import TickSnapshot, distance

REWARD_TERMS = (
    "kill",
    "intercept",
    "damage",
    "survival",
    "wall",
    "stationary",
    "movement",
    "coordination",
    "terminal",
)

FORMATION_BONUS = {
    "adaptive": 4.0,
    "wedge": 3.0,
    "diamond": 2.0,
    "circle": 1.5,
    "line": 1.0,
}

# Ideal companion offsets from the player per role.
FORMATION_SLOTS = {
    "left_flank": (-50.0, 0.0),
    "right_flank": (50.0, 0.0),
    "rear": (0.0, -60.0),
}


@dataclass(frozen=True)
class RewardWeights:
    """Weights for every shaping term.

    kill: per enemy destroyed this step.
    intercept: per incoming projectile destroyed this step.
    damage: per health point lost (applied as a penalty).
    survival_step: per step the player is alive.
    survival_episode: once, when the episode ends without game over.
    wall_penalty: when the player sits inside `wall_margin` px of an edge.
    stationary_penalty: once the player has moved less than
        `stationary_threshold` px per step for `stationary_window` seconds.
    movement_bonus: displacement above `movement_threshold` px in one step.
    ally_alive, formation_efficiency, fire_support, formation_bonus:
        coordination components, scaled together by `coordination_scale`.
        formation_bonus multiplies the FORMATION_BONUS entry of the formation.
    terminal_penalty: on the transition into game over.
    """

    kill: float = 10.0
    intercept: float = 8.0
    damage: float = 20.0
    survival_step: float = 0.1
    survival_episode: float = 5.0
    wall_penalty: float = 0.5
    wall_margin: float = 80.0
    stationary_penalty: float = 1.0
    stationary_threshold: float = 1.0
    stationary_window: float = 1.0
    movement_bonus: float = 0.05
    movement_threshold: float = 4.0
    ally_alive: float = 0.3
    formation_efficiency: float = 0.8
    fire_support: float = 0.5
    formation_bonus: float = 0.1
    coordination_scale: float = 1.2
    terminal_penalty: float = 50.0
    enabled_terms: FrozenSet[str] = field(default_factory=lambda: frozenset(REWARD_TERMS))

    def with_terms(self, *terms: str) -> "RewardWeights":
        unknown = set(terms) - set(REWARD_TERMS)
        if unknown:
            raise ValueError(f"Unknown reward term(s): {', '.join(sorted(unknown))}")
        return replace(self, enabled_terms=frozenset(terms))

    def is_enabled(self, term: str) -> bool:
        return term in self.enabled_terms


def formation_efficiency(snapshot: TickSnapshot) -> float:
    """1.0 when every living companion sits on its slot, 0.0 when 100 px off or worse."""
    companions = snapshot.alive_companions
    if not companions:
        return 0.0
    px, py = snapshot.player.position
    total = 0.0
    for companion in companions:
        ox, oy = FORMATION_SLOTS.get(companion.role, (0.0, 0.0))
        err = distance(companion.position, (px + ox, py + oy))
        total += max(0.0, 1.0 - err / 100.0)
    return total / len(companions)


def _edge_distance(snapshot: TickSnapshot) -> float:
    x, y = snapshot.player.position
    return min(x, y, snapshot.width - x, snapshot.height - y)


def next_idle_seconds(
    idle_seconds: float,
    before: TickSnapshot,
    after: TickSnapshot,
    step_seconds: float,
    weights: RewardWeights = RewardWeights(),
) -> float:
    """Seconds the player has stayed (nearly) still, carried from tick to tick."""
    if distance(before.player.position, after.player.position) < weights.stationary_threshold:
        return idle_seconds + step_seconds
    return 0.0


def reward_breakdown(
    before: TickSnapshot,
    after: TickSnapshot,
    weights: RewardWeights = RewardWeights(),
    idle_seconds: float = 0.0,
    done: bool = False,
) -> Dict[str, float]:
    """Per-term reward for one step. Disabled terms are reported as 0.0."""
    terms = {name: 0.0 for name in REWARD_TERMS}
    alive = after.player.alive

    terms["kill"] = weights.kill * max(0, after.enemies_destroyed - before.enemies_destroyed)
    terms["intercept"] = weights.intercept * max(
        0, after.projectiles_destroyed - before.projectiles_destroyed
    )
    terms["damage"] = -weights.damage * max(0, before.player.health - after.player.health)

    if alive:
        terms["survival"] = weights.survival_step
        if done and not after.game_over:
            terms["survival"] += weights.survival_episode

    if alive and _edge_distance(after) < weights.wall_margin:
        terms["wall"] = -weights.wall_penalty

    moved = distance(before.player.position, after.player.position)
    if alive and moved < weights.stationary_threshold and idle_seconds >= weights.stationary_window:
        terms["stationary"] = -weights.stationary_penalty
    if moved > weights.movement_threshold:
        terms["movement"] = weights.movement_bonus

    allies = after.alive_companions
    if allies:
        coordination = weights.ally_alive * len(allies)
        coordination += weights.formation_efficiency * formation_efficiency(after)
        if after.fire_support:
            coordination += weights.fire_support
        coordination += weights.formation_bonus * FORMATION_BONUS.get(after.formation or "", 0.0)
        terms["coordination"] = coordination * weights.coordination_scale

    if after.game_over and not before.game_over:
        terms["terminal"] = -weights.terminal_penalty

    return {name: (value if weights.is_enabled(name) else 0.0) for name, value in terms.items()}


def shape_reward(
    before: TickSnapshot,
    after: TickSnapshot,
    weights: RewardWeights = RewardWeights(),
    idle_seconds: float = 0.0,
    done: bool = False,
) -> float:
    return float(sum(reward_breakdown(before, after, weights, idle_seconds=idle_seconds, done=done).values()))


def load_reward_weights(path: str | Path) -> RewardWeights:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("Reward weights JSON must be an object")
    if "schema_version" not in raw or not isinstance(raw["schema_version"], int):
        raise ValueError("Reward weights JSON requires integer schema_version")
    if "weights" not in raw or not isinstance(raw["weights"], dict):
        raise ValueError("Reward weights JSON requires object 'weights'")

    numeric = {f.name for f in fields(RewardWeights) if f.name != "enabled_terms"}
    unknown = set(raw["weights"].keys()) - numeric
    if unknown:
        raise ValueError(f"weights has unknown field(s): {', '.join(sorted(unknown))}")
    kwargs: Dict[str, object] = {k: float(v) for k, v in raw["weights"].items()}

    if "enabled_terms" in raw:
        terms = raw["enabled_terms"]
        if not isinstance(terms, list):
            raise ValueError("enabled_terms must be an array")
        bad = set(str(t) for t in terms) - set(REWARD_TERMS)
        if bad:
            raise ValueError(f"enabled_terms has unknown term(s): {', '.join(sorted(bad))}")
        kwargs["enabled_terms"] = frozenset(str(t) for t in terms)
    return RewardWeights(**kwargs)
