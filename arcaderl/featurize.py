"""State featurization shared by every agent, trainer and adapter.

One encoder serves all agents. A `StateLayout` switches the optional target
and companion blocks on or off, which fixes the vector dimension:

    base layout: 30 features
    full layout: 42 features

Absent entities are padded with sentinels so the dimension never changes:
enemy slot [0, 0, 1, 0], projectile block [0, 1, 0, 0], target block
[0, 0, 0, 0], companion block all zeros.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .constants import (
    ACTION_STOP,
    ACTION_TARGET_DIRECT,
    ACTION_TARGET_DODGE,
    ACTION_TARGET_SAFE,
    COMPANION_COUNT_MAX,
    COMPANION_DISTANCE_SCALE,
    COMPANION_SHOT_WINDOW,
    ENEMY_RADIUS_SCALE,
    FORMATION_TYPES,
    LIVES_SCALE,
    MAX_COUNTED_PROJECTILES,
    MAX_TRACKED_ENEMIES,
    MOVE_DIRECTIONS,
    PROJECTILE_DISTANCE_SCALE,
    VELOCITY_SCALE,
)
from .errors import EncodingError
from .models import TickSnapshot, Vec2, distance, unit_vector

ENEMY_SENTINEL = (0.0, 0.0, 1.0, 0.0)
PROJECTILE_SENTINEL = (0.0, 1.0, 0.0, 0.0)
TARGET_SENTINEL = (0.0, 0.0, 0.0, 0.0)
COMPANION_BLOCK_SIZE = 7


@dataclass(frozen=True)
class StateLayout:
    name: str
    include_target: bool = False
    include_companions: bool = False
    max_enemies: int = MAX_TRACKED_ENEMIES

    @property
    def dimension(self) -> int:
        dim = 5 + 4 * self.max_enemies + 4 + 1
        if self.include_target:
            dim += 4
        if self.include_companions:
            dim += 1 + COMPANION_BLOCK_SIZE
        return dim

    def slices(self) -> Dict[str, Tuple[int, int]]:
        """Feature slot ranges by block name, for debugging and tests."""
        out: Dict[str, Tuple[int, int]] = {"player": (0, 5)}
        cursor = 5
        out["enemies"] = (cursor, cursor + 4 * self.max_enemies)
        cursor += 4 * self.max_enemies
        out["projectiles"] = (cursor, cursor + 4)
        cursor += 4
        out["game_over"] = (cursor, cursor + 1)
        cursor += 1
        if self.include_target:
            out["target"] = (cursor, cursor + 4)
            cursor += 4
        if self.include_companions:
            out["companion_count"] = (cursor, cursor + 1)
            cursor += 1
            out["companions"] = (cursor, cursor + COMPANION_BLOCK_SIZE)
            cursor += COMPANION_BLOCK_SIZE
        return out


BASE_LAYOUT = StateLayout(name="base")
FULL_LAYOUT = StateLayout(name="full", include_target=True, include_companions=True)

LAYOUTS = {
    BASE_LAYOUT.name: BASE_LAYOUT,
    FULL_LAYOUT.name: FULL_LAYOUT,
}


def get_layout(name: str) -> StateLayout:
    if name not in LAYOUTS:
        known = ", ".join(sorted(LAYOUTS))
        raise ValueError(f"Unknown state layout '{name}' (known: {known})")
    return LAYOUTS[name]


def state_dimension(name: str = "full") -> int:
    return get_layout(name).dimension


def validate_state(state: Sequence[float], dimension: int, what: str = "state") -> None:
    if len(state) != int(dimension):
        raise EncodingError(expected=int(dimension), actual=len(state), what=what)


def _enemy_features(snapshot: TickSnapshot, layout: StateLayout) -> List[float]:
    px, py = snapshot.player.position
    ordered = sorted(snapshot.enemies, key=lambda e: distance(e.position, (px, py)))
    out: List[float] = []
    for i in range(layout.max_enemies):
        if i < len(ordered):
            enemy = ordered[i]
            dx = (enemy.position[0] - px) / snapshot.width
            dy = (enemy.position[1] - py) / snapshot.height
            out.extend([dx, dy, math.sqrt(dx * dx + dy * dy), enemy.radius / ENEMY_RADIUS_SCALE])
        else:
            out.extend(ENEMY_SENTINEL)
    return out


def _projectile_features(snapshot: TickSnapshot) -> List[float]:
    if not snapshot.projectiles:
        return list(PROJECTILE_SENTINEL)
    count = min(len(snapshot.projectiles), MAX_COUNTED_PROJECTILES) / float(MAX_COUNTED_PROJECTILES)
    closest = min(snapshot.projectiles, key=lambda p: distance(p.position, snapshot.player.position))
    dist = distance(closest.position, snapshot.player.position)
    return [
        count,
        min(dist / PROJECTILE_DISTANCE_SCALE, 1.0),
        closest.velocity[0] / VELOCITY_SCALE,
        closest.velocity[1] / VELOCITY_SCALE,
    ]


def _target_features(snapshot: TickSnapshot) -> List[float]:
    if snapshot.target is None:
        return list(TARGET_SENTINEL)
    px, py = snapshot.player.position
    dx = (snapshot.target[0] - px) / snapshot.width
    dy = (snapshot.target[1] - py) / snapshot.height
    return [dx, dy, min(math.sqrt(dx * dx + dy * dy), 1.0), 1.0]


def _companion_features(snapshot: TickSnapshot) -> List[float]:
    companions = snapshot.alive_companions
    count_feature = len(companions) / float(COMPANION_COUNT_MAX)
    if not companions:
        return [count_feature] + [0.0] * COMPANION_BLOCK_SIZE

    mean_dist = 0.0
    shooting = 0
    for companion in companions:
        mean_dist += min(distance(companion.position, snapshot.player.position) / COMPANION_DISTANCE_SCALE, 1.0)
        if (
            companion.last_shot_time is not None
            and snapshot.time - companion.last_shot_time < COMPANION_SHOT_WINDOW
        ):
            shooting += 1
    mean_dist /= len(companions)

    if snapshot.formation in FORMATION_TYPES:
        formation_feature = FORMATION_TYPES.index(snapshot.formation) / 4.0
    else:
        formation_feature = 0.0

    return [
        count_feature,
        mean_dist,
        len(companions) / float(COMPANION_COUNT_MAX),
        formation_feature,
        float(snapshot.formation_threat),
        1.0 if snapshot.fire_support else 0.0,
        shooting / float(COMPANION_COUNT_MAX),
        min(len(companions) / float(COMPANION_COUNT_MAX), 1.0),
    ]


def encode_state(snapshot: TickSnapshot, layout: StateLayout = FULL_LAYOUT) -> List[float]:
    player = snapshot.player
    out: List[float] = [
        player.position[0] / snapshot.width,
        player.position[1] / snapshot.height,
        player.velocity[0] / VELOCITY_SCALE,
        player.velocity[1] / VELOCITY_SCALE,
        snapshot.lives / LIVES_SCALE,
    ]
    out.extend(_enemy_features(snapshot, layout))
    out.extend(_projectile_features(snapshot))
    out.append(1.0 if snapshot.game_over else 0.0)
    if layout.include_target:
        out.extend(_target_features(snapshot))
    if layout.include_companions:
        out.extend(_companion_features(snapshot))
    return out


def action_to_velocity(action: int, speed: float, snapshot: TickSnapshot) -> Vec2:
    """Translate a discrete action into a velocity for the game layer.

    Targeting actions fall back to STOP when no target is set.
    """
    action = int(action)
    if action in MOVE_DIRECTIONS:
        ux, uy = MOVE_DIRECTIONS[action]
        return (ux * speed, uy * speed)

    if snapshot.target is None:
        return MOVE_DIRECTIONS[ACTION_STOP]
    pos = snapshot.player.position
    toward = unit_vector(pos, snapshot.target)

    if action == ACTION_TARGET_DIRECT:
        return (toward[0] * speed, toward[1] * speed)

    threats = list(snapshot.projectiles) or list(snapshot.enemies)
    if not threats:
        return (toward[0] * speed, toward[1] * speed)
    nearest = min(threats, key=lambda t: distance(t.position, pos))

    if action == ACTION_TARGET_SAFE:
        away = unit_vector(nearest.position, pos)
        vx, vy = toward[0] + 0.5 * away[0], toward[1] + 0.5 * away[1]
        norm = math.hypot(vx, vy)
        if norm <= 1e-9:
            return (0.0, 0.0)
        return (vx / norm * speed, vy / norm * speed)

    if action == ACTION_TARGET_DODGE:
        vel = getattr(nearest, "velocity", (0.0, 0.0))
        if math.hypot(vel[0], vel[1]) <= 1e-9:
            vel = unit_vector(pos, nearest.position)
        # Perpendicular to the threat, picking the side that still closes on the target.
        perp = (-vel[1], vel[0])
        if perp[0] * toward[0] + perp[1] * toward[1] < 0:
            perp = (vel[1], -vel[0])
        norm = math.hypot(perp[0], perp[1])
        if norm <= 1e-9:
            return (0.0, 0.0)
        return (perp[0] / norm * speed, perp[1] / norm * speed)

    raise ValueError(f"Unknown movement action: {action}")
