"""Training ranges: small dedicated scenarios, one per trainable skill.

The screen is split into a 3x3 grid of non-overlapping ranges. Ranges run in
local coordinates (origin at the range's top-left corner) and expose a
gym-like `reset()` / `step(action)` pair returning encoded state vectors.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from .constants import (
    MOVEMENT_ACTION_COUNT,
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
    SHOOT_DIRECTIONS,
    SHOOT_HOLD,
    SHOOT_NEAREST,
    SHOOTING_ACTION_COUNT,
    TARGETING_ACTION_COUNT,
)
from .featurize import FULL_LAYOUT, StateLayout, action_to_velocity, encode_state, get_layout
from .models import (
    EnemyState,
    PlayerState,
    Projectile,
    TickSnapshot,
    Vec2,
    clamp_position,
    distance,
    unit_vector,
)

GRID_POSITIONS = {
    "player_movement": (0, 0),
    "player_shooting": (1, 0),
    "companion_movement": (2, 0),
    "companion_shooting": (0, 1),
    "companion_solo_movement": (1, 1),
    "enemy_movement": (2, 1),
    "enemy_shooting": (0, 2),
    "boss_movement": (1, 2),
    "boss_shooting": (2, 2),
}

# Ranges that share a grid cell with another skill.
SHARED_RANGES = {
    "player_stealth_movement": "player_movement",
    "enemy_patrol": "enemy_movement",
}

RANGE_KINDS = ("dodge", "shooting", "escort", "pursuit", "patrol", "stealth")


@dataclass(frozen=True)
class RangeBounds:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def overlaps(self, other: "RangeBounds") -> bool:
        return not (
            self.right <= other.left
            or other.right <= self.left
            or self.bottom <= other.top
            or other.bottom <= self.top
        )

    def to_screen(self, local: Vec2) -> Vec2:
        return (self.left + local[0], self.top + local[1])


def range_bounds(name: str, width: int = SCREEN_WIDTH, height: int = SCREEN_HEIGHT) -> RangeBounds:
    key = SHARED_RANGES.get(name, name)
    if key not in GRID_POSITIONS:
        raise KeyError(f"Unknown training range: {name}")
    col, row = GRID_POSITIONS[key]
    cell_w = width / 3.0
    cell_h = height / 3.0
    return RangeBounds(left=col * cell_w, top=row * cell_h, width=cell_w, height=cell_h)


@dataclass(frozen=True)
class RangeSettings:
    kind: str
    max_steps: int = 500
    spawn_interval: int = 30
    projectile_speed: float = 5.0
    mover_speed: float = 5.0
    min_targets: int = 3
    max_targets: int = 5
    target_health: int = 3
    shot_cooldown: int = 5
    detection_radius: float = 60.0
    cell_size: float = 40.0


class TrainingRange:
    """Base class; subclasses define how the scenario evolves and is rewarded."""

    kind = ""
    action_space_size = MOVEMENT_ACTION_COUNT

    def __init__(
        self,
        name: str,
        settings: RangeSettings,
        rng: random.Random,
        layout: StateLayout = FULL_LAYOUT,
        bounds: Optional[RangeBounds] = None,
    ) -> None:
        self.name = name
        self.settings = settings
        self.rng = rng
        self.layout = layout
        self.bounds = bounds or range_bounds(name)
        self.width = int(self.bounds.width)
        self.height = int(self.bounds.height)
        self.steps = 0
        self.learner = PlayerState(position=self.center)

    @property
    def center(self) -> Vec2:
        return (self.width / 2.0, self.height / 2.0)

    @property
    def state_dimension(self) -> int:
        return self.layout.dimension

    def reset(self) -> List[float]:
        self.steps = 0
        self.learner = PlayerState(position=self.center)
        self._reset()
        return self.observe()

    def observe(self) -> List[float]:
        return encode_state(self.snapshot(), self.layout)

    def step(self, action: int) -> Tuple[List[float], float, bool]:
        if not 0 <= int(action) < self.action_space_size:
            raise ValueError(f"action {action} outside [0, {self.action_space_size})")
        self.steps += 1
        reward, done = self._step(int(action))
        if self.steps >= self.settings.max_steps:
            done = True
        return self.observe(), reward, done

    def _move_learner(self, action: int, speed: float) -> float:
        velocity = action_to_velocity(action, speed, self.snapshot())
        before = self.learner.position
        pos = clamp_position(
            (before[0] + velocity[0], before[1] + velocity[1]), self.width, self.height
        )
        self.learner = self.learner.moved_to(pos, velocity)
        return distance(before, pos)

    def _edge_distance(self) -> float:
        x, y = self.learner.position
        return min(x, y, self.width - x, self.height - y)

    def _edge_point(self) -> Vec2:
        side = self.rng.randrange(4)
        if side == 0:
            return (self.rng.uniform(0, self.width), 0.0)
        if side == 1:
            return (self.rng.uniform(0, self.width), float(self.height))
        if side == 2:
            return (0.0, self.rng.uniform(0, self.height))
        return (float(self.width), self.rng.uniform(0, self.height))

    def _random_point(self, margin: float = 20.0) -> Vec2:
        return (
            self.rng.uniform(margin, self.width - margin),
            self.rng.uniform(margin, self.height - margin),
        )

    def _inside(self, pos: Vec2, pad: float = 0.0) -> bool:
        return -pad <= pos[0] <= self.width + pad and -pad <= pos[1] <= self.height + pad

    def _reset(self) -> None:
        raise NotImplementedError

    def _step(self, action: int) -> Tuple[float, bool]:
        raise NotImplementedError

    def snapshot(self) -> TickSnapshot:
        raise NotImplementedError


class DodgeRange(TrainingRange):
    """Survive projectiles aimed at the learner."""

    kind = "dodge"
    action_space_size = MOVEMENT_ACTION_COUNT

    def _reset(self) -> None:
        self.projectiles: List[Projectile] = []
        self.idle_frames = 0
        self.dodged = 0

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            player=self.learner,
            projectiles=tuple(self.projectiles),
            lives=1,
            width=self.width,
            height=self.height,
            time=self.steps / 30.0,
        )

    def _step(self, action: int) -> Tuple[float, bool]:
        s = self.settings
        if self.steps % s.spawn_interval == 0:
            origin = self._edge_point()
            ux, uy = unit_vector(origin, self.learner.position)
            self.projectiles.append(
                Projectile(position=origin, velocity=(ux * s.projectile_speed, uy * s.projectile_speed))
            )

        moved = self._move_learner(action, s.mover_speed)
        reward = 0.0
        if moved > 2.0:
            reward += 0.03
            self.idle_frames = 0
        else:
            self.idle_frames += 1
            if self.idle_frames > 10:
                reward -= 0.15

        edge = self._edge_distance()
        if edge < 150.0:
            reward -= 0.2 * (1.0 - edge / 150.0) ** 2

        remaining: List[Projectile] = []
        for shot in self.projectiles:
            shot = shot.advanced()
            if distance(shot.position, self.learner.position) < 15.0:
                self.learner = self.learner.damaged()
                return reward - 50.0, True
            if self._inside(shot.position, pad=10.0):
                remaining.append(shot)
            else:
                self.dodged += 1
                reward += 2.0
        self.projectiles = remaining
        return reward, False


class ShootingRange(TrainingRange):
    """Destroy random-walking targets from a fixed post."""

    kind = "shooting"
    action_space_size = SHOOTING_ACTION_COUNT

    def _reset(self) -> None:
        s = self.settings
        self.learner = PlayerState(position=(self.width / 2.0, self.height - 20.0))
        count = self.rng.randint(s.min_targets, s.max_targets)
        self.targets: List[EnemyState] = [
            EnemyState(entity_id=i + 1, position=self._random_point(30.0), health=s.target_health)
            for i in range(count)
        ]
        self.shots: List[Projectile] = []
        self.cooldown = 0
        self.destroyed = 0

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            player=self.learner,
            enemies=tuple(self.targets),
            width=self.width,
            height=self.height,
            time=self.steps / 30.0,
            enemies_destroyed=self.destroyed,
        )

    def _fire(self, action: int) -> None:
        if action == SHOOT_HOLD or self.cooldown > 0:
            return
        if action == SHOOT_NEAREST:
            if not self.targets:
                return
            nearest = min(self.targets, key=lambda t: distance(t.position, self.learner.position))
            direction = unit_vector(self.learner.position, nearest.position)
        else:
            direction = SHOOT_DIRECTIONS[action]
        speed = 8.0
        self.shots.append(
            Projectile(
                position=self.learner.position,
                velocity=(direction[0] * speed, direction[1] * speed),
                owner="player",
            )
        )
        self.cooldown = self.settings.shot_cooldown

    def _step(self, action: int) -> Tuple[float, bool]:
        reward = -0.1
        self.cooldown = max(0, self.cooldown - 1)
        self._fire(action)

        walked = []
        for target in self.targets:
            dx = self.rng.uniform(-2.0, 2.0)
            dy = self.rng.uniform(-2.0, 2.0)
            pos = clamp_position(
                (target.position[0] + dx, target.position[1] + dy), self.width, self.height, margin=15.0
            )
            walked.append(target.moved_to(pos, (dx, dy)))
        self.targets = walked

        remaining: List[Projectile] = []
        for shot in self.shots:
            shot = shot.advanced()
            hit = None
            for i, target in enumerate(self.targets):
                if distance(shot.position, target.position) < 20.0:
                    hit = i
                    break
            if hit is not None:
                reward += 10.0
                target = self.targets[hit].damaged()
                if target.health <= 0:
                    self.targets.pop(hit)
                    self.destroyed += 1
                    reward += 20.0
                else:
                    self.targets[hit] = target
                continue
            if self._inside(shot.position):
                remaining.append(shot)
        self.shots = remaining
        return reward, not self.targets


class EscortRange(TrainingRange):
    """Hold a formation slot beside a wandering lead while taking fire."""

    kind = "escort"
    action_space_size = TARGETING_ACTION_COUNT
    slot_offset: Vec2 = (-50.0, 0.0)

    def _reset(self) -> None:
        self.lead = self.center
        self.lead_goal = self._random_point(60.0)
        self.learner = PlayerState(position=(self.center[0] - 30.0, self.center[1] + 30.0))
        self.projectiles: List[Projectile] = []

    @property
    def slot(self) -> Vec2:
        return clamp_position(
            (self.lead[0] + self.slot_offset[0], self.lead[1] + self.slot_offset[1]),
            self.width,
            self.height,
        )

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            player=self.learner,
            projectiles=tuple(self.projectiles),
            target=self.slot,
            lives=self.learner.health,
            width=self.width,
            height=self.height,
            time=self.steps / 30.0,
        )

    def _step(self, action: int) -> Tuple[float, bool]:
        s = self.settings
        if distance(self.lead, self.lead_goal) < 5.0:
            self.lead_goal = self._random_point(60.0)
        ux, uy = unit_vector(self.lead, self.lead_goal)
        self.lead = (self.lead[0] + ux * 2.0, self.lead[1] + uy * 2.0)

        if self.steps % (s.spawn_interval + 15) == 0:
            origin = self._edge_point()
            vx, vy = unit_vector(origin, self.learner.position)
            self.projectiles.append(
                Projectile(position=origin, velocity=(vx * s.projectile_speed, vy * s.projectile_speed))
            )

        self._move_learner(action, s.mover_speed * 0.8)
        err = distance(self.learner.position, self.slot)
        reward = 0.1 * (1.0 - min(err / 100.0, 1.0))
        if 20.0 <= distance(self.learner.position, self.lead) <= 70.0:
            reward += 0.05

        remaining: List[Projectile] = []
        for shot in self.projectiles:
            shot = shot.advanced()
            if distance(shot.position, self.learner.position) < 15.0:
                self.learner = self.learner.damaged()
                reward -= 10.0
                continue
            if self._inside(shot.position, pad=10.0):
                remaining.append(shot)
        self.projectiles = remaining
        return reward, not self.learner.alive


class PursuitRange(TrainingRange):
    """Close in on a fleeing quarry that shoots back."""

    kind = "pursuit"
    action_space_size = TARGETING_ACTION_COUNT

    def _reset(self) -> None:
        self.learner = PlayerState(position=(20.0, self.height / 2.0))
        self.quarry = EnemyState(entity_id=1, position=(self.width - 40.0, self.height / 2.0))
        self.projectiles: List[Projectile] = []
        self.last_distance = distance(self.learner.position, self.quarry.position)

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            player=self.learner,
            enemies=(self.quarry,),
            projectiles=tuple(self.projectiles),
            target=self.quarry.position,
            lives=self.learner.health,
            width=self.width,
            height=self.height,
            time=self.steps / 30.0,
        )

    def _step(self, action: int) -> Tuple[float, bool]:
        s = self.settings
        self._move_learner(action, s.mover_speed)

        away = unit_vector(self.learner.position, self.quarry.position)
        jitter = (self.rng.uniform(-1.0, 1.0), self.rng.uniform(-1.0, 1.0))
        velocity = (away[0] * 3.0 + jitter[0], away[1] * 3.0 + jitter[1])
        pos = clamp_position(
            (self.quarry.position[0] + velocity[0], self.quarry.position[1] + velocity[1]),
            self.width,
            self.height,
        )
        self.quarry = self.quarry.moved_to(pos, velocity)

        if self.steps % (s.spawn_interval + 10) == 0:
            vx, vy = unit_vector(self.quarry.position, self.learner.position)
            self.projectiles.append(
                Projectile(
                    position=self.quarry.position,
                    velocity=(vx * s.projectile_speed, vy * s.projectile_speed),
                )
            )

        dist = distance(self.learner.position, self.quarry.position)
        reward = 0.1 * (self.last_distance - dist)
        self.last_distance = dist

        remaining: List[Projectile] = []
        for shot in self.projectiles:
            shot = shot.advanced()
            if distance(shot.position, self.learner.position) < 15.0:
                self.learner = self.learner.damaged()
                reward -= 10.0
                continue
            if self._inside(shot.position, pad=10.0):
                remaining.append(shot)
        self.projectiles = remaining

        if dist < 20.0:
            return reward + 20.0, True
        return reward, not self.learner.alive


class PatrolRange(TrainingRange):
    """Cover as much of the range as possible."""

    kind = "patrol"
    action_space_size = TARGETING_ACTION_COUNT

    def _reset(self) -> None:
        self.visited: Set[Tuple[int, int]] = {self._cell(self.learner.position)}
        size = self.settings.cell_size
        self.all_cells = {
            (i, j)
            for i in range(int(math.ceil(self.width / size)))
            for j in range(int(math.ceil(self.height / size)))
        }

    def _cell(self, pos: Vec2) -> Tuple[int, int]:
        size = self.settings.cell_size
        return (int(pos[0] // size), int(pos[1] // size))

    def _next_waypoint(self) -> Optional[Vec2]:
        unvisited = self.all_cells - self.visited
        if not unvisited:
            return None
        size = self.settings.cell_size
        centers = [((i + 0.5) * size, (j + 0.5) * size) for i, j in sorted(unvisited)]
        return min(centers, key=lambda c: distance(c, self.learner.position))

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            player=self.learner,
            target=self._next_waypoint(),
            width=self.width,
            height=self.height,
            time=self.steps / 30.0,
        )

    def _step(self, action: int) -> Tuple[float, bool]:
        self._move_learner(action, self.settings.mover_speed)
        reward = -0.01
        cell = self._cell(self.learner.position)
        if cell not in self.visited:
            self.visited.add(cell)
            reward += 0.2
        if self._edge_distance() < 10.0:
            reward -= 0.05
        if self.visited >= self.all_cells:
            return reward + 5.0, True
        return reward, False


class StealthRange(TrainingRange):
    """Reach a goal without entering a patrolling sentry's detection radius."""

    kind = "stealth"
    action_space_size = TARGETING_ACTION_COUNT

    def _reset(self) -> None:
        self.learner = PlayerState(position=(20.0, self.height - 20.0))
        self.goal = (self.width - 20.0, 20.0)
        y = self.rng.uniform(self.height * 0.3, self.height * 0.7)
        self.sentry = EnemyState(entity_id=1, position=(self.width / 2.0, y), radius=20.0)
        self.sentry_dir = 1.0 if self.rng.random() < 0.5 else -1.0
        self.last_distance = distance(self.learner.position, self.goal)

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            player=self.learner,
            enemies=(self.sentry,),
            target=self.goal,
            width=self.width,
            height=self.height,
            time=self.steps / 30.0,
        )

    def _step(self, action: int) -> Tuple[float, bool]:
        sx, sy = self.sentry.position
        nx = sx + 2.0 * self.sentry_dir
        if nx < 30.0 or nx > self.width - 30.0:
            self.sentry_dir = -self.sentry_dir
            nx = sx + 2.0 * self.sentry_dir
        self.sentry = self.sentry.moved_to((nx, sy), (2.0 * self.sentry_dir, 0.0))

        self._move_learner(action, self.settings.mover_speed * 0.6)
        dist = distance(self.learner.position, self.goal)
        reward = 0.05 * (self.last_distance - dist)
        self.last_distance = dist

        if distance(self.learner.position, self.sentry.position) < self.settings.detection_radius:
            return reward - 5.0, True
        if dist < 15.0:
            return reward + 30.0, True
        return reward, False


RANGE_CLASSES = {
    cls.kind: cls
    for cls in (DodgeRange, ShootingRange, EscortRange, PursuitRange, PatrolRange, StealthRange)
}


def make_range(
    name: str,
    settings: RangeSettings,
    rng: random.Random,
    layout: str | StateLayout = "full",
) -> TrainingRange:
    if settings.kind not in RANGE_CLASSES:
        known = ", ".join(RANGE_KINDS)
        raise ValueError(f"Unknown range kind '{settings.kind}' (known: {known})")
    resolved = get_layout(layout) if isinstance(layout, str) else layout
    return RANGE_CLASSES[settings.kind](name=name, settings=settings, rng=rng, layout=resolved)


def range_summary(name: str) -> Dict[str, float]:
    b = range_bounds(name)
    return {"left": b.left, "top": b.top, "width": b.width, "height": b.height}
