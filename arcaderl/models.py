"""Immutable value types for entities and per-tick game snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .constants import (
    ENEMY_RADIUS,
    PLAYER_MAX_HEALTH,
    PLAYER_RADIUS,
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
)

Vec2 = Tuple[float, float]


def distance(a: Vec2, b: Vec2) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def clamp_position(pos: Vec2, width: float, height: float, margin: float = PLAYER_RADIUS) -> Vec2:
    x = max(margin, min(width - margin, pos[0]))
    y = max(margin, min(height - margin, pos[1]))
    return (x, y)


def unit_vector(src: Vec2, dst: Vec2) -> Vec2:
    dx = dst[0] - src[0]
    dy = dst[1] - src[1]
    norm = math.hypot(dx, dy)
    if norm <= 1e-9:
        return (0.0, 0.0)
    return (dx / norm, dy / norm)


@dataclass(frozen=True)
class PlayerState:
    position: Vec2
    velocity: Vec2 = (0.0, 0.0)
    health: int = PLAYER_MAX_HEALTH
    max_health: int = PLAYER_MAX_HEALTH

    @property
    def alive(self) -> bool:
        return self.health > 0

    def moved_to(self, position: Vec2, velocity: Vec2) -> "PlayerState":
        return replace(self, position=position, velocity=velocity)

    def damaged(self, amount: int = 1) -> "PlayerState":
        return replace(self, health=max(0, self.health - int(amount)))


@dataclass(frozen=True)
class EnemyState:
    entity_id: int
    position: Vec2
    radius: float = ENEMY_RADIUS
    velocity: Vec2 = (0.0, 0.0)
    health: int = 1
    is_boss: bool = False
    cooldown: int = 0

    def moved_to(self, position: Vec2, velocity: Vec2) -> "EnemyState":
        return replace(self, position=position, velocity=velocity)

    def damaged(self, amount: int = 1) -> "EnemyState":
        return replace(self, health=max(0, self.health - int(amount)))


@dataclass(frozen=True)
class Projectile:
    position: Vec2
    velocity: Vec2
    owner: str = "enemy"
    radius: float = 4.0

    def advanced(self) -> "Projectile":
        return replace(
            self,
            position=(self.position[0] + self.velocity[0], self.position[1] + self.velocity[1]),
        )


@dataclass(frozen=True)
class Obstacle:
    position: Vec2
    radius: float = 20.0
    hazard: bool = False


@dataclass(frozen=True)
class CompanionState:
    companion_id: int
    position: Vec2
    role: str = "left_flank"
    velocity: Vec2 = (0.0, 0.0)
    health: int = PLAYER_MAX_HEALTH
    last_shot_time: Optional[float] = None

    @property
    def alive(self) -> bool:
        return self.health > 0

    def moved_to(self, position: Vec2, velocity: Vec2) -> "CompanionState":
        return replace(self, position=position, velocity=velocity)

    def damaged(self, amount: int = 1) -> "CompanionState":
        return replace(self, health=max(0, self.health - int(amount)))

    def fired(self, at_time: float) -> "CompanionState":
        return replace(self, last_shot_time=float(at_time))


@dataclass(frozen=True)
class TickSnapshot:
    """Everything the game layer hands the core once per tick."""

    player: PlayerState
    enemies: Tuple[EnemyState, ...] = ()
    projectiles: Tuple[Projectile, ...] = ()
    obstacles: Tuple[Obstacle, ...] = ()
    companions: Tuple[CompanionState, ...] = ()
    target: Optional[Vec2] = None
    formation: Optional[str] = None
    formation_threat: float = 0.0
    fire_support: bool = False
    lives: int = PLAYER_MAX_HEALTH
    game_over: bool = False
    width: int = SCREEN_WIDTH
    height: int = SCREEN_HEIGHT
    time: float = 0.0
    enemies_destroyed: int = 0
    projectiles_destroyed: int = 0
    shots_fired: int = 0
    shots_hit: int = 0

    @property
    def alive_companions(self) -> Tuple[CompanionState, ...]:
        return tuple(c for c in self.companions if c.alive)


@dataclass(frozen=True)
class PerformanceSnapshot:
    """End-of-episode outcome consumed by the curriculum."""

    player_health: int
    enemies_destroyed: int = 0
    max_health: int = PLAYER_MAX_HEALTH
    bosses_defeated: int = 0
    alive_companions: int = 0
    bullet_efficiency: float = 0.0
    spatial_coverage: float = 0.0
    perfect_run: bool = False
    boss_active: bool = False
    continues_after_player_death: bool = False
    projectiles_destroyed: int = 0
