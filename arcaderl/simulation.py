"""Headless arcade world used for offline training.

The world is a frozen `WorldState`; `advance_world` is the only way to move
it forward and always returns a new value.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from typing import FrozenSet, List, Optional, Tuple

from .constants import (
    BOSS_HEALTH,
    BOSS_RADIUS,
    BOSS_SPEED,
    COMPANION_SPEED,
    ENEMY_RADIUS,
    LASER_SPEED,
    PLAYER_MAX_HEALTH,
    PLAYER_RADIUS,
    PLAYER_SPEED,
    SCREEN_HEIGHT,
    SCREEN_WIDTH,
)
from .curriculum import DifficultyConfig
from .featurize import action_to_velocity
from .models import (
    CompanionState,
    EnemyState,
    Obstacle,
    PerformanceSnapshot,
    PlayerState,
    Projectile,
    TickSnapshot,
    Vec2,
    clamp_position,
    distance,
    unit_vector,
)
from .rewards import FORMATION_SLOTS

COVERAGE_CELL = 50


@dataclass
class SimulationConfig:
    width: int = SCREEN_WIDTH
    height: int = SCREEN_HEIGHT
    max_steps: int = 1000
    step_seconds: float = 1.0 / 30.0
    player_speed: float = PLAYER_SPEED
    player_fire_interval: int = 10
    companion_fire_interval: int = 20
    enemy_fire_interval: int = 60
    enemy_laser_speed: float = LASER_SPEED * 0.6
    spawn_clearance: float = 150.0
    formation: str = "wedge"


@dataclass(frozen=True)
class WorldState:
    player: PlayerState
    enemies: Tuple[EnemyState, ...] = ()
    hostile_shots: Tuple[Projectile, ...] = ()
    friendly_shots: Tuple[Projectile, ...] = ()
    companions: Tuple[CompanionState, ...] = ()
    hazards: Tuple[Obstacle, ...] = ()
    step: int = 0
    time: float = 0.0
    enemies_destroyed: int = 0
    bosses_defeated: int = 0
    projectiles_destroyed: int = 0
    shots_fired: int = 0
    shots_hit: int = 0
    next_entity_id: int = 1
    next_boss_at: Optional[int] = None
    visited: FrozenSet[Tuple[int, int]] = field(default_factory=frozenset)
    game_over: bool = False

    @property
    def boss_active(self) -> bool:
        return any(e.is_boss for e in self.enemies)


def _random_point(rng: random.Random, width: int, height: int, margin: float = 50.0) -> Vec2:
    return (rng.uniform(margin, width - margin), rng.uniform(margin, height - margin))


def _spawn_point(rng: random.Random, cfg: SimulationConfig, avoid: Vec2) -> Vec2:
    point = _random_point(rng, cfg.width, cfg.height)
    for _ in range(20):
        if distance(point, avoid) >= cfg.spawn_clearance:
            break
        point = _random_point(rng, cfg.width, cfg.height)
    return point


def _cell(pos: Vec2) -> Tuple[int, int]:
    return (int(pos[0] // COVERAGE_CELL), int(pos[1] // COVERAGE_CELL))


def initial_world(
    cfg: SimulationConfig,
    difficulty: DifficultyConfig,
    rng: random.Random,
) -> WorldState:
    center = (cfg.width / 2.0, cfg.height / 2.0)
    roles = list(FORMATION_SLOTS.keys())
    companions = []
    for i in range(min(difficulty.companion_count, len(roles))):
        ox, oy = FORMATION_SLOTS[roles[i]]
        companions.append(
            CompanionState(companion_id=i + 1, position=(center[0] + ox, center[1] + oy), role=roles[i])
        )
    hazards = tuple(
        Obstacle(position=_spawn_point(rng, cfg, center), radius=20.0, hazard=True)
        for _ in range(difficulty.hazard_count)
    )
    return WorldState(
        player=PlayerState(position=center, health=PLAYER_MAX_HEALTH),
        companions=tuple(companions),
        hazards=hazards,
        next_boss_at=difficulty.boss_spawn_interval,
        visited=frozenset({_cell(center)}),
    )


def world_snapshot(world: WorldState, cfg: SimulationConfig) -> TickSnapshot:
    player_pos = world.player.position
    target = None
    if world.enemies:
        target = min(world.enemies, key=lambda e: distance(e.position, player_pos)).position
    alive = [c for c in world.companions if c.alive]
    fire_support = any(
        c.last_shot_time is not None and world.time - c.last_shot_time < 1.0 for c in alive
    )
    threat = 0.0
    if world.enemies:
        threat = min(1.0, len(world.enemies) / 8.0)
    return TickSnapshot(
        player=world.player,
        enemies=world.enemies,
        projectiles=world.hostile_shots,
        obstacles=world.hazards,
        companions=world.companions,
        target=target,
        formation=cfg.formation if alive else None,
        formation_threat=threat,
        fire_support=fire_support,
        lives=world.player.health,
        game_over=world.game_over,
        width=cfg.width,
        height=cfg.height,
        time=world.time,
        enemies_destroyed=world.enemies_destroyed,
        projectiles_destroyed=world.projectiles_destroyed,
        shots_fired=world.shots_fired,
        shots_hit=world.shots_hit,
    )


def _aimed_shot(src: Vec2, dst: Vec2, speed: float, owner: str) -> Projectile:
    ux, uy = unit_vector(src, dst)
    return Projectile(position=src, velocity=(ux * speed, uy * speed), owner=owner)


def _in_bounds(pos: Vec2, cfg: SimulationConfig) -> bool:
    return -20.0 <= pos[0] <= cfg.width + 20.0 and -20.0 <= pos[1] <= cfg.height + 20.0


def advance_world(
    world: WorldState,
    action: int,
    difficulty: DifficultyConfig,
    cfg: SimulationConfig,
    rng: random.Random,
) -> Tuple[WorldState, Tuple[str, ...]]:
    """Advance one tick with the player taking `action`; returns the new world and events."""
    if world.game_over:
        return world, ()
    events: List[str] = []
    step = world.step + 1
    now = world.time + cfg.step_seconds
    snapshot = world_snapshot(world, cfg)

    player = world.player
    if player.alive:
        velocity = action_to_velocity(action, cfg.player_speed, snapshot)
        new_pos = clamp_position(
            (player.position[0] + velocity[0], player.position[1] + velocity[1]),
            cfg.width,
            cfg.height,
        )
        player = player.moved_to(new_pos, velocity)
    else:
        player = player.moved_to(player.position, (0.0, 0.0))

    friendly = list(world.friendly_shots)
    shots_fired = world.shots_fired
    nearest_enemy = None
    if world.enemies:
        nearest_enemy = min(world.enemies, key=lambda e: distance(e.position, player.position))
    if player.alive and nearest_enemy is not None and step % cfg.player_fire_interval == 0:
        friendly.append(_aimed_shot(player.position, nearest_enemy.position, LASER_SPEED, "player"))
        shots_fired += 1

    companions: List[CompanionState] = []
    for companion in world.companions:
        if not companion.alive:
            companions.append(companion)
            continue
        ox, oy = FORMATION_SLOTS.get(companion.role, (0.0, 0.0))
        slot = (player.position[0] + ox, player.position[1] + oy)
        gap = distance(companion.position, slot)
        ux, uy = unit_vector(companion.position, slot)
        speed = min(COMPANION_SPEED, gap)
        velocity = (ux * speed, uy * speed)
        pos = clamp_position(
            (companion.position[0] + velocity[0], companion.position[1] + velocity[1]),
            cfg.width,
            cfg.height,
        )
        companion = companion.moved_to(pos, velocity)
        if world.enemies and (step + companion.companion_id) % cfg.companion_fire_interval == 0:
            target = min(world.enemies, key=lambda e: distance(e.position, pos))
            friendly.append(_aimed_shot(pos, target.position, LASER_SPEED, "companion"))
            companion = companion.fired(now)
        companions.append(companion)

    hostile = list(world.hostile_shots)
    enemies: List[EnemyState] = []
    for enemy in world.enemies:
        speed = BOSS_SPEED if enemy.is_boss else difficulty.enemy_speed
        ux, uy = unit_vector(enemy.position, player.position)
        velocity = (ux * speed, uy * speed)
        pos = clamp_position(
            (enemy.position[0] + velocity[0], enemy.position[1] + velocity[1]),
            cfg.width,
            cfg.height,
            margin=enemy.radius,
        )
        cooldown = enemy.cooldown - 1
        if cooldown <= 0 and player.alive:
            hostile.append(_aimed_shot(pos, player.position, cfg.enemy_laser_speed, "enemy"))
            cooldown = cfg.enemy_fire_interval // (2 if enemy.is_boss else 1)
        enemies.append(replace(enemy.moved_to(pos, velocity), cooldown=cooldown))

    friendly = [s.advanced() for s in friendly if _in_bounds(s.position, cfg)]
    hostile = [s.advanced() for s in hostile if _in_bounds(s.position, cfg)]

    enemies_destroyed = world.enemies_destroyed
    bosses_defeated = world.bosses_defeated
    projectiles_destroyed = world.projectiles_destroyed
    shots_hit = world.shots_hit

    remaining_friendly: List[Projectile] = []
    for shot in friendly:
        hit_index = None
        for i, enemy in enumerate(enemies):
            if distance(shot.position, enemy.position) <= enemy.radius + shot.radius:
                hit_index = i
                break
        if hit_index is not None:
            if shot.owner == "player":
                shots_hit += 1
            enemy = enemies[hit_index].damaged()
            if enemy.health <= 0:
                enemies.pop(hit_index)
                enemies_destroyed += 1
                events.append("enemy_destroyed")
                if enemy.is_boss:
                    bosses_defeated += 1
                    events.append("boss_defeated")
            else:
                enemies[hit_index] = enemy
            continue
        intercepted = None
        for j, laser in enumerate(hostile):
            if distance(shot.position, laser.position) <= shot.radius + laser.radius + 2.0:
                intercepted = j
                break
        if intercepted is not None:
            hostile.pop(intercepted)
            projectiles_destroyed += 1
            events.append("projectile_intercepted")
            continue
        remaining_friendly.append(shot)

    remaining_hostile: List[Projectile] = []
    for laser in hostile:
        if player.alive and distance(laser.position, player.position) <= PLAYER_RADIUS + laser.radius:
            player = player.damaged()
            events.append("player_hit")
            continue
        hit = False
        for i, companion in enumerate(companions):
            if companion.alive and distance(laser.position, companion.position) <= PLAYER_RADIUS + laser.radius:
                companions[i] = companion.damaged()
                events.append("companion_hit")
                hit = True
                break
        if not hit:
            remaining_hostile.append(laser)

    survivors: List[EnemyState] = []
    for enemy in enemies:
        if player.alive and distance(enemy.position, player.position) <= enemy.radius + PLAYER_RADIUS:
            player = player.damaged()
            events.append("player_rammed")
            if enemy.is_boss:
                survivors.append(enemy)
            continue
        survivors.append(enemy)
    enemies = survivors

    hazards = list(world.hazards)
    for i, hazard in enumerate(hazards):
        if player.alive and distance(hazard.position, player.position) <= hazard.radius + PLAYER_RADIUS:
            player = player.damaged()
            events.append("hazard_hit")
            hazards[i] = replace(hazard, position=_spawn_point(rng, cfg, player.position))

    next_id = world.next_entity_id
    regular = sum(1 for e in enemies if not e.is_boss)
    if regular < difficulty.enemy_count:
        enemies.append(
            EnemyState(
                entity_id=next_id,
                position=_spawn_point(rng, cfg, player.position),
                radius=ENEMY_RADIUS,
                cooldown=rng.randint(cfg.enemy_fire_interval // 2, cfg.enemy_fire_interval),
            )
        )
        next_id += 1

    next_boss_at = world.next_boss_at
    if (
        next_boss_at is not None
        and difficulty.boss_spawn_interval is not None
        and enemies_destroyed >= next_boss_at
        and not any(e.is_boss for e in enemies)
    ):
        enemies.append(
            EnemyState(
                entity_id=next_id,
                position=_spawn_point(rng, cfg, player.position),
                radius=BOSS_RADIUS,
                health=BOSS_HEALTH,
                is_boss=True,
                cooldown=cfg.enemy_fire_interval,
            )
        )
        next_id += 1
        next_boss_at += difficulty.boss_spawn_interval
        events.append("boss_spawned")

    game_over = (not player.alive) and not any(c.alive for c in companions)
    if game_over:
        events.append("game_over")

    new_world = replace(
        world,
        player=player,
        enemies=tuple(enemies),
        hostile_shots=tuple(remaining_hostile),
        friendly_shots=tuple(remaining_friendly),
        companions=tuple(companions),
        hazards=tuple(hazards),
        step=step,
        time=now,
        enemies_destroyed=enemies_destroyed,
        bosses_defeated=bosses_defeated,
        projectiles_destroyed=projectiles_destroyed,
        shots_fired=shots_fired,
        shots_hit=shots_hit,
        next_entity_id=next_id,
        next_boss_at=next_boss_at,
        visited=world.visited | {_cell(player.position)},
        game_over=game_over,
    )
    return new_world, tuple(events)


@dataclass(frozen=True)
class StepResult:
    snapshot: TickSnapshot
    done: bool
    events: Tuple[str, ...]


class ArcadeSimulation:
    """One independent training environment."""

    def __init__(self, config: SimulationConfig | None = None, rng: random.Random | None = None) -> None:
        self.config = config or SimulationConfig()
        self.rng = rng or random.Random(0)
        self.difficulty: Optional[DifficultyConfig] = None
        self.world: Optional[WorldState] = None

    def reset(self, difficulty: DifficultyConfig) -> TickSnapshot:
        self.difficulty = difficulty
        self.world = initial_world(self.config, difficulty, self.rng)
        return self.snapshot()

    def _require_world(self) -> WorldState:
        if self.world is None:
            raise RuntimeError("Simulation must be reset before use")
        return self.world

    def snapshot(self) -> TickSnapshot:
        return world_snapshot(self._require_world(), self.config)

    @property
    def done(self) -> bool:
        world = self._require_world()
        return world.game_over or world.step >= self.config.max_steps

    def step(self, action: int) -> StepResult:
        world = self._require_world()
        assert self.difficulty is not None
        self.world, events = advance_world(world, action, self.difficulty, self.config, self.rng)
        return StepResult(snapshot=self.snapshot(), done=self.done, events=events)

    def performance_snapshot(self) -> PerformanceSnapshot:
        world = self._require_world()
        alive_companions = [c for c in world.companions if c.alive]
        perfect = world.player.health == world.player.max_health and all(
            c.health == PLAYER_MAX_HEALTH for c in world.companions
        )
        efficiency = world.shots_hit / world.shots_fired if world.shots_fired else 0.0
        return PerformanceSnapshot(
            player_health=world.player.health,
            enemies_destroyed=world.enemies_destroyed,
            max_health=world.player.max_health,
            bosses_defeated=world.bosses_defeated,
            alive_companions=len(alive_companions),
            bullet_efficiency=min(1.0, efficiency),
            spatial_coverage=min(len(world.visited) / 100.0, 1.0),
            perfect_run=perfect,
            boss_active=world.boss_active,
            continues_after_player_death=(not world.player.alive) and bool(alive_companions),
            projectiles_destroyed=world.projectiles_destroyed,
        )
