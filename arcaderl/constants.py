"""Core constants and action mapping for the arcade training core."""

SCREEN_WIDTH = 800
SCREEN_HEIGHT = 600

PLAYER_SPEED = 5.0
PLAYER_RADIUS = 15.0
PLAYER_MAX_HEALTH = 3
LASER_SPEED = 8.0
ENEMY_SPEED = 5.0
ENEMY_RADIUS = 15.0
BOSS_SPEED = 4.0
BOSS_RADIUS = 30.0
BOSS_HEALTH = 5
COMPANION_SPEED = 4.0
COMPANION_COUNT_MAX = 3

VELOCITY_SCALE = 10.0
LIVES_SCALE = 3.0
ENEMY_RADIUS_SCALE = 20.0
PROJECTILE_DISTANCE_SCALE = 200.0
COMPANION_DISTANCE_SCALE = 100.0
MAX_TRACKED_ENEMIES = 5
MAX_COUNTED_PROJECTILES = 10
COMPANION_SHOT_WINDOW = 2.0

ACTION_NORTH = 0
ACTION_SOUTH = 1
ACTION_EAST = 2
ACTION_WEST = 3
ACTION_NORTHEAST = 4
ACTION_NORTHWEST = 5
ACTION_SOUTHEAST = 6
ACTION_SOUTHWEST = 7
ACTION_STOP = 8
ACTION_TARGET_DIRECT = 9
ACTION_TARGET_SAFE = 10
ACTION_TARGET_DODGE = 11

ACTION_NAMES = {
    ACTION_NORTH: "NORTH",
    ACTION_SOUTH: "SOUTH",
    ACTION_EAST: "EAST",
    ACTION_WEST: "WEST",
    ACTION_NORTHEAST: "NORTHEAST",
    ACTION_NORTHWEST: "NORTHWEST",
    ACTION_SOUTHEAST: "SOUTHEAST",
    ACTION_SOUTHWEST: "SOUTHWEST",
    ACTION_STOP: "STOP",
    ACTION_TARGET_DIRECT: "TARGET_DIRECT",
    ACTION_TARGET_SAFE: "TARGET_SAFE",
    ACTION_TARGET_DODGE: "TARGET_DODGE",
}

# Unit direction per movement action, screen coordinates (y grows downward).
MOVE_DIRECTIONS = {
    ACTION_NORTH: (0.0, -1.0),
    ACTION_SOUTH: (0.0, 1.0),
    ACTION_EAST: (1.0, 0.0),
    ACTION_WEST: (-1.0, 0.0),
    ACTION_NORTHEAST: (0.7071, -0.7071),
    ACTION_NORTHWEST: (-0.7071, -0.7071),
    ACTION_SOUTHEAST: (0.7071, 0.7071),
    ACTION_SOUTHWEST: (-0.7071, 0.7071),
    ACTION_STOP: (0.0, 0.0),
}

MOVEMENT_ACTION_COUNT = 9
TARGETING_ACTION_COUNT = 12

SHOOT_HOLD = 0
SHOOT_NEAREST = 9
SHOOTING_ACTION_COUNT = 10

SHOOT_NAMES = {
    SHOOT_HOLD: "HOLD",
    1: "FIRE_NORTH",
    2: "FIRE_NORTHEAST",
    3: "FIRE_EAST",
    4: "FIRE_SOUTHEAST",
    5: "FIRE_SOUTH",
    6: "FIRE_SOUTHWEST",
    7: "FIRE_WEST",
    8: "FIRE_NORTHWEST",
    SHOOT_NEAREST: "FIRE_NEAREST",
}

SHOOT_DIRECTIONS = {
    1: (0.0, -1.0),
    2: (0.7071, -0.7071),
    3: (1.0, 0.0),
    4: (0.7071, 0.7071),
    5: (0.0, 1.0),
    6: (-0.7071, 0.7071),
    7: (-1.0, 0.0),
    8: (-0.7071, -0.7071),
}

FORMATION_TYPES = ["line", "wedge", "diamond", "circle", "adaptive"]
COMPANION_ROLES = ["left_flank", "right_flank", "rear"]


def action_name(action: int, action_space_size: int = TARGETING_ACTION_COUNT) -> str:
    if action_space_size == SHOOTING_ACTION_COUNT:
        return SHOOT_NAMES.get(int(action), f"unknown_{int(action)}")
    return ACTION_NAMES.get(int(action), f"unknown_{int(action)}")
