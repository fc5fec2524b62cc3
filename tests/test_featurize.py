import unittest

from arcaderl.constants import ACTION_EAST, ACTION_STOP, ACTION_TARGET_DIRECT, ACTION_TARGET_SAFE
from arcaderl.errors import EncodingError
from arcaderl.featurize import (
    BASE_LAYOUT,
    ENEMY_SENTINEL,
    FULL_LAYOUT,
    PROJECTILE_SENTINEL,
    TARGET_SENTINEL,
    action_to_velocity,
    encode_state,
    get_layout,
    state_dimension,
    validate_state,
)
from arcaderl.models import CompanionState, EnemyState, PlayerState, Projectile, TickSnapshot


def _snapshot(**overrides):
    fields = {"player": PlayerState(position=(400.0, 300.0))}
    fields.update(overrides)
    return TickSnapshot(**fields)


class TestStateEncoder(unittest.TestCase):
    def test_layout_dimensions(self):
        self.assertEqual(BASE_LAYOUT.dimension, 30)
        self.assertEqual(FULL_LAYOUT.dimension, 42)
        self.assertEqual(state_dimension("base"), 30)
        self.assertEqual(state_dimension(), 42)
        with self.assertRaises(ValueError):
            get_layout("wide")

    def test_empty_world_is_padded_with_sentinels(self):
        vec = encode_state(_snapshot(), FULL_LAYOUT)
        slices = FULL_LAYOUT.slices()
        self.assertEqual(len(vec), 42)
        self.assertEqual(vec[:5], [0.5, 0.5, 0.0, 0.0, 1.0])

        start, end = slices["enemies"]
        self.assertEqual(vec[start:end], list(ENEMY_SENTINEL) * 5)
        start, end = slices["projectiles"]
        self.assertEqual(vec[start:end], list(PROJECTILE_SENTINEL))
        start, end = slices["target"]
        self.assertEqual(vec[start:end], list(TARGET_SENTINEL))
        start, end = slices["companion_count"]
        self.assertEqual(vec[start:end], [0.0])
        start, end = slices["companions"]
        self.assertEqual(vec[start:end], [0.0] * 7)

    def test_length_is_fixed_for_any_entity_count(self):
        for n_enemies in range(8):
            for n_shots in (0, 1, 12):
                enemies = tuple(EnemyState(i, position=(100.0 + 50 * i, 100.0)) for i in range(n_enemies))
                shots = tuple(Projectile(position=(10.0 * i, 20.0), velocity=(1.0, 0.0)) for i in range(n_shots))
                snap = _snapshot(enemies=enemies, projectiles=shots)
                self.assertEqual(len(encode_state(snap, BASE_LAYOUT)), 30)
                self.assertEqual(len(encode_state(snap, FULL_LAYOUT)), 42)

    def test_enemies_are_sorted_nearest_first(self):
        far = EnemyState(1, position=(600.0, 300.0))
        near = EnemyState(2, position=(410.0, 300.0), radius=30.0)
        vec = encode_state(_snapshot(enemies=(far, near)), BASE_LAYOUT)
        start, _ = BASE_LAYOUT.slices()["enemies"]
        self.assertAlmostEqual(vec[start], 10.0 / 800.0)
        self.assertAlmostEqual(vec[start + 2], 10.0 / 800.0)
        self.assertAlmostEqual(vec[start + 3], 1.5)
        self.assertAlmostEqual(vec[start + 4], 200.0 / 800.0)
        self.assertEqual(vec[start + 8:start + 12], list(ENEMY_SENTINEL))

    def test_projectile_block_tracks_closest_shot(self):
        shots = (
            Projectile(position=(400.0, 100.0), velocity=(0.0, 5.0)),
            Projectile(position=(400.0, 250.0), velocity=(3.0, -4.0)),
        )
        vec = encode_state(_snapshot(projectiles=shots), BASE_LAYOUT)
        start, end = BASE_LAYOUT.slices()["projectiles"]
        self.assertEqual(len(vec[start:end]), 4)
        self.assertAlmostEqual(vec[start], 0.2)
        self.assertAlmostEqual(vec[start + 1], 0.25)
        self.assertAlmostEqual(vec[start + 2], 0.3)
        self.assertAlmostEqual(vec[start + 3], -0.4)

    def test_target_and_companion_blocks(self):
        companions = (
            CompanionState(1, position=(350.0, 300.0)),
            CompanionState(2, position=(450.0, 300.0), role="right_flank", health=0),
        )
        snap = _snapshot(target=(480.0, 300.0), companions=companions, formation="wedge", fire_support=True)
        vec = encode_state(snap, FULL_LAYOUT)
        slices = FULL_LAYOUT.slices()
        start, _ = slices["target"]
        self.assertAlmostEqual(vec[start], 0.1)
        self.assertEqual(vec[start + 3], 1.0)
        start, _ = slices["companion_count"]
        self.assertAlmostEqual(vec[start], 1.0 / 3.0)
        start, _ = slices["companions"]
        self.assertAlmostEqual(vec[start], 0.5)
        self.assertAlmostEqual(vec[start + 2], 0.25)
        self.assertEqual(vec[start + 4], 1.0)

    def test_game_over_flag(self):
        vec = encode_state(_snapshot(game_over=True), BASE_LAYOUT)
        start, _ = BASE_LAYOUT.slices()["game_over"]
        self.assertEqual(vec[start], 1.0)

    def test_validate_state(self):
        validate_state([0.0] * 30, 30)
        with self.assertRaises(EncodingError) as ctx:
            validate_state([0.0] * 29, 30)
        self.assertEqual(ctx.exception.expected, 30)
        self.assertEqual(ctx.exception.actual, 29)
        self.assertIsInstance(ctx.exception, ValueError)


class TestActionToVelocity(unittest.TestCase):
    def test_movement_actions(self):
        snap = _snapshot()
        self.assertEqual(action_to_velocity(ACTION_EAST, 5.0, snap), (5.0, 0.0))
        self.assertEqual(action_to_velocity(ACTION_STOP, 5.0, snap), (0.0, 0.0))

    def test_targeting_falls_back_to_stop_without_target(self):
        self.assertEqual(action_to_velocity(ACTION_TARGET_DIRECT, 5.0, _snapshot()), (0.0, 0.0))

    def test_targeting_moves_toward_target(self):
        snap = _snapshot(target=(500.0, 300.0))
        vx, vy = action_to_velocity(ACTION_TARGET_DIRECT, 5.0, snap)
        self.assertAlmostEqual(vx, 5.0)
        self.assertAlmostEqual(vy, 0.0)

        threatened = _snapshot(
            target=(500.0, 300.0),
            projectiles=(Projectile(position=(400.0, 280.0), velocity=(0.0, 0.0)),),
        )
        vx, vy = action_to_velocity(ACTION_TARGET_SAFE, 5.0, threatened)
        self.assertGreater(vx, 0.0)
        self.assertGreater(vy, 0.0)

    def test_unknown_action_with_target(self):
        with self.assertRaises(ValueError):
            action_to_velocity(42, 5.0, _snapshot(target=(500.0, 300.0)))


if __name__ == "__main__":
    unittest.main()
