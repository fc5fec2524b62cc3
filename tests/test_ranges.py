import itertools
import random
import unittest

from arcaderl.constants import ACTION_EAST, ACTION_STOP, ACTION_TARGET_DIRECT
from arcaderl.featurize import get_layout
from arcaderl.models import EnemyState, PlayerState, Projectile
from arcaderl.ranges import (
    GRID_POSITIONS,
    RANGE_KINDS,
    SHARED_RANGES,
    DodgeRange,
    EscortRange,
    PatrolRange,
    PursuitRange,
    RangeSettings,
    ShootingRange,
    StealthRange,
    make_range,
    range_bounds,
)
from train.roster import DEFAULT_ROSTER


class TestRangeLayout(unittest.TestCase):
    def test_grid_cells_do_not_overlap(self):
        bounds = [range_bounds(name) for name in GRID_POSITIONS]
        for a, b in itertools.combinations(bounds, 2):
            self.assertFalse(a.overlaps(b))
        for b in bounds:
            self.assertGreaterEqual(b.left, 0.0)
            self.assertGreaterEqual(b.top, 0.0)
            self.assertLessEqual(b.right, 800.0 + 1e-9)
            self.assertLessEqual(b.bottom, 600.0 + 1e-9)

    def test_shared_ranges_reuse_a_cell(self):
        for name, host in SHARED_RANGES.items():
            self.assertEqual(range_bounds(name), range_bounds(host))
        with self.assertRaises(KeyError):
            range_bounds("nowhere")

    def test_to_screen(self):
        bounds = range_bounds("boss_shooting")
        self.assertEqual(bounds.to_screen((0.0, 0.0)), (bounds.left, bounds.top))


class TestTrainingRanges(unittest.TestCase):
    def test_every_roster_range_runs_to_completion(self):
        kinds = set()
        for spec in DEFAULT_ROSTER:
            settings = RangeSettings(kind=spec.kind, max_steps=40)
            rng = random.Random(3)
            rng_range = make_range(spec.name, settings, rng, layout=spec.layout)
            kinds.add(spec.kind)
            dim = get_layout(spec.layout).dimension
            state = rng_range.reset()
            self.assertEqual(len(state), dim)
            done = False
            steps = 0
            while not done:
                state, reward, done = rng_range.step(rng.randrange(rng_range.action_space_size))
                self.assertEqual(len(state), dim)
                self.assertIsInstance(reward, float)
                steps += 1
            self.assertLessEqual(steps, 40)
        self.assertEqual(kinds, set(RANGE_KINDS))

    def test_invalid_action_and_kind(self):
        dodge = make_range("player_movement", RangeSettings(kind="dodge"), random.Random(0), layout="base")
        dodge.reset()
        with self.assertRaises(ValueError):
            dodge.step(9)
        with self.assertRaises(ValueError):
            make_range("player_movement", RangeSettings(kind="racing"), random.Random(0))

    def test_dodge_hit_ends_episode(self):
        dodge = DodgeRange("player_movement", RangeSettings(kind="dodge"), random.Random(0))
        dodge.reset()
        dodge.projectiles = [Projectile(position=dodge.learner.position, velocity=(0.0, 0.0))]
        _, reward, done = dodge.step(ACTION_STOP)
        self.assertTrue(done)
        self.assertLess(reward, -49.0)

    def test_shooting_destroys_target(self):
        shooting = ShootingRange("player_shooting", RangeSettings(kind="shooting"), random.Random(0))
        shooting.reset()
        x, y = shooting.learner.position
        shooting.targets = [EnemyState(1, position=(x, y - 10.0), health=1)]
        _, reward, done = shooting.step(1)
        self.assertAlmostEqual(reward, 29.9)
        self.assertTrue(done)
        self.assertEqual(shooting.destroyed, 1)

    def test_escort_rewards_holding_the_slot(self):
        escort = EscortRange("companion_movement", RangeSettings(kind="escort"), random.Random(0))
        escort.reset()
        escort.learner = PlayerState(position=escort.slot)
        _, reward, done = escort.step(ACTION_STOP)
        self.assertGreater(reward, 0.14)
        self.assertFalse(done)

    def test_pursuit_catch(self):
        pursuit = PursuitRange("enemy_movement", RangeSettings(kind="pursuit"), random.Random(0))
        pursuit.reset()
        pursuit.learner = PlayerState(position=(20.0, 100.0))
        pursuit.quarry = EnemyState(1, position=(30.0, 100.0))
        pursuit.last_distance = 10.0
        _, reward, done = pursuit.step(ACTION_TARGET_DIRECT)
        self.assertTrue(done)
        self.assertGreater(reward, 19.0)

    def test_patrol_rewards_new_cells(self):
        patrol = PatrolRange("enemy_patrol", RangeSettings(kind="patrol"), random.Random(0))
        patrol.reset()
        patrol.learner = PlayerState(position=(158.0, 100.0))
        _, reward, done = patrol.step(ACTION_EAST)
        self.assertAlmostEqual(reward, 0.19)
        self.assertFalse(done)
        _, reward, _ = patrol.step(ACTION_STOP)
        self.assertAlmostEqual(reward, -0.01)

    def test_stealth_detection(self):
        stealth = StealthRange("player_stealth_movement", RangeSettings(kind="stealth"), random.Random(0))
        stealth.reset()
        stealth.sentry = EnemyState(1, position=stealth.learner.position, radius=20.0)
        _, reward, done = stealth.step(ACTION_STOP)
        self.assertTrue(done)
        self.assertLess(reward, -4.0)


if __name__ == "__main__":
    unittest.main()
