import random
import unittest

from arcaderl.experience import Experience
from arcaderl.replay import PrioritizedReplayBuffer, initial_priority


def _exp(reward=0.0, done=False, tag=0.0):
    return Experience((tag,), 0, reward, (tag,), done)


class TestPrioritizedReplayBuffer(unittest.TestCase):
    def test_initial_priority(self):
        self.assertAlmostEqual(initial_priority(_exp(0.5)), 0.6)
        self.assertAlmostEqual(initial_priority(_exp(-3.0)), 3.1)
        self.assertAlmostEqual(initial_priority(_exp(2.0, done=True)), 2.1 * 2.0 * 1.5)

    def test_ring_overwrites_oldest(self):
        buf = PrioritizedReplayBuffer(capacity=3)
        for i in range(4):
            buf.add(_exp(tag=float(i)))
        self.assertEqual(len(buf), 3)
        _, items = buf.sample_uniform(3)
        self.assertEqual(sorted(e.state[0] for e in items), [1.0, 2.0, 3.0])
        with self.assertRaises(ValueError):
            PrioritizedReplayBuffer(capacity=0)

    def test_update_priorities(self):
        buf = PrioritizedReplayBuffer(capacity=4)
        buf.extend([_exp(1.0), _exp(1.0)])
        buf.update_priorities([0, 1], [0.0, -2.0])
        self.assertAlmostEqual(buf.priority(0), 0.01)
        self.assertAlmostEqual(buf.priority(1), 2.01)
        with self.assertRaises(ValueError):
            buf.update_priorities([0], [1.0, 2.0])

    def test_sampling_prefers_high_priority(self):
        buf = PrioritizedReplayBuffer(capacity=4, rng=random.Random(3))
        buf.extend([_exp(0.0, tag=0.0), _exp(0.0, tag=1.0)])
        buf.update_priorities([0, 1], [0.0, 100.0])
        indices, items = buf.sample(200)
        self.assertEqual(len(items), 200)
        self.assertGreater(indices.count(1), 190)
        self.assertEqual(buf.high_error_experiences(1)[0].state, (1.0,))

    def test_sampling_is_seeded(self):
        def draw():
            buf = PrioritizedReplayBuffer(capacity=10, rng=random.Random(11))
            buf.extend(_exp(float(i), tag=float(i)) for i in range(10))
            return buf.sample(5)[0]

        self.assertEqual(draw(), draw())

    def test_stats(self):
        buf = PrioritizedReplayBuffer(capacity=5)
        self.assertEqual(buf.stats()["size"], 0)
        self.assertEqual(buf.sample(3), ([], []))
        buf.extend([_exp(0.5), _exp(0.5, done=True)])
        stats = buf.stats()
        self.assertEqual(stats["size"], 2)
        self.assertAlmostEqual(stats["terminal_fraction"], 0.5)
        buf.clear()
        self.assertEqual(len(buf), 0)


if __name__ == "__main__":
    unittest.main()
