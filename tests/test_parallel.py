import json
import tempfile
import threading
import unittest
from pathlib import Path

from arcaderl.errors import EncodingError
from arcaderl.experience import ExperienceStore
from train.parallel import ParallelConfig, ParallelTrainingCoordinator, split_episodes
from train.policies import ModelConfig


class RecordingAim:
    def __init__(self):
        self.tracked = []
        self.closed = 0

    def track_many(self, metrics, step, prefix=""):
        self.tracked.append((step, dict(metrics)))

    def close(self):
        self.closed += 1


class TestSplitEpisodes(unittest.TestCase):
    def test_even_and_remainder(self):
        self.assertEqual(split_episodes(100, 4), [25, 25, 25, 25])
        self.assertEqual(split_episodes(10, 4), [3, 3, 2, 2])
        self.assertEqual(split_episodes(2, 4), [1, 1, 0, 0])
        self.assertEqual(split_episodes(0, 3), [0, 0, 0])

    def test_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            split_episodes(10, 0)
        with self.assertRaises(ValueError):
            split_episodes(-1, 2)


class TestParallelTrainingCoordinator(unittest.TestCase):
    def _coordinator(self, tmp, **overrides):
        fields = {"environments": 4, "max_concurrency": 4, "max_steps": 5, "seed": 3}
        fields.update(overrides)
        store = ExperienceStore(Path(tmp) / "episodes", state_dim=42)
        return ParallelTrainingCoordinator(ParallelConfig(**fields), store=store)

    def test_runs_exactly_the_requested_episodes(self):
        with tempfile.TemporaryDirectory() as tmp:
            coordinator = self._coordinator(tmp, persist_episodes=True)
            results = coordinator.run(100)

            self.assertFalse(results.cancelled)
            self.assertEqual(results.aggregate.total_episodes, 100)
            self.assertEqual(sum(s.episodes for s in results.environments), 100)
            self.assertEqual([s.episodes for s in results.environments], [25, 25, 25, 25])
            self.assertEqual(results.aggregate.total_steps, 500)
            self.assertEqual(coordinator.store.episode_count, 100)
            self.assertEqual(coordinator.store.experience_count, 500)
            persisted = coordinator.store.load_all_episodes()
            self.assertEqual(sorted(e.episode_number for e in persisted), list(range(1, 101)))
            self.assertTrue(all(len(e) == 5 for e in persisted))
            self.assertAlmostEqual(
                results.aggregate.average_reward,
                results.aggregate.total_reward / 100,
            )

    def test_concurrency_limit_of_one(self):
        with tempfile.TemporaryDirectory() as tmp:
            results = self._coordinator(tmp, environments=3, max_concurrency=1).run(7)
            self.assertEqual([s.episodes for s in results.environments], [3, 2, 2])

    def test_environments_are_independent(self):
        with tempfile.TemporaryDirectory() as tmp:
            coordinator = self._coordinator(tmp, environments=2)
            coordinator.run(4)
            first, second = coordinator.environments
            self.assertIsNot(first.model, second.model)
            self.assertIsNot(first.model.config, second.model.config)
            self.assertIsNot(first.scheduler, second.scheduler)
            self.assertEqual(first.model.weights.shape, (12, 42))

    def test_preset_cancel_runs_nothing(self):
        with tempfile.TemporaryDirectory() as tmp:
            cancel = threading.Event()
            cancel.set()
            results = self._coordinator(tmp).run(20, cancel)
            self.assertTrue(results.cancelled)
            self.assertEqual(results.aggregate.total_episodes, 0)

    def test_persists_episodes_and_writes_log(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "out"
            coordinator = self._coordinator(tmp, environments=2, persist_episodes=True, output_dir=str(out))
            coordinator.run(6)
            self.assertEqual(len(coordinator.store.episode_files()), 6)
            lines = (out / "episodes.jsonl").read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 6)
            self.assertIn("term_kill", (out / "episodes.csv").read_text(encoding="utf-8"))

            payload = coordinator.run(0).to_dict()
            self.assertEqual(payload["aggregate"]["total_episodes"], 6)
            self.assertIn("average_reward", payload["environments"][0])
            json.dumps(payload)

    def test_failed_episode_is_skipped_and_counted(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "out"
            coordinator = self._coordinator(tmp, output_dir=str(out))
            env = coordinator.environments[1]
            run_episode = env.run_episode
            calls = []

            def flaky(store):
                calls.append(store)
                if len(calls) == 2:
                    store.record_experience([0.0] * 42, 0, 0.0, [0.0] * 42, False, stream=env.env_id)
                    raise OSError("disk hiccup")
                return run_episode(store)

            env.run_episode = flaky
            with self.assertLogs("train.parallel", level="ERROR"):
                results = coordinator.run(40)

            self.assertEqual(results.aggregate.total_episodes, 39)
            self.assertEqual(results.aggregate.failed_episodes, 1)
            self.assertEqual([s.episodes for s in results.environments], [10, 9, 10, 10])
            self.assertEqual(coordinator.store.experience_count, 39 * 5)
            lines = (out / "episodes.jsonl").read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 39)

    def test_encoding_error_stops_the_run(self):
        with tempfile.TemporaryDirectory() as tmp:
            coordinator = self._coordinator(tmp, environments=2, max_concurrency=1)

            def broken(store):
                raise EncodingError(42, 3)

            coordinator.environments[0].run_episode = broken
            with self.assertLogs("train.parallel", level="ERROR"):
                with self.assertRaises(EncodingError):
                    coordinator.run(10)
            self.assertLessEqual(coordinator.aggregate.total_episodes, 5)
            self.assertEqual(coordinator.aggregate.failed_episodes, 0)

    def test_metrics_tracked_across_runs_until_close(self):
        with tempfile.TemporaryDirectory() as tmp:
            coordinator = self._coordinator(tmp, environments=2)
            aim = RecordingAim()
            coordinator.aim = aim
            coordinator.run(4)
            coordinator.run(2)
            self.assertEqual([step for step, _ in aim.tracked], list(range(1, 7)))
            self.assertEqual(aim.closed, 0)
            coordinator.close()
            self.assertEqual(aim.closed, 1)

    def test_base_layout_and_best_model(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = ExperienceStore(Path(tmp), state_dim=30)
            config = ParallelConfig(environments=2, max_concurrency=2, max_steps=3, layout="base", action_space_size=9)
            coordinator = ParallelTrainingCoordinator(config, store=store, model_config=ModelConfig())
            coordinator.run(2)
            self.assertEqual(coordinator.best_model().weights.shape, (9, 30))

    def test_rejects_bad_config(self):
        with self.assertRaises(ValueError):
            ParallelTrainingCoordinator(ParallelConfig(environments=0))
        with self.assertRaises(ValueError):
            ParallelTrainingCoordinator(ParallelConfig(max_concurrency=0))


if __name__ == "__main__":
    unittest.main()
