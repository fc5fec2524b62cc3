import json
import random
import tempfile
import unittest
from pathlib import Path

from arcaderl.experience import Experience, ExperienceStore
from train.checkpoints import ModelCheckpoints
from train.trainer import OfflineTrainer, TrainConfig


def _seed_episodes(data_dir, episodes=4, steps=6, dim=42):
    rng = random.Random(5)
    store = ExperienceStore(data_dir, state_dim=dim)
    for _ in range(episodes):
        state = [rng.uniform(-1.0, 1.0) for _ in range(dim)]
        for t in range(steps):
            next_state = [rng.uniform(-1.0, 1.0) for _ in range(dim)]
            store.record_experience(state, rng.randrange(12), rng.uniform(-1.0, 2.0), next_state, t == steps - 1)
            state = next_state
        store.persist_episode(store.end_episode()[0])
    return store


class TestOfflineTrainer(unittest.TestCase):
    def _config(self, tmp, **overrides):
        fields = {
            "data_dir": str(Path(tmp) / "data"),
            "model_dir": str(Path(tmp) / "models"),
            "epochs": 2,
            "batch_size": 4,
            "eval_episodes": 1,
            "eval_max_steps": 10,
            "show_progress": False,
        }
        fields.update(overrides)
        return TrainConfig(**fields)

    def test_trains_and_saves_first_model(self):
        with tempfile.TemporaryDirectory() as tmp:
            _seed_episodes(Path(tmp) / "data")
            out = Path(tmp) / "out"
            summary = OfflineTrainer(self._config(tmp, output_dir=str(out))).train()

            self.assertEqual(summary["episodes"], 4)
            self.assertEqual(summary["experiences"], 24)
            self.assertEqual(len(summary["losses"]), 2)
            self.assertTrue(summary["saved"])
            self.assertGreaterEqual(summary["performance"], 0.0)
            self.assertLessEqual(summary["performance"], 1.0)
            self.assertTrue(Path(summary["model_path"]).exists())

            written = json.loads((out / "offline_summary.json").read_text(encoding="utf-8"))
            self.assertEqual(written["episodes"], 4)

    def test_second_run_resumes_from_best_model(self):
        with tempfile.TemporaryDirectory() as tmp:
            _seed_episodes(Path(tmp) / "data")
            OfflineTrainer(self._config(tmp)).train()
            trainer = OfflineTrainer(self._config(tmp, prioritized=False))
            self.assertGreater(trainer.model.metrics.episodes_processed, 0)
            self.assertEqual(ModelCheckpoints(Path(tmp) / "models").list_models()[0]["name"], "player")

    def test_epoch_counts_only_updated_experiences(self):
        with tempfile.TemporaryDirectory() as tmp:
            trainer = OfflineTrainer(self._config(tmp, prioritized=False))
            self.assertEqual(trainer.train_epoch(), 0.0)
            self.assertEqual(trainer.model.metrics.experiences_processed, 0)

            state = [0.1] * 42
            trainer.buffer.extend(Experience(tuple(state), 0, 1.0, tuple(state), True) for _ in range(3))
            trainer.train_epoch()
            self.assertEqual(trainer.model.metrics.experiences_processed, 3)
            self.assertGreater(trainer.model.metrics.average_value_loss, 0.0)

    def test_no_episodes(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertLogs("train.trainer", level="WARNING"):
                summary = OfflineTrainer(self._config(tmp)).train()
            self.assertEqual(summary["episodes"], 0)
            self.assertFalse(summary["saved"])


if __name__ == "__main__":
    unittest.main()
