import csv
import json
import tempfile
import unittest
from pathlib import Path

from arcaderl.analysis import action_reward_analysis, analyze_episodes, learning_curve, write_report
from arcaderl.experience import Episode, Experience
from arcaderl.training_logger import TrainingLogger


def _episode(number, rewards, actions=None, confidence=1.0):
    actions = actions or [0] * len(rewards)
    experiences = tuple(
        Experience((0.0,), a, r, (0.0,), i == len(rewards) - 1, confidence=confidence)
        for i, (a, r) in enumerate(zip(actions, rewards))
    )
    return Episode(number, "s", experiences, float(sum(rewards)))


class TestAnalysis(unittest.TestCase):
    def test_empty(self):
        stats = analyze_episodes([])
        self.assertEqual(stats["total_episodes"], 0)
        self.assertEqual(stats["confidence"], {})

    def test_statistics(self):
        episodes = [
            _episode(1, [0.5, 0.5], actions=[0, 2], confidence=0.9),
            _episode(2, [1.0, 1.0, 1.0], actions=[2, 2, 8], confidence=0.5),
        ]
        stats = analyze_episodes(episodes)
        self.assertEqual(stats["total_experiences"], 5)
        self.assertAlmostEqual(stats["avg_episode_length"], 2.5)
        self.assertAlmostEqual(stats["avg_reward"], 2.0)
        self.assertAlmostEqual(stats["reward_std"], 1.0)
        self.assertEqual(stats["max_reward"], 3.0)
        self.assertEqual(stats["action_distribution"]["EAST"], 3)
        self.assertEqual(stats["action_distribution"]["STOP"], 1)
        self.assertEqual(stats["action_distribution"]["WEST"], 0)
        self.assertAlmostEqual(stats["confidence"]["high_confidence_pct"], 40.0)

    def test_learning_curve(self):
        episodes = [_episode(n, [float(n)]) for n in (5, 1, 2, 4, 3)]
        self.assertEqual(learning_curve(episodes, window=2), [(1, 1.5), (3, 3.5), (5, 5.0)])
        with self.assertRaises(ValueError):
            learning_curve(episodes, window=0)

    def test_action_rewards(self):
        means = action_reward_analysis([_episode(1, [1.0, 3.0, -2.0], actions=[1, 1, 9])], action_space_size=10)
        self.assertAlmostEqual(means["FIRE_NORTH"], 2.0)
        self.assertAlmostEqual(means["FIRE_NEAREST"], -2.0)
        self.assertEqual(means["HOLD"], 0.0)

    def test_write_report(self):
        with tempfile.TemporaryDirectory() as tmp:
            paths = write_report([_episode(n, [1.0]) for n in range(1, 6)], tmp, window=2)
            report = json.loads(Path(paths["report"]).read_text(encoding="utf-8"))
            self.assertEqual(report["stats"]["total_episodes"], 5)
            with open(paths["learning_curve"], newline="", encoding="utf-8") as f:
                rows = list(csv.reader(f))
            self.assertEqual(rows[0], ["episode", "avg_reward"])
            self.assertEqual(len(rows), 4)


class TestTrainingLogger(unittest.TestCase):
    def test_episode_summaries_and_outputs(self):
        with tempfile.TemporaryDirectory() as tmp:
            log = TrainingLogger(output_dir=tmp)
            log.start_episode(agent="env_0", phase="BasicMovement")
            log.log_step(2, 1.5, {"kill": 1.0, "survival": 0.5})
            log.log_step(8, -0.5, {"wall": -0.5})
            summary = log.end_episode("survived", performance=0.4)
            self.assertEqual(summary.steps, 2)
            self.assertAlmostEqual(summary.total_reward, 1.0)
            self.assertEqual(summary.action_counts, {"EAST": 1, "STOP": 1})

            log.start_episode(agent="<env_1>", phase="BasicMovement")
            log.log_step(0, -1.0)
            log.end_episode("game_over")

            metrics = log.aggregate_metrics()
            self.assertEqual(metrics["episodes"], 2)
            self.assertEqual(metrics["outcome_histogram"], {"survived": 1, "game_over": 1})
            self.assertAlmostEqual(metrics["term_totals"]["kill"], 1.0)

            paths = log.write_outputs()
            self.assertEqual(len(Path(paths["jsonl"]).read_text(encoding="utf-8").splitlines()), 2)
            self.assertIn("term_wall", Path(paths["csv"]).read_text(encoding="utf-8"))
            page = Path(paths["html"]).read_text(encoding="utf-8")
            self.assertIn("&lt;env_1&gt;", page)
            self.assertEqual(json.loads(Path(paths["summary"]).read_text(encoding="utf-8"))["episodes"], 2)

    def test_shooting_action_names(self):
        log = TrainingLogger(action_space_size=10)
        log.start_episode()
        log.log_step(0, 0.0)
        self.assertEqual(log.end_episode("survived").action_counts, {"HOLD": 1})


if __name__ == "__main__":
    unittest.main()
