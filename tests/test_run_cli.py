import random
import tempfile
import unittest
from pathlib import Path

from arcaderl.experience import ExperienceStore
from train.run import _optional, _timestamped_output_dir, build_parser, run_analyze, run_parallel


class TestRunCli(unittest.TestCase):
    def test_parser_defaults(self):
        args = build_parser().parse_args(["parallel", "--episodes", "8"])
        self.assertEqual(args.command, "parallel")
        self.assertEqual(args.episodes, 8)
        self.assertEqual(args.environments, 4)
        self.assertEqual(args.layout, "full")
        self.assertIsNone(args.duration_minutes)

        args = build_parser().parse_args(["--seed", "4", "cyclic", "--max-cycles", "2"])
        self.assertEqual(args.seed, 4)
        self.assertEqual(args.max_cycles, 2)
        self.assertEqual(args.roster_path, "data/agent_roster.json")

        args = build_parser().parse_args(["offline", "--uniform"])
        self.assertTrue(args.uniform)
        with self.assertRaises(SystemExit):
            build_parser().parse_args(["parallel", "--layout", "wide"])

    def test_timestamped_output_dir(self):
        nested = Path(_timestamped_output_dir("outputs/train/run1"))
        self.assertEqual(nested.parts[0], "outputs")
        self.assertEqual(nested.parts[-1], "run1")
        self.assertEqual(len(nested.parts), 3)
        other = Path(_timestamped_output_dir("elsewhere"))
        self.assertEqual(other.parts[0], "elsewhere")

    def test_optional_paths(self):
        with tempfile.TemporaryDirectory() as tmp:
            self.assertIsNone(_optional(""))
            self.assertIsNone(_optional(str(Path(tmp) / "missing.json")))
            present = Path(tmp) / "present.json"
            present.write_text("{}", encoding="utf-8")
            self.assertEqual(_optional(str(present)), present)

    def test_run_parallel_saves_best_model(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            args = build_parser().parse_args(
                [
                    "--no-aim",
                    "parallel",
                    "--episodes",
                    "4",
                    "--environments",
                    "2",
                    "--max-steps",
                    "5",
                    "--data-dir",
                    str(root / "data"),
                    "--model-dir",
                    str(root / "models"),
                    "--curriculum-path",
                    str(root / "absent.json"),
                ]
            )
            result = run_parallel(args, str(root / "out"))
            self.assertEqual(result["aggregate"]["total_episodes"], 4)
            self.assertTrue((root / "models" / "player_model.json").exists())
            self.assertTrue((root / "out" / "episodes.jsonl").exists())

    def test_run_analyze(self):
        with tempfile.TemporaryDirectory() as tmp:
            data = Path(tmp) / "data"
            store = ExperienceStore(data)
            rng = random.Random(0)
            for _ in range(3):
                store.record_experience([0.0], rng.randrange(12), 1.0, [0.0], True)
                store.persist_episode(store.end_episode()[0])
            args = build_parser().parse_args(["analyze", "--data-dir", str(data), "--window", "2"])
            result = run_analyze(args, str(Path(tmp) / "out"))
            self.assertEqual(result["stats"]["total_episodes"], 3)
            self.assertTrue(Path(result["artifacts"]["report"]).exists())


if __name__ == "__main__":
    unittest.main()
