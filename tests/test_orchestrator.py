import json
import random
import tempfile
import threading
import time
import unittest
from dataclasses import replace
from pathlib import Path

from arcaderl.errors import PersistenceError
from train.orchestrator import MultiAgentCyclicOrchestrator, RangeAgent
from train.roster import DEFAULT_ROSTER, AgentSpec, load_agent_roster, roster_by_name


class FakeAgent:
    def __init__(self, name, reward=1.0, on_episode=None, fail_save=False):
        self.name = name
        self.reward = reward
        self.on_episode = on_episode
        self.fail_save = fail_save
        self.episodes = 0
        self.saves = 0
        self.loaded_from = None

    def train_episode(self):
        self.episodes += 1
        if self.on_episode is not None:
            self.on_episode(self)
        return self.reward

    def save_model(self, path):
        if self.fail_save:
            raise PersistenceError(f"cannot write {path}")
        self.saves += 1
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps({"episodes": self.episodes}), encoding="utf-8")
        return out

    def load_model(self, path):
        self.loaded_from = Path(path)
        return Path(path).exists()


def _quick_roster(max_steps=20):
    return [replace(spec, settings=dict(spec.settings, max_steps=max_steps)) for spec in DEFAULT_ROSTER]


class TestMultiAgentCyclicOrchestrator(unittest.TestCase):
    def test_persists_every_agent_after_each_cycle(self):
        with tempfile.TemporaryDirectory() as tmp:
            agents = [FakeAgent("a"), FakeAgent("b", reward=3.0), FakeAgent("c")]
            orchestrator = MultiAgentCyclicOrchestrator(agents, model_dir=tmp)
            self.assertEqual(orchestrator.loaded, {"a": False, "b": False, "c": False})
            self.assertEqual(agents[0].loaded_from, Path(tmp) / "a_model.json")

            report = orchestrator.run_cyclic_training(threading.Event(), episodes_per_cycle=3, max_cycles=2)
            self.assertEqual(report.cycles, 2)
            self.assertFalse(report.cancelled)
            self.assertEqual([a.episodes for a in agents], [6, 6, 6])
            self.assertEqual([a.saves for a in agents], [2, 2, 2])
            self.assertEqual(report.episodes, {"a": 6, "b": 6, "c": 6})
            self.assertAlmostEqual(report.mean_rewards["b"], 3.0)
            self.assertTrue((Path(tmp) / "c_model.json").exists())

    def test_cancel_finishes_block_then_saves_all(self):
        with tempfile.TemporaryDirectory() as tmp:
            cancel = threading.Event()

            def trip(agent):
                if agent.episodes == 2:
                    cancel.set()

            agents = [FakeAgent("a"), FakeAgent("b", on_episode=trip), FakeAgent("c")]
            orchestrator = MultiAgentCyclicOrchestrator(agents, model_dir=tmp)
            report = orchestrator.run_cyclic_training(cancel, episodes_per_cycle=4)

            self.assertTrue(report.cancelled)
            self.assertEqual(report.cycles, 0)
            self.assertEqual([a.episodes for a in agents], [4, 4, 0])
            self.assertEqual([a.saves for a in agents], [1, 1, 1])

    def test_persist_failures_are_counted(self):
        with tempfile.TemporaryDirectory() as tmp:
            agents = [FakeAgent("a", fail_save=True), FakeAgent("b")]
            orchestrator = MultiAgentCyclicOrchestrator(agents, model_dir=tmp)
            with self.assertLogs("train.orchestrator", level="WARNING"):
                report = orchestrator.run_cyclic_training(threading.Event(), episodes_per_cycle=1, max_cycles=1)
            self.assertEqual(report.persist_failures, 1)
            self.assertEqual(agents[1].saves, 1)

    def test_rejects_duplicates_and_bad_block_size(self):
        with self.assertRaises(ValueError):
            MultiAgentCyclicOrchestrator([FakeAgent("a"), FakeAgent("a")])
        with tempfile.TemporaryDirectory() as tmp:
            orchestrator = MultiAgentCyclicOrchestrator([FakeAgent("a")], model_dir=tmp)
            with self.assertRaises(ValueError):
                orchestrator.run_cyclic_training(threading.Event(), episodes_per_cycle=0)

    def test_start_and_stop(self):
        with tempfile.TemporaryDirectory() as tmp:
            agents = [FakeAgent("a", on_episode=lambda _: time.sleep(0.001)), FakeAgent("b")]
            orchestrator = MultiAgentCyclicOrchestrator(agents, model_dir=tmp)
            thread = orchestrator.start(episodes_per_cycle=2)
            time.sleep(0.05)
            report = orchestrator.stop(timeout=5.0)
            self.assertFalse(thread.is_alive())
            self.assertTrue(report.cancelled)
            self.assertGreater(agents[0].episodes, 0)

    def test_range_agents_round_trip_their_models(self):
        with tempfile.TemporaryDirectory() as tmp:
            roster = _quick_roster()
            first = MultiAgentCyclicOrchestrator(model_dir=tmp, seed=1, roster=roster)
            self.assertFalse(any(first.loaded.values()))
            report = first.run_cyclic_training(threading.Event(), episodes_per_cycle=1, max_cycles=1)
            self.assertEqual(report.cycles, 1)
            self.assertEqual(len(report.episodes), len(DEFAULT_ROSTER))
            for spec in roster:
                self.assertTrue((Path(tmp) / f"{spec.name}_model.json").exists())

            second = MultiAgentCyclicOrchestrator(model_dir=tmp, seed=1, roster=roster)
            self.assertTrue(all(second.loaded.values()))
            agent = second.agents[0]
            self.assertEqual(agent.model.metrics.episodes_processed, 1)


class TestRangeAgent(unittest.TestCase):
    def test_episode_respects_step_limit(self):
        spec = roster_by_name(_quick_roster(max_steps=15))["player_movement"]
        agent = RangeAgent(spec, random.Random(0))
        agent.train_episode()
        self.assertEqual(agent.episodes_trained, 1)
        self.assertEqual(agent.model.weights.shape, (9, 30))

    def test_action_space_mismatch(self):
        with self.assertRaises(ValueError):
            RangeAgent(AgentSpec("player_movement", "dodge", layout="base", action_space_size=12), random.Random(0))


class TestAgentRosterJson(unittest.TestCase):
    def _write(self, tmp, payload):
        path = Path(tmp) / "agent_roster.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_shipped_roster_matches_defaults(self):
        path = Path(__file__).resolve().parents[1] / "data" / "agent_roster.json"
        self.assertEqual(load_agent_roster(path), list(DEFAULT_ROSTER))

    def test_requires_schema_version(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaisesRegex(ValueError, "schema_version"):
                load_agent_roster(self._write(tmp, {"agents": []}))

    def test_rejects_invalid_rows(self):
        row = {"name": "x", "kind": "dodge", "layout": "base", "action_space_size": 9}
        cases = [
            ([dict(row, kind="racing")], "kind"),
            ([dict(row, layout="wide")], "layout"),
            ([dict(row, settings={"gravity": 1})], "gravity"),
            ([row, dict(row)], "duplicates"),
            ([{"name": "x"}], "missing required field"),
            ([], "At least one agent"),
        ]
        with tempfile.TemporaryDirectory() as tmp:
            for agents, message in cases:
                with self.subTest(message=message):
                    with self.assertRaisesRegex(ValueError, message):
                        load_agent_roster(self._write(tmp, {"schema_version": 1, "agents": agents}))


if __name__ == "__main__":
    unittest.main()
